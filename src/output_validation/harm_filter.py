"""PII redaction and harm detection for generated text."""

import re
from typing import List, Tuple

from src.common.pii import OUTPUT_PII_RULES, redact_with_rules
from src.output_validation.models import HarmFilterResult

# (pattern, category) - any match rejects the output
HARM_RULES: List[Tuple[re.Pattern, str]] = [
    (
        re.compile(r"\b(?:hate|violence|harm|hurt|kill|die|death)\s+(?:to\s+)?(?:someone|people|others)\b", re.IGNORECASE),
        "violence toward others",
    ),
    (
        re.compile(r"\b(?:kill|hurt|harm|cut)\s+(?:myself|yourself|themselves|himself|herself)\b|\bself[- ]harm\b", re.IGNORECASE),
        "self-harm",
    ),
    (re.compile(r"\b(?:illegal|criminal|crime|steal|theft)\b", re.IGNORECASE), "crime"),
]

# Non-allow-listed sources mentioned by name
SOURCE_NAME_PATTERN = re.compile(
    r"\b(?:wikipedia|google|youtube|facebook|twitter|instagram|amazon|goodreads|deseret\.com|ldsliving\.com)\b",
    re.IGNORECASE,
)

DOCTRINAL_CONCERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bI believe that God\b", re.IGNORECASE), "Personal belief stated as doctrine"),
    (re.compile(r"\b(?:the church teaches that|doctrine states)\b", re.IGNORECASE), "Unofficial doctrine claim"),
    (re.compile(r"\b(?:God told me|I received revelation|the spirit revealed)\b", re.IGNORECASE), "Personal revelation claim"),
]


def apply_harm_filter(text: str) -> HarmFilterResult:
    """Redact PII/credentials with typed placeholders and flag harm vocabulary.

    Harm errors name the category only.
    """
    redacted, redactions = redact_with_rules(text, OUTPUT_PII_RULES)
    errors = [
        f"Potentially harmful content detected ({category})"
        for pattern, category in HARM_RULES
        if pattern.search(redacted)
    ]
    return HarmFilterResult(text=redacted, redactions=redactions, errors=errors)


def detect_source_names(text: str) -> List[str]:
    seen: List[str] = []
    for match in SOURCE_NAME_PATTERN.finditer(text):
        name = match.group(0).lower()
        if name not in seen:
            seen.append(name)
    return seen


def detect_doctrinal_concerns(text: str) -> List[str]:
    concerns: List[str] = []
    for pattern, concern in DOCTRINAL_CONCERNS:
        if pattern.search(text) and concern not in concerns:
            concerns.append(concern)
    return concerns
