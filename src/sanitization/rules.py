"""Rule tables for input sanitization.

Kept as data so each table can be unit-tested on its own and the sanitizer
stays one generic loop over them.
"""

import re
from typing import Dict, List, Tuple

from src.sanitization.models import FieldType

MAX_LENGTHS: Dict[FieldType, int] = {
    FieldType.EMAIL: 254,
    FieldType.PASSWORD: 128,
    FieldType.NAME: 100,
    FieldType.TOPIC: 200,
    FieldType.STORY: 10000,
    FieldType.URL: 2048,
    FieldType.GENERAL: 5000,
}

# Field types whose whole value is the "sensitive" datum; redacting it would
# destroy the field.
SENSITIVE_REDACTION_EXEMPT = {FieldType.EMAIL, FieldType.PASSWORD, FieldType.URL}

ALLOWED_TAGS = ("p", "br", "strong", "em", "u", "ol", "ul", "li")

# HTML entities produced by escape_html. Removal rules must leave these intact
# or a second sanitization pass would not be a no-op.
_ENTITY_LOOKAHEAD = r"(?!(?:amp|lt|gt|quot|#x27|#x2F);)"
_ENTITY_LOOKBEHIND = r"(?<!&amp)(?<!&lt)(?<!&gt)(?<!&quot)(?<!&#x27)(?<!&#x2F)"

# Placeholders such as [SSN_REMOVED] keep their brackets for the same reason.
_PLACEHOLDER_LOOKAHEAD = r"(?![A-Z_]+_(?:REMOVED|REDACTED)\])"
_PLACEHOLDER_LOOKBEHIND = r"(?<!_REMOVED)(?<!_REDACTED)"

# (description, pattern) applied in order
DANGEROUS_RULES: List[Tuple[str, re.Pattern]] = [
    (
        "Script or embedded content element",
        re.compile(r"<(script|iframe|object|embed|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL),
    ),
    (
        "Script or embedded content tag",
        re.compile(r"</?(?:script|iframe|object|embed|link|meta|style)\b[^>]*>", re.IGNORECASE),
    ),
    ("Script protocol", re.compile(r"\b(?:javascript|vbscript)\s*:", re.IGNORECASE)),
    ("Data protocol", re.compile(r"\bdata:(?!image(?:/|&#x2F;))", re.IGNORECASE)),
    ("File protocol", re.compile(r"\bfile:(?=/|&#x2F;)", re.IGNORECASE)),
    ("Event handler attribute", re.compile(r"\bon[a-z]+\s*=", re.IGNORECASE)),
    (
        "SQL keyword sequence",
        re.compile(
            r"\b(?:union\s+(?:all\s+)?select|select\s+(?:\*|\w+(?:\s*,\s*\w+)*)\s+from"
            r"|insert\s+into|delete\s+from|drop\s+(?:table|database|schema)|alter\s+table"
            r"|create\s+(?:table|database)|truncate\s+table|update\s+\w+\s+set|exec(?:ute)?\s+xp_\w+)\b",
            re.IGNORECASE,
        ),
    ),
    (
        "Shell metacharacter",
        re.compile(
            r"&" + _ENTITY_LOOKAHEAD
            + r"|" + _ENTITY_LOOKBEHIND + r";"
            + r"|\[" + _PLACEHOLDER_LOOKAHEAD
            + r"|" + _PLACEHOLDER_LOOKBEHIND + r"\]"
            + r"|[|`$(){}]"
        ),
    ),
    ("Path traversal", re.compile(r"\.\.[/\\]")),
    ("Null byte", re.compile(r"\x00")),
]

# Generated prose legitimately uses punctuation such as "&", ";" and "(",
# and phrases like "select one from", so only markup-level rules apply.
_OUTPUT_RULE_NAMES = (
    "Script or embedded content element",
    "Script or embedded content tag",
    "Script protocol",
    "Data protocol",
    "File protocol",
    "Event handler attribute",
    "Null byte",
)
OUTPUT_DANGEROUS_RULES: List[Tuple[str, re.Pattern]] = [
    rule for rule in DANGEROUS_RULES if rule[0] in _OUTPUT_RULE_NAMES
]

DISALLOWED_TAG_PATTERN = re.compile(
    r"<(?!/?(?:" + "|".join(ALLOWED_TAGS) + r")\b)[^>]*>",
    re.IGNORECASE,
)

ENTITY_PATTERN = re.compile(r"&(?:amp|lt|gt|quot|#x27|#x2F);")

_ESCAPE_AMPERSAND = re.compile(r"&" + _ENTITY_LOOKAHEAD)

_HTML_ESCAPES = (
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#x27;"),
)


def escape_html(text: str, escape_slash: bool = True) -> str:
    """HTML-escape text without re-escaping entities it already contains."""
    result = _ESCAPE_AMPERSAND.sub("&amp;", text)
    for raw, entity in _HTML_ESCAPES:
        result = result.replace(raw, entity)
    if escape_slash:
        result = result.replace("/", "&#x2F;")
    return result


EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

# Threat scan over free text; reports only, does not modify
THREAT_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"javascript:", re.IGNORECASE), "JavaScript protocol detected"),
    (re.compile(r"<script", re.IGNORECASE), "Script tag detected"),
    (re.compile(r"\bon\w+\s*=", re.IGNORECASE), "Event handler detected"),
    (re.compile(r"\beval\s*\(", re.IGNORECASE), "Eval function detected"),
    (re.compile(r"document\.(?:write|cookie)", re.IGNORECASE), "Document manipulation detected"),
    (re.compile(r"window\.(?:location|open)", re.IGNORECASE), "Window manipulation detected"),
]

SUSPICIOUS_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\b(?:password|secret|token|key)\s*[:=]", re.IGNORECASE), "Potential credential exposure"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "Potential SSN detected"),
    (re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "Potential credit card detected"),
]
