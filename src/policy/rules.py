"""Detection rule tables.

Each detector is a list of DetectionRule; ``scan_against_table`` in
detectors.py is the only code that interprets them. Patterns run against
sanitized text, so a slash may appear as ``&#x2F;``.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List

from src.policy.models import Severity


@dataclass(frozen=True)
class DetectionRule:
    pattern: re.Pattern
    severity: Severity
    category: str
    description: str


def _rule(pattern: str, severity: Severity, category: str, description: str, flags: int = re.IGNORECASE) -> DetectionRule:
    return DetectionRule(re.compile(pattern, flags), severity, category, description)


_MANIPULATION = "Attempt to manipulate AI behavior detected"

MANIPULATION_RULES: List[DetectionRule] = [
    _rule(
        r"\b(?:ignore|forget|disregard)\s+(?:all\s+)?(?:(?:previous|prior|your)\s+)?(?:instructions|prompts|rules)\b",
        Severity.CRITICAL,
        "instruction_override",
        _MANIPULATION,
    ),
    _rule(
        r"\b(?:act|pretend|roleplay)\s+(?:as|like)\s+(?:an?\s+)?(?:different|other|new)\s+(?:ai|assistant|bot|system)\b",
        Severity.CRITICAL,
        "role_change",
        _MANIPULATION,
    ),
    _rule(r"\b(?:system|admin|root|developer)\s+(?:mode|access|override|command)\b", Severity.CRITICAL, "privileged_mode", _MANIPULATION),
    _rule(r"\b(?:new|different|alternative)\s+(?:prompt|instruction|rule|system)s?\b", Severity.CRITICAL, "prompt_injection", _MANIPULATION),
    _rule(r"\b(?:end|stop|terminate)\s+(?:previous|current)\s+(?:prompt|instruction|session)s?\b", Severity.CRITICAL, "prompt_injection", _MANIPULATION),
    _rule(r"\b(?:switch|change|modify)\s+(?:to|into)\s+(?:\w+\s+)?(?:mode|character|personality)\b", Severity.CRITICAL, "role_change", _MANIPULATION),
    _rule(r"\b(?:jailbreak|bypass|circumvent|override)\s+(?:the\s+|your\s+)?(?:safety|security|filters?|restrictions?)\b", Severity.CRITICAL, "jailbreak", _MANIPULATION),
    _rule(r"\b(?:dan|do anything now|unrestricted|unlimited)\s+(?:mode|access|capability)\b", Severity.CRITICAL, "jailbreak", _MANIPULATION),
    _rule(r"\b(?:you are|you&#x27;re|you're)\s+(?:now|going to be)\s+(?:an?\s+)?(?:different|new|other)\b", Severity.CRITICAL, "meta_instruction", _MANIPULATION),
    _rule(r"\b(?:from now on|starting now|beginning now)\b", Severity.CRITICAL, "meta_instruction", _MANIPULATION),
]

_INAPPROPRIATE = "Inappropriate content for religious context detected"

INAPPROPRIATE_RULES: List[DetectionRule] = [
    _rule(
        r"\b(?:democrats?|republicans?|liberal|conservative|politics|political|election|voting|biden|trump|congress|senate)\b",
        Severity.HIGH,
        "political",
        _INAPPROPRIATE,
    ),
    _rule(r"\b(?:abortion|gay marriage|lgbtq|transgender|homosexual|lesbian|bisexual)\b", Severity.HIGH, "controversial", _INAPPROPRIATE),
    _rule(r"\b(?:cult|brainwash\w*|false prophets?|fake religion|scam|fraud)\b", Severity.HIGH, "anti_religious", _INAPPROPRIATE),
    _rule(r"\b(?:damn|hell|crap|stupid|idiot|moron|dumb|sucks|hate)\b", Severity.HIGH, "coarse_language", _INAPPROPRIATE),
    _rule(r"\b(?:kill|murder|suicide|violence|attack|weapons?|guns?|bombs?)\b", Severity.HIGH, "violence", _INAPPROPRIATE),
    _rule(r"\b(?:sex|sexual|porn\w*|naked|nude|breast|penis|vagina|orgasm|masturbat\w*)\b", Severity.HIGH, "sexual", _INAPPROPRIATE),
    _rule(r"\b(?:drugs?|cocaine|marijuana|alcohol|beer|drunk|addiction)\b", Severity.HIGH, "substance", _INAPPROPRIATE),
]

_SPAM = "Spam-like content detected"


def _allowed_host_pattern(domains: Iterable[str]) -> str:
    escaped = "|".join(re.escape(d.lower()) for d in domains)
    return r"(?:[\w-]+\.)*(?:" + escaped + r")(?![\w.-])"


def build_spam_rules(allowed_domains: Iterable[str]) -> List[DetectionRule]:
    """Spam table; link rule exempts the allow-listed domains and their subdomains."""
    domains = list(allowed_domains)
    link_pattern = r"https?:(?://|&#x2F;&#x2F;)"
    if domains:
        link_pattern += r"(?!" + _allowed_host_pattern(domains) + r")"
    link_pattern += r"[^\s]+"

    return [
        _rule(r"(.{10,}?)\1{3,}", Severity.MEDIUM, "repetition", _SPAM, flags=re.IGNORECASE | re.DOTALL),
        _rule(r"[!?]{4,}", Severity.MEDIUM, "punctuation", _SPAM, flags=0),
        _rule(r"\.{4,}", Severity.MEDIUM, "punctuation", _SPAM, flags=0),
        # Mostly capital letters: the whole text is caps, spaces and punctuation
        _rule(r"^[A-Z\s!?.,]{20,}$", Severity.MEDIUM, "caps", _SPAM, flags=0),
        _rule(link_pattern, Severity.MEDIUM, "link", _SPAM),
        _rule(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b", Severity.MEDIUM, "contact_email", _SPAM),
        _rule(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b", Severity.MEDIUM, "contact_phone", _SPAM, flags=0),
    ]


# ============================================================================
# Topical fit
# ============================================================================

DOMAIN_KEYWORDS = (
    "faith", "gospel", "christ", "jesus", "god", "spirit", "church", "scripture", "prayer", "testimony",
)

RECOMMENDED_THEMES = (
    "faith", "hope", "charity", "love", "service", "obedience", "prayer", "scripture study",
    "testimony", "repentance", "forgiveness", "atonement", "resurrection", "eternal families",
    "temple work", "missionary work", "following christ", "discipleship", "gratitude",
    "patience", "humility", "courage", "perseverance", "unity", "compassion", "kindness",
)
