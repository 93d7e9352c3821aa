"""Generic rule-table scanning and the three policy detectors."""

from typing import Any, Iterable, List, Optional, Sequence

from src.common.config import DEFAULT_ALLOWED_DOMAINS
from src.policy.models import Violation, ViolationType
from src.policy.rules import (
    DOMAIN_KEYWORDS,
    INAPPROPRIATE_RULES,
    MANIPULATION_RULES,
    RECOMMENDED_THEMES,
    DetectionRule,
    build_spam_rules,
)


def scan_against_table(
    text: Any,
    rules: Sequence[DetectionRule],
    violation_type: ViolationType,
) -> List[Violation]:
    """Run every rule over text; each rule yields at most one Violation.

    Non-string or empty text yields no violations.
    """
    if not isinstance(text, str) or not text:
        return []

    violations: List[Violation] = []
    for rule in rules:
        match = rule.pattern.search(text)
        if match is None:
            continue
        violations.append(
            Violation(
                type=violation_type,
                severity=rule.severity,
                description=rule.description,
                detected_pattern=match.group(0),
                category=rule.category,
            )
        )
    return violations


def detect_manipulation_attempts(text: Any) -> List[Violation]:
    return scan_against_table(text, MANIPULATION_RULES, ViolationType.MANIPULATION_ATTEMPT)


def detect_inappropriate_content(text: Any) -> List[Violation]:
    return scan_against_table(text, INAPPROPRIATE_RULES, ViolationType.INAPPROPRIATE_CONTENT)


def detect_spam(text: Any, allowed_domains: Optional[Iterable[str]] = None) -> List[Violation]:
    domains = DEFAULT_ALLOWED_DOMAINS if allowed_domains is None else allowed_domains
    return scan_against_table(text, build_spam_rules(domains), ViolationType.SPAM)


def is_topical(text: Any) -> bool:
    """True if text mentions at least one domain keyword or recommended theme."""
    if not isinstance(text, str):
        return False
    lowered = text.lower()
    return any(term in lowered for term in DOMAIN_KEYWORDS) or any(
        theme in lowered for theme in RECOMMENDED_THEMES
    )


def is_recommended_theme(theme: str) -> bool:
    lowered = theme.lower()
    return any(known in lowered or lowered in known for known in RECOMMENDED_THEMES)
