"""Shared PII detection and redaction utilities.

This module provides centralized PII handling used across:
- Sanitization: Redact sensitive substrings from user input
- Output validation: Redact PII and credentials from generated text
- Violation store: Redact stored user-input excerpts

Having a single source of truth for PII patterns keeps redaction
consistent between what users send and what the model returns.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class RedactionRule:
    """One PII pattern with its typed placeholder."""

    pattern: re.Pattern
    replacement: str
    description: str


# ============================================================================
# Input-side patterns (sanitizer)
# ============================================================================

# Order matters - more specific patterns come first
SENSITIVE_INPUT_RULES: List[RedactionRule] = [
    RedactionRule(re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN_REMOVED]", "Social Security Number"),
    RedactionRule(re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "[CARD_REMOVED]", "Credit Card Number"),
    RedactionRule(re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "[PHONE_REMOVED]", "Phone Number"),
    RedactionRule(
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        "[EMAIL_REMOVED]",
        "Email Address",
    ),
]

# ============================================================================
# Output-side patterns (generated text)
# ============================================================================

OUTPUT_PII_RULES: List[RedactionRule] = [
    RedactionRule(re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN_REDACTED]", "Social Security Number"),
    RedactionRule(re.compile(r"\b\d{3}[-.]\d{3}[-.]\d{4}\b"), "[PHONE_REDACTED]", "Phone Number"),
    RedactionRule(
        re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        "[EMAIL_REDACTED]",
        "Email Address",
    ),
    RedactionRule(re.compile(r"sk-[a-zA-Z0-9]{20,}"), "[CREDENTIAL_REDACTED]", "API Key"),
    RedactionRule(re.compile(r"Bearer\s+[a-zA-Z0-9._-]+", re.IGNORECASE), "[CREDENTIAL_REDACTED]", "Bearer Token"),
    RedactionRule(
        re.compile(r"\b(?:password|passwd|secret|token|api[_-]?key)\s*[:=]\s*\S+", re.IGNORECASE),
        "[CREDENTIAL_REDACTED]",
        "Credential",
    ),
    RedactionRule(
        re.compile(r"\b(?:credit card|bank account|social security)(?:\s+number)?[:\s]+[\d-]{4,}", re.IGNORECASE),
        "[SENSITIVE_INFO_REDACTED]",
        "Sensitive Information",
    ),
]

# Matches any placeholder emitted by the rules above
PLACEHOLDER_PATTERN = re.compile(r"\[[A-Z_]+_(?:REMOVED|REDACTED)\]")


# ============================================================================
# Text Redaction Functions
# ============================================================================


def redact_with_rules(text: str, rules: Sequence[RedactionRule]) -> Tuple[str, List[str]]:
    """Apply redaction rules in order.

    Returns:
        Tuple of (redacted text, one "<description>: N instance(s)" entry per
        rule that fired).
    """
    findings: List[str] = []
    result = text
    for rule in rules:
        result, count = rule.pattern.subn(rule.replacement, result)
        if count:
            findings.append(f"{rule.description}: {count} instance(s)")
    return result, findings


def redact_pii_text(text: str) -> str:
    """Apply every input and output PII rule to text."""
    result, _ = redact_with_rules(text, SENSITIVE_INPUT_RULES)
    result, _ = redact_with_rules(result, OUTPUT_PII_RULES)
    return result


def has_pii(text: str) -> bool:
    """Best-effort check for detectable PII patterns."""
    return any(rule.pattern.search(text) for rule in (*SENSITIVE_INPUT_RULES, *OUTPUT_PII_RULES))


def truncate_text(
    text: str,
    max_length: int = 500,
    preserve_word_boundary: bool = True,
) -> str:
    """Truncate text to maximum length, optionally preserving word boundaries."""
    if len(text) <= max_length:
        return text

    truncated = text[: max_length - 3]

    if preserve_word_boundary:
        last_space = truncated.rfind(" ")
        if last_space > max_length // 2:
            truncated = truncated[:last_space]

    return truncated + "..."


def redact_and_truncate(
    text: Optional[str],
    max_length: int = 1000,
) -> Optional[str]:
    """Redact PII and truncate text for safe storage.

    This is the entry point for user-input excerpts kept on violation records.
    """
    if not text:
        return None

    return truncate_text(redact_pii_text(text), max_length)


def hash_identity(value: str, salt: str = "talkguard") -> str:
    """Salted SHA256 of an identity value, for logs that must not carry it."""
    return hashlib.sha256((value + salt).encode("utf-8")).hexdigest()
