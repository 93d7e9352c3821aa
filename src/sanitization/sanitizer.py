"""Input sanitization for user-supplied text.

Pipeline per value:
1. Trim and truncate to the field type's max length (warning only)
2. Remove dangerous constructs until no rule matches
3. Redact sensitive substrings with typed placeholders
4. HTML-escape, or strip disallowed tags when rich text is allowed
5. Collapse whitespace unless newlines are preserved
6. Structural checks for email and url fields (hard errors)

A second pass over an already sanitized value is a no-op: the removal rules
leave escaped entities and redaction placeholders alone, and truncation
counts each of those as a single character.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse

from src.common.pii import SENSITIVE_INPUT_RULES, redact_with_rules
from src.sanitization.models import (
    FieldRule,
    FieldSanitizationResult,
    FieldType,
    SanitizationResult,
    SecurityScanResult,
)
from src.sanitization.rules import (
    DANGEROUS_RULES,
    DISALLOWED_TAG_PATTERN,
    EMAIL_PATTERN,
    MAX_LENGTHS,
    SENSITIVE_REDACTION_EXEMPT,
    SUSPICIOUS_PATTERNS,
    THREAT_PATTERNS,
    escape_html,
)

logger = logging.getLogger(__name__)

# One visible character: an escaped entity, a redaction placeholder, or any
# single code point.
_UNIT_PATTERN = re.compile(
    r"&(?:amp|lt|gt|quot|#x27|#x2F);|\[[A-Z_]+_(?:REMOVED|REDACTED)\]|.",
    re.DOTALL,
)
_WHITESPACE_RUN = re.compile(r"\s+")
_MAX_REMOVAL_PASSES = 10

COMPLETELY_SANITIZED_WARNING = "Input was completely sanitized - may be too restrictive"


def visible_length(text: str) -> int:
    """Length of text with entities and placeholders counted as one character."""
    return sum(1 for _ in _UNIT_PATTERN.finditer(text))


def truncate_visible(text: str, max_length: int) -> Tuple[str, bool]:
    """Cut text to ``max_length`` visible characters without splitting a unit."""
    end = 0
    for count, match in enumerate(_UNIT_PATTERN.finditer(text)):
        if count == max_length:
            return text[:end], True
        end = match.end()
    return text, False


def remove_dangerous_patterns(
    text: str,
    rules: Sequence[Tuple[str, re.Pattern]] = DANGEROUS_RULES,
) -> Tuple[str, List[str]]:
    """Strip every dangerous construct, repeating until nothing matches.

    Returns the cleaned text and one description per rule class that fired.
    Matched text is never returned.
    """
    removed: List[str] = []
    result = text
    for _ in range(_MAX_REMOVAL_PASSES):
        changed = False
        for description, pattern in rules:
            result, count = pattern.subn("", result)
            if count:
                changed = True
                entry = f"Dangerous pattern removed: {description}"
                if entry not in removed:
                    removed.append(entry)
        if not changed:
            break
    return result, removed


def is_valid_email(value: str) -> bool:
    return len(value) <= MAX_LENGTHS[FieldType.EMAIL] and bool(EMAIL_PATTERN.match(value))


def is_valid_url(value: str) -> bool:
    if not value or any(ch.isspace() for ch in value):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def sanitize_input(
    raw: Any,
    field_type: FieldType = FieldType.GENERAL,
    *,
    allow_html: bool = False,
    preserve_newlines: bool = True,
    remove_sensitive_info: Optional[bool] = None,
    dangerous_rules: Sequence[Tuple[str, re.Pattern]] = DANGEROUS_RULES,
) -> SanitizationResult:
    """Sanitize one user-supplied value.

    Args:
        raw: Value as received. Non-string input sanitizes to "".
        field_type: Declared type; selects max length and structural checks.
        allow_html: Keep allow-listed formatting tags instead of escaping.
        preserve_newlines: When False, collapse all whitespace runs to a space.
        remove_sensitive_info: Redact SSN/card/phone/email substrings. Defaults
            to True except for email, password and url fields.
        dangerous_rules: Removal table; defaults to the full input table.

    Returns:
        SanitizationResult. ``success`` is False only when ``errors`` is
        non-empty; truncation and over-filtering are warnings.
    """
    field_type = FieldType(field_type)
    if not isinstance(raw, str) or not raw.strip():
        return SanitizationResult(
            success=True,
            sanitized_value="",
            original_value=raw if isinstance(raw, str) else "",
        )

    if remove_sensitive_info is None:
        remove_sensitive_info = field_type not in SENSITIVE_REDACTION_EXEMPT

    warnings: List[str] = []
    errors: List[str] = []
    removed_patterns: List[str] = []

    value = raw.strip()
    max_length = MAX_LENGTHS[field_type]
    value, truncated = truncate_visible(value, max_length)
    if truncated:
        warnings.append(f"Input truncated to {max_length} characters")

    value, removed = remove_dangerous_patterns(value, dangerous_rules)
    removed_patterns.extend(removed)

    if remove_sensitive_info:
        value, findings = redact_with_rules(value, SENSITIVE_INPUT_RULES)
        removed_patterns.extend(findings)

    if not preserve_newlines:
        value = _WHITESPACE_RUN.sub(" ", value)
    value = value.strip()

    # Structural checks run on the unescaped value
    if field_type == FieldType.EMAIL and value and not is_valid_email(value):
        errors.append("Invalid email format")
    elif field_type == FieldType.URL and value and not is_valid_url(value):
        errors.append("Invalid URL format")

    if allow_html:
        value = DISALLOWED_TAG_PATTERN.sub("", value).strip()
    else:
        value = escape_html(value, escape_slash=field_type != FieldType.URL)

    if field_type == FieldType.PASSWORD:
        removed_patterns = []
    elif removed_patterns:
        logger.info(
            "input_sanitized",
            extra={
                "event": "input_sanitized",
                "field_type": field_type.value,
                "removed_patterns": removed_patterns,
            },
        )

    if not value:
        warnings.append(COMPLETELY_SANITIZED_WARNING)

    return SanitizationResult(
        success=not errors,
        sanitized_value=value,
        original_value=raw,
        removed_patterns=removed_patterns,
        warnings=warnings,
        errors=errors,
    )


def sanitize_fields(
    data: Mapping[str, Any],
    field_config: Mapping[str, FieldRule],
) -> FieldSanitizationResult:
    """Sanitize several fields, each with its own rule.

    Fields not named in ``field_config`` are dropped. Numbers are sanitized
    as their string form.
    """
    sanitized: Dict[str, str] = {}
    errors: Dict[str, List[str]] = {}
    warnings: Dict[str, List[str]] = {}

    for name, rule in field_config.items():
        value = data.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)

        if value is None or (isinstance(value, str) and not value.strip()):
            if rule.required:
                errors[name] = [f"{name} is required"]
            else:
                sanitized[name] = ""
            continue

        result = sanitize_input(
            value,
            rule.type,
            allow_html=rule.allow_html,
            preserve_newlines=rule.preserve_newlines,
            remove_sensitive_info=rule.remove_sensitive_info,
        )
        sanitized[name] = result.sanitized_value
        if result.errors:
            errors[name] = result.errors
        if result.warnings:
            warnings[name] = result.warnings

    return FieldSanitizationResult(
        success=not errors,
        sanitized_data=sanitized,
        errors=errors,
        warnings=warnings,
    )


def scan_content_security(content: Any) -> SecurityScanResult:
    """Report script-like threats and suspicious data in free text.

    The scan runs on the raw text; ``sanitized_content`` is the story-type
    sanitization of it.
    """
    if not isinstance(content, str) or not content:
        return SecurityScanResult(safe=True)

    threats = [message for pattern, message in THREAT_PATTERNS if pattern.search(content)]
    warnings = [message for pattern, message in SUSPICIOUS_PATTERNS if pattern.search(content)]

    sanitized = sanitize_input(content, FieldType.STORY, preserve_newlines=True)
    return SecurityScanResult(
        safe=not threats,
        threats=threats,
        warnings=warnings,
        sanitized_content=sanitized.sanitized_value,
    )
