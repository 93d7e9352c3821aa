"""Input sanitization.

Strips dangerous constructs, redacts sensitive substrings and HTML-escapes
user-supplied text before it reaches policy checks or a generation prompt.

Shared Utilities (from src/common/):
    - pii: SENSITIVE_INPUT_RULES, redact_with_rules() for typed placeholders

Modules:
    models: FieldType and pydantic result models
    rules: Max lengths, dangerous-construct table, escaping, threat patterns
    sanitizer: sanitize_input(), sanitize_fields(), scan_content_security()
"""

from src.sanitization.models import (
    FieldRule,
    FieldSanitizationResult,
    FieldType,
    SanitizationResult,
    SecurityScanResult,
)
from src.sanitization.sanitizer import sanitize_fields, sanitize_input, scan_content_security

__all__ = [
    "FieldRule",
    "FieldSanitizationResult",
    "FieldType",
    "SanitizationResult",
    "SecurityScanResult",
    "sanitize_fields",
    "sanitize_input",
    "scan_content_security",
]
