"""Post-generation output validation.

Shared Utilities (from src/common/):
    - config: load_output_validation_config(), allowed domain list
    - pii: OUTPUT_PII_RULES for typed redaction

Modules:
    models: OutputValidationResult, UrlValidationResult, HarmFilterResult
    harm_filter: PII redaction, harm vocabulary, source/doctrinal heuristics
    validator: OutputValidator
"""

from src.output_validation.models import OutputValidationResult, UrlValidationResult
from src.output_validation.validator import OutputValidator, extract_urls, host_is_allowed

__all__ = [
    "OutputValidationResult",
    "OutputValidator",
    "UrlValidationResult",
    "extract_urls",
    "host_is_allowed",
]
