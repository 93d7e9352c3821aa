"""Content policy detection.

Data-driven detectors for prompt manipulation, inappropriate content and
spam, plus the ContentPolicyFilter that combines them with sanitization.

Shared Utilities (from src/common/):
    - config: load_allowed_domains() for the spam link rule
    - logging: log_decision() for per-field outcomes

Modules:
    models: Violation, ViolationType, Severity, PolicyResult, Questionnaire
    rules: DetectionRule tables and topical keyword lists
    detectors: scan_against_table() and the per-detector wrappers
    content_filter: ContentPolicyFilter (evaluate + questionnaire validation)
"""

from src.policy.content_filter import ContentPolicyFilter
from src.policy.models import PolicyResult, Questionnaire, Severity, Violation, ViolationType

__all__ = [
    "ContentPolicyFilter",
    "PolicyResult",
    "Questionnaire",
    "Severity",
    "Violation",
    "ViolationType",
]
