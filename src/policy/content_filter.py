"""Content policy filter for user text bound for the generation prompt.

Every field goes through the same steps: sanitize, run the manipulation,
inappropriate-content and spam detectors, then check topical fit. A critical
violation or a sanitizer error rejects the field. Every violation is returned
either way so the caller can persist it.

User-facing errors are generic; the matched text only ever lands on the
Violation objects.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from src.common.config import load_allowed_domains
from src.common.logging import log_decision
from src.policy.detectors import (
    detect_inappropriate_content,
    detect_manipulation_attempts,
    is_recommended_theme,
    is_topical,
    scan_against_table,
)
from src.policy.models import (
    MEETING_TYPES,
    PolicyResult,
    Questionnaire,
    Severity,
    Violation,
    ViolationType,
)
from src.policy.rules import build_spam_rules
from src.sanitization import FieldType, sanitize_input, scan_content_security

logger = logging.getLogger(__name__)

MIN_TOPIC_LENGTH = 3
MIN_THEME_LENGTH = 2
MAX_THEME_LENGTH = 100
MIN_DURATION_MINUTES = 5
MAX_DURATION_MINUTES = 60


def _has_critical(violations: Iterable[Violation]) -> bool:
    return any(v.severity == Severity.CRITICAL for v in violations)


class ContentPolicyFilter:
    """Sanitize-and-detect gate for questionnaire fields.

    Usage:
        policy = ContentPolicyFilter()
        result = policy.evaluate(text, FieldType.TOPIC, "Topic")
        if not result.success:
            ...
    """

    def __init__(self, allowed_domains: Optional[Iterable[str]] = None):
        self.allowed_domains = tuple(allowed_domains) if allowed_domains is not None else load_allowed_domains()
        self._spam_rules = build_spam_rules(self.allowed_domains)

    def detect(self, text: Any) -> List[Violation]:
        """Run all three detectors; they fire independently."""
        return [
            *detect_manipulation_attempts(text),
            *detect_inappropriate_content(text),
            *scan_against_table(text, self._spam_rules, ViolationType.SPAM),
        ]

    def evaluate(
        self,
        text: Any,
        field_type: FieldType = FieldType.GENERAL,
        field_label: str = "Input",
        *,
        preserve_newlines: Optional[bool] = None,
    ) -> PolicyResult:
        """Sanitize text and decide whether it may reach the prompt.

        Args:
            text: Raw user text.
            field_type: Sanitizer field type.
            field_label: Name used in user-facing messages.
            preserve_newlines: Defaults to True for story fields only.

        Returns:
            PolicyResult with success = no errors and no critical violation.
        """
        if preserve_newlines is None:
            preserve_newlines = field_type == FieldType.STORY

        sanitized = sanitize_input(text, field_type, preserve_newlines=preserve_newlines)
        errors = list(sanitized.errors)
        warnings: List[str] = []

        violations = self.detect(sanitized.sanitized_value)

        if sanitized.sanitized_value and not is_topical(sanitized.sanitized_value):
            warnings.append(f"{field_label} may not be appropriate for Church setting")

        if _has_critical(violations):
            errors.append(f"{field_label} contains inappropriate content that cannot be processed")

        warnings.extend(sanitized.warnings)
        result = PolicyResult(
            success=not errors,
            sanitized_input=sanitized.sanitized_value,
            errors=errors,
            warnings=warnings,
            violations=violations,
        )
        log_decision(
            logger,
            request_id=None,
            action="policy_evaluate",
            outcome="allowed" if result.success else "rejected",
            field=field_label,
            violation_count=len(violations),
            violation_types=sorted({v.type.value for v in violations}),
        )
        return result

    # ------------------------------------------------------------------
    # Questionnaire fields
    # ------------------------------------------------------------------

    def validate_topic(self, topic: Any) -> PolicyResult:
        result = self.evaluate(topic, FieldType.TOPIC, "Topic", preserve_newlines=False)
        if len(result.sanitized_input) < MIN_TOPIC_LENGTH:
            result.errors.insert(0, f"Topic must be at least {MIN_TOPIC_LENGTH} characters long")
            result.success = False
        return result

    def validate_personal_story(self, story: Any) -> PolicyResult:
        """Evaluate a personal story and add a security-scan violation if unsafe.

        The scan looks at the raw story; sanitization would already have
        stripped what it reports.
        """
        result = self.evaluate(story, FieldType.STORY, "Personal story", preserve_newlines=True)
        scan = scan_content_security(story)
        if not scan.safe:
            result.violations.append(
                Violation(
                    type=ViolationType.POLICY_VIOLATION,
                    severity=Severity.HIGH,
                    description="Content failed security scan",
                    detected_pattern=", ".join(scan.threats),
                    category="security_scan",
                )
            )
        return result

    def validate_custom_themes(self, themes: Iterable[Any]) -> PolicyResult:
        errors: List[str] = []
        warnings: List[str] = []
        violations: List[Violation] = []
        accepted: List[str] = []

        for theme in themes:
            sanitized = sanitize_input(theme, FieldType.GENERAL, preserve_newlines=False)
            if not sanitized.success:
                errors.append("Invalid theme")
                continue

            value = sanitized.sanitized_value
            if not MIN_THEME_LENGTH <= len(value) <= MAX_THEME_LENGTH:
                errors.append(f"Each theme must be between {MIN_THEME_LENGTH} and {MAX_THEME_LENGTH} characters")
                continue

            violations.extend(detect_manipulation_attempts(value))
            violations.extend(detect_inappropriate_content(value))
            if not is_topical(value):
                warnings.append(f'Theme "{value}" may not be appropriate for Church setting')
            if not is_recommended_theme(value):
                warnings.append(f'Theme "{value}" is not in the list of recommended Church themes')
            accepted.append(value)

        if _has_critical(violations):
            errors.append("One or more themes contain inappropriate content")

        return PolicyResult(
            success=not errors,
            sanitized_input=", ".join(accepted),
            errors=errors,
            warnings=warnings,
            violations=violations,
        )

    def validate_questionnaire(self, questionnaire: Union[Questionnaire, Mapping[str, Any]]) -> PolicyResult:
        """Validate every questionnaire field and build the prompt fragment.

        ``sanitized_input`` holds the combined "Label: value" lines only when
        the whole questionnaire passes.
        """
        if not isinstance(questionnaire, Questionnaire):
            questionnaire = Questionnaire.model_validate(dict(questionnaire))

        errors: List[str] = []
        warnings: List[str] = []
        violations: List[Violation] = []
        lines: List[str] = []

        def absorb(result: PolicyResult, label: str) -> None:
            violations.extend(result.violations)
            warnings.extend(result.warnings)
            if result.success:
                lines.append(f"{label}: {result.sanitized_input}")
            else:
                errors.extend(result.errors)

        absorb(self.validate_topic(questionnaire.topic), "Topic")
        if questionnaire.personal_story:
            absorb(self.validate_personal_story(questionnaire.personal_story), "Personal Story")
        if questionnaire.custom_themes:
            absorb(self.validate_custom_themes(questionnaire.custom_themes), "Custom Themes")

        if MIN_DURATION_MINUTES <= questionnaire.duration <= MAX_DURATION_MINUTES:
            lines.append(f"Duration: {questionnaire.duration} minutes")
        else:
            errors.append(f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes")

        if questionnaire.meeting_type in MEETING_TYPES:
            lines.append(f"Meeting Type: {questionnaire.meeting_type}")
        else:
            errors.append("Invalid meeting type")

        for label, value in (
            ("Audience Context", questionnaire.audience_context),
            ("Speaker Age", questionnaire.speaker_age),
        ):
            if not value:
                continue
            sanitized = sanitize_input(value, FieldType.GENERAL)
            if sanitized.success:
                lines.append(f"{label}: {sanitized.sanitized_value}")
            else:
                warnings.append(f"{label} could not be validated")

        return PolicyResult(
            success=not errors,
            sanitized_input="\n".join(lines) + "\n" if not errors else "",
            errors=errors,
            warnings=warnings,
            violations=violations,
        )
