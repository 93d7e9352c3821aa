"""Pydantic models for content-policy detection.

Violation and its enums are shared with the violation store and the rate
limiter, which persist and count them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Enums
# ============================================================================


class ViolationType(str, Enum):
    """What kind of policy issue was detected."""

    MANIPULATION_ATTEMPT = "manipulation_attempt"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    SPAM = "spam"
    POLICY_VIOLATION = "policy_violation"


class Severity(str, Enum):
    """Severity tier; each tier has its own rate-limit thresholds."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


MEETING_TYPES = ("sacrament", "stake_conference")


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


# ============================================================================
# Detection output
# ============================================================================


class Violation(BaseModel):
    """One detected content-policy or security issue.

    ``detected_pattern`` is the first matched substring. It is persisted
    (redacted) for audit but never echoed back to the requester.
    """

    type: ViolationType
    severity: Severity
    description: str
    detected_pattern: str = ""
    category: Optional[str] = Field(None, description="Rule category within the detector.")
    timestamp: datetime = Field(default_factory=_utc_now)
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a Firestore-friendly dict."""
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "detected_pattern": self.detected_pattern,
            "category": self.category,
            "timestamp": self.timestamp.isoformat(),
        }


class PolicyResult(BaseModel):
    """Decision for one piece of user text.

    ``success`` is False when there are hard errors or any critical
    violation. ``violations`` lists everything found regardless of the
    decision so it can all be persisted.
    """

    success: bool
    sanitized_input: str = ""
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    violations: List[Violation] = Field(default_factory=list)

    @property
    def has_critical(self) -> bool:
        return any(v.severity == Severity.CRITICAL for v in self.violations)


class Questionnaire(BaseModel):
    """Talk request fields collected from the user."""

    topic: str
    duration: int
    meeting_type: str
    personal_story: Optional[str] = None
    custom_themes: List[str] = Field(default_factory=list)
    audience_context: Optional[str] = None
    speaker_age: Optional[str] = None
