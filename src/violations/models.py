"""Pydantic models for violation persistence and rate-limit decisions."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.common.pii import hash_identity
from src.policy.models import Severity, ViolationType


class IdentityKind(str, Enum):
    USER = "user"
    IP = "ip"
    SESSION = "session"


class Identity(BaseModel):
    """The single actor a violation is attributed to."""

    model_config = {"frozen": True}

    kind: IdentityKind
    value: str

    @property
    def hashed(self) -> str:
        return hash_identity(f"{self.kind.value}:{self.value}")


def resolve_identity(
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Optional[Identity]:
    """Pick user id, then IP, then session id. None when nothing is known."""
    if user_id:
        return Identity(kind=IdentityKind.USER, value=user_id)
    if ip_address:
        return Identity(kind=IdentityKind.IP, value=ip_address)
    if session_id:
        return Identity(kind=IdentityKind.SESSION, value=session_id)
    return None


def _parse_dt(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class ViolationRecord(BaseModel):
    """Persisted row; repeats of the same (identity, type, pattern) within the
    merge window bump ``violation_count`` instead of adding rows.
    """

    record_id: str
    identity_kind: IdentityKind
    identity_value: str
    type: ViolationType
    severity: Severity
    description: str
    detected_pattern: str = ""
    user_input: Optional[str] = Field(None, description="Redacted, truncated excerpt.")
    action: Optional[str] = None
    endpoint: Optional[str] = None
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    user_agent: Optional[str] = None
    violation_count: int = Field(1, ge=1)
    last_violation_at: datetime
    created_at: datetime

    @property
    def identity(self) -> Identity:
        return Identity(kind=self.identity_kind, value=self.identity_value)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to Firestore-friendly dict."""
        return {
            "record_id": self.record_id,
            "identity_kind": self.identity_kind.value,
            "identity_value": self.identity_value,
            "type": self.type.value,
            "severity": self.severity.value,
            "description": self.description,
            "detected_pattern": self.detected_pattern,
            "user_input": self.user_input,
            "action": self.action,
            "endpoint": self.endpoint,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "session_id": self.session_id,
            "user_agent": self.user_agent,
            "violation_count": self.violation_count,
            "last_violation_at": self.last_violation_at.isoformat(timespec="microseconds"),
            "created_at": self.created_at.isoformat(timespec="microseconds"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ViolationRecord":
        payload = dict(data)
        payload["last_violation_at"] = _parse_dt(payload["last_violation_at"])
        payload["created_at"] = _parse_dt(payload["created_at"])
        return cls.model_validate(payload)


class RateLimitDecision(BaseModel):
    """Outcome of a rate-limit check.

    ``violation_count`` is the windowed count of the tripped tier when
    blocked, otherwise the identity's total over the lookback period.
    """

    is_blocked: bool
    violation_count: int = 0
    block_duration_minutes: int = 0
    next_allowed_time: Optional[datetime] = None
    severity: Optional[Severity] = None

    @classmethod
    def allow(cls, violation_count: int = 0) -> "RateLimitDecision":
        return cls(is_blocked=False, violation_count=violation_count)


class RecordSummary(BaseModel):
    """Result of persisting a batch of violations."""

    recorded: int = 0
    failed: int = 0
    record_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0


class PatternCount(BaseModel):
    pattern: str
    count: int


class ViolationStatistics(BaseModel):
    """Aggregates over a time range for monitoring."""

    time_range: str
    total_violations: int = 0
    violations_by_type: Dict[str, int] = Field(default_factory=dict)
    violations_by_severity: Dict[str, int] = Field(default_factory=dict)
    unique_users: int = 0
    unique_ips: int = 0
    top_patterns: List[PatternCount] = Field(default_factory=list)


class CleanupResult(BaseModel):
    deleted_routine: int = Field(0, description="Low/medium records purged.")
    deleted_audit: int = Field(0, description="High/critical records past audit retention.")

    @property
    def total(self) -> int:
        return self.deleted_routine + self.deleted_audit
