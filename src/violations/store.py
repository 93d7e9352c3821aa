"""Violation store interface and the in-process implementation.

The store is the persistence collaborator of the rate limiter. The only
write path is ``increment_or_create``, which must be atomic: two concurrent
writers recording the same (identity, type, pattern) inside the merge
window end up with one record with count 2, never two records.
"""

from __future__ import annotations

import hashlib
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from src.common.pii import redact_and_truncate
from src.policy.models import Severity, Violation, ViolationType
from src.violations.models import Identity, ViolationRecord

USER_INPUT_EXCERPT_CHARS = 1000


def merge_key(identity: Identity, violation_type: ViolationType, pattern: str) -> str:
    """Deterministic key for the merge tuple (identity, type, pattern)."""
    raw = "|".join((identity.kind.value, identity.value, violation_type.value, pattern))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:40]


def new_record_id() -> str:
    return f"viol_{uuid.uuid4().hex[:16]}"


def build_record(
    violation: Violation,
    identity: Identity,
    now: datetime,
    *,
    user_input: Optional[str] = None,
    action: Optional[str] = None,
    endpoint: Optional[str] = None,
    user_agent: Optional[str] = None,
    record_id: Optional[str] = None,
) -> ViolationRecord:
    """Fresh record with count 1 for a violation attributed to identity."""
    return ViolationRecord(
        record_id=record_id or new_record_id(),
        identity_kind=identity.kind,
        identity_value=identity.value,
        type=violation.type,
        severity=violation.severity,
        description=violation.description,
        detected_pattern=violation.detected_pattern,
        user_input=redact_and_truncate(user_input, USER_INPUT_EXCERPT_CHARS),
        action=action,
        endpoint=endpoint,
        user_id=violation.user_id,
        ip_address=violation.ip_address,
        session_id=violation.session_id,
        user_agent=user_agent,
        violation_count=1,
        last_violation_at=now,
        created_at=now,
    )


class ViolationStore(ABC):
    """Persistence for ViolationRecords."""

    @abstractmethod
    def find_recent_duplicate(
        self,
        identity: Identity,
        violation_type: ViolationType,
        pattern: str,
        window_start: datetime,
    ) -> Optional[ViolationRecord]:
        """Record for the merge tuple created at or after ``window_start``."""

    @abstractmethod
    def increment_or_create(
        self,
        violation: Violation,
        identity: Identity,
        now: datetime,
        *,
        merge_window: timedelta,
        user_input: Optional[str] = None,
        action: Optional[str] = None,
        endpoint: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ViolationRecord:
        """Atomically bump a recent duplicate or insert a new record."""

    @abstractmethod
    def sum_counts_by_severity_window(
        self,
        identity: Identity,
        severity: Severity,
        window_start: datetime,
    ) -> int:
        """Sum of violation_count for records created at or after window_start."""

    @abstractmethod
    def latest_record(self, identity: Identity, severity: Severity) -> Optional[ViolationRecord]:
        """Record with the most recent last_violation_at for the severity."""

    @abstractmethod
    def records_for_identity(
        self,
        identity: Identity,
        since: Optional[datetime] = None,
    ) -> List[ViolationRecord]:
        """Records for identity, newest first."""

    @abstractmethod
    def list_records(self, since: datetime) -> List[ViolationRecord]:
        """All records created at or after ``since``."""

    @abstractmethod
    def delete_older_than(self, cutoff: datetime, severities: Iterable[Severity]) -> int:
        """Delete records of the given severities created before cutoff."""


class InMemoryViolationStore(ViolationStore):
    """Mutex-protected dict store for tests and single-node deployments."""

    def __init__(self):
        self._records: Dict[str, ViolationRecord] = {}
        self._lock = threading.Lock()

    def _duplicate_locked(
        self,
        identity: Identity,
        violation_type: ViolationType,
        pattern: str,
        window_start: datetime,
    ) -> Optional[ViolationRecord]:
        candidates = [
            record
            for record in self._records.values()
            if record.identity == identity
            and record.type == violation_type
            and record.detected_pattern == pattern
            and record.created_at >= window_start
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.created_at)

    def find_recent_duplicate(self, identity, violation_type, pattern, window_start):
        with self._lock:
            found = self._duplicate_locked(identity, violation_type, pattern, window_start)
            return found.model_copy() if found else None

    def increment_or_create(
        self,
        violation,
        identity,
        now,
        *,
        merge_window,
        user_input=None,
        action=None,
        endpoint=None,
        user_agent=None,
    ):
        with self._lock:
            existing = self._duplicate_locked(
                identity, violation.type, violation.detected_pattern, now - merge_window
            )
            if existing is not None:
                updated = existing.model_copy(
                    update={
                        "violation_count": existing.violation_count + 1,
                        "last_violation_at": max(existing.last_violation_at, now),
                        "user_input": redact_and_truncate(user_input, USER_INPUT_EXCERPT_CHARS)
                        or existing.user_input,
                    }
                )
            else:
                updated = build_record(
                    violation,
                    identity,
                    now,
                    user_input=user_input,
                    action=action,
                    endpoint=endpoint,
                    user_agent=user_agent,
                )
            self._records[updated.record_id] = updated
            return updated.model_copy()

    def sum_counts_by_severity_window(self, identity, severity, window_start):
        with self._lock:
            return sum(
                record.violation_count
                for record in self._records.values()
                if record.identity == identity
                and record.severity == severity
                and record.created_at >= window_start
            )

    def latest_record(self, identity, severity):
        with self._lock:
            matching = [
                record
                for record in self._records.values()
                if record.identity == identity and record.severity == severity
            ]
        if not matching:
            return None
        return max(matching, key=lambda r: r.last_violation_at).model_copy()

    def records_for_identity(self, identity, since=None):
        with self._lock:
            matching = [
                record.model_copy()
                for record in self._records.values()
                if record.identity == identity and (since is None or record.created_at >= since)
            ]
        return sorted(matching, key=lambda r: r.created_at, reverse=True)

    def list_records(self, since):
        with self._lock:
            matching = [record.model_copy() for record in self._records.values() if record.created_at >= since]
        return sorted(matching, key=lambda r: r.created_at, reverse=True)

    def delete_older_than(self, cutoff, severities):
        targets = set(severities)
        with self._lock:
            doomed = [
                record_id
                for record_id, record in self._records.items()
                if record.severity in targets and record.created_at < cutoff
            ]
            for record_id in doomed:
                del self._records[record_id]
        return len(doomed)
