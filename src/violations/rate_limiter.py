"""Severity-tiered rate limiting over recorded violations.

The block decision is ``decide_rate_limit``, a pure function of the
identity's recent records and the current time. ``RateLimiter`` wires it
to a ViolationStore and a clock.

Store failures make ``check`` fail open: the request is allowed and the
error is logged with event ``rate_limit_fail_open``.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from src.common.config import RateLimitSettings, RateLimitTier, load_rate_limit_settings
from src.common.errors import ViolationStoreError
from src.common.logging import get_logger, log_decision, log_error, log_violation
from src.policy.models import Severity, Violation
from src.violations.models import (
    CleanupResult,
    Identity,
    PatternCount,
    RateLimitDecision,
    RecordSummary,
    ViolationRecord,
    ViolationStatistics,
    resolve_identity,
)
from src.violations.store import InMemoryViolationStore, ViolationStore

logger = get_logger(__name__)

TIME_RANGES: Dict[str, timedelta] = {
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}

ROUTINE_SEVERITIES = (Severity.LOW, Severity.MEDIUM)
AUDIT_SEVERITIES = (Severity.HIGH, Severity.CRITICAL)

# Checked in order; first usable address wins
CLIENT_IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
    "cf-connecting-ip",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def decide_rate_limit(
    history: Sequence[ViolationRecord],
    now: datetime,
    tiers: Iterable[RateLimitTier],
) -> RateLimitDecision:
    """Decide whether an identity is blocked.

    For each tier: sum the counts of that severity's records created within
    the tier window. If the sum reaches ``max_violations`` and ``now`` is
    before the latest record's ``last_violation_at`` plus ``block_minutes``,
    the tier blocks. Tiers are independent; when several block, the one that
    ends last is reported.

    Args:
        history: The identity's records (any order, any severity).
        now: Current time.
        tiers: Tier policies.
    """
    blocking: Optional[RateLimitDecision] = None

    for tier in tiers:
        records = [r for r in history if r.severity.value == tier.severity]
        if not records:
            continue

        window_start = now - timedelta(minutes=tier.window_minutes)
        count = sum(r.violation_count for r in records if r.created_at >= window_start)
        if count < tier.max_violations:
            continue

        latest = max(records, key=lambda r: r.last_violation_at)
        block_end = latest.last_violation_at + timedelta(minutes=tier.block_minutes)
        if now >= block_end:
            continue

        if blocking is None or block_end > blocking.next_allowed_time:
            blocking = RateLimitDecision(
                is_blocked=True,
                violation_count=count,
                block_duration_minutes=tier.block_minutes,
                next_allowed_time=block_end,
                severity=Severity(tier.severity),
            )

    if blocking is not None:
        return blocking
    return RateLimitDecision.allow(sum(r.violation_count for r in history))


def client_ip_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    """First client address found in the usual proxy headers."""
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in CLIENT_IP_HEADERS:
        value = lowered.get(name)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if name == "forwarded" and "for=" in candidate.lower():
            # RFC 7239: for=192.0.2.60;proto=http
            for part in candidate.split(";"):
                key, _, raw = part.strip().partition("=")
                if key.lower() == "for":
                    candidate = raw.strip().strip('"')
                    break
        if candidate and candidate.lower() != "unknown":
            return candidate
    return None


def create_violation_store(settings: RateLimitSettings) -> ViolationStore:
    """Build the configured store backend."""
    if settings.store_backend == "firestore":
        from src.violations.firestore_repository import FirestoreViolationStore

        return FirestoreViolationStore()
    return InMemoryViolationStore()


class RateLimiter:
    """Records violations and answers block/allow for an identity.

    Usage:
        limiter = RateLimiter()
        decision = limiter.check(user_id="u1")
        limiter.record(result.violations, user_id="u1", action="questionnaire_validation")
    """

    def __init__(
        self,
        store: Optional[ViolationStore] = None,
        settings: Optional[RateLimitSettings] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.settings = settings or load_rate_limit_settings()
        self.store = store or create_violation_store(self.settings)
        self._clock = clock

    @property
    def merge_window(self) -> timedelta:
        return timedelta(minutes=self.settings.merge_window_minutes)

    def check(
        self,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        session_id: Optional[str] = None,
        *,
        request_id: Optional[str] = None,
    ) -> RateLimitDecision:
        """Block/allow decision for whichever identity resolves first."""
        identity = resolve_identity(user_id, ip_address, session_id)
        if identity is None:
            return RateLimitDecision.allow()
        return self.check_identity(identity, request_id=request_id)

    def check_identity(self, identity: Identity, *, request_id: Optional[str] = None) -> RateLimitDecision:
        now = self._clock()
        try:
            history = self.store.records_for_identity(
                identity, since=now - timedelta(hours=self.settings.lookback_hours)
            )
        except Exception as e:
            log_error(
                logger,
                "rate_limit_check_failed",
                request_id=request_id,
                error=e,
                event="rate_limit_fail_open",
                identity_kind=identity.kind.value,
            )
            return RateLimitDecision.allow()

        decision = decide_rate_limit(history, now, self.settings.tiers)
        log_decision(
            logger,
            request_id=request_id,
            action="rate_limit_check",
            outcome="blocked" if decision.is_blocked else "allowed",
            identity_kind=identity.kind.value,
            identity_hash=identity.hashed,
            violation_count=decision.violation_count,
            block_duration_minutes=decision.block_duration_minutes,
        )
        return decision

    def record(
        self,
        violations: Iterable[Violation],
        *,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        session_id: Optional[str] = None,
        user_input: Optional[str] = None,
        action: Optional[str] = None,
        endpoint: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> RecordSummary:
        """Log and persist every violation; never raises on store failure.

        Violations are logged even when no identity resolves; they are only
        persisted when one does.
        """
        identity = resolve_identity(user_id, ip_address, session_id)
        summary = RecordSummary()

        for violation in violations:
            log_violation(
                logger,
                violation_type=violation.type.value,
                severity=violation.severity.value,
                identity_kind=identity.kind.value if identity else None,
                identity_hash=identity.hashed if identity else None,
                action=action,
                category=violation.category,
                request_id=request_id,
            )
            if identity is None:
                continue

            attributed = violation.model_copy(
                update={"user_id": user_id, "ip_address": ip_address, "session_id": session_id}
            )
            try:
                record = self.store.increment_or_create(
                    attributed,
                    identity,
                    self._clock(),
                    merge_window=self.merge_window,
                    user_input=user_input,
                    action=action,
                    endpoint=endpoint,
                    user_agent=user_agent,
                )
            except Exception as e:
                summary.failed += 1
                summary.errors.append(str(e))
                log_error(
                    logger,
                    "violation_persist_failed",
                    request_id=request_id,
                    error=e,
                    violation_type=violation.type.value,
                )
                continue

            summary.recorded += 1
            if record.record_id not in summary.record_ids:
                summary.record_ids.append(record.record_id)

        return summary

    def statistics(self, time_range: str = "day") -> ViolationStatistics:
        """Totals by type and severity, unique users/IPs and top 10 patterns.

        Raises:
            ValueError: Unknown time range.
            ViolationStoreError: Store query failed.
        """
        if time_range not in TIME_RANGES:
            raise ValueError(f"time_range must be one of {sorted(TIME_RANGES)}")

        since = self._clock() - TIME_RANGES[time_range]
        try:
            records = self.store.list_records(since)
        except ViolationStoreError:
            raise
        except Exception as e:
            raise ViolationStoreError(f"Failed to load violations: {e}") from e

        by_type: Counter = Counter()
        by_severity: Counter = Counter()
        patterns: Counter = Counter()
        users = set()
        ips = set()
        for record in records:
            by_type[record.type.value] += record.violation_count
            by_severity[record.severity.value] += record.violation_count
            patterns[record.detected_pattern] += record.violation_count
            if record.user_id:
                users.add(record.user_id)
            if record.ip_address:
                ips.add(record.ip_address)

        return ViolationStatistics(
            time_range=time_range,
            total_violations=sum(r.violation_count for r in records),
            violations_by_type=dict(by_type),
            violations_by_severity=dict(by_severity),
            unique_users=len(users),
            unique_ips=len(ips),
            top_patterns=[PatternCount(pattern=p, count=c) for p, c in patterns.most_common(10)],
        )

    def history(self, user_id: str, limit: int = 50) -> List[ViolationRecord]:
        """A user's records, newest first."""
        identity = resolve_identity(user_id=user_id)
        if identity is None:
            return []
        return self.store.records_for_identity(identity)[:limit]

    def cleanup(self, older_than_days: Optional[int] = None) -> CleanupResult:
        """Purge low/medium records past ``older_than_days`` (default 90) and
        high/critical records past the audit retention period.
        """
        now = self._clock()
        routine_days = older_than_days if older_than_days is not None else self.settings.purge_after_days
        audit_days = max(routine_days, self.settings.audit_retention_days)

        result = CleanupResult(
            deleted_routine=self.store.delete_older_than(now - timedelta(days=routine_days), ROUTINE_SEVERITIES),
            deleted_audit=self.store.delete_older_than(now - timedelta(days=audit_days), AUDIT_SEVERITIES),
        )
        logger.info(
            "violation_cleanup",
            extra={
                "event": "violation_cleanup",
                "deleted_routine": result.deleted_routine,
                "deleted_audit": result.deleted_audit,
            },
        )
        return result
