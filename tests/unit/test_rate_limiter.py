"""Unit tests for violation recording and severity-tiered rate limiting."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from src.common.errors import ViolationStoreError
from src.policy import Severity, Violation, ViolationType
from src.violations import InMemoryViolationStore, RateLimiter, client_ip_from_headers, decide_rate_limit
from src.violations.models import IdentityKind, resolve_identity


def make_violation(severity=Severity.HIGH, pattern="election", vtype=ViolationType.INAPPROPRIATE_CONTENT):
    return Violation(
        type=vtype,
        severity=severity,
        description="Inappropriate content for religious context detected",
        detected_pattern=pattern,
        category="political",
    )


class FailingStore(InMemoryViolationStore):
    """Store whose every call fails, as an unreachable backend would."""

    def records_for_identity(self, identity, since=None):
        raise ViolationStoreError("backend unavailable")

    def increment_or_create(self, *args, **kwargs):
        raise ViolationStoreError("backend unavailable")


@pytest.fixture
def limiter(clock, rate_limit_settings):
    return RateLimiter(store=InMemoryViolationStore(), settings=rate_limit_settings, clock=clock)


def test_three_high_violations_block_for_240_minutes_then_allow(limiter, clock):
    for pattern in ("election", "politics", "senate"):
        limiter.record([make_violation(pattern=pattern)], user_id="x")
        clock.advance(minutes=2)

    decision = limiter.check(user_id="x")
    assert decision.is_blocked is True
    assert decision.block_duration_minutes == 240
    assert decision.violation_count == 3
    assert decision.severity == Severity.HIGH
    assert decision.next_allowed_time == clock.now - timedelta(minutes=2) + timedelta(minutes=240)

    clock.advance(minutes=240)
    assert limiter.check(user_id="x").is_blocked is False


def test_single_critical_violation_blocks_for_a_day(limiter, clock):
    limiter.record(
        [make_violation(Severity.CRITICAL, "ignore all previous instructions", ViolationType.MANIPULATION_ATTEMPT)],
        user_id="x",
    )

    decision = limiter.check(user_id="x")
    assert decision.is_blocked is True
    assert decision.block_duration_minutes == 1440


def test_more_violations_never_unblock(limiter, clock):
    previous_blocked = False
    for i in range(6):
        limiter.record([make_violation(pattern=f"pattern-{i}")], user_id="x")
        blocked = limiter.check(user_id="x").is_blocked
        assert blocked or not previous_blocked
        previous_blocked = blocked
    assert previous_blocked is True


def test_repeats_within_merge_window_merge_into_one_record(limiter, clock):
    limiter.record([make_violation()], user_id="x")
    clock.advance(minutes=3)
    summary = limiter.record([make_violation()], user_id="x")

    records = limiter.history("x")
    assert len(records) == 1
    assert records[0].violation_count == 2
    assert records[0].last_violation_at == clock.now
    assert summary.record_ids == [records[0].record_id]


def test_repeats_after_merge_window_create_new_record(limiter, clock):
    limiter.record([make_violation()], user_id="x")
    clock.advance(minutes=6)
    limiter.record([make_violation()], user_id="x")

    assert len(limiter.history("x")) == 2


def test_concurrent_increments_merge_into_one_record():
    store = InMemoryViolationStore()
    identity = resolve_identity("x")
    now = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
    workers = 8
    barrier = threading.Barrier(workers)

    def increment():
        barrier.wait()
        store.increment_or_create(make_violation(), identity, now, merge_window=timedelta(minutes=5))

    threads = [threading.Thread(target=increment) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    records = store.records_for_identity(identity)
    assert len(records) == 1
    assert records[0].violation_count == workers


def test_identity_precedence_user_then_ip_then_session():
    assert resolve_identity("u1", "1.2.3.4", "s1").kind == IdentityKind.USER
    assert resolve_identity(None, "1.2.3.4", "s1").kind == IdentityKind.IP
    assert resolve_identity(None, None, "s1").kind == IdentityKind.SESSION
    assert resolve_identity(None, None, None) is None


def test_violations_without_identity_are_logged_not_stored(limiter):
    summary = limiter.record([make_violation()])

    assert summary.recorded == 0
    assert summary.failed == 0


def test_store_failure_fails_open(clock, rate_limit_settings):
    limiter = RateLimiter(store=FailingStore(), settings=rate_limit_settings, clock=clock)

    summary = limiter.record([make_violation()], user_id="x")
    decision = limiter.check(user_id="x")

    assert summary.failed == 1
    assert summary.success is False
    assert decision.is_blocked is False


def test_tiers_are_independent(limiter, clock):
    # Four medium violations stay under the medium threshold of five
    for i in range(4):
        limiter.record([make_violation(Severity.MEDIUM, f"spam-{i}", ViolationType.SPAM)], user_id="x")

    assert limiter.check(user_id="x").is_blocked is False


def test_decide_rate_limit_reports_latest_ending_tier(limiter, clock, rate_limit_settings):
    for i in range(3):
        limiter.record([make_violation(pattern=f"high-{i}")], user_id="x")
    limiter.record(
        [make_violation(Severity.CRITICAL, "developer mode", ViolationType.MANIPULATION_ATTEMPT)],
        user_id="x",
    )

    history = limiter.store.records_for_identity(resolve_identity("x"))
    decision = decide_rate_limit(history, clock.now, rate_limit_settings.tiers)

    assert decision.severity == Severity.CRITICAL
    assert decision.block_duration_minutes == 1440


def test_statistics_aggregate_counts(limiter, clock):
    limiter.record([make_violation()], user_id="a", ip_address="10.0.0.1")
    limiter.record([make_violation()], user_id="a", ip_address="10.0.0.1")
    limiter.record([make_violation(Severity.MEDIUM, "!!!!", ViolationType.SPAM)], user_id="b")

    stats = limiter.statistics("day")

    assert stats.total_violations == 3
    assert stats.violations_by_type == {"inappropriate_content": 2, "spam": 1}
    assert stats.violations_by_severity == {"high": 2, "medium": 1}
    assert stats.unique_users == 2
    assert stats.unique_ips == 1
    assert stats.top_patterns[0].pattern == "election"
    assert stats.top_patterns[0].count == 2


def test_statistics_rejects_unknown_range(limiter):
    with pytest.raises(ValueError):
        limiter.statistics("decade")


def test_cleanup_keeps_high_severity_for_audit_period(limiter, clock):
    limiter.record([make_violation(Severity.LOW, "low", ViolationType.SPAM)], user_id="x")
    limiter.record([make_violation(Severity.HIGH, "high")], user_id="x")

    clock.advance(days=100)
    first = limiter.cleanup()
    assert first.deleted_routine == 1
    assert first.deleted_audit == 0

    clock.advance(days=300)
    second = limiter.cleanup()
    assert second.deleted_audit == 1
    assert second.total == 1


def test_client_ip_from_headers():
    assert client_ip_from_headers({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}) == "203.0.113.9"
    assert client_ip_from_headers({"X-Real-IP": "198.51.100.7"}) == "198.51.100.7"
    assert client_ip_from_headers({"Forwarded": 'for="192.0.2.60";proto=http'}) == "192.0.2.60"
    assert client_ip_from_headers({"X-Forwarded-For": "unknown"}) is None
    assert client_ip_from_headers({}) is None
