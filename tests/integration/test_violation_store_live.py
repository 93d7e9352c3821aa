"""
Integration tests for the Firestore violation store and rate limiter.

These tests verify that:
1. Repeats inside the merge window bump one record through the transaction
2. Records are readable per identity, newest first
3. The rate limiter blocks after the high-severity threshold on Firestore
4. Purging removes routine records and stale merge heads

Requirements:
- RUN_LIVE_TESTS=1 environment variable must be set
- Firestore credentials (or FIRESTORE_EMULATOR_HOST) configured

Usage:
    RUN_LIVE_TESTS=1 python -m pytest tests/integration/test_violation_store_live.py -v
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

from src.common.config import load_firestore_config
from src.common.firestore import security_violations_collection, violation_merge_heads_collection
from src.common.testing import delete_collections, ensure_firestore_prefix, require_live_services
from src.policy import Severity, Violation, ViolationType
from src.violations import Identity, IdentityKind, RateLimiter
from src.violations.firestore_repository import FirestoreViolationStore

pytestmark = pytest.mark.skipif(
    not os.getenv("RUN_LIVE_TESTS"),
    reason="Live Firestore integration tests require RUN_LIVE_TESTS=1",
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store(monkeypatch):
    """Firestore store writing under a unique collection prefix."""
    require_live_services()
    prefix = ensure_firestore_prefix(monkeypatch, label="violations")
    store = FirestoreViolationStore(config=load_firestore_config())
    yield store
    delete_collections(
        store.client,
        [security_violations_collection(prefix), violation_merge_heads_collection(prefix)],
    )


def high_violation(pattern="election"):
    return Violation(
        type=ViolationType.INAPPROPRIATE_CONTENT,
        severity=Severity.HIGH,
        description="Inappropriate content for religious context detected",
        detected_pattern=pattern,
        category="political",
    )


IDENTITY = Identity(kind=IdentityKind.USER, value="live-member")


# ============================================================================
# Tests
# ============================================================================


def test_repeat_inside_window_merges(store):
    now = datetime.now(tz=timezone.utc)
    window = timedelta(minutes=5)

    first = store.increment_or_create(high_violation(), IDENTITY, now, merge_window=window)
    second = store.increment_or_create(
        high_violation(), IDENTITY, now + timedelta(seconds=30), merge_window=window
    )

    assert second.record_id == first.record_id
    assert second.violation_count == 2
    assert len(store.records_for_identity(IDENTITY)) == 1


def test_repeat_after_window_starts_new_record(store):
    now = datetime.now(tz=timezone.utc)
    window = timedelta(minutes=5)

    first = store.increment_or_create(high_violation(), IDENTITY, now - timedelta(minutes=10), merge_window=window)
    second = store.increment_or_create(high_violation(), IDENTITY, now, merge_window=window)

    assert second.record_id != first.record_id
    records = store.records_for_identity(IDENTITY)
    assert [r.record_id for r in records] == [second.record_id, first.record_id]


def test_rate_limiter_blocks_on_firestore(store, rate_limit_settings):
    limiter = RateLimiter(store=store, settings=rate_limit_settings)

    for pattern in ("election", "democrat", "republican"):
        limiter.record([high_violation(pattern)], user_id=IDENTITY.value)

    decision = limiter.check(user_id=IDENTITY.value)

    assert decision.is_blocked is True
    assert decision.severity == Severity.HIGH
    assert decision.block_duration_minutes == 240


def test_delete_older_than_purges_routine_records(store):
    now = datetime.now(tz=timezone.utc)
    low = Violation(
        type=ViolationType.SPAM,
        severity=Severity.LOW,
        description="Spam-like content detected",
        detected_pattern="!!!!",
    )
    store.increment_or_create(low, IDENTITY, now - timedelta(days=100), merge_window=timedelta(minutes=5))
    kept = store.increment_or_create(high_violation(), IDENTITY, now - timedelta(days=100), merge_window=timedelta(minutes=5))

    deleted = store.delete_older_than(now - timedelta(days=90), [Severity.LOW, Severity.MEDIUM])

    assert deleted == 1
    assert [r.record_id for r in store.records_for_identity(IDENTITY)] == [kept.record_id]
