"""Firestore-backed violation store.

Collections:
- {prefix}security_violations: one document per ViolationRecord
- {prefix}violation_merge_heads: one document per merge key, pointing at the
  record currently accepting merges

``increment_or_create`` runs as a Firestore transaction that reads the merge
head and its record before writing, so two concurrent writers for the same
(identity, type, pattern) either both increment one record or one creates it
and the retry of the other increments it.

Timestamps are stored as UTC ISO-8601 strings with microseconds, which sort
lexicographically in time order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from src.common.config import FirestoreConfig, load_firestore_config
from src.common.errors import ViolationStoreError
from src.common.firestore import (
    get_firestore_client,
    security_violations_collection,
    violation_merge_heads_collection,
)
from src.common.logging import get_logger
from src.common.pii import redact_and_truncate
from src.violations.models import Identity, ViolationRecord
from src.violations.store import (
    USER_INPUT_EXCERPT_CHARS,
    ViolationStore,
    build_record,
    merge_key,
)

logger = get_logger(__name__)

# Firestore caps a write batch at 500 operations
_DELETE_BATCH_SIZE = 400


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _merge_or_insert(
    transaction: firestore.Transaction,
    records_ref: firestore.CollectionReference,
    head_ref: firestore.DocumentReference,
    fresh: ViolationRecord,
    window_start_iso: str,
    user_input: Optional[str],
) -> Dict[str, Any]:
    """Bump the record behind the merge head, or insert ``fresh``.

    Returns:
        The stored record data after the write.
    """
    # Step 1: all reads before any write
    current: Optional[Dict[str, Any]] = None
    head = head_ref.get(transaction=transaction)
    if head.exists:
        head_data = head.to_dict() or {}
        if head_data.get("created_at", "") >= window_start_iso:
            snapshot = records_ref.document(head_data["record_id"]).get(transaction=transaction)
            if snapshot.exists:
                current = snapshot.to_dict()

    now_iso = fresh.to_dict()["last_violation_at"]

    # Step 2: merge into the existing record
    if current is not None:
        updates: Dict[str, Any] = {
            "violation_count": int(current.get("violation_count", 1)) + 1,
            "last_violation_at": max(current.get("last_violation_at", ""), now_iso),
        }
        if user_input:
            updates["user_input"] = user_input
        transaction.update(records_ref.document(current["record_id"]), updates)
        current.update(updates)
        return current

    # Step 3: start a new record and move the head to it
    data = fresh.to_dict()
    transaction.set(records_ref.document(fresh.record_id), data)
    transaction.set(head_ref, {"record_id": fresh.record_id, "created_at": data["created_at"]})
    return data


@firestore.transactional
def _increment_or_create_in_transaction(
    transaction: firestore.Transaction,
    records_ref: firestore.CollectionReference,
    head_ref: firestore.DocumentReference,
    fresh: ViolationRecord,
    window_start_iso: str,
    user_input: Optional[str],
) -> Dict[str, Any]:
    return _merge_or_insert(transaction, records_ref, head_ref, fresh, window_start_iso, user_input)


class FirestoreViolationStore(ViolationStore):
    """ViolationStore over Firestore.

    Usage:
        store = FirestoreViolationStore()
        record = store.increment_or_create(violation, identity, now, merge_window=timedelta(minutes=5))
    """

    def __init__(
        self,
        client: Optional[firestore.Client] = None,
        config: Optional[FirestoreConfig] = None,
    ):
        self.config = config or load_firestore_config()
        self._client = client

    @property
    def client(self) -> firestore.Client:
        if self._client is None:
            self._client = get_firestore_client(self.config)
        return self._client

    @property
    def records_ref(self) -> firestore.CollectionReference:
        return self.client.collection(security_violations_collection(self.config.collection_prefix))

    @property
    def heads_ref(self) -> firestore.CollectionReference:
        return self.client.collection(violation_merge_heads_collection(self.config.collection_prefix))

    def _identity_query(self, identity: Identity):
        return self.records_ref.where(filter=FieldFilter("identity_kind", "==", identity.kind.value)).where(
            filter=FieldFilter("identity_value", "==", identity.value)
        )

    @staticmethod
    def _records(query) -> List[ViolationRecord]:
        return [ViolationRecord.from_dict(snapshot.to_dict()) for snapshot in query.stream()]

    # =========================================================================
    # ViolationStore
    # =========================================================================

    def find_recent_duplicate(self, identity, violation_type, pattern, window_start):
        try:
            head = self.heads_ref.document(merge_key(identity, violation_type, pattern)).get()
            if not head.exists:
                return None
            head_data = head.to_dict() or {}
            if head_data.get("created_at", "") < _iso(window_start):
                return None
            snapshot = self.records_ref.document(head_data["record_id"]).get()
            return ViolationRecord.from_dict(snapshot.to_dict()) if snapshot.exists else None
        except Exception as e:
            raise ViolationStoreError(f"Failed to look up duplicate violation: {e}") from e

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
        fresh = build_record(
            violation,
            identity,
            now,
            user_input=user_input,
            action=action,
            endpoint=endpoint,
            user_agent=user_agent,
        )
        head_ref = self.heads_ref.document(merge_key(identity, violation.type, violation.detected_pattern))
        try:
            data = _increment_or_create_in_transaction(
                self.client.transaction(),
                self.records_ref,
                head_ref,
                fresh,
                _iso(now - merge_window),
                redact_and_truncate(user_input, USER_INPUT_EXCERPT_CHARS),
            )
        except Exception as e:
            raise ViolationStoreError(f"Failed to persist violation: {e}") from e

        record = ViolationRecord.from_dict(data)
        logger.debug(
            "violation_persisted",
            extra={
                "event": "violation_persisted",
                "record_id": record.record_id,
                "violation_count": record.violation_count,
            },
        )
        return record

    def sum_counts_by_severity_window(self, identity, severity, window_start):
        query = self._identity_query(identity).where(filter=FieldFilter("severity", "==", severity.value)).where(
            filter=FieldFilter("created_at", ">=", _iso(window_start))
        )
        try:
            return sum(int((s.to_dict() or {}).get("violation_count", 1)) for s in query.stream())
        except Exception as e:
            raise ViolationStoreError(f"Failed to count violations: {e}") from e

    def latest_record(self, identity, severity):
        query = (
            self._identity_query(identity)
            .where(filter=FieldFilter("severity", "==", severity.value))
            .order_by("last_violation_at", direction=firestore.Query.DESCENDING)
            .limit(1)
        )
        try:
            records = self._records(query)
        except Exception as e:
            raise ViolationStoreError(f"Failed to fetch latest violation: {e}") from e
        return records[0] if records else None

    def records_for_identity(self, identity, since=None):
        query = self._identity_query(identity)
        if since is not None:
            query = query.where(filter=FieldFilter("created_at", ">=", _iso(since)))
        try:
            records = self._records(query)
        except Exception as e:
            raise ViolationStoreError(f"Failed to fetch violations: {e}") from e
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def list_records(self, since):
        query = self.records_ref.where(filter=FieldFilter("created_at", ">=", _iso(since)))
        try:
            records = self._records(query)
        except Exception as e:
            raise ViolationStoreError(f"Failed to list violations: {e}") from e
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def delete_older_than(self, cutoff, severities: Iterable) -> int:
        cutoff_iso = _iso(cutoff)
        deleted = 0
        try:
            for severity in severities:
                query = self.records_ref.where(filter=FieldFilter("severity", "==", severity.value)).where(
                    filter=FieldFilter("created_at", "<", cutoff_iso)
                )
                deleted += self._delete_all(query)

            # Heads this old are past any merge window
            self._delete_all(self.heads_ref.where(filter=FieldFilter("created_at", "<", cutoff_iso)))
        except Exception as e:
            raise ViolationStoreError(f"Failed to purge violations: {e}") from e
        return deleted

    def _delete_all(self, query) -> int:
        deleted = 0
        batch = self.client.batch()
        pending = 0
        for snapshot in query.stream():
            batch.delete(snapshot.reference)
            pending += 1
            if pending >= _DELETE_BATCH_SIZE:
                batch.commit()
                deleted += pending
                batch = self.client.batch()
                pending = 0
        if pending:
            batch.commit()
            deleted += pending
        return deleted
