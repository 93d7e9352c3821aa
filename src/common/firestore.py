"""Firestore client factory and collection names for the violation store.

Collection names are ``{FIRESTORE_COLLECTION_PREFIX}<name>`` so tests and
environments can share one project without colliding.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from src.common.config import FirestoreConfig, load_firestore_config

if TYPE_CHECKING:
    from google.cloud.firestore import Client as FirestoreClient

SECURITY_VIOLATIONS = "security_violations"
VIOLATION_MERGE_HEADS = "violation_merge_heads"


class FirestoreError(Exception):
    """Firestore client could not be created."""


def get_firestore_client(config: Optional[FirestoreConfig] = None) -> "FirestoreClient":
    """Client for the configured project and database.

    Raises:
        FirestoreError: If initialization fails (for example no credentials).
    """
    from google.cloud import firestore

    config = config or load_firestore_config()
    kwargs: Dict[str, Any] = {"database": config.database_id}
    if config.project_id:
        kwargs["project"] = config.project_id

    try:
        return firestore.Client(**kwargs)
    except Exception as e:
        raise FirestoreError(f"Failed to initialize Firestore client: {e}") from e


def _collection(name: str, prefix: Optional[str]) -> str:
    if prefix is None:
        prefix = load_firestore_config().collection_prefix
    return f"{prefix}{name}"


def security_violations_collection(prefix: Optional[str] = None) -> str:
    """One document per ViolationRecord."""
    return _collection(SECURITY_VIOLATIONS, prefix)


def violation_merge_heads_collection(prefix: Optional[str] = None) -> str:
    """One document per merge key, pointing at the record accepting merges."""
    return _collection(VIOLATION_MERGE_HEADS, prefix)
