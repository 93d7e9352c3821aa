"""Testing helpers for integration runs against live Firestore."""

from __future__ import annotations

import os
from typing import List
from uuid import uuid4

import pytest

from src.common.config import ConfigError, load_firestore_config, load_rate_limit_settings

FIRESTORE_CREDENTIAL_HINTS = (
    "GOOGLE_APPLICATION_CREDENTIALS",
    "GOOGLE_CLOUD_PROJECT",
    "FIRESTORE_EMULATOR_HOST",
)


def require_live_services() -> None:
    """Skip the test unless live Firestore credentials are configured."""
    if os.getenv("RUN_LIVE_TESTS") != "1":
        pytest.skip("Set RUN_LIVE_TESTS=1 to enable live integration tests.")
    try:
        load_firestore_config()
        load_rate_limit_settings()
    except ConfigError as exc:
        pytest.skip(f"Live integration tests require valid configuration: {exc}")
    if not any(os.getenv(env) for env in FIRESTORE_CREDENTIAL_HINTS):
        pytest.skip(
            "Provide Firestore credentials via GOOGLE_APPLICATION_CREDENTIALS, GOOGLE_CLOUD_PROJECT "
            "or FIRESTORE_EMULATOR_HOST to run live integration tests."
        )


def ensure_firestore_prefix(monkeypatch, *, label: str) -> str:
    """Point FIRESTORE_COLLECTION_PREFIX at a fresh, test-unique prefix."""
    base = os.getenv("LIVE_TEST_COLLECTION_PREFIX")
    suffix = uuid4().hex[:6]
    prefix = f"{base.rstrip('_')}_{label}_{suffix}_" if base else f"test_{label}_{suffix}_"
    monkeypatch.setenv("FIRESTORE_COLLECTION_PREFIX", prefix)
    return prefix


def delete_collections(fs_client, names: List[str]) -> None:
    """Best-effort teardown of the collections a live test wrote to."""
    for name in names:
        batch = fs_client.batch()
        pending = 0
        for snapshot in fs_client.collection(name).stream():
            batch.delete(snapshot.reference)
            pending += 1
            if pending >= 400:
                batch.commit()
                batch = fs_client.batch()
                pending = 0
        if pending:
            batch.commit()
