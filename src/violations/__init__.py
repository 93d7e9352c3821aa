"""Violation persistence and severity-tiered rate limiting.

Shared Utilities (from src/common/):
    - config: load_rate_limit_settings(), RateLimitSettings, RateLimitTier
    - firestore: get_firestore_client(), security_violations_collection()
    - logging: log_violation() security events, log_decision()
    - pii: redact_and_truncate() for stored user-input excerpts

Modules:
    models: Identity, ViolationRecord, RateLimitDecision, statistics models
    store: ViolationStore interface and InMemoryViolationStore
    firestore_repository: FirestoreViolationStore (transactional merge)
    rate_limiter: decide_rate_limit() and RateLimiter
"""

from src.violations.models import (
    Identity,
    IdentityKind,
    RateLimitDecision,
    ViolationRecord,
    resolve_identity,
)
from src.violations.rate_limiter import RateLimiter, client_ip_from_headers, decide_rate_limit
from src.violations.store import InMemoryViolationStore, ViolationStore

__all__ = [
    "Identity",
    "IdentityKind",
    "InMemoryViolationStore",
    "RateLimitDecision",
    "RateLimiter",
    "ViolationRecord",
    "ViolationStore",
    "client_ip_from_headers",
    "decide_rate_limit",
    "resolve_identity",
]
