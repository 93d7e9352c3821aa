"""Configuration loader for Talkguard services.

Provides shared configuration dataclasses and environment variable helpers
used across the sanitization, policy, rate limiting, generation and output
validation components.

All service configurations are centralized here to avoid duplication.

Exports:
    - ConfigError: Exception for configuration errors
    - _get_env, _int_env, _float_env, _optional_env: Environment helpers
    - FirestoreConfig, GenerationConfig: Collaborator configurations
    - RateLimitTier, RateLimitSettings: Severity-tiered block policy
    - CacheSettings: Per-namespace default TTLs
    - OutputValidationConfig: Domain allow-list and length tolerance
    - load_*: Load each configuration from environment
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


def _get_env(key: str, default: Optional[str] = None, required: bool = False) -> str:
    value = os.getenv(key, default)
    if required and (value is None or value == ""):
        raise ConfigError(f"Missing required environment variable: {key}")
    if value is None:
        raise ConfigError(f"Environment variable {key} is not set and no default provided")
    if value == "" and default is None:
        raise ConfigError(f"Environment variable {key} is empty and no default provided")
    return value


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid int for {key}: {raw}") from exc


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid float for {key}: {raw}") from exc


def _optional_env(key: str) -> Optional[str]:
    value = os.getenv(key)
    if value is None or value == "":
        return None
    return value


@dataclass
class FirestoreConfig:
    """Firestore connection configuration used by the violation store."""

    collection_prefix: str
    project_id: Optional[str] = None
    database_id: str = "(default)"


def load_firestore_config() -> FirestoreConfig:
    """Load Firestore configuration from environment variables."""
    return FirestoreConfig(
        collection_prefix=_get_env("FIRESTORE_COLLECTION_PREFIX", default="talkguard_"),
        project_id=_optional_env("GOOGLE_CLOUD_PROJECT"),
        database_id=_get_env("FIRESTORE_DATABASE_ID", default="(default)"),
    )


# =============================================================================
# Generation Client Configuration
# =============================================================================

PROVIDER_CHAT_COMPLETIONS = "chat_completions"
PROVIDER_GEMINI = "gemini"

DEFAULT_GENERATION_PROVIDER = PROVIDER_CHAT_COMPLETIONS
DEFAULT_GENERATION_BASE_URL = "https://api.x.ai/v1"
DEFAULT_GENERATION_MODEL = "grok-2-1212"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_GENERATION_TEMPERATURE = 0.7
DEFAULT_GENERATION_MAX_TOKENS = 4000
DEFAULT_GENERATION_MAX_RETRIES = 3
DEFAULT_GENERATION_TIMEOUT_SEC = 60.0
DEFAULT_VERTEX_AI_LOCATION = "us-central1"
MAX_MESSAGE_CONTENT_CHARS = 100_000


@dataclass
class GenerationConfig:
    """External text-generation endpoint configuration.

    ``provider`` selects the transport: ``chat_completions`` talks to an
    OpenAI-compatible ``/chat/completions`` endpoint over HTTP, ``gemini``
    uses the google-genai SDK.
    """

    provider: str
    model: str
    api_key: Optional[str]
    base_url: str
    temperature: float
    max_tokens: int
    max_retries: int
    request_timeout_sec: float
    location: str = DEFAULT_VERTEX_AI_LOCATION
    max_content_chars: int = MAX_MESSAGE_CONTENT_CHARS


def load_generation_config() -> GenerationConfig:
    """Load generation client configuration from environment variables.

    Raises:
        ConfigError: If the provider is unknown or a numeric value is invalid
            or out of range.
    """
    provider = _get_env("GENERATION_PROVIDER", default=DEFAULT_GENERATION_PROVIDER)
    if provider not in (PROVIDER_CHAT_COMPLETIONS, PROVIDER_GEMINI):
        raise ConfigError(f"Unknown GENERATION_PROVIDER: {provider}")

    default_model = DEFAULT_GEMINI_MODEL if provider == PROVIDER_GEMINI else DEFAULT_GENERATION_MODEL
    config = GenerationConfig(
        provider=provider,
        model=_get_env("GENERATION_MODEL", default=default_model),
        api_key=_optional_env("GENERATION_API_KEY") or _optional_env("XAI_API_KEY"),
        base_url=_get_env("GENERATION_BASE_URL", default=DEFAULT_GENERATION_BASE_URL).rstrip("/"),
        temperature=_float_env("GENERATION_TEMPERATURE", default=DEFAULT_GENERATION_TEMPERATURE),
        max_tokens=_int_env("GENERATION_MAX_TOKENS", default=DEFAULT_GENERATION_MAX_TOKENS),
        max_retries=_int_env("GENERATION_MAX_RETRIES", default=DEFAULT_GENERATION_MAX_RETRIES),
        request_timeout_sec=_float_env("GENERATION_TIMEOUT_SEC", default=DEFAULT_GENERATION_TIMEOUT_SEC),
        location=_get_env("VERTEX_AI_LOCATION", default=DEFAULT_VERTEX_AI_LOCATION),
        max_content_chars=_int_env("GENERATION_MAX_CONTENT_CHARS", default=MAX_MESSAGE_CONTENT_CHARS),
    )
    if not 0.0 <= config.temperature <= 2.0:
        raise ConfigError(f"GENERATION_TEMPERATURE must be between 0 and 2: {config.temperature}")
    if config.max_tokens < 1:
        raise ConfigError(f"GENERATION_MAX_TOKENS must be at least 1: {config.max_tokens}")
    if config.max_retries < 1:
        raise ConfigError(f"GENERATION_MAX_RETRIES must be at least 1: {config.max_retries}")
    return config


# =============================================================================
# Rate Limiter Configuration
# =============================================================================

# (max_violations, window_minutes, block_minutes) per severity tier
DEFAULT_RATE_LIMIT_TIERS: Dict[str, Tuple[int, int, int]] = {
    "low": (10, 60, 15),
    "medium": (5, 30, 60),
    "high": (3, 15, 240),
    "critical": (1, 5, 1440),
}

DEFAULT_MERGE_WINDOW_MINUTES = 5
DEFAULT_LOOKBACK_HOURS = 24
DEFAULT_PURGE_AFTER_DAYS = 90
DEFAULT_AUDIT_RETENTION_DAYS = 365


@dataclass(frozen=True)
class RateLimitTier:
    """Block policy for one severity tier."""

    severity: str
    max_violations: int
    window_minutes: int
    block_minutes: int


@dataclass
class RateLimitSettings:
    """Combined settings for the violation store and rate limiter."""

    tiers: List[RateLimitTier]
    merge_window_minutes: int = DEFAULT_MERGE_WINDOW_MINUTES
    lookback_hours: int = DEFAULT_LOOKBACK_HOURS
    purge_after_days: int = DEFAULT_PURGE_AFTER_DAYS
    audit_retention_days: int = DEFAULT_AUDIT_RETENTION_DAYS
    store_backend: str = "memory"

    def tier(self, severity: str) -> Optional[RateLimitTier]:
        for tier in self.tiers:
            if tier.severity == severity:
                return tier
        return None


def default_rate_limit_tiers() -> List[RateLimitTier]:
    return [
        RateLimitTier(severity=severity, max_violations=limits[0], window_minutes=limits[1], block_minutes=limits[2])
        for severity, limits in DEFAULT_RATE_LIMIT_TIERS.items()
    ]


def load_rate_limit_settings() -> RateLimitSettings:
    """Load rate limiter settings from environment variables.

    Each tier can be overridden independently, e.g.
    ``RATE_LIMIT_HIGH_MAX_VIOLATIONS``, ``RATE_LIMIT_HIGH_WINDOW_MINUTES`` and
    ``RATE_LIMIT_HIGH_BLOCK_MINUTES``.
    """
    tiers = []
    for severity, (max_violations, window_minutes, block_minutes) in DEFAULT_RATE_LIMIT_TIERS.items():
        prefix = f"RATE_LIMIT_{severity.upper()}"
        tiers.append(
            RateLimitTier(
                severity=severity,
                max_violations=_int_env(f"{prefix}_MAX_VIOLATIONS", default=max_violations),
                window_minutes=_int_env(f"{prefix}_WINDOW_MINUTES", default=window_minutes),
                block_minutes=_int_env(f"{prefix}_BLOCK_MINUTES", default=block_minutes),
            )
        )

    backend = _get_env("VIOLATION_STORE_BACKEND", default="memory")
    if backend not in ("memory", "firestore"):
        raise ConfigError(f"Unknown VIOLATION_STORE_BACKEND: {backend}")

    return RateLimitSettings(
        tiers=tiers,
        merge_window_minutes=_int_env("VIOLATION_MERGE_WINDOW_MINUTES", default=DEFAULT_MERGE_WINDOW_MINUTES),
        lookback_hours=_int_env("VIOLATION_LOOKBACK_HOURS", default=DEFAULT_LOOKBACK_HOURS),
        purge_after_days=_int_env("VIOLATION_PURGE_AFTER_DAYS", default=DEFAULT_PURGE_AFTER_DAYS),
        audit_retention_days=_int_env("VIOLATION_AUDIT_RETENTION_DAYS", default=DEFAULT_AUDIT_RETENTION_DAYS),
        store_backend=backend,
    )


# =============================================================================
# Cache Configuration
# =============================================================================

# Default TTL in seconds per cache namespace
DEFAULT_CACHE_TTLS: Dict[str, int] = {
    "users": 5 * 60,
    "talks": 10 * 60,
    "generated": 30 * 60,
    "validation": 60 * 60,
    "church_content": 24 * 60 * 60,
}
DEFAULT_CACHE_SWEEP_INTERVAL_SEC = 60.0


@dataclass
class CacheSettings:
    """Default TTL per namespace and the sweep interval."""

    namespace_ttls: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_CACHE_TTLS))
    sweep_interval_sec: float = DEFAULT_CACHE_SWEEP_INTERVAL_SEC


def load_cache_settings() -> CacheSettings:
    """Load cache settings; ``CACHE_TTL_<NAMESPACE>`` overrides a namespace TTL."""
    ttls = {
        namespace: _int_env(f"CACHE_TTL_{namespace.upper()}", default=ttl)
        for namespace, ttl in DEFAULT_CACHE_TTLS.items()
    }
    return CacheSettings(
        namespace_ttls=ttls,
        sweep_interval_sec=_float_env("CACHE_SWEEP_INTERVAL_SEC", default=DEFAULT_CACHE_SWEEP_INTERVAL_SEC),
    )


# =============================================================================
# Output Validation Configuration
# =============================================================================

DEFAULT_ALLOWED_DOMAINS = ("churchofjesuschrist.org", "lds.org")
DEFAULT_WORDS_PER_MINUTE = 110
DEFAULT_WORD_COUNT_TOLERANCE = 0.6


@dataclass
class OutputValidationConfig:
    """Domain allow-list and length checks for generated text."""

    allowed_domains: Tuple[str, ...] = DEFAULT_ALLOWED_DOMAINS
    words_per_minute: int = DEFAULT_WORDS_PER_MINUTE
    word_count_tolerance: float = DEFAULT_WORD_COUNT_TOLERANCE


def _load_domains_file(path: str) -> Tuple[str, ...]:
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigError(f"ALLOWED_DOMAINS_FILE not found: {path}")
    try:
        data = yaml.safe_load(file_path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    # Accept either a bare list or {"allowed_domains": [...]}
    if isinstance(data, dict):
        data = data.get("allowed_domains")
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ConfigError(f"{path} must contain a list of hostnames")
    return tuple(item.strip().lower() for item in data if item.strip())


def load_allowed_domains() -> Tuple[str, ...]:
    """Resolve the domain allow-list.

    ``ALLOWED_DOMAINS_FILE`` (YAML) wins over ``ALLOWED_DOMAINS``
    (comma-separated); both fall back to the built-in defaults.
    """
    domains_file = _optional_env("ALLOWED_DOMAINS_FILE")
    if domains_file:
        return _load_domains_file(domains_file)

    raw = _optional_env("ALLOWED_DOMAINS")
    if raw:
        domains = tuple(part.strip().lower() for part in raw.split(",") if part.strip())
        if domains:
            return domains
    return DEFAULT_ALLOWED_DOMAINS


def load_output_validation_config() -> OutputValidationConfig:
    """Load output validation configuration from environment variables."""
    return OutputValidationConfig(
        allowed_domains=load_allowed_domains(),
        words_per_minute=_int_env("WORDS_PER_MINUTE", default=DEFAULT_WORDS_PER_MINUTE),
        word_count_tolerance=_float_env("WORD_COUNT_TOLERANCE", default=DEFAULT_WORD_COUNT_TOLERANCE),
    )
