"""Pytest configuration and shared fixtures.

Automatically loads .env file for all tests, ensuring environment variables
are available for both unit tests (with fakes) and integration tests (with
real credentials).
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Load .env file before any tests run
# This makes environment variables available to all tests
from src.common.env import load_env

load_env(verbose=False)

from src.common.config import RateLimitSettings, default_rate_limit_tiers


class FakeClock:
    """Settable UTC clock for rate-limiter tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def live_clock():
    """Clock starting at the real current time, for code that also reads wall time."""
    return FakeClock(datetime.now(tz=timezone.utc))


@pytest.fixture
def rate_limit_settings():
    return RateLimitSettings(tiers=default_rate_limit_tiers())


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    # Keep a developer's .env from changing unit-test defaults
    for key in (
        "ALLOWED_DOMAINS",
        "ALLOWED_DOMAINS_FILE",
        "VIOLATION_STORE_BACKEND",
        "WORDS_PER_MINUTE",
        "WORD_COUNT_TOLERANCE",
    ):
        monkeypatch.delenv(key, raising=False)
