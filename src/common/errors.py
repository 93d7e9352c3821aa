"""Error taxonomy shared across the safety pipeline.

User-facing messages are deliberately generic; the detail that explains
*why* something was rejected is logged server-side only.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional


class TalkguardError(Exception):
    """Base exception for safety pipeline errors."""


class ValidationError(TalkguardError):
    """Recoverable, field-level input problem."""

    def __init__(self, field: str, messages: List[str]):
        self.field = field
        self.messages = messages
        super().__init__(f"{field}: {'; '.join(messages)}")


class PolicyViolationError(TalkguardError):
    """Content rejected by policy. The message never describes what matched."""

    USER_MESSAGE = "This request cannot be processed because it does not meet the content guidelines."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.USER_MESSAGE)


class RateLimitedError(TalkguardError):
    """Identity is blocked until ``next_allowed_time``."""

    def __init__(self, block_duration_minutes: int, next_allowed_time: Optional[datetime] = None):
        self.block_duration_minutes = block_duration_minutes
        self.next_allowed_time = next_allowed_time
        super().__init__(
            f"Rate limit exceeded. Please try again in {block_duration_minutes} minutes."
        )

    def retry_after_seconds(self, now: datetime) -> int:
        if self.next_allowed_time is None:
            return self.block_duration_minutes * 60
        return max(0, int((self.next_allowed_time - now).total_seconds()))


class UpstreamError(TalkguardError):
    """Base class for failures of the external generation endpoint."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TransientUpstreamError(UpstreamError):
    """Retryable upstream failure (5xx, timeout, connection error, empty reply)."""


class UpstreamRateLimitError(UpstreamError):
    """Upstream returned 429. Not retried."""


class AuthError(UpstreamError):
    """Upstream rejected our credentials (401/403). Fatal, not retried."""


class ViolationStoreError(TalkguardError):
    """Violation persistence failed."""
