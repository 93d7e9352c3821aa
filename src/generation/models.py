"""Request/response models for the generation client."""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One role-tagged prompt message."""

    role: Literal["system", "user", "assistant"]
    content: str


class ErrorKind(str, Enum):
    """Classification of a failed generation call.

    Only ``transient`` is retried.
    """

    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    INVALID_REQUEST = "invalid_request"


class GenerationRequest(BaseModel):
    messages: List[ChatMessage]
    max_tokens: int = Field(4000, ge=1)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_retries: int = Field(3, ge=1, description="Total attempts, including the first.")

    @property
    def content_length(self) -> int:
        return sum(len(m.content) for m in self.messages)


class GenerationResponse(BaseModel):
    """Completion text, or a classified error with attempt context."""

    text: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    attempts: int = 0
    model: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error_kind is None and self.text is not None
