"""Request/response models for the safety pipeline and its HTTP surface.

These models align with contracts/safety-openapi.yaml.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.generation.models import ChatMessage, ErrorKind
from src.policy.models import Questionnaire
from src.sanitization.models import FieldType
from src.violations.models import RateLimitDecision


class RequestContext(BaseModel):
    """Who is asking. Identity resolves user id > IP > session id."""

    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


class GenerationOutcome(BaseModel):
    """Result of a policy-gated generation.

    ``text`` is set only when every stage passed. ``errors`` are safe to show
    the requester.
    """

    success: bool
    text: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    rate_limited: bool = False
    policy_rejected: bool = False
    rate_limit: Optional[RateLimitDecision] = None
    error_kind: Optional[ErrorKind] = None
    attempts: int = 0
    violation_count: int = 0
    cached: bool = False


# ============================================================================
# HTTP request/response bodies
# ============================================================================


class ValidateRequest(BaseModel):
    value: Any = Field(..., description="Raw field value.")
    field_type: FieldType = FieldType.GENERAL
    allow_html: bool = False
    preserve_newlines: bool = True
    remove_sensitive_info: Optional[bool] = None


class RateLimitCheckRequest(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = Field(None, description="Defaults to the client address.")


class GenerateRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    requested_duration_minutes: Optional[int] = Field(None, ge=1, le=120)
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class GenerateTalkRequest(BaseModel):
    questionnaire: Questionnaire
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class GenerateResponse(BaseModel):
    text: str
    warnings: List[str] = Field(default_factory=list)
    attempts: int = 0
    cached: bool = False


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status.")
    version: str = Field(..., description="Service version.")
    violation_store: str = Field(..., description="Configured violation store backend.")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str = Field(..., description="Error type/code.")
    message: str = Field(..., description="Human-readable error message.")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details.")
    next_allowed_time: Optional[datetime] = None
