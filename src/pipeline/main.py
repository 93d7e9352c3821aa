"""FastAPI service for the talk generation safety pipeline.

Per contracts/safety-openapi.yaml:
- GET /health: Service health status
- POST /validate: Sanitize one field value
- POST /rate-limit/check: Block/allow decision for the caller
- POST /generate: Policy-gated generation from chat messages
- POST /generate/talk: Questionnaire validation plus talk generation

Rejections carry generic messages only; what matched is logged server-side.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.common.env import load_env
from src.common.errors import PolicyViolationError, RateLimitedError, UpstreamError, ValidationError
from src.common.logging import get_logger, log_error
from src.pipeline.models import (
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    GenerateTalkRequest,
    GenerationOutcome,
    HealthResponse,
    RateLimitCheckRequest,
    RequestContext,
    ValidateRequest,
)
from src.pipeline.orchestrator import SafetyPipeline
from src.sanitization import SanitizationResult
from src.violations import RateLimitDecision, client_ip_from_headers

load_env()

logger = get_logger(__name__)

# Service version
VERSION = "1.0.0"

# Lazy-initialized pipeline (to avoid connection issues at import time)
_pipeline: Optional[SafetyPipeline] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    caches = get_pipeline().caches
    caches.start_sweeper()
    logger.info("service_started", extra={"event": "service_started", "version": VERSION})
    yield
    caches.stop_sweeper()


app = FastAPI(
    title="Talkguard Safety Service",
    description="Sanitization, content policy, rate limiting and output validation around talk generation.",
    version=VERSION,
    lifespan=lifespan,
)


def get_pipeline() -> SafetyPipeline:
    """Get or create the pipeline singleton."""
    global _pipeline
    if _pipeline is None:
        _pipeline = SafetyPipeline()
    return _pipeline


def set_pipeline(pipeline: Optional[SafetyPipeline]) -> None:
    """Replace the pipeline singleton (tests inject one with fakes)."""
    global _pipeline
    _pipeline = pipeline


def _client_ip(request: Request) -> Optional[str]:
    forwarded = client_ip_from_headers(request.headers)
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


def _context(request: Request, user_id: Optional[str], session_id: Optional[str], ip_address: Optional[str] = None) -> RequestContext:
    return RequestContext(
        user_id=user_id,
        ip_address=ip_address or _client_ip(request),
        session_id=session_id,
        user_agent=request.headers.get("user-agent"),
        request_id=request.headers.get("x-request-id") or uuid4().hex,
    )


def _raise_for_outcome(outcome: GenerationOutcome) -> GenerateResponse:
    if outcome.rate_limited and outcome.rate_limit is not None:
        raise RateLimitedError(outcome.rate_limit.block_duration_minutes, outcome.rate_limit.next_allowed_time)
    if outcome.policy_rejected:
        raise ValidationError("content", outcome.errors)
    if outcome.error_kind is not None:
        raise UpstreamError("; ".join(outcome.errors))
    if not outcome.success:
        raise PolicyViolationError("; ".join(outcome.errors) or None)
    return GenerateResponse(
        text=outcome.text or "",
        warnings=outcome.warnings,
        attempts=outcome.attempts,
        cached=outcome.cached,
    )


# ============================================================================
# Health Check Endpoint
# ============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint",
)
async def health_check() -> HealthResponse:
    pipeline = get_pipeline()
    return HealthResponse(
        status="healthy",
        version=VERSION,
        violation_store=pipeline.rate_limiter.settings.store_backend,
    )


# ============================================================================
# Pipeline Endpoints
# ============================================================================


@app.post(
    "/validate",
    response_model=SanitizationResult,
    responses={422: {"model": ErrorResponse, "description": "Field failed validation"}},
    summary="Sanitize one field value",
)
def validate_field(body: ValidateRequest) -> SanitizationResult:
    result = get_pipeline().validate_input(
        body.value,
        body.field_type,
        allow_html=body.allow_html,
        preserve_newlines=body.preserve_newlines,
        remove_sensitive_info=body.remove_sensitive_info,
    )
    if result.errors:
        raise ValidationError(body.field_type.value, result.errors)
    return result


@app.post(
    "/rate-limit/check",
    response_model=RateLimitDecision,
    summary="Block/allow decision for the caller",
)
def check_rate_limit(body: RateLimitCheckRequest, request: Request) -> RateLimitDecision:
    context = _context(request, body.user_id, body.session_id, body.ip_address)
    return get_pipeline().check_rate_limit(context)


@app.post(
    "/generate",
    response_model=GenerateResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Generated content rejected"},
        422: {"model": ErrorResponse, "description": "Input rejected by content policy"},
        429: {"model": ErrorResponse, "description": "Caller is rate limited"},
        502: {"model": ErrorResponse, "description": "Generation service failed"},
    },
    summary="Policy-gated generation",
)
def generate(body: GenerateRequest, request: Request) -> GenerateResponse:
    context = _context(request, body.user_id, body.session_id)
    outcome = get_pipeline().generate_with_policy(body.messages, context, body.requested_duration_minutes)
    return _raise_for_outcome(outcome)


@app.post(
    "/generate/talk",
    response_model=GenerateResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Generated content rejected"},
        422: {"model": ErrorResponse, "description": "Questionnaire rejected"},
        429: {"model": ErrorResponse, "description": "Caller is rate limited"},
        502: {"model": ErrorResponse, "description": "Generation service failed"},
    },
    summary="Validate a questionnaire and generate a talk",
)
def generate_talk(body: GenerateTalkRequest, request: Request) -> GenerateResponse:
    context = _context(request, body.user_id, body.session_id)
    outcome = get_pipeline().generate_talk(body.questionnaire, context)
    return _raise_for_outcome(outcome)


# ============================================================================
# Error Handlers
# ============================================================================


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError):
    retry_after = exc.retry_after_seconds(datetime.now(tz=timezone.utc))
    body = ErrorResponse(
        error="rate_limited",
        message=str(exc),
        next_allowed_time=exc.next_allowed_time,
    )
    return JSONResponse(
        status_code=429,
        content=body.model_dump(mode="json"),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    body = ErrorResponse(
        error="validation_error",
        message=exc.messages[0] if exc.messages else str(exc),
        details={"field": exc.field, "errors": exc.messages},
    )
    return JSONResponse(status_code=422, content=body.model_dump(mode="json"))


@app.exception_handler(PolicyViolationError)
async def policy_violation_handler(request: Request, exc: PolicyViolationError):
    body = ErrorResponse(error="content_rejected", message=str(exc))
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    body = ErrorResponse(error="generation_unavailable", message=str(exc))
    return JSONResponse(status_code=502, content=body.model_dump(mode="json"))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    log_error(logger, "unhandled_exception", error=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.pipeline.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
