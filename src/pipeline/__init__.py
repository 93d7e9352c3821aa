"""Safety pipeline orchestration and HTTP surface.

Shared Utilities (from src/common/):
    - errors: RateLimitedError, PolicyViolationError, ValidationError
    - logging: log_decision() for end-to-end outcomes
    - env: load_env() at service start

Modules:
    models: RequestContext, GenerationOutcome, HTTP request/response bodies
    orchestrator: SafetyPipeline (rate limit -> sanitize -> policy -> generate -> validate)
    main: FastAPI app
"""

from src.pipeline.models import GenerationOutcome, RequestContext
from src.pipeline.orchestrator import SafetyPipeline, build_talk_messages

__all__ = [
    "GenerationOutcome",
    "RequestContext",
    "SafetyPipeline",
    "build_talk_messages",
]
