"""Retrying wrapper around the external generation call.

Auth and rate-limit failures return immediately. Transient failures are
retried with exponential backoff (1s, 2s, 4s, ... capped at 10s) until the
attempt budget is spent. Logs carry the attempt number and content length,
never message content.

There is no cancellation hook; each HTTP request has its own timeout and
callers wrap ``generate`` in their own deadline if they need one.
"""

import time
from typing import Callable, Iterable, Optional, Sequence, Union

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.common.config import PROVIDER_GEMINI, GenerationConfig, load_generation_config
from src.common.errors import AuthError, TransientUpstreamError, UpstreamRateLimitError
from src.common.logging import get_logger
from src.generation.models import ChatMessage, ErrorKind, GenerationRequest, GenerationResponse
from src.generation.transports import ChatCompletionsTransport, GeminiTransport, GenerationTransport

logger = get_logger(__name__)

MessageLike = Union[ChatMessage, dict]


def create_transport(config: GenerationConfig) -> GenerationTransport:
    if config.provider == PROVIDER_GEMINI:
        return GeminiTransport(config)
    return ChatCompletionsTransport(config)


class GenerationClient:
    """Generation with retry classification.

    Usage:
        client = GenerationClient()
        response = client.generate([{"role": "user", "content": prompt}])
        if response.success:
            ...
    """

    def __init__(
        self,
        config: Optional[GenerationConfig] = None,
        transport: Optional[GenerationTransport] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize the client.

        Args:
            config: Optional GenerationConfig. Loads from env if not provided.
            transport: Optional transport. Built from ``config.provider`` if not provided.
            sleep: Backoff sleep; defaults to ``time.sleep``.
        """
        self.config = config or load_generation_config()
        self.transport = transport or create_transport(self.config)
        self._sleep = sleep

    def _do_sleep(self, seconds: float) -> None:
        (self._sleep or time.sleep)(seconds)

    def generate(
        self,
        messages: Iterable[MessageLike],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        max_retries: Optional[int] = None,
        *,
        request_id: Optional[str] = None,
    ) -> GenerationResponse:
        """Call the endpoint, retrying transient failures.

        Args:
            messages: Ordered role-tagged messages.
            max_tokens: Defaults to the configured value.
            temperature: Defaults to the configured value.
            max_retries: Total attempts; defaults to the configured value.
            request_id: Correlation id for logs.

        Returns:
            GenerationResponse with ``text`` on success, otherwise
            ``error_kind`` and the number of attempts made.
        """
        request = GenerationRequest(
            messages=[m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages],
            max_tokens=max_tokens if max_tokens is not None else self.config.max_tokens,
            temperature=temperature if temperature is not None else self.config.temperature,
            max_retries=max_retries if max_retries is not None else self.config.max_retries,
        )
        return self.run(request, request_id=request_id)

    def run(self, request: GenerationRequest, *, request_id: Optional[str] = None) -> GenerationResponse:
        content_length = request.content_length
        model = getattr(self.transport, "model", None)

        if content_length > self.config.max_content_chars:
            logger.warning(
                "generation_rejected",
                extra={
                    "event": "generation_rejected",
                    "request_id": request_id,
                    "content_length": content_length,
                    "max_content_chars": self.config.max_content_chars,
                },
            )
            return GenerationResponse(
                error_kind=ErrorKind.INVALID_REQUEST,
                error=f"Message content too long ({content_length} > {self.config.max_content_chars} characters)",
                attempts=0,
                model=model,
            )

        attempts = 0

        def attempt() -> str:
            nonlocal attempts
            attempts += 1
            logger.info(
                "generation_attempt",
                extra={
                    "event": "generation_attempt",
                    "request_id": request_id,
                    "attempt": attempts,
                    "content_length": content_length,
                },
            )
            return self.transport.complete(
                request.messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )

        retrying = Retrying(
            retry=retry_if_exception_type(TransientUpstreamError),
            stop=stop_after_attempt(request.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            sleep=self._do_sleep,
            reraise=True,
        )

        try:
            text = retrying(attempt)
        except AuthError as exc:
            return self._failure(ErrorKind.AUTH, str(exc), exc.status_code, attempts, model, request_id)
        except UpstreamRateLimitError as exc:
            return self._failure(ErrorKind.RATE_LIMIT, str(exc), exc.status_code, attempts, model, request_id)
        except TransientUpstreamError as exc:
            return self._failure(
                ErrorKind.TRANSIENT,
                f"{exc} (after {attempts} attempts)",
                exc.status_code,
                attempts,
                model,
                request_id,
            )

        logger.info(
            "generation_succeeded",
            extra={
                "event": "generation_succeeded",
                "request_id": request_id,
                "attempts": attempts,
                "response_length": len(text),
            },
        )
        return GenerationResponse(text=text, attempts=attempts, model=model)

    @staticmethod
    def _failure(
        kind: ErrorKind,
        message: str,
        status_code: Optional[int],
        attempts: int,
        model: Optional[str],
        request_id: Optional[str],
    ) -> GenerationResponse:
        logger.warning(
            "generation_failed",
            extra={
                "event": "generation_failed",
                "request_id": request_id,
                "error_kind": kind.value,
                "status_code": status_code,
                "attempts": attempts,
            },
        )
        return GenerationResponse(
            error_kind=kind,
            error=message,
            status_code=status_code,
            attempts=attempts,
            model=model,
        )
