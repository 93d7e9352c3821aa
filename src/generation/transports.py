"""Transports for the external text-generation endpoint.

A transport makes exactly one call and maps failures onto the upstream
error taxonomy; retrying is the client's job.

- 401/403 -> AuthError
- 429 -> UpstreamRateLimitError
- anything else (5xx, other 4xx, timeouts, connection errors, empty
  completions) -> TransientUpstreamError
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import requests

from src.common.config import GenerationConfig
from src.common.errors import (
    AuthError,
    TransientUpstreamError,
    UpstreamError,
    UpstreamRateLimitError,
)
from src.generation.models import ChatMessage


def classify_status(status_code: int, message: str) -> UpstreamError:
    """Exception for a non-success HTTP status."""
    if status_code in (401, 403):
        return AuthError(f"Generation endpoint rejected credentials ({status_code})", status_code)
    if status_code == 429:
        return UpstreamRateLimitError(f"Generation endpoint rate limited the request: {message}", status_code)
    return TransientUpstreamError(f"Generation endpoint returned {status_code}: {message}", status_code)


class GenerationTransport(ABC):
    model: str

    @abstractmethod
    def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return completion text or raise an UpstreamError subclass."""


class ChatCompletionsTransport(GenerationTransport):
    """OpenAI-compatible ``POST {base_url}/chat/completions`` over requests."""

    def __init__(self, config: GenerationConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.model = config.model
        self._session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"{self.config.base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            raise AuthError("GENERATION_API_KEY is not configured")
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def complete(self, messages, *, max_tokens, temperature):
        payload = {
            "model": self.config.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        try:
            response = self._session.post(
                self.url,
                headers=self._headers(),
                json=payload,
                timeout=self.config.request_timeout_sec,
            )
        except requests.RequestException as exc:
            raise TransientUpstreamError(f"Generation request failed: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            raise classify_status(response.status_code, response.reason or "")

        try:
            data = response.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TransientUpstreamError("Malformed completion payload", response.status_code) from exc

        if not text or not text.strip():
            raise TransientUpstreamError("Empty completion", response.status_code)
        return text


class GeminiTransport(GenerationTransport):
    """Gemini via the google-genai SDK.

    With an API key the Gemini Developer API is used; without one, Vertex AI
    with application default credentials.
    """

    def __init__(self, config: GenerationConfig, client: Any = None):
        self.config = config
        self.model = config.model
        self._client = client

    def _get_client(self):
        if self._client is None:
            from google import genai
            from google.genai.types import HttpOptions

            if self.config.api_key:
                self._client = genai.Client(api_key=self.config.api_key)
            else:
                self._client = genai.Client(
                    vertexai=True,
                    project=None,  # GOOGLE_CLOUD_PROJECT from env
                    location=self.config.location,
                    http_options=HttpOptions(api_version="v1"),
                )
        return self._client

    @staticmethod
    def _split_messages(messages: Sequence[ChatMessage]):
        from google.genai import types

        system_parts: List[str] = []
        contents = []
        for message in messages:
            if message.role == "system":
                system_parts.append(message.content)
                continue
            role = "model" if message.role == "assistant" else "user"
            contents.append(types.Content(role=role, parts=[types.Part(text=message.content)]))
        return ("\n\n".join(system_parts) or None), contents

    def complete(self, messages, *, max_tokens, temperature):
        from google.genai import errors as genai_errors
        from google.genai import types

        system_instruction, contents = self._split_messages(messages)
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
            system_instruction=system_instruction,
            http_options=types.HttpOptions(timeout=int(self.config.request_timeout_sec * 1000)),
        )
        try:
            response = self._get_client().models.generate_content(
                model=self.config.model,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as exc:
            raise classify_status(int(exc.code or 500), exc.status or "") from exc
        except Exception as exc:
            raise TransientUpstreamError(f"Gemini request failed: {type(exc).__name__}") from exc

        text = response.text
        if not text or not text.strip():
            raise TransientUpstreamError("Empty completion")
        return text
