"""Unit tests for the retrying generation client.

HTTP is stubbed with ``responses``; backoff sleeps are captured instead of
slept.
"""

from types import SimpleNamespace

import pytest
import responses
from google.genai import errors as genai_errors

from src.common.config import GenerationConfig
from src.common.errors import AuthError, TransientUpstreamError, UpstreamRateLimitError
from src.generation import ErrorKind, GenerationClient
from src.generation.models import ChatMessage
from src.generation.transports import ChatCompletionsTransport, GeminiTransport, classify_status

BASE_URL = "https://generation.test/v1"
COMPLETIONS_URL = f"{BASE_URL}/chat/completions"
MESSAGES = [
    {"role": "system", "content": "You write talks."},
    {"role": "user", "content": "Topic: Faith"},
]


def make_config(**overrides):
    values = dict(
        provider="chat_completions",
        model="test-model",
        api_key="test-key",
        base_url=BASE_URL,
        temperature=0.7,
        max_tokens=4000,
        max_retries=3,
        request_timeout_sec=5.0,
    )
    values.update(overrides)
    return GenerationConfig(**values)


def completion(text):
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def client(sleeps):
    return GenerationClient(config=make_config(), sleep=sleeps.append)


@responses.activate
def test_rate_limit_is_returned_without_retry(client, sleeps):
    responses.add(responses.POST, COMPLETIONS_URL, status=429)

    result = client.generate(MESSAGES)

    assert result.success is False
    assert result.error_kind == ErrorKind.RATE_LIMIT
    assert result.attempts == 1
    assert len(responses.calls) == 1
    assert sleeps == []


@responses.activate
def test_transient_errors_are_retried_until_success(client, sleeps):
    responses.add(responses.POST, COMPLETIONS_URL, status=500)
    responses.add(responses.POST, COMPLETIONS_URL, status=500)
    responses.add(responses.POST, COMPLETIONS_URL, json=completion("Brothers and sisters..."), status=200)

    result = client.generate(MESSAGES)

    assert result.success is True
    assert result.text == "Brothers and sisters..."
    assert result.attempts == 3
    assert len(responses.calls) == 3
    assert sleeps == [1, 2]


@responses.activate
def test_transient_errors_exhaust_the_attempt_budget(client):
    for _ in range(3):
        responses.add(responses.POST, COMPLETIONS_URL, status=503)

    result = client.generate(MESSAGES)

    assert result.error_kind == ErrorKind.TRANSIENT
    assert result.attempts == 3
    assert "(after 3 attempts)" in result.error
    assert result.status_code == 503


@responses.activate
def test_auth_failure_is_not_retried(client):
    responses.add(responses.POST, COMPLETIONS_URL, status=401)

    result = client.generate(MESSAGES)

    assert result.error_kind == ErrorKind.AUTH
    assert result.attempts == 1
    assert len(responses.calls) == 1


@responses.activate
def test_empty_completion_is_transient(client):
    responses.add(responses.POST, COMPLETIONS_URL, json=completion("   "), status=200)
    responses.add(responses.POST, COMPLETIONS_URL, json=completion("Amen."), status=200)

    result = client.generate(MESSAGES)

    assert result.text == "Amen."
    assert result.attempts == 2


@responses.activate
def test_request_payload_carries_messages_and_limits(client):
    responses.add(responses.POST, COMPLETIONS_URL, json=completion("ok"), status=200)

    client.generate(MESSAGES, max_tokens=500, temperature=0.2)

    sent = responses.calls[0].request
    assert sent.headers["Authorization"] == "Bearer test-key"
    body = sent.body.decode("utf-8") if isinstance(sent.body, bytes) else sent.body
    assert '"max_tokens": 500' in body
    assert '"temperature": 0.2' in body
    assert '"role": "system"' in body


def test_overlong_content_is_rejected_before_any_call(sleeps):
    client = GenerationClient(config=make_config(max_content_chars=10), sleep=sleeps.append)

    result = client.generate([{"role": "user", "content": "x" * 11}])

    assert result.error_kind == ErrorKind.INVALID_REQUEST
    assert result.attempts == 0


def test_missing_api_key_is_an_auth_error(sleeps):
    config = make_config(api_key=None)
    client = GenerationClient(config=config, transport=ChatCompletionsTransport(config), sleep=sleeps.append)

    result = client.generate(MESSAGES)

    assert result.error_kind == ErrorKind.AUTH
    assert sleeps == []


# ============================================================================
# Gemini transport
# ============================================================================


class FakeGeminiModels:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return SimpleNamespace(text=self.outcome)


class FakeGeminiClient:
    def __init__(self, outcome):
        self.models = FakeGeminiModels(outcome)


def test_gemini_transport_splits_system_instruction():
    fake = FakeGeminiClient("Brothers and sisters...")
    transport = GeminiTransport(make_config(provider="gemini", model="gemini-2.5-flash"), client=fake)

    text = transport.complete(
        [ChatMessage(**m) for m in MESSAGES] + [ChatMessage(role="assistant", content="Draft")],
        max_tokens=100,
        temperature=0.3,
    )

    assert text == "Brothers and sisters..."
    call = fake.models.calls[0]
    assert call["config"].system_instruction == "You write talks."
    assert [c.role for c in call["contents"]] == ["user", "model"]
    assert call["config"].max_output_tokens == 100


def test_gemini_quota_error_maps_to_rate_limit(sleeps):
    error = genai_errors.ClientError(
        429, {"error": {"code": 429, "message": "quota exhausted", "status": "RESOURCE_EXHAUSTED"}}
    )
    config = make_config(provider="gemini")
    client = GenerationClient(
        config=config,
        transport=GeminiTransport(config, client=FakeGeminiClient(error)),
        sleep=sleeps.append,
    )

    result = client.generate(MESSAGES)

    assert result.error_kind == ErrorKind.RATE_LIMIT
    assert result.attempts == 1


def test_gemini_empty_text_is_transient():
    transport = GeminiTransport(make_config(provider="gemini"), client=FakeGeminiClient(""))

    with pytest.raises(TransientUpstreamError):
        transport.complete([ChatMessage(role="user", content="Hi")], max_tokens=10, temperature=0.1)


@pytest.mark.parametrize(
    "status, expected",
    [(401, AuthError), (403, AuthError), (429, UpstreamRateLimitError), (400, TransientUpstreamError), (502, TransientUpstreamError)],
)
def test_classify_status(status, expected):
    assert type(classify_status(status, "x")) is expected
