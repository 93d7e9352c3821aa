"""Unit tests for post-generation output validation."""

import pytest

from src.cache.registry import host_validation_key
from src.cache.ttl_cache import TTLCache
from src.common.config import OutputValidationConfig
from src.output_validation import OutputValidator, extract_urls, host_is_allowed


@pytest.fixture
def cache():
    return TTLCache("validation", 3600)


@pytest.fixture
def validator(cache):
    return OutputValidator(config=OutputValidationConfig(), cache=cache)


def test_non_allow_listed_url_is_an_error(validator):
    result = validator.validate("Read more at https://example.com/x about faith.")

    assert result.success is False
    assert "URL domain is not allowed: example.com" in result.errors
    assert result.rejected_urls == ["https://example.com/x"]


def test_allow_listed_url_passes(validator):
    result = validator.validate("Read https://www.churchofjesuschrist.org/study/scriptures about faith.")

    assert result.success is True
    assert result.errors == []
    assert result.allowed_urls == ["https://www.churchofjesuschrist.org/study/scriptures"]


def test_pii_is_redacted_with_a_warning(validator):
    result = validator.validate("Call the bishop at 555-123-4567 or bishop@example.com this week.")

    assert result.success is True
    assert "[PHONE_REDACTED]" in result.text
    assert "[EMAIL_REDACTED]" in result.text
    assert "555-123-4567" not in result.text
    assert any(w.startswith("Content filtered: ") for w in result.warnings)


def test_credentials_are_redacted(validator):
    result = validator.validate("Use api_key=sk-abcdefghijklmnopqrstuvwxyz to continue.")

    assert "sk-abcdefghijklmnopqrstuvwxyz" not in result.text
    assert "[CREDENTIAL_REDACTED]" in result.text


def test_harmful_content_is_an_error(validator):
    result = validator.validate("Some say we should hurt others who disagree.")

    assert result.success is False
    assert "Potentially harmful content detected (violence toward others)" in result.errors


def test_script_in_output_fails_security_scan(validator):
    result = validator.validate("Faith matters. <script>document.cookie</script>")

    assert result.success is False
    assert "Generated content failed security scan" in result.errors
    assert "<script" not in result.text


def test_prose_punctuation_and_sql_like_phrases_survive(validator):
    result = validator.validate(
        "Faith & hope (see Alma 32:21) matter; I select one from many blessings. It cost $5 to help."
    )

    assert result.success is True
    assert "Faith &amp; hope" in result.text
    assert "(see Alma 32:21)" in result.text
    assert "matter;" in result.text
    assert "I select one from many blessings" in result.text
    assert "$5" in result.text


def test_event_handler_in_output_is_still_removed(validator):
    result = validator.validate("Faith matters. <p onclick=go()>Hope</p>")

    assert "onclick" not in result.text
    assert "(" in result.text


def test_empty_output_is_an_error(validator):
    result = validator.validate("   ")

    assert result.success is False
    assert result.errors == ["Generated content is empty"]


def test_word_count_far_from_duration_warns(validator):
    text = " ".join(["faith"] * 100)

    result = validator.validate(text, requested_duration_minutes=10)

    assert result.success is True
    assert result.word_count == 100
    assert result.expected_word_count == 1100
    assert any(w.startswith("Word count (100)") for w in result.warnings)


def test_word_count_within_tolerance_does_not_warn(validator):
    text = " ".join(["faith"] * 1000)

    result = validator.validate(text, requested_duration_minutes=10)

    assert not any(w.startswith("Word count") for w in result.warnings)


def test_source_and_doctrinal_heuristics_warn(validator):
    result = validator.validate("I read it on Wikipedia. God told me to share it.")

    assert result.success is True
    assert "Response mentions non-allow-listed sources: wikipedia" in result.warnings
    assert "Response may have doctrinal concerns: Personal revelation claim" in result.warnings


def test_inappropriate_topics_only_warn(validator):
    result = validator.validate("Some think the election matters more than prayer.")

    assert result.success is True
    assert "Content may contain inappropriate topics (political)" in result.warnings


def test_results_are_cached_by_content(validator, cache):
    text = "Faith precedes the miracle."

    first = validator.validate(text)
    hits_before = cache.stats().hits
    second = validator.validate(text)

    assert second == first
    assert cache.stats().hits == hits_before + 1


def test_host_decisions_are_cached(validator, cache):
    validator.validate_content_urls("https://example.com/a and https://lds.org/b")

    assert cache.get(host_validation_key("example.com")) is False
    assert cache.get(host_validation_key("lds.org")) is True


def test_host_is_allowed_accepts_subdomains_only():
    domains = ("churchofjesuschrist.org", "lds.org")

    assert host_is_allowed("lds.org", domains)
    assert host_is_allowed("www.lds.org", domains)
    assert host_is_allowed("WWW.LDS.ORG.", domains)
    assert not host_is_allowed("evil-lds.org", domains)
    assert not host_is_allowed("lds.org.evil.com", domains)


def test_extract_urls_trims_punctuation_and_dedupes():
    text = "See (https://lds.org/a). Also https://lds.org/a, and https://example.com/b!"

    assert extract_urls(text) == ["https://lds.org/a", "https://example.com/b"]
