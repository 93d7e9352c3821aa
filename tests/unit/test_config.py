import pytest

from src.common.config import (
    DEFAULT_ALLOWED_DOMAINS,
    ConfigError,
    load_allowed_domains,
    load_generation_config,
    load_output_validation_config,
    load_rate_limit_settings,
)


def test_allowed_domains_default():
    assert load_allowed_domains() == DEFAULT_ALLOWED_DOMAINS


def test_allowed_domains_from_env(monkeypatch):
    monkeypatch.setenv("ALLOWED_DOMAINS", " Example.org, ,churchofjesuschrist.org ")

    assert load_allowed_domains() == ("example.org", "churchofjesuschrist.org")


def test_allowed_domains_file_wins_over_env(monkeypatch, tmp_path):
    domains_file = tmp_path / "domains.yaml"
    domains_file.write_text("allowed_domains:\n  - lds.org\n  - ComeUntoChrist.org\n")
    monkeypatch.setenv("ALLOWED_DOMAINS", "example.org")
    monkeypatch.setenv("ALLOWED_DOMAINS_FILE", str(domains_file))

    assert load_allowed_domains() == ("lds.org", "comeuntochrist.org")


def test_allowed_domains_file_accepts_bare_list(monkeypatch, tmp_path):
    domains_file = tmp_path / "domains.yaml"
    domains_file.write_text("- lds.org\n")
    monkeypatch.setenv("ALLOWED_DOMAINS_FILE", str(domains_file))

    assert load_allowed_domains() == ("lds.org",)


@pytest.mark.parametrize("content", ["allowed_domains: lds.org\n", "- 1\n- 2\n", "{not: [valid"])
def test_allowed_domains_file_rejects_bad_content(monkeypatch, tmp_path, content):
    domains_file = tmp_path / "domains.yaml"
    domains_file.write_text(content)
    monkeypatch.setenv("ALLOWED_DOMAINS_FILE", str(domains_file))

    with pytest.raises(ConfigError):
        load_allowed_domains()


def test_allowed_domains_missing_file(monkeypatch, tmp_path):
    monkeypatch.setenv("ALLOWED_DOMAINS_FILE", str(tmp_path / "missing.yaml"))

    with pytest.raises(ConfigError, match="not found"):
        load_allowed_domains()


def test_output_validation_numeric_overrides(monkeypatch):
    monkeypatch.setenv("WORDS_PER_MINUTE", "120")
    monkeypatch.setenv("WORD_COUNT_TOLERANCE", "0.5")

    config = load_output_validation_config()

    assert config.words_per_minute == 120
    assert config.word_count_tolerance == 0.5


def test_invalid_numeric_env_raises(monkeypatch):
    monkeypatch.setenv("WORDS_PER_MINUTE", "fast")

    with pytest.raises(ConfigError, match="WORDS_PER_MINUTE"):
        load_output_validation_config()


def test_rate_limit_tier_override(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_HIGH_MAX_VIOLATIONS", "5")

    settings = load_rate_limit_settings()

    assert settings.tier("high").max_violations == 5
    assert settings.tier("high").block_minutes == 240
    assert settings.tier("critical").max_violations == 1


def test_unknown_store_backend(monkeypatch):
    monkeypatch.setenv("VIOLATION_STORE_BACKEND", "redis")

    with pytest.raises(ConfigError, match="VIOLATION_STORE_BACKEND"):
        load_rate_limit_settings()


def test_unknown_generation_provider(monkeypatch):
    monkeypatch.setenv("GENERATION_PROVIDER", "carrier-pigeon")

    with pytest.raises(ConfigError, match="GENERATION_PROVIDER"):
        load_generation_config()


@pytest.mark.parametrize(
    "key, value",
    [
        ("GENERATION_MAX_RETRIES", "0"),
        ("GENERATION_TEMPERATURE", "2.5"),
        ("GENERATION_TEMPERATURE", "-0.1"),
        ("GENERATION_MAX_TOKENS", "0"),
    ],
)
def test_out_of_range_generation_settings_raise_config_error(monkeypatch, key, value):
    monkeypatch.setenv("GENERATION_PROVIDER", "chat_completions")
    monkeypatch.setenv(key, value)

    with pytest.raises(ConfigError, match=key):
        load_generation_config()


def test_gemini_provider_uses_gemini_default_model(monkeypatch):
    monkeypatch.setenv("GENERATION_PROVIDER", "gemini")
    monkeypatch.delenv("GENERATION_MODEL", raising=False)

    assert load_generation_config().model == "gemini-2.5-flash"
