from src.common.pii import (
    OUTPUT_PII_RULES,
    SENSITIVE_INPUT_RULES,
    has_pii,
    hash_identity,
    redact_and_truncate,
    redact_with_rules,
    truncate_text,
)


def test_input_rules_redact_and_report_each_rule():
    text, findings = redact_with_rules("SSN 123-45-6789, write to a@example.com", SENSITIVE_INPUT_RULES)

    assert text == "SSN [SSN_REMOVED], write to [EMAIL_REMOVED]"
    assert findings == ["Social Security Number: 1 instance(s)", "Email Address: 1 instance(s)"]


def test_output_rules_redact_credentials():
    text, findings = redact_with_rules(
        "Use Bearer abc.def-123 or token: s3cret to log in", OUTPUT_PII_RULES
    )

    assert "abc.def-123" not in text
    assert "s3cret" not in text
    assert text.count("[CREDENTIAL_REDACTED]") == 2
    assert "Bearer Token: 1 instance(s)" in findings


def test_has_pii():
    assert has_pii("call 555-123-4567") is True
    assert has_pii("Faith, hope and charity") is False


def test_truncate_text_preserves_word_boundary():
    text = "word " * 300

    result = truncate_text(text, 100)

    assert len(result) <= 100
    assert result.endswith("...")
    assert not result[:-3].endswith("wor")


def test_redact_and_truncate_handles_empty_input():
    assert redact_and_truncate(None) is None
    assert redact_and_truncate("") is None


def test_redact_and_truncate_redacts_before_truncating():
    excerpt = redact_and_truncate("My SSN is 123-45-6789 " + "x" * 50, max_length=30)

    assert "123-45-6789" not in excerpt
    assert len(excerpt) <= 30


def test_hash_identity_is_salted_sha256():
    # sha256("user-1salt123")
    assert hash_identity("user-1", salt="salt123") == "f8a4fb1973ba67e63187f3bf55289a5959dd5be244805edf09165b151e3157f3"
    assert hash_identity("user-1") != hash_identity("user-2")
