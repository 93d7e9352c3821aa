"""Result models for generated-text validation."""

from typing import List

from pydantic import BaseModel, Field


class UrlValidationResult(BaseModel):
    success: bool
    allowed_urls: List[str] = Field(default_factory=list)
    rejected_urls: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class HarmFilterResult(BaseModel):
    """PII redaction plus harm-vocabulary errors."""

    text: str
    redactions: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class OutputValidationResult(BaseModel):
    """Redacted text and separated diagnostics; non-empty errors mean reject."""

    success: bool
    text: str = ""
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    allowed_urls: List[str] = Field(default_factory=list)
    rejected_urls: List[str] = Field(default_factory=list)
    word_count: int = 0
    expected_word_count: int = 0
