"""Pydantic models for input sanitization results."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    """Declared type of a user-supplied field; selects limits and checks."""

    EMAIL = "email"
    PASSWORD = "password"
    NAME = "name"
    TOPIC = "topic"
    STORY = "story"
    URL = "url"
    GENERAL = "general"


class SanitizationResult(BaseModel):
    """Outcome of sanitizing one value.

    ``removed_patterns`` holds class descriptions only, never the matched
    text, and is always empty for password fields.
    """

    success: bool
    sanitized_value: str
    original_value: str = Field(repr=False)
    removed_patterns: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class FieldRule(BaseModel):
    """Per-field configuration for ``sanitize_fields``."""

    type: FieldType = FieldType.GENERAL
    required: bool = False
    allow_html: bool = False
    preserve_newlines: bool = True
    remove_sensitive_info: Optional[bool] = None


class FieldSanitizationResult(BaseModel):
    """Outcome of sanitizing a mapping of fields."""

    success: bool
    sanitized_data: Dict[str, str] = Field(default_factory=dict)
    errors: Dict[str, List[str]] = Field(default_factory=dict)
    warnings: Dict[str, List[str]] = Field(default_factory=dict)


class SecurityScanResult(BaseModel):
    """Threat scan of free text (used on stories and generated output)."""

    safe: bool
    threats: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    sanitized_content: str = ""
