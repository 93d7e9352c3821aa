"""Validation of generated text before it is returned to the user.

Steps:
1. Re-sanitize with the markup-only rule table (newlines kept), one paragraph
   at a time so a long talk is not cut at the story length limit
2. URL allow-list: every absolute URL's host must equal or be a subdomain of
   an allow-listed domain (errors)
3. Inappropriate-content detector (warnings only)
4. PII/credential redaction and harm vocabulary (errors)
5. Word count against duration x words-per-minute (warning)
6. Doctrinal-concern and source-name heuristics (warnings)
"""

import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from src.cache.registry import VALIDATION, content_hash, content_validation_key, host_validation_key
from src.cache.ttl_cache import CacheBackend, TTLCache
from src.common.config import DEFAULT_CACHE_TTLS, OutputValidationConfig, load_output_validation_config
from src.common.logging import get_logger, log_decision
from src.output_validation.harm_filter import apply_harm_filter, detect_doctrinal_concerns, detect_source_names
from src.output_validation.models import OutputValidationResult, UrlValidationResult
from src.policy.detectors import detect_inappropriate_content
from src.sanitization import FieldType, sanitize_input, scan_content_security
from src.sanitization.rules import OUTPUT_DANGEROUS_RULES

logger = get_logger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?)'\""
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


def extract_urls(text: str) -> List[str]:
    """Absolute http(s) URLs in order of appearance, trailing punctuation trimmed."""
    urls: List[str] = []
    for match in URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if url and url not in urls:
            urls.append(url)
    return urls


def host_is_allowed(hostname: str, allowed_domains: Iterable[str]) -> bool:
    host = hostname.lower().rstrip(".")
    return any(host == domain or host.endswith("." + domain) for domain in allowed_domains)


class OutputValidator:
    """Checks generated text; errors reject it, warnings are advisory.

    Usage:
        validator = OutputValidator()
        result = validator.validate(text, requested_duration_minutes=10)
    """

    def __init__(
        self,
        config: Optional[OutputValidationConfig] = None,
        cache: Optional[CacheBackend] = None,
    ):
        self.config = config or load_output_validation_config()
        self.allowed_domains = tuple(d.lower() for d in self.config.allowed_domains)
        self.cache = cache or TTLCache(VALIDATION, DEFAULT_CACHE_TTLS[VALIDATION])

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def _host_allowed(self, hostname: str) -> bool:
        key = host_validation_key(hostname)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        allowed = host_is_allowed(hostname, self.allowed_domains)
        self.cache.set(key, allowed)
        return allowed

    def validate_content_urls(self, text: str) -> UrlValidationResult:
        allowed: List[str] = []
        rejected: List[str] = []
        errors: List[str] = []
        for url in extract_urls(text or ""):
            try:
                hostname = urlparse(url).hostname
            except ValueError:
                hostname = None
            if not hostname:
                rejected.append(url)
                errors.append(f"Invalid URL format: {url}")
                continue
            if self._host_allowed(hostname):
                allowed.append(url)
            else:
                rejected.append(url)
                errors.append(f"URL domain is not allowed: {hostname}")
        return UrlValidationResult(
            success=not rejected,
            allowed_urls=allowed,
            rejected_urls=rejected,
            errors=errors,
        )

    # ------------------------------------------------------------------
    # Full validation
    # ------------------------------------------------------------------

    @staticmethod
    def _sanitize(text: str) -> Tuple[str, List[str], List[str]]:
        paragraphs: List[str] = []
        warnings: List[str] = []
        errors: List[str] = []
        for paragraph in _PARAGRAPH_SPLIT.split(text):
            result = sanitize_input(
                paragraph,
                FieldType.STORY,
                preserve_newlines=True,
                remove_sensitive_info=False,
                dangerous_rules=OUTPUT_DANGEROUS_RULES,
            )
            if result.sanitized_value:
                paragraphs.append(result.sanitized_value)
            for warning in result.warnings:
                if warning not in warnings:
                    warnings.append(warning)
            errors.extend(result.errors)
        return "\n\n".join(paragraphs), warnings, errors

    def validate(
        self,
        text: str,
        requested_duration_minutes: Optional[int] = None,
        *,
        request_id: Optional[str] = None,
    ) -> OutputValidationResult:
        """Validate generated text.

        Args:
            text: Raw generated text.
            requested_duration_minutes: Talk duration for the length check;
                skipped when None.
            request_id: Correlation id for logs.

        Returns:
            OutputValidationResult with the sanitized, redacted text.
        """
        if not isinstance(text, str) or not text.strip():
            return OutputValidationResult(success=False, errors=["Generated content is empty"])

        cache_key = content_validation_key(content_hash(f"{requested_duration_minutes}:{text}"))
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached.model_copy(deep=True)

        errors: List[str] = []
        warnings: List[str] = []

        sanitized, sanitize_warnings, sanitize_errors = self._sanitize(text)
        errors.extend(sanitize_errors)

        scan = scan_content_security(text)
        if not scan.safe:
            errors.append("Generated content failed security scan")

        urls = self.validate_content_urls(text)
        errors.extend(urls.errors)

        for violation in detect_inappropriate_content(sanitized):
            warnings.append(f"Content may contain inappropriate topics ({violation.category})")

        harm = apply_harm_filter(sanitized)
        errors.extend(harm.errors)
        if harm.redactions:
            warnings.append(f"Content filtered: {', '.join(harm.redactions)}")

        word_count = len(text.split())
        expected = 0
        if requested_duration_minutes:
            expected = requested_duration_minutes * self.config.words_per_minute
            deviation = abs(word_count - expected) / expected
            if deviation > self.config.word_count_tolerance:
                warnings.append(
                    f"Word count ({word_count}) may not match expected duration "
                    f"({requested_duration_minutes} min, ~{expected} words)"
                )

        sources = detect_source_names(sanitized)
        if sources:
            warnings.append(f"Response mentions non-allow-listed sources: {', '.join(sources)}")
        concerns = detect_doctrinal_concerns(sanitized)
        if concerns:
            warnings.append(f"Response may have doctrinal concerns: {', '.join(concerns)}")

        warnings.extend(sanitize_warnings)

        result = OutputValidationResult(
            success=not errors,
            text=harm.text,
            errors=errors,
            warnings=warnings,
            allowed_urls=urls.allowed_urls,
            rejected_urls=urls.rejected_urls,
            word_count=word_count,
            expected_word_count=expected,
        )
        log_decision(
            logger,
            request_id=request_id,
            action="output_validate",
            outcome="accepted" if result.success else "rejected",
            error_count=len(errors),
            warning_count=len(warnings),
            rejected_url_count=len(urls.rejected_urls),
        )
        self.cache.set(cache_key, result.model_copy(deep=True))
        return result
