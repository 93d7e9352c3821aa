"""Structured JSON logging for the safety pipeline.

Every record is one JSON object per line on stdout. Fields passed through
``extra`` are merged into the object, so call sites log
``extra={"event": "...", ...}`` and never interpolate user content into the
message.

``LOG_LEVEL`` sets the root level on first use (default INFO).
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SERVICE_NAME = "talkguard"

# Attributes every LogRecord carries; anything else came from ``extra``
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """Render a record and its ``extra`` fields as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def _configure_root() -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())


def get_logger(name: str) -> logging.Logger:
    """Module logger writing through the shared JSON handler."""
    _configure_root()
    return logging.getLogger(name)


def log_decision(
    logger: logging.Logger,
    *,
    request_id: Optional[str],
    action: str,
    outcome: str,
    **context: Any,
) -> None:
    """One pipeline decision (allowed, blocked, rejected, generated ...)."""
    logger.info(
        "decision",
        extra={"event": "decision", "request_id": request_id, "action": action, "outcome": outcome, **context},
    )


def log_error(
    logger: logging.Logger,
    message: str,
    *,
    request_id: Optional[str] = None,
    error: Optional[BaseException] = None,
    **context: Any,
) -> None:
    """Error with traceback; ``context`` may carry its own ``event`` name."""
    context.setdefault("event", message)
    logger.error(message, extra={"request_id": request_id, **context}, exc_info=error)


def log_violation(
    logger: logging.Logger,
    *,
    violation_type: str,
    severity: str,
    identity_kind: Optional[str],
    identity_hash: Optional[str],
    action: Optional[str] = None,
    **context: Any,
) -> None:
    """Security event for a detected violation.

    Only the classification and a hashed identity are logged. Raw user input
    and matched text stay out of the log stream.
    """
    level = logging.WARNING if severity in ("high", "critical") else logging.INFO
    logger.log(
        level,
        "security_violation",
        extra={
            "event": "security_violation",
            "violation_type": violation_type,
            "severity": severity,
            "identity_kind": identity_kind,
            "identity_hash": identity_hash,
            "action": action,
            **context,
        },
    )
