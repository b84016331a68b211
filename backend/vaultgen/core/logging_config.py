"""Logging setup shared by the API process and the generation worker.

Records go to stdout as JSON lines (``LOG_FORMAT=json``) or plain text.
Every record is stamped with the current request id and scrubbed of
generation API keys and bearer credentials before it is formatted.
"""

import contextvars
import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional


# Set by RequestContextMiddleware; empty outside a request (e.g. the worker).
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

# ``extra`` keys copied into JSON output. Anything else passed as extra is
# left out so a stray object never breaks the line.
CONTEXT_FIELDS = ("method", "path", "status_code", "duration_ms", "error_code", "details")

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"

_REDACTED = "***REDACTED***"
_SECRETS = (
    # Provider keys (sk-..., sk-ant-...) and JWTs minted by core.token_factory.
    (re.compile(r"\bsk-[A-Za-z0-9_\-]{20,}"), _REDACTED),
    (re.compile(r"\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+"), _REDACTED),
    (re.compile(r"(?i)\b(bearer\s+)\S{20,}"), r"\g<1>" + _REDACTED),
    (re.compile(r"(?i)\b((?:api_key|secret|password|token)\s*[=:]\s*)[^\s,'\"]{8,}"), r"\g<1>" + _REDACTED),
)


def redact(text: str) -> str:
    for pattern, replacement in _SECRETS:
        text = pattern.sub(replacement, text)
    return text


class _ContextFilter(logging.Filter):
    """Attach the request id and scrub credentials from message and traceback."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.msg = redact(record.getMessage())
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact(record.exc_text)
        return True


class _JsonFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", "-")
        if request_id != "-":
            entry["request_id"] = request_id
        for key in CONTEXT_FIELDS:
            if key in record.__dict__:
                entry[key] = record.__dict__[key]
        if record.exc_text:
            entry["exc_info"] = record.exc_text
        return json.dumps(entry, default=str)


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_level: Level name, INFO when omitted.
        log_format: ``"json"`` (default) or ``"text"``.
    """
    level = (log_level or "INFO").upper()
    json_output = (log_format or "json").lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_ContextFilter())
    handler.setFormatter(_JsonFormatter() if json_output else logging.Formatter(_TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # LiteLLM logs every request body at INFO.
    for noisy in ("LiteLLM", "httpx", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
