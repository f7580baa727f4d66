"""Structured logging for quotaflow.

- JSON lines on stdout (or a rotating file), one object per record.
- Correlation: ``request_id`` from the HTTP middleware and ``event_id`` from
  the push delivery, both carried in contextvars.
- Redaction: sensitive extra keys are replaced, and credentials embedded in
  URLs (download tokens, signed URL signatures) are scrubbed from string
  values, since provider and storage errors often quote the URL they failed on.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from quotaflow.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_event_id_var: ContextVar[str | None] = ContextVar("event_id", default=None)

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        # gateway and push credentials
        "api_key",
        "x-api-key",
        "authorization",
        "cookie",
        "set-cookie",
        "app_api_keys",
        "app_admin_api_keys",
        # transcoding provider
        "api_secret",
        "secret",
        "signature",
        "transcode_api_secret",
        # object storage
        "token",
        "download_token",
        "firebasestoragedownloadtokens",
        "signed_url",
        "source_url",
        "readable_url",
        "password",
    }
)

# Query parameters that authorize a URL on their own.
_URL_CREDENTIAL = re.compile(
    r"(?P<key>[?&](?:token|signature|x-goog-signature|x-goog-credential)=)[^&\s\"']+",
    re.IGNORECASE,
)

# LogRecord attributes that are never copied into the JSON payload
_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    }
)


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def set_event_id(event_id: str | None) -> None:
    """Bind the push delivery id (``ce-id``) to subsequent logs."""
    _event_id_var.set(event_id)


def get_event_id() -> str | None:
    return _event_id_var.get()


def scrub_url_credentials(text: str) -> str:
    """Blank out credential query parameters inside ``text``.

    Examples:
        >>> scrub_url_credentials("GET https://h/o/x?alt=media&token=abc failed")
        'GET https://h/o/x?alt=media&token=[REDACTED] failed'
    """
    return _URL_CREDENTIAL.sub(lambda m: m.group("key") + REDACTED, text)


def _redact(value: Any, sensitive_keys: frozenset[str]) -> Any:
    """Recursively redact mappings, sequences and URL-bearing strings."""
    if isinstance(value, str):
        return scrub_url_credentials(value)
    if isinstance(value, Mapping):
        return {
            k: REDACTED if str(k).lower() in sensitive_keys else _redact(v, sensitive_keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v, sensitive_keys) for v in value)
    return value


def record_extras(record: LogRecord, sensitive_keys: frozenset[str]) -> dict[str, Any]:
    """The ``extra={...}`` fields of ``record``, redacted."""
    extras: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        extras[key] = REDACTED if key.lower() in sensitive_keys else _redact(value, sensitive_keys)
    return extras


class RequestIdFilter(logging.Filter):
    """Attach request_id and event_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for attr, getter in (("request_id", get_request_id), ("event_id", get_event_id)):
            if getattr(record, attr, None) is None:
                value = getter()
                if value:
                    setattr(record, attr, value)
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive extras in place, so every handler sees safe values."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in record_extras(record, self.sensitive_keys).items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, event name, extras."""

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": scrub_url_credentials(record.getMessage()),
        }
        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        payload.update(record_extras(record, self.sensitive_keys))

        if record.exc_info:
            payload["exc_info"] = scrub_url_credentials(self.formatException(record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/quotaflow.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if not log_settings.max_bytes:
        return logging.FileHandler(file_path, encoding="utf-8")
    return RotatingFileHandler(
        file_path,
        maxBytes=log_settings.max_bytes,
        backupCount=log_settings.backup_count,
        encoding="utf-8",
    )


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install the JSON (or plain) handler on the root logger.

    Args:
        log_settings: Defaults to ``settings.log``.
    """
    cfg = log_settings or settings.log
    level = getattr(logging, cfg.level.upper(), logging.INFO)

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # uvicorn installs its own handlers
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
    # The GCP clients are chatty at INFO
    logging.getLogger("google").setLevel(max(level, logging.WARNING))
