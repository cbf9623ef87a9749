"""Root logging setup: text or JSON lines with ISO-8601 timestamps.

Every record passing the root handler carries ``correlation_id`` (the current
request's ``X-Correlation-ID``, or ``none`` outside a request).
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .structured_logging import current_correlation_id


DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "text"

_TEXT_TEMPLATE = "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s]: %(message)s"
_TEXT_TEMPLATE_WITH_IDS = (
    "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s pid=%(process)d tid=%(thread)d]: %(message)s"
)


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = current_correlation_id()
        return True


class ISO8601Formatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:  # noqa: N802
        local_time = datetime.fromtimestamp(record.created, tz=timezone.utc).astimezone()
        return local_time.strftime(datefmt) if datefmt else local_time.isoformat(timespec="milliseconds")


class JSONFormatter(ISO8601Formatter):
    """One JSON object per line, for log shippers."""

    def __init__(self, include_identifiers: bool = False) -> None:
        super().__init__()
        self.include_identifiers = include_identifiers

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "severity": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", "none"),
            "message": record.getMessage(),
        }
        if self.include_identifiers:
            payload.update(process=record.process, thread=record.thread)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class TextFormatter(ISO8601Formatter):
    def __init__(self, include_identifiers: bool = False) -> None:
        super().__init__(fmt=_TEXT_TEMPLATE_WITH_IDS if include_identifiers else _TEXT_TEMPLATE)

    def format(self, record: logging.LogRecord) -> str:
        record.__dict__.setdefault("correlation_id", "none")
        return super().format(record)


def _is_truthy(raw_value: Optional[str]) -> bool:
    return (raw_value or "").strip().lower() in {"1", "true", "yes", "on"}


def _resolve_level(raw_level: str) -> Optional[int]:
    level = logging.getLevelName(raw_level.strip().upper())
    return level if isinstance(level, int) else None


def configure_logging(
    environ: Optional[Mapping[str, str]] = None,
    level_override: Optional[str] = None,
) -> None:
    """Install a single stderr handler on the root logger.

    Env vars:
    - CAMHOME_LOG_LEVEL: Python level name (default: INFO; unknown names mean INFO)
    - CAMHOME_LOG_FORMAT: text|json (default: text)
    - CAMHOME_LOG_INCLUDE_IDENTIFIERS: add process/thread ids (default: false)

    Args:
        environ: Mapping to read instead of ``os.environ``.
        level_override: Persisted log level; wins over CAMHOME_LOG_LEVEL.
    """
    env = os.environ if environ is None else environ
    level = _resolve_level(level_override or env.get("CAMHOME_LOG_LEVEL") or DEFAULT_LOG_LEVEL)
    if level is None:
        level = logging.INFO

    include_identifiers = _is_truthy(env.get("CAMHOME_LOG_INCLUDE_IDENTIFIERS"))
    if (env.get("CAMHOME_LOG_FORMAT") or DEFAULT_LOG_FORMAT).strip().lower() == "json":
        formatter: logging.Formatter = JSONFormatter(include_identifiers)
    else:
        formatter = TextFormatter(include_identifiers)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # werkzeug installs its own handler unless the root already has one.
    werkzeug_logger = logging.getLogger("werkzeug")
    werkzeug_logger.handlers.clear()
    werkzeug_logger.propagate = True

    for configured in (root_logger, werkzeug_logger):
        configured.setLevel(level)


def apply_log_level(raw_level: str) -> bool:
    """Change the root log level at runtime; returns False for unknown levels."""
    level = _resolve_level(raw_level)
    if level is None:
        return False
    for name in (None, "werkzeug"):
        logging.getLogger(name).setLevel(level)
    return True
