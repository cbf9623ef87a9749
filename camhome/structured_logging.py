"""Structured event logging with per-request correlation ids."""

import json
import logging
import uuid
from typing import Any, Optional

from flask import g, has_request_context, request


logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
NO_CORRELATION_ID = "none"


def get_correlation_id() -> str:
    """Get or create correlation ID for current request.

    Raises:
        RuntimeError: Outside a Flask request context.
    """
    if not has_request_context():
        message = "correlation id requested outside of a request"
        raise RuntimeError(message)
    if not hasattr(g, "correlation_id"):
        g.correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
    return g.correlation_id


def current_correlation_id() -> str:
    try:
        return get_correlation_id()
    except RuntimeError:
        return NO_CORRELATION_ID


def log_event(
    event_type: str,
    severity: str = "INFO",
    **context: Any,
) -> None:
    """Log a structured event with correlation ID and context.

    Args:
        event_type: Name of the event (e.g., "discovery_scan_started", "camera_created")
        severity: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **context: Additional context fields to include in the event
    """
    event_payload = {
        "event_type": event_type,
        "correlation_id": current_correlation_id(),
        **context,
    }

    level = getattr(logging, severity.upper(), logging.INFO)
    logger.log(level, "event=%s %s", event_type, json.dumps(event_payload, default=str))


def log_error(
    operation: str,
    error_type: str,
    message: str,
    resource_id: Optional[str] = None,
    severity: str = "ERROR",
    **context: Any,
) -> None:
    """Log a structured error with full context.

    Args:
        operation: The operation being performed (e.g., "discovery_scan", "camera_list")
        error_type: Category of error (e.g., "registry_unavailable", "invalid_subnet")
        message: Human-readable error message
        resource_id: Optional resource ID affecting this error (camera id, subnet, etc.)
        severity: Log level
        **context: Additional context fields
    """
    error_payload = {
        "operation": operation,
        "error_type": error_type,
        "correlation_id": current_correlation_id(),
        "message": message,
    }

    if resource_id:
        error_payload["resource_id"] = resource_id

    error_payload.update(context)

    level = getattr(logging, severity.upper(), logging.ERROR)
    logger.log(
        level,
        "error operation=%s type=%s %s",
        operation,
        error_type,
        json.dumps(error_payload, default=str),
    )
