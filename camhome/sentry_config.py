"""Sentry error tracking initialization and configuration.

Error tracking is optional and only enabled when CAMHOME_SENTRY_DSN is set.
Events are filtered to redact credentials (auth headers, URL credentials and
camera passwords) while keeping useful debugging context.
"""

import logging
import re
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from .version_info import read_app_version


REDACTED = "[REDACTED]"

SENSITIVE_QUERY_PARAMS = ("password", "pwd", "pass", "token")
SENSITIVE_BODY_KEYS = {"password", "pwd", "token"}
SENSITIVE_ENV_KEYS = {"CAMHOME_SENTRY_DSN"}

_QUERY_PARAM_RE = re.compile(
    r"([?&](?:%s)=)[^&#]*" % "|".join(SENSITIVE_QUERY_PARAMS), re.IGNORECASE
)
_URL_CREDENTIALS_RE = re.compile(r"(://[^/@:\s]+:)[^/@\s]+@")


def redact_url(url: str) -> str:
    """Mask credential query parameters and ``user:pass@`` userinfo in a URL."""
    url = _QUERY_PARAM_RE.sub(lambda match: f"{match.group(1)}{REDACTED}", url)
    return _URL_CREDENTIALS_RE.sub(lambda match: f"{match.group(1)}{REDACTED}@", url)


def _redact_mapping(data: Any) -> Any:
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            if isinstance(key, str) and key.lower() in SENSITIVE_BODY_KEYS and value:
                redacted[key] = REDACTED
            elif isinstance(value, str) and "://" in value:
                redacted[key] = redact_url(value)
            else:
                redacted[key] = _redact_mapping(value)
        return redacted
    if isinstance(data, list):
        return [_redact_mapping(item) for item in data]
    return data


def _redact_auth_data(event: Dict[str, Any], _hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Redact sensitive data from Sentry events.

    Redacts:
    - Authorization / Cookie header values
    - password, pwd, pass and token query parameters in the request URL
    - Camera passwords (and URL credentials) in JSON request bodies
    - The Sentry DSN if it was captured from the environment

    Args:
        event: Sentry event dictionary to filter
        _hint: Additional context (exception, original_exception) - unused but required by API

    Returns:
        Modified event
    """
    request_data = event.get("request")
    if isinstance(request_data, dict):
        headers = request_data.get("headers")
        if isinstance(headers, dict):
            for header in list(headers):
                if header.lower() in {"authorization", "cookie"}:
                    headers[header] = REDACTED

        if isinstance(request_data.get("url"), str):
            request_data["url"] = redact_url(request_data["url"])
        if isinstance(request_data.get("query_string"), str):
            request_data["query_string"] = redact_url("?" + request_data["query_string"])[1:]

        if "data" in request_data:
            request_data["data"] = _redact_mapping(request_data["data"])

    env = event.get("contexts", {}).get("env")
    if isinstance(env, dict):
        for key in SENSITIVE_ENV_KEYS.intersection(env):
            env[key] = REDACTED

    return event


def _breadcrumb_filter(crumb: Dict[str, Any], _hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Drop health/readiness polling breadcrumbs."""
    if crumb.get("category") == "http.client":
        url = crumb.get("data", {}).get("url", "")
        if any(endpoint in url for endpoint in ("/health", "/ready")):
            return None
    return crumb


def _traces_sampler(sampling_context: Dict[str, Any]) -> float:
    """Determine traces sample rate per transaction.

    Sample rates:
    - /health, /ready             → 0.0 (polling noise)
    - /discover, /api/discover    → 1.0 (low volume, long-running scans)
    - PATCH / POST / PUT / DELETE → 1.0 (always capture mutations)
    - Everything else             → 0.1 (10% of read traffic)
    """
    wsgi_environ = sampling_context.get("wsgi_environ", {})
    path = wsgi_environ.get("PATH_INFO", "")
    method = wsgi_environ.get("REQUEST_METHOD", "GET")

    if path in {"/health", "/ready"}:
        return 0.0
    if path in {"/discover", "/api/discover"}:
        return 1.0
    if method in {"PATCH", "POST", "PUT", "DELETE"}:
        return 1.0
    return 0.1


def init_sentry(sentry_dsn: Optional[str], environment: str = "production") -> bool:
    """Initialize Sentry SDK for error tracking.

    Args:
        sentry_dsn: Sentry DSN URL (from CAMHOME_SENTRY_DSN). If None or empty,
            Sentry stays disabled.
        environment: Sentry environment tag.

    Returns:
        True when Sentry was initialized.
    """
    if not sentry_dsn:
        return False

    sentry_sdk.init(  # type: ignore[call-arg]
        dsn=sentry_dsn,
        integrations=[
            FlaskIntegration(transaction_style="endpoint"),
            # WARNING+ lines become breadcrumbs; ERROR+ lines become events.
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        traces_sampler=_traces_sampler,
        release=read_app_version(),
        before_send=_redact_auth_data,  # type: ignore[arg-type]
        before_breadcrumb=_breadcrumb_filter,
        send_default_pii=False,
        environment=environment,
    )
    sentry_sdk.set_tag("service", "camhome")
    return True
