import shutil
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify

from .version_info import get_app_version_info


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(
    code: str,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
):
    """Build standardized error response JSON.

    Args:
        code: Error code (e.g., 'INVALID_SUBNET').
        message: Error message.
        status_code: HTTP status code.
        details: Optional error details dict.

    Returns:
        Tuple of (jsonify response, status_code).
    """
    payload: Dict[str, Any] = {
        "error": message,
        "code": code,
        "timestamp": utc_now_iso(),
    }
    if details:
        payload["details"] = details
    return jsonify(payload), status_code


def register_shared_routes(
    app: Flask,
    readiness_check: Optional[Callable[[], Optional[str]]] = None,
    probe_path: str = "nmap",
) -> None:
    """Register health, readiness and version endpoints.

    - GET /health: process is up (always 200)
    - GET /ready: 503 with a reason when ``readiness_check`` reports one
    - GET /version and /api/version: application version metadata

    Args:
        app: Flask application instance.
        readiness_check: Callable returning None when ready, else a reason string.
        probe_path: Discovery tool name, reported by /ready. A missing tool only
            degrades discovery, so it never makes the service unready.
    """

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "timestamp": utc_now_iso()}), 200

    @app.route("/ready")
    def ready():
        probe_available = shutil.which(probe_path) is not None
        reason = readiness_check() if readiness_check else None
        if reason:
            return jsonify(
                {
                    "status": "not_ready",
                    "reason": reason,
                    "probe_available": probe_available,
                    "timestamp": utc_now_iso(),
                }
            ), 503
        return jsonify(
            {
                "status": "ready",
                "probe_available": probe_available,
                "timestamp": utc_now_iso(),
            }
        ), 200

    @app.route("/version")
    @app.route("/api/version")
    def version():
        version_info = get_app_version_info()
        return jsonify(
            {
                "status": "ok",
                "version": version_info["version"],
                "source": version_info["source"],
                "timestamp": utc_now_iso(),
            }
        ), 200
