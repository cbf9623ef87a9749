#!/usr/bin/python3

import logging
import signal
import time
from typing import Any, Dict, Optional

from flask import Flask, g, jsonify, request
from flask_cors import CORS
from werkzeug.serving import make_server

from .application_settings import ApplicationSettings
from .camera_registry import CameraValidationError, FileCameraRegistry
from .cameras_api import register_camera_routes
from .config_validator import ConfigValidationError, validate_all_config
from .discovery import ScanOrchestrator
from .discovery_api import register_discovery_routes
from .feature_flags import get_feature_flags
from .logging_config import configure_logging
from .probe import NmapOutputParser, NmapProbe
from .runtime_config import build_discovery_config, load_env_config, merge_config_with_settings
from .sentry_config import init_sentry
from .settings_api import register_settings_routes
from .shared import register_shared_routes
from .structured_logging import CORRELATION_HEADER, get_correlation_id


logger = logging.getLogger(__name__)

HEALTH_ENDPOINTS = {"/health", "/ready"}


def _register_request_logging(app: Flask) -> None:
    @app.before_request
    def _track_request_start() -> None:
        g.request_started_monotonic = time.monotonic()

    @app.after_request
    def _log_request(response):
        request_started = getattr(g, "request_started_monotonic", None)
        latency_ms = 0.0
        if request_started is not None:
            latency_ms = (time.monotonic() - request_started) * 1000

        response.headers[CORRELATION_HEADER] = get_correlation_id()

        level = logging.DEBUG if request.path in HEALTH_ENDPOINTS else logging.INFO
        logger.log(
            level,
            "request method=%s path=%s status=%s latency_ms=%.1f",
            request.method,
            request.path,
            response.status_code,
            latency_ms,
        )
        return response


def _registry_readiness(registry: FileCameraRegistry):
    def _check() -> Optional[str]:
        try:
            registry.list_cameras()
        except (CameraValidationError, OSError) as exc:
            return f"camera registry unavailable: {exc}"
        return None

    return _check


def create_app(
    config: Dict[str, Any],
    orchestrator: Optional[ScanOrchestrator] = None,
) -> Flask:
    """Build the Flask application.

    Args:
        config: Configuration dict from ``load_env_config()``.
        orchestrator: Scan orchestrator; defaults to nmap plus the local ARP cache.

    Returns:
        Configured Flask app with ``camhome_config``, ``application_settings``
        and ``camera_registry`` attributes.
    """
    app = Flask(__name__)
    app.camhome_config = dict(config)
    _register_request_logging(app)

    if config.get("cors_enabled"):
        CORS(app, resources={r"/*": {"origins": config.get("cors_origins") or ["*"]}})

    settings_store = ApplicationSettings(config["application_settings_path"])
    registry = FileCameraRegistry(config["camera_registry_path"])
    app.application_settings = settings_store
    app.camera_registry = registry

    if orchestrator is None:
        orchestrator = ScanOrchestrator(
            probe=NmapProbe(config.get("nmap_path", "nmap")),
            parser=NmapOutputParser(),
        )
    app.scan_orchestrator = orchestrator

    def _current_discovery_config():
        return build_discovery_config(merge_config_with_settings(app.camhome_config, settings_store))

    @app.route("/api/feature-flags")
    def api_flags():
        effective = merge_config_with_settings(app.camhome_config, settings_store)
        return jsonify(effective["feature_flags"]), 200

    register_shared_routes(
        app,
        readiness_check=_registry_readiness(registry),
        probe_path=config.get("nmap_path", "nmap"),
    )
    register_camera_routes(app, registry)
    register_discovery_routes(app, orchestrator, registry, _current_discovery_config)
    register_settings_routes(app)
    return app


def create_app_from_env() -> Flask:
    configure_logging()
    flags = get_feature_flags()
    flags.load()

    cfg = load_env_config(flags=flags)
    try:
        validate_all_config(cfg)
    except ConfigValidationError as exc:
        logger.error("Invalid configuration: %s (hint: %s)", exc, exc.hint)
        raise

    init_sentry(cfg["sentry_dsn"])

    effective = merge_config_with_settings(cfg)
    if effective["log_level"] != cfg["log_level"]:
        configure_logging(level_override=effective["log_level"])

    app = create_app(cfg)
    logger.info(
        "camhome started: registry_path=%s settings_path=%s cors=%s",
        cfg["camera_registry_path"],
        cfg["application_settings_path"],
        cfg["cors_enabled"],
    )
    return app


def handle_shutdown(signum: int, _frame: Optional[object]) -> None:
    logger.info("Received signal %s, shutting down", signum)
    raise SystemExit(signum)


def main() -> None:
    app = create_app_from_env()
    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)
    cfg = app.camhome_config
    server = make_server(cfg["bind_host"], cfg["bind_port"], app, threaded=True)
    logger.info("Listening on %s:%s", cfg["bind_host"], cfg["bind_port"])
    server.serve_forever()


if __name__ == "__main__":
    main()
