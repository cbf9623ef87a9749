"""Network discovery endpoint: GET /discover (alias /api/discover)."""

import logging
from typing import Callable

import sentry_sdk
from flask import Flask, jsonify, request

from .camera_registry import CameraRegistry, CameraValidationError
from .discovery import DiscoveryConfig, ScanOrchestrator, mark_registered
from .shared import error_response
from .structured_logging import log_error
from .subnet_resolver import InvalidSubnetError, parse_subnet_override


logger = logging.getLogger(__name__)


def register_discovery_routes(
    app: Flask,
    orchestrator: ScanOrchestrator,
    registry: CameraRegistry,
    config_provider: Callable[[], DiscoveryConfig],
) -> None:
    """Register the discovery endpoint.

    A probe failure is not an error here: the orchestrator already degraded to
    the ARP-only view, so the response is still 200. Only a malformed
    ``subnet`` (400) or an unreadable camera registry (503) fail the request.

    Args:
        app: Flask application instance.
        orchestrator: Scan orchestrator that runs one discovery pass.
        registry: Camera registry used to flag already-registered devices.
        config_provider: Builds the per-request DiscoveryConfig from the
            effective runtime settings.
    """

    @app.route("/discover", methods=["GET"])
    @app.route("/api/discover", methods=["GET"])
    def discover():
        raw_subnet = (request.args.get("subnet") or "").strip()
        subnet_override = None
        if raw_subnet:
            try:
                subnet_override = parse_subnet_override(raw_subnet)
            except InvalidSubnetError as exc:
                log_error("discovery_scan", "invalid_subnet", str(exc), severity="WARNING")
                return error_response("INVALID_SUBNET", str(exc), 400)

        devices = orchestrator.scan(subnet_override=subnet_override, config=config_provider())

        try:
            registered_addresses = registry.registered_addresses()
        except (CameraValidationError, OSError) as exc:
            log_error("discovery_scan", "registry_unavailable", str(exc))
            with sentry_sdk.new_scope() as scope:
                scope.set_tag("component", "discovery")
                sentry_sdk.capture_exception(exc)
            return error_response(
                "REGISTRY_UNAVAILABLE",
                "registered cameras could not be read",
                503,
                details={"reason": str(exc)},
            )

        result = mark_registered(devices, registered_addresses)
        return jsonify([device.to_dict() for device in result]), 200
