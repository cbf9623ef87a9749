"""Camera registry REST endpoints: list, register, read, update and delete cameras."""

import logging

import sentry_sdk
from flask import Flask, jsonify, request

from .camera_registry import CameraRegistry, CameraRegistryCorruptedError, CameraValidationError
from .shared import error_response
from .structured_logging import log_error, log_event


logger = logging.getLogger(__name__)


def _registry_unavailable_response(exc: Exception, operation: str, camera_id: str = ""):
    log_error(operation, "registry_unavailable", str(exc), resource_id=camera_id or None)
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("component", "camera_registry")
        sentry_sdk.capture_exception(exc)
    return error_response(
        "REGISTRY_UNAVAILABLE",
        str(exc),
        503,
        details={"reason": "camera registry unreadable"},
    )


def _camera_not_found(camera_id: str):
    return error_response(
        "CAMERA_NOT_FOUND",
        f"camera {camera_id} not found",
        404,
        details={"camera_id": camera_id},
    )


def register_camera_routes(app: Flask, registry: CameraRegistry) -> None:
    """Register camera CRUD endpoints under /api/cameras.

    Args:
        app: Flask application instance.
        registry: Camera registry backing the endpoints.
    """

    @app.route("/api/cameras", methods=["GET"])
    def list_cameras():
        try:
            cameras = registry.list_cameras()
        except (CameraValidationError, OSError) as exc:
            return _registry_unavailable_response(exc, "camera_list")
        return jsonify({"cameras": cameras}), 200

    @app.route("/api/cameras", methods=["POST"])
    def create_camera():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return error_response("VALIDATION_ERROR", "request body must be a JSON object", 400)
        try:
            created = registry.create_camera(payload)
        except CameraRegistryCorruptedError as exc:
            return _registry_unavailable_response(exc, "camera_create")
        except CameraValidationError as exc:
            return error_response("VALIDATION_ERROR", str(exc), 400)
        log_event("camera_created", camera_id=created["id"], address=created["address"])
        return jsonify(created), 201

    @app.route("/api/cameras/<camera_id>", methods=["GET"])
    def get_camera(camera_id: str):
        try:
            camera = registry.get_camera(camera_id)
        except (CameraValidationError, OSError) as exc:
            return _registry_unavailable_response(exc, "camera_get", camera_id)
        if camera is None:
            return _camera_not_found(camera_id)
        return jsonify(camera), 200

    @app.route("/api/cameras/<camera_id>", methods=["PUT"])
    def update_camera(camera_id: str):
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return error_response("VALIDATION_ERROR", "request body must be a JSON object", 400)
        try:
            updated = registry.update_camera(camera_id, payload)
        except KeyError:
            return _camera_not_found(camera_id)
        except CameraRegistryCorruptedError as exc:
            return _registry_unavailable_response(exc, "camera_update", camera_id)
        except CameraValidationError as exc:
            return error_response("VALIDATION_ERROR", str(exc), 400, details={"camera_id": camera_id})
        log_event("camera_updated", camera_id=updated["id"])
        return jsonify(updated), 200

    @app.route("/api/cameras/<camera_id>", methods=["DELETE"])
    def delete_camera(camera_id: str):
        try:
            deleted = registry.delete_camera(camera_id)
        except (CameraValidationError, OSError) as exc:
            return _registry_unavailable_response(exc, "camera_delete", camera_id)
        if not deleted:
            return _camera_not_found(camera_id)
        log_event("camera_deleted", camera_id=camera_id)
        return "", 204
