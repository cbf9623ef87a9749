"""
Settings Management API Endpoints
Runtime configuration overrides via REST, mounted under /api/v1.
Endpoints: GET /settings, PATCH /settings, POST /settings/reset,
GET /settings/schema, GET /settings/changes
"""

import logging
from typing import Any, Dict

import sentry_sdk
from flask import Blueprint, Flask, current_app, jsonify, request

from .application_settings import SettingsValidationError
from .config_validator import validate_settings_patch
from .logging_config import apply_log_level
from .runtime_config import env_settings_defaults, get_effective_settings_payload
from .settings_schema import SettingsSchema
from .shared import error_response
from .structured_logging import log_event


logger = logging.getLogger(__name__)


def _internal_error(message: str, exc: Exception):
    logger.exception(message)
    sentry_sdk.capture_exception(exc)
    return error_response("SETTINGS_ERROR", message, 500, details={"reason": str(exc)})


def create_settings_blueprint() -> Blueprint:
    """Create a Blueprint with the settings routes at /settings/*.

    Register it with ``url_prefix="/api/v1"``. Routes read the settings store
    from ``current_app.application_settings`` and the environment config from
    ``current_app.camhome_config``.
    """
    bp = Blueprint("settings_api", __name__)

    @bp.route("/settings", methods=["GET"])
    def get_settings():
        """Current runtime settings (environment merged with persisted overrides)."""
        try:
            payload = get_effective_settings_payload(
                current_app.camhome_config, current_app.application_settings
            )
        except Exception as exc:
            return _internal_error("Failed to load settings", exc)
        return jsonify(payload), 200

    @bp.route("/settings/schema", methods=["GET"])
    def get_settings_schema():
        return jsonify(
            {
                "schema": SettingsSchema.get_schema(),
                "defaults": SettingsSchema.get_defaults(),
                "restartable_properties": SettingsSchema.get_restartable_properties(),
            }
        ), 200

    @bp.route("/settings", methods=["PATCH"])
    def patch_settings():
        """
        Update runtime settings.

        Request body: JSON with structure { category: { property: value } }
        Example:
            {
              "discovery": {"probe_timeout_seconds": 10},
              "logging": {"log_level": "DEBUG"}
            }

        Returns:
            - 200: Settings saved; applied to the next request
            - 400: Invalid body or validation errors (per-property messages)
            - 422: Saved, but some properties only apply after a restart
            - 500: Server error
        """
        patch_data = request.get_json(silent=True)
        if not isinstance(patch_data, dict) or not patch_data:
            return error_response(
                "INVALID_PAYLOAD", "Request body must be a non-empty JSON object.", 400
            )

        validation_errors = validate_settings_patch(patch_data)
        if validation_errors:
            return error_response(
                "VALIDATION_ERROR",
                "Validation failed",
                400,
                details={"validation_errors": validation_errors},
            )

        restartable = SettingsSchema.get_restartable_properties()
        modified_on_restart = [
            f"{category}.{prop_name}"
            for category, properties in patch_data.items()
            for prop_name in properties
            if prop_name in restartable.get(category, [])
        ]

        try:
            persisted = current_app.application_settings.apply_patch_atomic(
                patch_data, modified_by="api_patch"
            )
        except SettingsValidationError as exc:
            return error_response("VALIDATION_ERROR", str(exc), 400)
        except Exception as exc:
            return _internal_error("Failed to update settings", exc)

        level = patch_data.get("logging", {}).get("log_level")
        if level:
            apply_log_level(level)

        log_event(
            "settings_updated",
            categories=sorted(patch_data),
            requires_restart=bool(modified_on_restart),
        )

        result: Dict[str, Any] = {
            "saved": True,
            "settings": persisted.get("settings", {}),
            "last_modified": persisted.get("last_modified"),
            "modified_by": persisted.get("modified_by"),
        }
        if modified_on_restart:
            result["modified_on_restart"] = modified_on_restart
            result["requires_restart"] = True
            return jsonify(result), 422
        return jsonify(result), 200

    @bp.route("/settings/reset", methods=["POST"])
    def reset_settings():
        """Drop persisted overrides; environment variables become the only source."""
        try:
            current_app.application_settings.reset(modified_by="api_reset")
        except Exception as exc:
            return _internal_error("Failed to reset settings", exc)
        apply_log_level(current_app.camhome_config.get("log_level", "INFO"))
        log_event("settings_reset")
        return jsonify(
            {
                "reset": True,
                "message": "Settings reset to defaults. Environment variables are now source of truth.",
            }
        ), 200

    @bp.route("/settings/changes", methods=["GET"])
    def get_settings_changes():
        """Persisted overrides that differ from the environment values."""
        try:
            changes = current_app.application_settings.get_changes_from_env(
                env_settings_defaults(current_app.camhome_config)
            )
        except Exception as exc:
            return _internal_error("Failed to get settings changes", exc)
        return jsonify(changes), 200

    return bp


def register_settings_routes(app: Flask) -> None:
    """Register the settings Blueprint under /api/v1."""
    app.register_blueprint(create_settings_blueprint(), url_prefix="/api/v1")
