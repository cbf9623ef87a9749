"""
Application Settings Management
Persists runtime configuration overrides to disk (/data/application-settings.json).
Shares the locking and atomic-write helpers used by the camera registry.
"""

import json
import logging
from contextlib import contextmanager
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, ClassVar, Dict, Optional

import sentry_sdk

from .file_store import exclusive_lock, lock_path_for, write_json_atomic


logger = logging.getLogger(__name__)

SETTINGS_CATEGORIES = ("discovery", "logging", "feature_flags")
SCHEMA_VERSION = 1


class SettingsValidationError(ValueError):
    """Raised when settings validation fails."""


def _permission_guidance(path: Path, operation: str) -> str:
    return (
        f"Permission denied while {operation} at '{path}'. "
        "Check /data mount ownership and write permissions for the service user, "
        "or set CAMHOME_APPLICATION_SETTINGS_PATH to a writable location "
        "(for example, ./data/application-settings.json)."
    )


def _structure_problem(data: Any) -> Optional[str]:
    """Describe the first structural defect of a settings document, if any."""
    if not isinstance(data, dict):
        return "Root must be a dict"
    if data.get("version") != SCHEMA_VERSION:
        return f"Unsupported schema version: {data.get('version')}"
    settings = data.get("settings")
    if not isinstance(settings, dict):
        return "'settings' must be a dict"
    missing = [category for category in SETTINGS_CATEGORIES if category not in settings]
    if missing:
        return f"Missing required categories: {', '.join(missing)}"
    for category in SETTINGS_CATEGORIES:
        if not isinstance(settings[category], dict):
            return f"'settings.{category}' must be a dict"
    return None


class ApplicationSettings:
    """
    Manages persistent application settings stored in a JSON file.

    Settings are organized by category:
    - discovery: probe_timeout_seconds, probe_ports, fallback_subnet
    - logging: log_level
    - feature_flags: {flag_name: bool}

    A ``None`` value means "not overridden; use the environment value".
    Each mutating operation is one locked read-modify-write cycle.
    """

    DEFAULT_SCHEMA: ClassVar = {
        "version": SCHEMA_VERSION,
        "settings": {
            "discovery": {
                "probe_timeout_seconds": None,
                "probe_ports": None,
                "fallback_subnet": None,
            },
            "logging": {
                "log_level": None,
            },
            "feature_flags": {},
        },
        "last_modified": None,
        "modified_by": "system",
    }

    def __init__(self, path: str = "/data/application-settings.json"):
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Non-fatal here; later operations raise actionable errors.
            logger.debug("Could not create settings directory %s: %s", self.path.parent, e)

    def load(self) -> Dict[str, Any]:
        """
        Load settings from disk merged over the default schema.

        Returns:
            Dict with 'version', 'settings', 'last_modified', 'modified_by' keys

        Raises:
            SettingsValidationError: If the file is corrupted, invalid or unreadable
        """
        with self._locked("reading settings file"):
            return self._load_unlocked()

    def _load_unlocked(self) -> Dict[str, Any]:
        if not self.path.exists():
            return self._clone_schema()

        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except PermissionError as exc:
            message = _permission_guidance(self.path, "reading settings file")
            logger.error(message)
            raise SettingsValidationError(message) from exc
        except OSError:
            # Replaced or removed by a concurrent reset.
            return self._clone_schema()

        if not content:
            return self._clone_schema()

        try:
            raw = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.error("Corrupted settings file %s: %s", self.path, exc)
            message = f"Corrupted settings file: {exc}"
            raise SettingsValidationError(message) from exc

        self._validate_settings_structure(raw)

        schema = self._clone_schema()
        settings = raw["settings"]
        for category in ("discovery", "logging"):
            known = schema["settings"][category]
            known.update({k: v for k, v in settings[category].items() if k in known})
        schema["settings"]["feature_flags"] = dict(settings["feature_flags"])

        if raw.get("last_modified"):
            schema["last_modified"] = raw["last_modified"]
        if raw.get("modified_by"):
            schema["modified_by"] = raw["modified_by"]
        return schema

    def apply_patch_atomic(
        self, patch: Dict[str, Any], modified_by: str = "system"
    ) -> Dict[str, Any]:
        """Apply a validated settings patch and persist it as one locked operation.

        Returns:
            The full persisted document after the patch.

        Raises:
            SettingsValidationError: On unknown categories or keys, or write failures
        """
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("component", "settings")
            scope.set_context("settings_operation", {"modified_by": modified_by})

            with self._locked("updating settings file"):
                data = self._load_unlocked()
                updated = deepcopy(data["settings"])

                for category, properties in patch.items():
                    if category not in updated:
                        message = f"Unknown settings category: {category}"
                        raise SettingsValidationError(message)
                    if not isinstance(properties, dict):
                        message = f"'settings.{category}' must be a dict"
                        raise SettingsValidationError(message)
                    if category != "feature_flags":
                        for key in properties:
                            if key not in updated[category]:
                                message = f"Unknown settings key '{key}' in category '{category}'"
                                raise SettingsValidationError(message)
                    updated[category].update(properties)

                data["settings"] = updated
                data["last_modified"] = datetime.now(timezone.utc).isoformat()
                data["modified_by"] = modified_by
                self._validate_settings_structure(data)
                self._save_atomic(data)
                logger.info("Settings saved by %s", modified_by)
                return data

    def reset(self, modified_by: str = "system") -> None:
        """Clear all persisted settings; environment values become the only source."""
        with self._locked("resetting settings file"):
            if self.path.exists():
                try:
                    self.path.unlink()
                except PermissionError as exc:
                    message = _permission_guidance(self.path, "resetting settings file")
                    logger.error(message)
                    raise SettingsValidationError(message) from exc
            logger.info("Settings reset to defaults by %s", modified_by)

    def get_changes_from_env(self, env_defaults: Dict[str, Any]) -> Dict[str, Any]:
        """
        Diff persisted settings against environment values.

        Args:
            env_defaults: ``{category: {key: env_value}}``

        Returns:
            Dict with 'overridden' list of {category, key, value, env_value} objects
        """
        current = self.load()
        overridden = []
        for category in SETTINGS_CATEGORIES:
            env_vals = env_defaults.get(category, {})
            for key, value in current["settings"].get(category, {}).items():
                if value is not None and value != env_vals.get(key):
                    overridden.append(
                        {
                            "category": category,
                            "key": key,
                            "value": value,
                            "env_value": env_vals.get(key),
                        }
                    )
        return {"overridden": overridden}

    @staticmethod
    def _clone_schema() -> Dict[str, Any]:
        return deepcopy(ApplicationSettings.DEFAULT_SCHEMA)

    @staticmethod
    def _validate_settings_structure(data: Any) -> None:
        problem = _structure_problem(data)
        if problem:
            raise SettingsValidationError(problem)

    def _save_atomic(self, data: Dict[str, Any]) -> None:
        try:
            write_json_atomic(self.path, data)
        except PermissionError as exc:
            message = _permission_guidance(self.path, "writing settings file")
            logger.error(message)
            raise SettingsValidationError(message) from exc

    @contextmanager
    def _locked(self, operation: str):
        """Hold the settings lock, reporting permission problems as settings errors."""
        try:
            with exclusive_lock(self.path):
                yield
        except PermissionError as exc:
            message = _permission_guidance(lock_path_for(self.path), operation)
            logger.error(message)
            raise SettingsValidationError(message) from exc
