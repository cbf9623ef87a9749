import ipaddress
import json
import logging
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .file_store import exclusive_lock, write_json_atomic


logger = logging.getLogger(__name__)


REQUIRED_CAMERA_FIELDS = {"name", "address"}
OPTIONAL_STRING_FIELDS = {"model", "username", "password"}
URL_FIELDS = {
    "snapshot_url": {"http", "https"},
    "stream_url": {"http", "https", "rtsp", "rtsps"},
}
ALLOWED_CAMERA_FIELDS = (
    {"id", "created_at", "resolution", "framerate", "bitrate", "external_traffic"}
    | REQUIRED_CAMERA_FIELDS
    | OPTIONAL_STRING_FIELDS
    | set(URL_FIELDS)
)

_CAMERA_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")
_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)
_RESOLUTION_RE = re.compile(r"^\d{1,5}x\d{1,5}$")

MAX_FRAMERATE = 240
MAX_BITRATE_KBPS = 100_000


class CameraValidationError(ValueError):
    """Exception raised for camera validation or registry operation errors.

    Used to wrap validation failures, duplicate ids, permission issues, or
    file corruption errors.
    """


class CameraRegistryCorruptedError(CameraValidationError):
    """Raised when the registry file exists but cannot be parsed."""


class CameraRegistry(ABC):
    """Persistent storage for registered cameras."""

    @abstractmethod
    def list_cameras(self) -> List[Dict[str, Any]]:
        """List all registered cameras."""
        raise NotImplementedError

    @abstractmethod
    def get_camera(self, camera_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def create_camera(self, camera: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new camera.

        Raises:
            CameraValidationError: If validation fails or the id already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def update_camera(self, camera_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``patch`` into an existing camera.

        Raises:
            KeyError: If the camera is not found.
            CameraValidationError: If validation fails.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_camera(self, camera_id: str) -> bool:
        """Delete a camera; returns False when it did not exist."""
        raise NotImplementedError

    def registered_addresses(self) -> List[str]:
        """Addresses of all registered cameras, for discovery cross-referencing."""
        return [camera["address"] for camera in self.list_cameras() if camera.get("address")]


def _validate_non_empty_string(camera: Dict[str, Any], field: str) -> str:
    value = camera[field]
    if not isinstance(value, str) or not value.strip():
        message = f"{field} must be a non-empty string"
        raise CameraValidationError(message)
    return value.strip()


def _validate_address(value: Any) -> str:
    """Accept a dotted-quad IPv4 address or an RFC 1123 hostname."""
    if not isinstance(value, str) or not value.strip():
        message = "address must be a non-empty string"
        raise CameraValidationError(message)
    address = value.strip()
    try:
        return str(ipaddress.IPv4Address(address))
    except ValueError:
        pass
    if address.replace(".", "").isdigit() or not _HOSTNAME_RE.match(address):
        message = f"address must be an IPv4 address or hostname, got: {address!r}"
        raise CameraValidationError(message)
    return address.lower()


def _validate_url(field: str, value: Any) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str):
        message = f"{field} must be a string"
        raise CameraValidationError(message)
    url = value.strip()
    allowed_schemes = URL_FIELDS[field]
    try:
        parsed = urlparse(url)
    except ValueError as exc:
        message = f"{field} is not a valid URL"
        raise CameraValidationError(message) from exc
    if parsed.scheme not in allowed_schemes or not parsed.netloc:
        schemes = ", ".join(sorted(allowed_schemes))
        message = f"{field} must be an absolute URL using one of: {schemes}"
        raise CameraValidationError(message)
    return url


def _validate_bounded_int(field: str, value: Any, maximum: int) -> Optional[int]:
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= maximum:
        message = f"{field} must be an integer between 0 and {maximum}"
        raise CameraValidationError(message)
    return value


def validate_camera(camera: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate and normalize camera data.

    Args:
        camera: Camera data dictionary.
        partial: If True, only provided fields are checked (for updates).

    Returns:
        Validated camera dictionary. On full validation a missing ``id`` is
        generated and ``created_at`` is stamped.

    Raises:
        CameraValidationError: If validation fails for any field.
    """
    if not isinstance(camera, dict):
        message = "camera payload must be an object"
        raise CameraValidationError(message)

    unknown = set(camera).difference(ALLOWED_CAMERA_FIELDS)
    if unknown:
        message = f"unsupported camera fields: {', '.join(sorted(unknown))}"
        raise CameraValidationError(message)

    if not partial:
        missing = REQUIRED_CAMERA_FIELDS.difference(camera)
        if missing:
            message = f"missing required fields: {', '.join(sorted(missing))}"
            raise CameraValidationError(message)

    validated: Dict[str, Any] = {}

    if "id" in camera:
        camera_id = _validate_non_empty_string(camera, "id")
        if not _CAMERA_ID_RE.match(camera_id):
            message = "id may only contain letters, digits, '.', '_' and '-' (max 64 chars)"
            raise CameraValidationError(message)
        validated["id"] = camera_id

    if "name" in camera:
        validated["name"] = _validate_non_empty_string(camera, "name")

    if "address" in camera:
        validated["address"] = _validate_address(camera["address"])

    for field in OPTIONAL_STRING_FIELDS.intersection(camera):
        value = camera[field]
        if value is not None and not isinstance(value, str):
            message = f"{field} must be a string"
            raise CameraValidationError(message)
        validated[field] = value

    for field in set(URL_FIELDS).intersection(camera):
        validated[field] = _validate_url(field, camera[field])

    if "resolution" in camera:
        resolution = camera["resolution"]
        if resolution is not None and (
            not isinstance(resolution, str) or not _RESOLUTION_RE.match(resolution.strip())
        ):
            message = "resolution must use WIDTHxHEIGHT format (e.g., 1920x1080)"
            raise CameraValidationError(message)
        validated["resolution"] = resolution.strip() if isinstance(resolution, str) else None

    if "framerate" in camera:
        validated["framerate"] = _validate_bounded_int("framerate", camera["framerate"], MAX_FRAMERATE)

    if "bitrate" in camera:
        validated["bitrate"] = _validate_bounded_int("bitrate", camera["bitrate"], MAX_BITRATE_KBPS)

    if "external_traffic" in camera:
        if not isinstance(camera["external_traffic"], bool):
            message = "external_traffic must be a boolean"
            raise CameraValidationError(message)
        validated["external_traffic"] = camera["external_traffic"]

    if "created_at" in camera:
        created_at = camera["created_at"]
        if not isinstance(created_at, str) or not created_at.strip():
            message = "created_at must be a non-empty string"
            raise CameraValidationError(message)
        validated["created_at"] = created_at

    if not partial:
        validated.setdefault("id", f"cam-{uuid.uuid4().hex[:12]}")
        validated.setdefault("created_at", datetime.now(timezone.utc).isoformat())

    return validated


class FileCameraRegistry(CameraRegistry):
    """File-based camera registry with POSIX/Windows file locking.

    Stores cameras in a ``{"cameras": [...]}`` JSON document. Every operation
    holds the registry lock, and writes replace the file atomically.

    Raises:
        CameraValidationError: If the registry directory is not writable.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            message = (
                f"Permission denied accessing registry path: {self.path.parent}. "
                "Set CAMHOME_CAMERA_REGISTRY_PATH to a writable location "
                "(e.g., ./data/cameras.json)."
            )
            logger.error(message)
            raise CameraValidationError(message) from e

    def _load(self) -> Dict[str, Any]:
        """Load and validate the registry file. Callers hold the registry lock.

        Stored cameras missing ``id`` or ``created_at`` get them generated once
        and the file is rewritten, so ids stay stable across reads.

        Raises:
            CameraRegistryCorruptedError: If the file is not valid JSON.
            CameraValidationError: If a stored camera fails validation.
        """
        if not self.path.exists():
            return {"cameras": []}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            message = f"camera registry file is corrupted and cannot be parsed: {self.path}"
            raise CameraRegistryCorruptedError(message) from exc
        if not isinstance(raw, dict):
            return {"cameras": []}
        cameras = raw.get("cameras", [])
        if not isinstance(cameras, list):
            cameras = []

        loaded: List[Dict[str, Any]] = []
        backfilled = 0
        for index, camera in enumerate(cameras):
            if not isinstance(camera, dict):
                message = f"camera at index {index} must be an object"
                raise CameraValidationError(message)
            if "id" not in camera or "created_at" not in camera:
                backfilled += 1
            loaded.append(validate_camera(camera))

        data = {"cameras": loaded}
        if backfilled:
            self._save(data)
            logger.info("Assigned id/created_at to %d stored camera(s) in %s", backfilled, self.path)
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        write_json_atomic(self.path, data)

    def list_cameras(self) -> List[Dict[str, Any]]:
        with exclusive_lock(self.path):
            return self._load()["cameras"]

    def get_camera(self, camera_id: str) -> Optional[Dict[str, Any]]:
        for camera in self.list_cameras():
            if camera.get("id") == camera_id:
                return camera
        return None

    def create_camera(self, camera: Dict[str, Any]) -> Dict[str, Any]:
        candidate = validate_camera({k: v for k, v in camera.items() if k != "created_at"})

        with exclusive_lock(self.path):
            data = self._load()
            if any(existing.get("id") == candidate["id"] for existing in data["cameras"]):
                message = f"camera {candidate['id']} already exists"
                raise CameraValidationError(message)
            data["cameras"].append(candidate)
            self._save(data)
            return candidate

    def update_camera(self, camera_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Update an existing camera by merging patch data.

        ``created_at`` is preserved; changing ``id`` is allowed as long as the
        new id stays unique.
        """
        validated_patch = validate_camera(patch, partial=True)
        validated_patch.pop("created_at", None)

        with exclusive_lock(self.path):
            data = self._load()
            for index, existing in enumerate(data["cameras"]):
                if existing.get("id") != camera_id:
                    continue
                merged = validate_camera({**existing, **validated_patch})
                if any(
                    other_index != index and other.get("id") == merged["id"]
                    for other_index, other in enumerate(data["cameras"])
                ):
                    message = f"camera {merged['id']} already exists"
                    raise CameraValidationError(message)
                data["cameras"][index] = merged
                self._save(data)
                return merged
            raise KeyError(camera_id)

    def delete_camera(self, camera_id: str) -> bool:
        with exclusive_lock(self.path):
            data = self._load()
            previous_count = len(data["cameras"])
            data["cameras"] = [camera for camera in data["cameras"] if camera.get("id") != camera_id]
            if previous_count == len(data["cameras"]):
                return False
            self._save(data)
            return True
