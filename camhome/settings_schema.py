"""Settings schema for runtime-editable configuration.

Served by /api/v1/settings/schema so the dashboard can render forms, and used
to validate PATCH payloads before they are persisted.
"""

import ipaddress
import re
from copy import deepcopy
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple

from .probe import DEFAULT_PROBE_PORTS, DEFAULT_PROBE_TIMEOUT_SECONDS
from .subnet_resolver import FALLBACK_SUBNET


LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class SettingsSchema:
    """
    Schema for application settings: type, default, constraints, description
    and whether a change only takes effect after a restart.
    """

    SCHEMA_DEFINITION: ClassVar[Dict[str, Any]] = {
        "discovery": {
            "title": "Network Discovery",
            "description": "Active probe and fallback behaviour for camera discovery scans",
            "properties": {
                "probe_timeout_seconds": {
                    "type": "number",
                    "title": "Probe Timeout (seconds)",
                    "description": "Wall-clock limit for one active probe before falling back to the ARP cache",
                    "default": DEFAULT_PROBE_TIMEOUT_SECONDS,
                    "minimum": 1,
                    "maximum": 300,
                    "restartable": False,
                },
                "probe_ports": {
                    "type": "string",
                    "title": "Probe Ports",
                    "description": "Comma-separated TCP ports checked on each host",
                    "default": ",".join(str(port) for port in DEFAULT_PROBE_PORTS),
                    "pattern": r"^\s*\d{1,5}(\s*,\s*\d{1,5})*\s*$",
                    "restartable": False,
                },
                "fallback_subnet": {
                    "type": "string",
                    "title": "Fallback Subnet",
                    "description": "CIDR scanned when no local IPv4 interface is usable",
                    "default": FALLBACK_SUBNET,
                    "format": "ipv4-cidr",
                    "restartable": False,
                },
            },
        },
        "logging": {
            "title": "Logging",
            "description": "Log verbosity",
            "properties": {
                "log_level": {
                    "type": "string",
                    "title": "Log Level",
                    "description": "Minimum severity written to the application log",
                    "default": "INFO",
                    "enum": LOG_LEVELS,
                    "restartable": False,
                },
            },
        },
        "feature_flags": {
            "title": "Feature Flags",
            "description": "Runtime feature toggles.",
            "properties": {
                "CORS_SUPPORT": {
                    "type": "boolean",
                    "title": "CORS Support",
                    "description": "Send CORS headers for cross-origin dashboards",
                    "default": False,
                    "restartable": True,
                },
                "PORT_VENDOR_HEURISTICS": {
                    "type": "boolean",
                    "title": "Port Vendor Heuristics",
                    "description": "Guess a manufacturer from open camera ports when the MAC is unknown",
                    "default": True,
                    "restartable": False,
                },
            },
        },
    }

    @classmethod
    def get_schema(cls) -> Dict[str, Any]:
        return deepcopy(cls.SCHEMA_DEFINITION)

    @classmethod
    def get_property_schema(cls, category: str, property_name: str) -> Optional[Dict[str, Any]]:
        return cls.SCHEMA_DEFINITION.get(category, {}).get("properties", {}).get(property_name)

    @classmethod
    def validate_value(
        cls, category: str, property_name: str, value: Any
    ) -> Tuple[bool, Optional[str]]:
        """Check one value against its property's type and constraints.

        Returns:
            ``(True, None)`` when valid, else ``(False, message)``.
        """
        prop_schema = cls.get_property_schema(category, property_name)
        if prop_schema is None:
            return False, f"Unknown property: {category}.{property_name}"

        checker = _TYPE_CHECKERS.get(prop_schema.get("type", ""))
        error = checker(value, prop_schema) if checker else None
        return error is None, error

    @classmethod
    def get_defaults(cls) -> Dict[str, Dict[str, Any]]:
        """Default values as ``{category: {property: default}}``."""
        return {
            category: {
                name: prop["default"]
                for name, prop in section.get("properties", {}).items()
                if "default" in prop
            }
            for category, section in cls.SCHEMA_DEFINITION.items()
        }

    @classmethod
    def get_restartable_properties(cls) -> Dict[str, List[str]]:
        """Properties whose changes only apply after a restart, per category."""
        return {
            category: [
                name
                for name, prop in section.get("properties", {}).items()
                if prop.get("restartable", False)
            ]
            for category, section in cls.SCHEMA_DEFINITION.items()
        }


def _type_name(value: Any) -> str:
    return type(value).__name__


def _check_boolean(value: Any, _prop: Dict[str, Any]) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return f"Expected boolean, got {_type_name(value)}"


def _check_number(value: Any, prop: Dict[str, Any]) -> Optional[str]:
    # bool is an int subclass; a JSON true is not a timeout.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return f"Expected number, got {_type_name(value)}"
    if "minimum" in prop and value < prop["minimum"]:
        return f"Value {value} is below the minimum of {prop['minimum']}"
    if "maximum" in prop and value > prop["maximum"]:
        return f"Value {value} is above the maximum of {prop['maximum']}"
    return None


def _is_ipv4_cidr(value: str) -> bool:
    if "/" not in value:
        return False
    try:
        ipaddress.IPv4Network(value.strip(), strict=False)
    except ValueError:
        return False
    return True


def _check_string(value: Any, prop: Dict[str, Any]) -> Optional[str]:
    if not isinstance(value, str):
        return f"Expected string, got {_type_name(value)}"
    allowed = prop.get("enum")
    if allowed and value not in allowed:
        return f"Value must be one of: {', '.join(allowed)}"
    if prop.get("pattern") and re.fullmatch(prop["pattern"], value) is None:
        return f"Value does not match the expected format: {prop['pattern']}"
    if prop.get("format") == "ipv4-cidr" and not _is_ipv4_cidr(value):
        return "Value must be an IPv4 CIDR such as 192.168.0.0/24"
    return None


_TYPE_CHECKERS: Dict[str, Callable[[Any, Dict[str, Any]], Optional[str]]] = {
    "boolean": _check_boolean,
    "number": _check_number,
    "string": _check_string,
}
