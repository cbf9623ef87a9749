"""Configuration validation and startup checks."""

import ipaddress
from typing import Any, Dict, Optional, Tuple

from .settings_schema import SettingsSchema


MIN_PROBE_TIMEOUT_SECONDS = 1.0
MAX_PROBE_TIMEOUT_SECONDS = 300.0


class ConfigValidationError(ValueError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


def validate_integer_range(
    value: Optional[str],
    name: str,
    min_val: int,
    max_val: int,
    default: int,
) -> int:
    """Validate integer config parameter with range check.

    Args:
        value: String value to parse
        name: Config parameter name (for error messages)
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)
        default: Value used when ``value`` is missing or blank

    Returns:
        Validated integer value

    Raises:
        ConfigValidationError: If value is not an integer or out of range
    """
    if value is None or str(value).strip() == "":
        return default

    try:
        parsed = int(str(value).strip())
    except ValueError as exc:
        raise ConfigValidationError(
            f"{name} must be an integer, got: '{value}'",
            hint=f"Valid range: {min_val}-{max_val}",
        ) from exc

    if not (min_val <= parsed <= max_val):
        raise ConfigValidationError(
            f"{name} value out of range: {parsed}",
            hint=f"Valid range: {min_val}-{max_val}",
        )

    return parsed


def validate_float_range(
    value: Optional[str],
    name: str,
    min_val: float,
    max_val: float,
    default: float,
) -> float:
    """Validate float config parameter with range check.

    Raises:
        ConfigValidationError: If value is not a number or out of range
    """
    if value is None or str(value).strip() == "":
        return default

    try:
        parsed = float(str(value).strip())
    except ValueError as exc:
        raise ConfigValidationError(
            f"{name} must be a number, got: '{value}'",
            hint=f"Valid range: {min_val}-{max_val}",
        ) from exc

    if not (min_val <= parsed <= max_val):
        raise ConfigValidationError(
            f"{name} value out of range: {parsed}",
            hint=f"Valid range: {min_val}-{max_val}",
        )

    return parsed


def validate_port_list(value: Optional[str], name: str, default: Tuple[int, ...]) -> Tuple[int, ...]:
    """Parse a comma-separated list of TCP ports.

    Duplicates are dropped while keeping the first occurrence's order.

    Raises:
        ConfigValidationError: If any entry is not a port number in 1-65535
    """
    if value is None or str(value).strip() == "":
        return default

    ports = []
    for raw_port in str(value).split(","):
        candidate = raw_port.strip()
        if not candidate:
            continue
        port = validate_integer_range(candidate, name, 1, 65535, 0)
        if port not in ports:
            ports.append(port)

    if not ports:
        raise ConfigValidationError(
            f"{name} must list at least one port",
            hint="Example: 80,554,8080",
        )
    return tuple(ports)


def validate_subnet(value: Optional[str], name: str, default: str) -> str:
    """Validate an IPv4 CIDR setting and return it normalized.

    Raises:
        ConfigValidationError: If value is not an ``a.b.c.d/n`` network
    """
    if value is None or str(value).strip() == "":
        return default

    candidate = str(value).strip()
    try:
        if "/" not in candidate:
            raise ValueError(candidate)
        network = ipaddress.IPv4Network(candidate, strict=False)
    except ValueError as exc:
        raise ConfigValidationError(
            f"{name} must be an IPv4 CIDR, got: '{value}'",
            hint="Example: 192.168.0.0/24",
        ) from exc
    return network.with_prefixlen


def validate_settings_patch(patch: Dict[str, Any]) -> Dict[str, str]:
    """Validate a settings PATCH body of shape ``{category: {property: value}}``.

    ``None`` values are accepted and clear a persisted override.

    Returns:
        ``{"category.property": error}`` for every invalid entry; empty when valid.
    """
    errors: Dict[str, str] = {}
    for category, properties in patch.items():
        if SettingsSchema.SCHEMA_DEFINITION.get(category) is None:
            errors[str(category)] = f"Unknown settings category: {category}"
            continue
        if not isinstance(properties, dict):
            errors[category] = "Category value must be an object"
            continue
        for prop_name, value in properties.items():
            if value is None:
                if SettingsSchema.get_property_schema(category, prop_name) is None:
                    errors[f"{category}.{prop_name}"] = f"Unknown property: {category}.{prop_name}"
                continue
            is_valid, error = SettingsSchema.validate_value(category, prop_name, value)
            if not is_valid:
                errors[f"{category}.{prop_name}"] = error or "Invalid value"
            elif (category, prop_name) == ("discovery", "probe_ports"):
                # The pattern only checks shape; port numbers must also be in range.
                try:
                    validate_port_list(value, prop_name, ())
                except ConfigValidationError as exc:
                    errors[f"{category}.{prop_name}"] = str(exc)
    return errors


def validate_all_config(config: Dict[str, Any]) -> None:
    """Validate cross-field configuration at startup.

    Args:
        config: Configuration dictionary returned from ``load_env_config()``

    Raises:
        ConfigValidationError: If any configuration is invalid
    """
    timeout = config.get("discovery_probe_timeout_seconds")
    if timeout is not None and not (
        MIN_PROBE_TIMEOUT_SECONDS <= float(timeout) <= MAX_PROBE_TIMEOUT_SECONDS
    ):
        raise ConfigValidationError(
            f"CAMHOME_DISCOVERY_PROBE_TIMEOUT_SECONDS value out of range: {timeout}",
            hint=f"Valid range: {MIN_PROBE_TIMEOUT_SECONDS:g}-{MAX_PROBE_TIMEOUT_SECONDS:g}",
        )

    if config.get("cors_enabled") and not config.get("cors_origins"):
        raise ConfigValidationError(
            "CAMHOME_CORS_SUPPORT=true requires at least one allowed origin",
            hint="Set CAMHOME_CORS_ORIGINS=* or a comma-separated origin list",
        )
