import logging
import os
from typing import Any, Dict, Mapping, Optional

from .application_settings import ApplicationSettings, SettingsValidationError
from .arp_cache import DEFAULT_ARP_CACHE_PATH
from .config_validator import (
    MAX_PROBE_TIMEOUT_SECONDS,
    MIN_PROBE_TIMEOUT_SECONDS,
    ConfigValidationError,
    validate_float_range,
    validate_integer_range,
    validate_port_list,
    validate_subnet,
)
from .discovery import DiscoveryConfig
from .feature_flags import FeatureFlags, get_feature_flags
from .probe import DEFAULT_PROBE_PORTS, DEFAULT_PROBE_TIMEOUT_SECONDS
from .subnet_resolver import FALLBACK_SUBNET


logger = logging.getLogger(__name__)

DEFAULT_CAMERA_REGISTRY_PATH = "/data/cameras.json"
DEFAULT_APPLICATION_SETTINGS_PATH = "/data/application-settings.json"


def _env(environ: Mapping[str, str], name: str, default: str = "") -> str:
    return environ.get(f"CAMHOME_{name}", default)


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _load_discovery_config(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Load network discovery configuration from environment variables.

    Env vars:
    - CAMHOME_DISCOVERY_PROBE_TIMEOUT_SECONDS (1-300, default: 25)
    - CAMHOME_DISCOVERY_PROBE_PORTS (default: 80,554,5000,8000,8080,34567,37777)
    - CAMHOME_DISCOVERY_FALLBACK_SUBNET (default: 192.168.0.0/24)
    - CAMHOME_ARP_CACHE_PATH (default: /proc/net/arp)
    - CAMHOME_NMAP_PATH (default: nmap)

    Invalid values are logged and replaced with the defaults.

    Returns:
        Dict with keys: discovery_probe_timeout_seconds, discovery_probe_ports,
        discovery_fallback_subnet, arp_cache_path, nmap_path.
    """
    try:
        timeout = validate_float_range(
            _env(environ, "DISCOVERY_PROBE_TIMEOUT_SECONDS"),
            "CAMHOME_DISCOVERY_PROBE_TIMEOUT_SECONDS",
            MIN_PROBE_TIMEOUT_SECONDS,
            MAX_PROBE_TIMEOUT_SECONDS,
            DEFAULT_PROBE_TIMEOUT_SECONDS,
        )
    except ConfigValidationError as exc:
        logger.warning("%s (%s); using default %s", exc, exc.hint, DEFAULT_PROBE_TIMEOUT_SECONDS)
        timeout = DEFAULT_PROBE_TIMEOUT_SECONDS

    try:
        ports = validate_port_list(
            _env(environ, "DISCOVERY_PROBE_PORTS"),
            "CAMHOME_DISCOVERY_PROBE_PORTS",
            DEFAULT_PROBE_PORTS,
        )
    except ConfigValidationError as exc:
        logger.warning("%s (%s); using default port list", exc, exc.hint)
        ports = DEFAULT_PROBE_PORTS

    try:
        fallback_subnet = validate_subnet(
            _env(environ, "DISCOVERY_FALLBACK_SUBNET"),
            "CAMHOME_DISCOVERY_FALLBACK_SUBNET",
            FALLBACK_SUBNET,
        )
    except ConfigValidationError as exc:
        logger.warning("%s (%s); using default %s", exc, exc.hint, FALLBACK_SUBNET)
        fallback_subnet = FALLBACK_SUBNET

    return {
        "discovery_probe_timeout_seconds": timeout,
        "discovery_probe_ports": ports,
        "discovery_fallback_subnet": fallback_subnet,
        "arp_cache_path": _env(environ, "ARP_CACHE_PATH").strip() or DEFAULT_ARP_CACHE_PATH,
        "nmap_path": _env(environ, "NMAP_PATH").strip() or "nmap",
    }


def _load_logging_config(environ: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "log_level": (_env(environ, "LOG_LEVEL") or "INFO").strip().upper(),
        "log_format": (_env(environ, "LOG_FORMAT") or "text").strip().lower(),
        "log_include_identifiers": _parse_bool(_env(environ, "LOG_INCLUDE_IDENTIFIERS", "false")),
    }


def _load_networking_config(environ: Mapping[str, str], flags: FeatureFlags) -> Dict[str, Any]:
    """Load network binding and CORS configuration from environment variables.

    Env vars:
    - CAMHOME_BIND_HOST (default: 127.0.0.1)
    - CAMHOME_PORT (1-65535, default: 8000)
    - CAMHOME_CORS_SUPPORT (feature flag, default: false)
    - CAMHOME_CORS_ORIGINS (comma-separated; default: * when CORS is enabled)
    """
    cors_enabled = flags.is_enabled("CORS_SUPPORT")
    cors_origins_raw = _env(environ, "CORS_ORIGINS").strip()
    if cors_enabled:
        cors_origins = [origin.strip() for origin in (cors_origins_raw or "*").split(",") if origin.strip()]
    else:
        cors_origins = []

    try:
        bind_port = validate_integer_range(_env(environ, "PORT"), "CAMHOME_PORT", 1, 65535, 8000)
    except ConfigValidationError as exc:
        logger.warning("%s (%s); using default 8000", exc, exc.hint)
        bind_port = 8000

    return {
        "cors_enabled": cors_enabled,
        "cors_origins": cors_origins,
        "bind_host": _env(environ, "BIND_HOST").strip() or "127.0.0.1",
        "bind_port": bind_port,
    }


def _load_storage_config(environ: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "camera_registry_path": _env(environ, "CAMERA_REGISTRY_PATH").strip()
        or DEFAULT_CAMERA_REGISTRY_PATH,
        "application_settings_path": _env(environ, "APPLICATION_SETTINGS_PATH").strip()
        or DEFAULT_APPLICATION_SETTINGS_PATH,
        "sentry_dsn": _env(environ, "SENTRY_DSN").strip(),
    }


def load_env_config(
    environ: Optional[Mapping[str, str]] = None,
    flags: Optional[FeatureFlags] = None,
) -> Dict[str, Any]:
    """Load all configuration from ``CAMHOME_*`` environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ`` (tests).
        flags: Feature flag registry; defaults to the global one.

    Returns:
        Flat configuration dict assembled from every ``_load_*_config()`` helper,
        plus ``feature_flags`` holding the environment flag states.
    """
    env = os.environ if environ is None else environ
    flag_registry = flags or get_feature_flags()

    config: Dict[str, Any] = {}
    config.update(_load_discovery_config(env))
    config.update(_load_logging_config(env))
    config.update(_load_networking_config(env, flag_registry))
    config.update(_load_storage_config(env))
    config["feature_flags"] = flag_registry.get_all_flags()
    return config


def _merge_discovery_settings(merged: Dict[str, Any], discovery_settings: Dict[str, Any]) -> None:
    """Apply persisted discovery overrides in place; invalid values keep the env value."""
    timeout = discovery_settings.get("probe_timeout_seconds")
    if timeout is not None:
        if (
            isinstance(timeout, (int, float))
            and not isinstance(timeout, bool)
            and MIN_PROBE_TIMEOUT_SECONDS <= timeout <= MAX_PROBE_TIMEOUT_SECONDS
        ):
            merged["discovery_probe_timeout_seconds"] = float(timeout)
        else:
            logger.warning("Invalid persisted probe_timeout_seconds, using env value")

    ports = discovery_settings.get("probe_ports")
    if ports is not None:
        try:
            merged["discovery_probe_ports"] = validate_port_list(
                ports, "probe_ports", merged["discovery_probe_ports"]
            )
        except ConfigValidationError:
            logger.warning("Invalid persisted probe_ports, using env value")

    subnet = discovery_settings.get("fallback_subnet")
    if subnet is not None:
        try:
            merged["discovery_fallback_subnet"] = validate_subnet(
                subnet, "fallback_subnet", merged["discovery_fallback_subnet"]
            )
        except ConfigValidationError:
            logger.warning("Invalid persisted fallback_subnet, using env value")


def _merge_logging_settings(merged: Dict[str, Any], logging_settings: Dict[str, Any]) -> None:
    level = logging_settings.get("log_level")
    if level is not None:
        if isinstance(level, str) and level.strip():
            merged["log_level"] = level.strip().upper()
        else:
            logger.warning("Invalid persisted log_level type, using env value")


def merge_config_with_persisted_settings(
    env_config: Dict[str, Any],
    persisted: Dict[str, Any],
    flags: Optional[FeatureFlags] = None,
) -> Dict[str, Any]:
    """Merge persisted application settings over environment configuration.

    Precedence (high to low):
    1. Valid persisted settings from application-settings.json
    2. Environment variables

    Returns:
        New config dict; ``env_config`` is not modified.
    """
    merged = dict(env_config)
    settings = persisted.get("settings", {}) if isinstance(persisted, dict) else {}
    _merge_discovery_settings(merged, settings.get("discovery", {}) or {})
    _merge_logging_settings(merged, settings.get("logging", {}) or {})

    flag_registry = flags or get_feature_flags()
    merged["feature_flags"] = flag_registry.effective_flags(
        settings.get("feature_flags") or {},
        base=env_config.get("feature_flags") or None,
    )
    return merged


def _load_persisted(app_settings: ApplicationSettings) -> Dict[str, Any]:
    try:
        return app_settings.load()
    except SettingsValidationError as exc:
        logger.warning("Could not load persisted settings: %s. Using env config only.", exc)
    except Exception as exc:
        logger.warning("Unexpected error loading persisted settings: %s. Using env config only.", exc)
    return {}


def merge_config_with_settings(
    env_config: Dict[str, Any], app_settings: Optional[ApplicationSettings] = None
) -> Dict[str, Any]:
    """Load persisted settings and merge them over ``env_config``.

    Unreadable or invalid persisted settings are logged and ignored.
    """
    settings_store = app_settings or ApplicationSettings(
        env_config.get("application_settings_path", DEFAULT_APPLICATION_SETTINGS_PATH)
    )
    return merge_config_with_persisted_settings(env_config, _load_persisted(settings_store))


def build_discovery_config(config: Dict[str, Any]) -> DiscoveryConfig:
    """Snapshot the discovery-related keys of an effective config."""
    flags = config.get("feature_flags") or {}
    return DiscoveryConfig(
        probe_timeout_seconds=float(config["discovery_probe_timeout_seconds"]),
        probe_ports=tuple(config["discovery_probe_ports"]),
        arp_cache_path=config["arp_cache_path"],
        fallback_subnet=config["discovery_fallback_subnet"],
        port_heuristics_enabled=bool(flags.get("PORT_VENDOR_HEURISTICS", True)),
    )


def get_effective_settings_payload(
    env_config: Dict[str, Any], app_settings: ApplicationSettings
) -> Dict[str, Any]:
    """Effective settings for GET /api/v1/settings.

    Returns:
        Dict with keys: source, settings (discovery/logging/feature_flags),
        last_modified, modified_by.
    """
    persisted = _load_persisted(app_settings)
    merged = merge_config_with_persisted_settings(env_config, persisted)
    return {
        "source": "merged",
        "settings": {
            "discovery": {
                "probe_timeout_seconds": merged["discovery_probe_timeout_seconds"],
                "probe_ports": ",".join(str(port) for port in merged["discovery_probe_ports"]),
                "fallback_subnet": merged["discovery_fallback_subnet"],
            },
            "logging": {
                "log_level": merged["log_level"],
            },
            "feature_flags": merged["feature_flags"],
        },
        "last_modified": persisted.get("last_modified"),
        "modified_by": persisted.get("modified_by"),
    }


def env_settings_defaults(env_config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Environment values shaped like the persisted settings document."""
    return {
        "discovery": {
            "probe_timeout_seconds": env_config["discovery_probe_timeout_seconds"],
            "probe_ports": ",".join(str(port) for port in env_config["discovery_probe_ports"]),
            "fallback_subnet": env_config["discovery_fallback_subnet"],
        },
        "logging": {"log_level": env_config["log_level"]},
        "feature_flags": dict(env_config.get("feature_flags") or {}),
    }
