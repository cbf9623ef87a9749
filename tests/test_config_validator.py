"""Tests for configuration validation helpers."""

import pytest

from camhome.config_validator import (
    ConfigValidationError,
    validate_all_config,
    validate_float_range,
    validate_integer_range,
    validate_port_list,
    validate_settings_patch,
    validate_subnet,
)


def test_integer_range():
    assert validate_integer_range(" 42 ", "X", 1, 100, 7) == 42
    assert validate_integer_range("", "X", 1, 100, 7) == 7
    with pytest.raises(ConfigValidationError) as exc_info:
        validate_integer_range("101", "X", 1, 100, 7)
    assert exc_info.value.hint == "Valid range: 1-100"


def test_float_range():
    assert validate_float_range("2.5", "T", 1.0, 300.0, 25.0) == 2.5
    with pytest.raises(ConfigValidationError):
        validate_float_range("abc", "T", 1.0, 300.0, 25.0)


def test_port_list():
    assert validate_port_list("80, 554,,80", "P", (1,)) == (80, 554)
    assert validate_port_list(None, "P", (1,)) == (1,)
    with pytest.raises(ConfigValidationError):
        validate_port_list("0", "P", (1,))
    with pytest.raises(ConfigValidationError):
        validate_port_list(",,", "P", (1,))


def test_subnet():
    assert validate_subnet("192.168.5.9/24", "S", "x") == "192.168.5.0/24"
    with pytest.raises(ConfigValidationError):
        validate_subnet("192.168.5.9", "S", "x")


def test_settings_patch():
    assert validate_settings_patch({"discovery": {"probe_timeout_seconds": 10}}) == {}
    assert validate_settings_patch({"logging": {"log_level": None}}) == {}
    errors = validate_settings_patch(
        {
            "logging": {"log_level": "LOUD", "verbosity": None},
            "feature_flags": {"CORS_SUPPORT": "yes"},
            "video": {},
            "discovery": "fast",
        }
    )
    assert set(errors) == {
        "logging.log_level",
        "logging.verbosity",
        "feature_flags.CORS_SUPPORT",
        "video",
        "discovery",
    }


def test_validate_all_config(full_config):
    validate_all_config(full_config)

    full_config["cors_enabled"] = True
    full_config["cors_origins"] = []
    with pytest.raises(ConfigValidationError, match="CORS"):
        validate_all_config(full_config)

    full_config["cors_origins"] = ["*"]
    full_config["discovery_probe_timeout_seconds"] = 0.1
    with pytest.raises(ConfigValidationError, match="TIMEOUT"):
        validate_all_config(full_config)


@pytest.mark.parametrize("ports", ["0", "99999", "80,70000"])
def test_settings_patch_rejects_out_of_range_ports(ports):
    errors = validate_settings_patch({"discovery": {"probe_ports": ports}})
    assert "out of range" in errors["discovery.probe_ports"]


def test_settings_patch_accepts_port_bounds():
    assert validate_settings_patch({"discovery": {"probe_ports": "1, 65535"}}) == {}
