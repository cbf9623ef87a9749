"""Tests for the /api/v1/settings endpoints."""

import json
import logging

import pytest


def _patch(client, payload):
    return client.patch("/api/v1/settings", data=json.dumps(payload), content_type="application/json")


@pytest.fixture(autouse=True)
def _restore_root_level():
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)
    logging.getLogger("werkzeug").setLevel(logging.NOTSET)


def test_get_settings_reflects_env(client):
    response = client.get("/api/v1/settings")
    assert response.status_code == 200
    settings = response.get_json()["settings"]
    assert settings["discovery"] == {
        "probe_timeout_seconds": 5.0,
        "probe_ports": "80,554,8080",
        "fallback_subnet": "192.168.0.0/24",
    }
    assert settings["logging"]["log_level"] == "INFO"
    assert settings["feature_flags"]["PORT_VENDOR_HEURISTICS"] is True


def test_patch_then_get(client):
    response = _patch(client, {"discovery": {"probe_ports": "554, 37777"}})
    assert response.status_code == 200
    assert response.get_json()["saved"] is True
    settings = client.get("/api/v1/settings").get_json()["settings"]
    assert settings["discovery"]["probe_ports"] == "554,37777"


def test_patch_validation_errors(client):
    response = _patch(
        client,
        {"discovery": {"probe_timeout_seconds": 0, "fallback_subnet": "lan"}},
    )
    assert response.status_code == 400
    body = response.get_json()
    assert body["code"] == "VALIDATION_ERROR"
    assert set(body["details"]["validation_errors"]) == {
        "discovery.probe_timeout_seconds",
        "discovery.fallback_subnet",
    }


def test_patch_rejects_out_of_range_ports(client):
    response = _patch(client, {"discovery": {"probe_ports": "0,99999"}})
    assert response.status_code == 400
    assert "discovery.probe_ports" in response.get_json()["details"]["validation_errors"]

    settings = client.get("/api/v1/settings").get_json()["settings"]
    assert settings["discovery"]["probe_ports"] == "80,554,8080"


@pytest.mark.parametrize("payload", ["", "[]", "{}"])
def test_patch_requires_object(client, payload):
    response = client.patch("/api/v1/settings", data=payload, content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["code"] == "INVALID_PAYLOAD"


def test_patch_unknown_category(client):
    response = _patch(client, {"camera": {"fps": 30}})
    assert response.status_code == 400


def test_patch_log_level_applies_immediately(client):
    assert _patch(client, {"logging": {"log_level": "DEBUG"}}).status_code == 200
    assert logging.getLogger().level == logging.DEBUG


def test_restartable_flag_returns_422(client):
    response = _patch(client, {"feature_flags": {"CORS_SUPPORT": True}})
    assert response.status_code == 422
    body = response.get_json()
    assert body["requires_restart"] is True
    assert body["modified_on_restart"] == ["feature_flags.CORS_SUPPORT"]


def test_reset(client):
    _patch(client, {"discovery": {"probe_timeout_seconds": 60}})
    response = client.post("/api/v1/settings/reset")
    assert response.status_code == 200
    assert response.get_json()["reset"] is True
    settings = client.get("/api/v1/settings").get_json()["settings"]
    assert settings["discovery"]["probe_timeout_seconds"] == 5.0


def test_schema(client):
    body = client.get("/api/v1/settings/schema").get_json()
    assert "discovery" in body["schema"]
    assert body["defaults"]["discovery"]["probe_timeout_seconds"] == 25.0
    assert body["restartable_properties"]["feature_flags"] == ["CORS_SUPPORT"]


def test_changes(client):
    _patch(client, {"logging": {"log_level": "WARNING"}})
    body = client.get("/api/v1/settings/changes").get_json()
    assert body["overridden"] == [
        {"category": "logging", "key": "log_level", "value": "WARNING", "env_value": "INFO"}
    ]


def test_corrupted_settings_file_falls_back_to_env(client, tmp_app_settings_path):
    tmp_app_settings_path.write_text("{broken", encoding="utf-8")
    response = client.get("/api/v1/settings")
    assert response.status_code == 200
    assert response.get_json()["settings"]["discovery"]["probe_timeout_seconds"] == 5.0


def test_feature_flags_endpoint(client):
    _patch(client, {"feature_flags": {"PORT_VENDOR_HEURISTICS": False}})
    assert client.get("/api/feature-flags").get_json() == {
        "CORS_SUPPORT": False,
        "PORT_VENDOR_HEURISTICS": False,
    }
