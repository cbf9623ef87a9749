"""Tests for the GET /discover endpoint."""

import json
from unittest import mock

import pytest

from camhome.probe import ProbeUnavailableError


@pytest.mark.parametrize("path", ["/discover", "/api/discover"])
def test_discover_returns_devices(client, path):
    response = client.get(path)
    assert response.status_code == 200
    devices = response.get_json()
    assert isinstance(devices, list)
    assert {device["address"] for device in devices} == {
        "192.168.1.20",
        "192.168.1.31",
        "192.168.1.50",
        "192.168.1.77",
    }


def test_already_registered_matches_registry(app, client):
    app.camera_registry.create_camera({"name": "Front door", "address": "192.168.1.20"})
    devices = {device["address"]: device for device in client.get("/discover").get_json()}
    assert devices["192.168.1.20"]["already_registered"] is True
    assert not any(
        device["already_registered"] for address, device in devices.items() if address != "192.168.1.20"
    )


def test_invalid_subnet_is_rejected_without_probing(app, client):
    response = client.get("/discover?subnet=not-a-cidr")
    assert response.status_code == 400
    body = response.get_json()
    assert body["code"] == "INVALID_SUBNET"
    assert "error" in body
    assert "timestamp" in body
    assert app.scan_orchestrator.probe.calls == []


def test_wide_subnet_is_rejected_without_probing(app, client):
    response = client.get("/discover?subnet=0.0.0.0/0")
    assert response.status_code == 400
    assert response.get_json()["code"] == "INVALID_SUBNET"
    assert app.scan_orchestrator.probe.calls == []


def test_subnet_override_reaches_probe(app, client):
    response = client.get("/discover?subnet=10.20.30.40/24")
    assert response.status_code == 200
    assert app.scan_orchestrator.probe.calls[0]["subnet"] == "10.20.30.0/24"


def test_blank_subnet_means_no_override(app, client):
    assert client.get("/discover?subnet=%20").status_code == 200
    assert app.scan_orchestrator.probe.calls[0]["subnet"] == "192.168.1.0/24"


def test_probe_failure_still_returns_200(app, client):
    app.scan_orchestrator.probe.error = ProbeUnavailableError("nmap not found")
    response = client.get("/discover")
    assert response.status_code == 200
    models = {device["model"] for device in response.get_json()}
    assert models == {"Inferred from ARP cache (not actively probed)"}


def test_empty_scan_returns_empty_array(app, client):
    app.scan_orchestrator.probe.error = ProbeUnavailableError("nmap not found")
    app.scan_orchestrator.arp_reader = lambda _path: {}
    response = client.get("/discover")
    assert response.status_code == 200
    assert response.get_json() == []


def test_corrupted_registry_returns_503(app, client, tmp_registry_path):
    tmp_registry_path.write_text("{not json", encoding="utf-8")
    response = client.get("/discover")
    assert response.status_code == 503
    assert response.get_json()["code"] == "REGISTRY_UNAVAILABLE"


def test_registry_os_error_returns_503(app, client):
    with mock.patch.object(
        app.camera_registry, "registered_addresses", side_effect=OSError("disk gone")
    ):
        response = client.get("/api/discover")
    assert response.status_code == 503
    assert response.get_json()["details"]["reason"] == "disk gone"


def test_persisted_timeout_applies_to_next_request(app, client):
    patch = {"discovery": {"probe_timeout_seconds": 42}}
    response = client.patch(
        "/api/v1/settings", data=json.dumps(patch), content_type="application/json"
    )
    assert response.status_code == 200
    client.get("/discover")
    assert app.scan_orchestrator.probe.calls[-1]["timeout_seconds"] == 42.0


def test_heuristics_flag_override_applies(app, client):
    client.patch(
        "/api/v1/settings",
        data=json.dumps({"feature_flags": {"PORT_VENDOR_HEURISTICS": False}}),
        content_type="application/json",
    )
    devices = {device["address"]: device for device in client.get("/discover").get_json()}
    assert devices["192.168.1.31"]["manufacturer"] == "Unknown"


def test_correlation_id_is_echoed(client):
    response = client.get("/discover", headers={"X-Correlation-ID": "abc123"})
    assert response.headers["X-Correlation-ID"] == "abc123"

