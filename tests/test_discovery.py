"""Tests for the discovery scan orchestrator."""

import logging
from unittest import mock

import pytest

from camhome.discovery import (
    MODEL_ARP_ONLY,
    MODEL_RTSP_CAMERA,
    MODEL_UNKNOWN,
    SOURCE_ARP,
    SOURCE_PROBE,
    DiscoveredDevice,
    DiscoveryConfig,
    guess_model,
    mark_registered,
)
from camhome.probe import ProbeExecutionError, ProbeTimeoutError, ProbeUnavailableError
from camhome.subnet_resolver import InvalidSubnetError
from conftest import StubProbe


def _by_address(devices):
    return {device.address: device for device in devices}


class TestScan:
    def test_probe_results_are_classified(self, make_orchestrator, stub_probe, discovery_config):
        devices = _by_address(make_orchestrator(stub_probe).scan(config=discovery_config))

        camera = devices["192.168.1.20"]
        assert camera.source == SOURCE_PROBE
        assert camera.hostname == "cam-front.lan"
        assert camera.manufacturer == "Hangzhou Hikvision Digital Technology"
        assert camera.model == MODEL_RTSP_CAMERA
        assert camera.suggested_snapshot_url == (
            "http://192.168.1.20/ISAPI/Streaming/channels/101/picture"
        )
        assert camera.open_ports == [80, 554]

    def test_probe_called_with_config(self, make_orchestrator, stub_probe):
        config = DiscoveryConfig(probe_timeout_seconds=12.0, probe_ports=(554,))
        make_orchestrator(stub_probe, subnet="10.0.0.0/24").scan(config=config)
        assert stub_probe.calls == [
            {"subnet": "10.0.0.0/24", "timeout_seconds": 12.0, "ports": (554,)}
        ]

    def test_addresses_are_unique_and_probe_wins(self, make_orchestrator, stub_probe, discovery_config):
        result = make_orchestrator(stub_probe).scan(config=discovery_config)
        addresses = [device.address for device in result]
        assert len(set(addresses)) == len(addresses)
        assert _by_address(result)["192.168.1.20"].source == SOURCE_PROBE

    def test_arp_only_hosts_are_appended(self, make_orchestrator, stub_probe, discovery_config):
        result = make_orchestrator(stub_probe).scan(config=discovery_config)
        assert result[-1].address == "192.168.1.77"
        assert result[-1].source == SOURCE_ARP
        assert result[-1].manufacturer == "Raspberry Pi"
        assert result[-1].model == MODEL_ARP_ONLY
        assert result[-1].suggested_snapshot_url == "http://192.168.1.77:8000/snapshot.jpg"

    def test_missing_mac_filled_from_arp(self, make_orchestrator, discovery_config):
        probe = StubProbe(output="Nmap scan report for 192.168.1.77\n")
        device = make_orchestrator(probe).scan(config=discovery_config)[0]
        assert device.source == SOURCE_PROBE
        assert device.hardware_address == "b8:27:eb:01:02:03"
        assert device.manufacturer == "Raspberry Pi"

    def test_unknown_mac_uses_sentinel(self, make_orchestrator, stub_probe, discovery_config):
        device = _by_address(make_orchestrator(stub_probe).scan(config=discovery_config))["192.168.1.50"]
        assert device.hardware_address == "00:00:00:00:00:00"
        assert device.manufacturer == "Unknown"
        assert device.model == MODEL_UNKNOWN

    def test_manufacturer_never_empty(self, make_orchestrator, stub_probe, discovery_config):
        for device in make_orchestrator(stub_probe).scan(config=discovery_config):
            assert device.manufacturer


class TestClassificationPrecedence:
    def test_port_heuristic_replaces_generic_label(self, make_orchestrator, stub_probe, discovery_config):
        device = _by_address(make_orchestrator(stub_probe).scan(config=discovery_config))["192.168.1.31"]
        assert device.manufacturer == "Dahua"
        assert device.suggested_snapshot_url == "http://192.168.1.31/cgi-bin/snapshot.cgi?channel=1"

    def test_port_heuristic_can_be_disabled(self, make_orchestrator, stub_probe):
        config = DiscoveryConfig(port_heuristics_enabled=False)
        device = _by_address(make_orchestrator(stub_probe).scan(config=config))["192.168.1.31"]
        assert device.manufacturer == "Unknown"

    def test_port_heuristic_never_overrides_oui_match(self, make_orchestrator, discovery_config):
        probe = StubProbe(
            output=(
                "Nmap scan report for 192.168.1.40\n"
                "37777/tcp open unknown\n"
                "MAC Address: B8:27:EB:00:00:01\n"
            )
        )
        device = make_orchestrator(probe, arp={}).scan(config=discovery_config)[0]
        assert device.manufacturer == "Raspberry Pi"

    def test_probe_vendor_hint_wins_over_oui(self, make_orchestrator, discovery_config):
        probe = StubProbe(
            output="Nmap scan report for 192.168.1.41\nMAC Address: B8:27:EB:00:00:02 (Acme Cameras)\n"
        )
        device = make_orchestrator(probe, arp={}).scan(config=discovery_config)[0]
        assert device.manufacturer == "Acme Cameras"


class TestDegradedScans:
    @pytest.mark.parametrize(
        "error",
        [
            ProbeUnavailableError("nmap not found"),
            ProbeTimeoutError("probe exceeded 5.0s timeout"),
            ProbeExecutionError("probe exited with status 1", 1, "boom"),
        ],
    )
    def test_probe_failure_degrades_to_arp(self, make_orchestrator, discovery_config, error):
        result = make_orchestrator(StubProbe(error=error)).scan(config=discovery_config)
        assert [device.address for device in result] == ["192.168.1.20", "192.168.1.77"]
        assert all(device.model == MODEL_ARP_ONLY for device in result)
        assert all(device.source == SOURCE_ARP for device in result)

    def test_unexpected_exception_degrades_and_is_reported(self, make_orchestrator, discovery_config):
        orchestrator = make_orchestrator(StubProbe(error=RuntimeError("kaboom")))
        with mock.patch("camhome.discovery.sentry_sdk.capture_exception") as capture:
            result = orchestrator.scan(config=discovery_config)
        assert len(result) == 2
        capture.assert_called_once()

    def test_failure_with_empty_arp_returns_empty_list(self, make_orchestrator, discovery_config):
        probe = StubProbe(error=ProbeUnavailableError("nmap not found"))
        assert make_orchestrator(probe, arp={}).scan(config=discovery_config) == []

    def test_degraded_event_logged(self, make_orchestrator, discovery_config, caplog):
        probe = StubProbe(error=ProbeTimeoutError("slow"))
        with caplog.at_level(logging.INFO, logger="camhome.structured_logging"):
            make_orchestrator(probe).scan(config=discovery_config)
        assert "event=discovery_probe_degraded" in caplog.text
        assert "event=discovery_scan_completed" in caplog.text


class TestSubnetSelection:
    def test_override_is_normalized(self, make_orchestrator, stub_probe, discovery_config):
        make_orchestrator(stub_probe).scan(subnet_override="10.1.2.3/16", config=discovery_config)
        assert stub_probe.calls[0]["subnet"] == "10.1.0.0/16"

    def test_invalid_override_raises_before_probe(self, make_orchestrator, stub_probe, discovery_config):
        with pytest.raises(InvalidSubnetError):
            make_orchestrator(stub_probe).scan(subnet_override="bogus", config=discovery_config)
        assert stub_probe.calls == []

    def test_fallback_subnet_logs_warning(self, make_orchestrator, stub_probe, caplog):
        config = DiscoveryConfig(fallback_subnet="192.168.0.0/24")
        orchestrator = make_orchestrator(stub_probe, subnet="192.168.0.0/24")
        with caplog.at_level(logging.WARNING, logger="camhome.discovery"):
            orchestrator.scan(config=config)
        assert "fallback subnet" in caplog.text

    def test_resolver_receives_configured_fallback(self, stub_probe):
        from camhome.discovery import ScanOrchestrator
        from camhome.probe import NmapOutputParser

        resolver = mock.Mock(return_value="10.0.0.0/24")
        orchestrator = ScanOrchestrator(
            probe=stub_probe,
            parser=NmapOutputParser(),
            arp_reader=lambda _path: {},
            subnet_resolver=resolver,
        )
        orchestrator.scan(config=DiscoveryConfig(fallback_subnet="172.16.0.0/24"))
        resolver.assert_called_once_with(fallback="172.16.0.0/24")


def test_guess_model():
    assert guess_model([554, 80]) == MODEL_RTSP_CAMERA
    assert guess_model([8080]) == "Web Service / Camera"
    assert guess_model([]) == MODEL_UNKNOWN


def test_mark_registered_flags_exact_matches():
    devices = [DiscoveredDevice(address="192.168.1.20"), DiscoveredDevice(address="192.168.1.2")]
    marked = mark_registered(devices, ["192.168.1.20", "cam.local"])
    assert [device.already_registered for device in marked] == [True, False]
    assert devices[0].already_registered is False


def test_device_serializes_snake_case():
    payload = DiscoveredDevice(address="10.0.0.1").to_dict()
    assert set(payload) == {
        "address",
        "hardware_address",
        "manufacturer",
        "model",
        "suggested_snapshot_url",
        "already_registered",
        "hostname",
        "source",
        "open_ports",
    }
