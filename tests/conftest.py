"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path

import pytest


# Add the workspace root to path so ``camhome`` imports without installation
WORKSPACE_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(WORKSPACE_ROOT))

from camhome.discovery import DiscoveryConfig, ScanOrchestrator  # noqa: E402
from camhome.probe import HostProbe, NmapOutputParser  # noqa: E402


SAMPLE_NMAP_OUTPUT = """\
Starting Nmap 7.94 ( https://nmap.org ) at 2024-05-01 10:00 UTC
Nmap scan report for cam-front.lan (192.168.1.20)
Host is up (0.0021s latency).

PORT     STATE  SERVICE
80/tcp   open   http
554/tcp  open   rtsp
8000/tcp closed http-alt
MAC Address: 44:19:B6:AA:BB:CC (Hangzhou Hikvision Digital Technology)

Nmap scan report for 192.168.1.31
Host is up (0.0040s latency).

PORT      STATE SERVICE
37777/tcp open  unknown
MAC Address: FF:FF:FF:11:22:33 (Unknown)

Nmap scan report for 192.168.1.50
Host is up (0.0010s latency).
All 7 scanned ports on 192.168.1.50 are in ignored states.

Nmap done: 256 IP addresses (3 hosts up) scanned in 4.12 seconds
"""


class StubProbe(HostProbe):
    """Probe double returning canned output or raising a canned error."""

    def __init__(self, output="", error=None):
        self.output = output
        self.error = error
        self.calls = []

    def run(self, subnet, timeout_seconds, ports=()):
        self.calls.append({"subnet": subnet, "timeout_seconds": timeout_seconds, "ports": tuple(ports)})
        if self.error is not None:
            raise self.error
        return self.output


@pytest.fixture
def workspace_root():
    """Return the absolute path to the workspace root."""
    return WORKSPACE_ROOT


@pytest.fixture
def sample_nmap_output():
    return SAMPLE_NMAP_OUTPUT


@pytest.fixture
def stub_probe():
    return StubProbe(output=SAMPLE_NMAP_OUTPUT)


@pytest.fixture
def arp_entries():
    return {
        "192.168.1.20": "44:19:b6:aa:bb:cc",
        "192.168.1.77": "b8:27:eb:01:02:03",
    }


@pytest.fixture
def make_orchestrator(arp_entries):
    """Factory building an orchestrator wired to in-memory collaborators."""

    def _make(probe, arp=None, subnet="192.168.1.0/24", **kwargs):
        snapshot = arp_entries if arp is None else arp
        return ScanOrchestrator(
            probe=probe,
            parser=NmapOutputParser(),
            arp_reader=lambda _path: dict(snapshot),
            subnet_resolver=lambda fallback: subnet,
            **kwargs,
        )

    return _make


@pytest.fixture
def discovery_config():
    return DiscoveryConfig(probe_timeout_seconds=5.0, arp_cache_path="/nonexistent/arp")


@pytest.fixture
def tmp_app_settings_path(tmp_path):
    """Return path to temporary application settings file."""
    return tmp_path / "application-settings.json"


@pytest.fixture
def tmp_registry_path(tmp_path):
    return tmp_path / "cameras.json"


@pytest.fixture
def full_config(tmp_app_settings_path, tmp_registry_path):
    """Return complete config dict with all required runtime keys."""
    return {
        "discovery_probe_timeout_seconds": 5.0,
        "discovery_probe_ports": (80, 554, 8080),
        "discovery_fallback_subnet": "192.168.0.0/24",
        "arp_cache_path": "/nonexistent/arp",
        "nmap_path": "nmap",
        "log_level": "INFO",
        "log_format": "text",
        "log_include_identifiers": False,
        "cors_enabled": False,
        "cors_origins": [],
        "bind_host": "127.0.0.1",
        "bind_port": 8000,
        "camera_registry_path": str(tmp_registry_path),
        "application_settings_path": str(tmp_app_settings_path),
        "sentry_dsn": "",
        "feature_flags": {"CORS_SUPPORT": False, "PORT_VENDOR_HEURISTICS": True},
    }


@pytest.fixture
def app(full_config, make_orchestrator, stub_probe):
    from camhome.main import create_app

    flask_app = create_app(full_config, orchestrator=make_orchestrator(stub_probe))
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
