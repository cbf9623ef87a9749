"""Tests for the active probe runner and nmap output parser."""

import subprocess
import sys
import time
from unittest import mock

import pytest

from camhome.probe import (
    CommandProbe,
    NmapOutputParser,
    NmapProbe,
    ProbeExecutionError,
    ProbeTimeoutError,
    ProbeUnavailableError,
)


class TestNmapOutputParser:
    def test_parses_host_blocks(self, sample_nmap_output):
        hosts = NmapOutputParser().parse(sample_nmap_output)

        assert [host.address for host in hosts] == ["192.168.1.20", "192.168.1.31", "192.168.1.50"]

        camera = hosts[0]
        assert camera.hostname == "cam-front.lan"
        assert camera.hardware_address == "44:19:b6:aa:bb:cc"
        assert camera.vendor_hint == "Hangzhou Hikvision Digital Technology"
        assert camera.open_ports == [80, 554]

        bare = hosts[2]
        assert bare.hostname is None
        assert bare.hardware_address is None
        assert bare.open_ports == []

    def test_mac_line_before_any_report_is_ignored(self):
        output = "MAC Address: 44:19:B6:AA:BB:CC (Hikvision)\nNmap scan report for 10.0.0.2\n"
        hosts = NmapOutputParser().parse(output)
        assert len(hosts) == 1
        assert hosts[0].hardware_address is None

    def test_skips_non_ipv4_targets_and_their_details(self):
        output = (
            "Nmap scan report for fe80::1\n"
            "MAC Address: 44:19:B6:AA:BB:CC (Hikvision)\n"
            "Nmap scan report for 10.0.0.3\n"
        )
        hosts = NmapOutputParser().parse(output)
        assert [host.address for host in hosts] == ["10.0.0.3"]
        assert hosts[0].hardware_address is None

    def test_duplicate_reports_are_collapsed(self):
        output = "Nmap scan report for 10.0.0.2\nNmap scan report for 10.0.0.2\n"
        assert len(NmapOutputParser().parse(output)) == 1

    def test_malformed_lines_are_skipped(self):
        output = (
            "Nmap scan report for\n"
            "Nmap scan report for 10.0.0.4\n"
            "MAC Address: zz:zz (bogus)\n"
            "99999/tcp open nothing\n"
            "80/tcp open http\n"
        )
        hosts = NmapOutputParser().parse(output)
        assert len(hosts) == 1
        assert hosts[0].hardware_address is None
        assert hosts[0].open_ports == [80]

    def test_mac_without_vendor(self):
        output = "Nmap scan report for 10.0.0.5\nMAC Address: AA:BB:CC:DD:EE:FF\n"
        host = NmapOutputParser().parse(output)[0]
        assert host.hardware_address == "aa:bb:cc:dd:ee:ff"
        assert host.vendor_hint is None

    def test_empty_output(self):
        assert NmapOutputParser().parse("") == []


class TestCommandProbe:
    def test_returns_stdout(self):
        probe = CommandProbe(lambda subnet, ports: [sys.executable, "-c", f"print('{subnet}')"])
        assert probe.run("10.0.0.0/24", timeout_seconds=10).strip() == "10.0.0.0/24"

    def test_slow_probe_is_bounded_by_timeout(self):
        probe = CommandProbe(lambda subnet, ports: [sys.executable, "-c", "import time; time.sleep(10)"])
        started = time.monotonic()
        with pytest.raises(ProbeTimeoutError):
            probe.run("10.0.0.0/24", timeout_seconds=0.5)
        assert time.monotonic() - started < 0.5 + 2.0

    def test_missing_binary(self):
        probe = CommandProbe(lambda subnet, ports: ["/nonexistent/definitely-not-nmap", subnet])
        with pytest.raises(ProbeUnavailableError):
            probe.run("10.0.0.0/24", timeout_seconds=5)

    def test_non_zero_exit(self):
        script = "import sys; sys.stderr.write('need root'); sys.exit(3)"
        probe = CommandProbe(lambda subnet, ports: [sys.executable, "-c", script])
        with pytest.raises(ProbeExecutionError) as exc_info:
            probe.run("10.0.0.0/24", timeout_seconds=10)
        assert exc_info.value.returncode == 3
        assert exc_info.value.stderr == "need root"

    def test_timeout_is_passed_to_subprocess(self):
        completed = subprocess.CompletedProcess(args=["nmap"], returncode=0, stdout="ok", stderr="")
        with mock.patch("camhome.probe.subprocess.run", return_value=completed) as run:
            CommandProbe(lambda subnet, ports: ["nmap", subnet]).run("10.0.0.0/24", timeout_seconds=7.5)
        assert run.call_args.kwargs["timeout"] == 7.5
        assert run.call_args.kwargs["check"] is False


class TestNmapProbe:
    def test_argv_with_ports(self):
        with mock.patch("camhome.probe.shutil.which", return_value="/usr/bin/nmap"):
            argv = NmapProbe()._build_argv("192.168.1.0/24", (80, 554))
        assert argv == ["/usr/bin/nmap", "-T4", "-p", "80,554", "192.168.1.0/24"]

    def test_argv_ping_sweep_without_ports(self):
        with mock.patch("camhome.probe.shutil.which", return_value=None):
            argv = NmapProbe("/opt/nmap")._build_argv("10.0.0.0/24", ())
        assert argv == ["/opt/nmap", "-T4", "-sn", "10.0.0.0/24"]
