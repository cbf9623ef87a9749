"""Active host-discovery probe and its output parser.

The probe runs an external scanner (nmap) as a child process with a hard
wall-clock timeout. Its raw text output is turned into ``ProbedHost`` records
by a ``ProbeOutputParser`` so the scanner can be swapped or mocked without
touching scan orchestration.
"""

import ipaddress
import logging
import re
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence


logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 25.0
DEFAULT_PROBE_PORTS = (80, 554, 5000, 8000, 8080, 34567, 37777)


class ProbeError(RuntimeError):
    """Raised when the discovery probe cannot produce output."""


class ProbeUnavailableError(ProbeError):
    """Raised when the scanner binary is missing or cannot be executed."""


class ProbeTimeoutError(ProbeError):
    """Raised when the scanner exceeds its wall-clock budget."""


class ProbeExecutionError(ProbeError):
    """Raised when the scanner exits with a non-zero status."""

    def __init__(self, message: str, returncode: int, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


@dataclass
class ProbedHost:
    """A live host as reported by the probe, before classification."""

    address: str
    hostname: Optional[str] = None
    hardware_address: Optional[str] = None
    vendor_hint: Optional[str] = None
    open_ports: List[int] = field(default_factory=list)


class ProbeOutputParser(ABC):
    """Turns raw probe output into normalized host records."""

    @abstractmethod
    def parse(self, raw_output: str) -> List[ProbedHost]:
        raise NotImplementedError


class HostProbe(ABC):
    """Runs one active discovery pass against a subnet."""

    @abstractmethod
    def run(self, subnet: str, timeout_seconds: float, ports: Sequence[int] = ()) -> str:
        """Probe ``subnet`` and return raw output.

        Raises:
            ProbeError: If the probe is unavailable, fails, or times out.
        """
        raise NotImplementedError


_REPORT_RE = re.compile(
    r"^Nmap scan report for (?:(?P<hostname>\S+) \((?P<paren_address>[^)\s]+)\)|(?P<address>\S+))\s*$"
)
_MAC_RE = re.compile(
    r"^MAC Address:\s+(?P<mac>[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){5})(?:\s+\((?P<vendor>[^)]*)\))?"
)
_OPEN_PORT_RE = re.compile(r"^(?P<port>\d{1,5})/(?:tcp|udp)\s+open\b")


class NmapOutputParser(ProbeOutputParser):
    """Parser for nmap's default (normal) text output.

    Each host block starts with ``Nmap scan report for [name (]ip[)]`` and may
    contain open-port rows and a ``MAC Address: XX:.. (Vendor)`` line. A MAC
    line only attaches to the most recent report line; hosts without one keep
    ``hardware_address=None``. Malformed lines are skipped.
    """

    def parse(self, raw_output: str) -> List[ProbedHost]:
        hosts: List[ProbedHost] = []
        seen = set()
        current: Optional[ProbedHost] = None

        for raw_line in raw_output.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            report = _REPORT_RE.match(line)
            if report:
                current = None
                address = report.group("paren_address") or report.group("address")
                try:
                    ipaddress.IPv4Address(address)
                except ValueError:
                    logger.debug("Skipping probe report with non-IPv4 target: %s", line)
                    continue
                if address in seen:
                    continue
                seen.add(address)
                current = ProbedHost(address=address, hostname=report.group("hostname"))
                hosts.append(current)
                continue

            if current is None:
                continue

            mac = _MAC_RE.match(line)
            if mac:
                current.hardware_address = mac.group("mac").lower()
                vendor = (mac.group("vendor") or "").strip()
                current.vendor_hint = vendor or None
                continue

            port = _OPEN_PORT_RE.match(line)
            if port:
                port_number = int(port.group("port"))
                if 0 < port_number <= 65535 and port_number not in current.open_ports:
                    current.open_ports.append(port_number)

        return hosts


class CommandProbe(HostProbe):
    """Runs an arbitrary command built from the subnet and ports.

    The child is killed and reaped when the timeout elapses, so a hung scanner
    never outlives the request that started it.
    """

    def __init__(self, argv_builder: Callable[[str, Sequence[int]], List[str]]):
        self.argv_builder = argv_builder

    def run(self, subnet: str, timeout_seconds: float, ports: Sequence[int] = ()) -> str:
        argv = self.argv_builder(subnet, ports)
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout_seconds,
                check=False,
            )
        except FileNotFoundError as exc:
            message = f"probe executable not found: {argv[0]}"
            raise ProbeUnavailableError(message) from exc
        except PermissionError as exc:
            message = f"probe executable not permitted: {argv[0]}"
            raise ProbeUnavailableError(message) from exc
        except subprocess.TimeoutExpired as exc:
            message = f"probe exceeded {timeout_seconds:.1f}s timeout"
            raise ProbeTimeoutError(message) from exc
        except (OSError, subprocess.SubprocessError) as exc:
            message = f"probe failed to start: {exc}"
            raise ProbeUnavailableError(message) from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            message = f"probe exited with status {result.returncode}"
            raise ProbeExecutionError(message, result.returncode, stderr[-240:])
        return result.stdout or ""


class NmapProbe(CommandProbe):
    """Host discovery plus a camera-port sweep with nmap.

    Hardware addresses only appear in nmap output when it runs with raw
    socket privileges; otherwise the ARP cache fills them in.
    """

    def __init__(self, nmap_path: str = "nmap"):
        self.nmap_path = nmap_path
        super().__init__(self._build_argv)

    def _build_argv(self, subnet: str, ports: Sequence[int]) -> List[str]:
        executable = shutil.which(self.nmap_path) or self.nmap_path
        argv = [executable, "-T4"]
        if ports:
            argv.extend(["-p", ",".join(str(port) for port in ports)])
        else:
            argv.append("-sn")
        argv.append(subnet)
        return argv
