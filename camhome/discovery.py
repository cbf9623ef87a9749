"""Local network discovery for IP cameras.

``ScanOrchestrator`` runs one discovery pass: it resolves the subnet to scan,
snapshots the ARP cache, runs the active probe, classifies each host by
hardware vendor and merges passively-known hosts the probe missed. A probe
failure never fails the scan; the result degrades to the ARP-only view.
"""

import ipaddress
import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import sentry_sdk

from .arp_cache import DEFAULT_ARP_CACHE_PATH, read_address_cache
from .probe import (
    DEFAULT_PROBE_PORTS,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    HostProbe,
    ProbedHost,
    ProbeError,
    ProbeOutputParser,
)
from .structured_logging import log_event
from .subnet_resolver import FALLBACK_SUBNET, parse_subnet_override, resolve_local_subnet
from .vendors import DEFAULT_CLASSIFIER, NULL_HARDWARE_ADDRESS, VendorClassifier


logger = logging.getLogger(__name__)

SOURCE_PROBE = "probe"
SOURCE_ARP = "arp"

MODEL_RTSP_CAMERA = "IP Camera (RTSP)"
MODEL_WEB_CAMERA = "Web Service / Camera"
MODEL_UNKNOWN = "Unknown Device"
MODEL_ARP_ONLY = "Inferred from ARP cache (not actively probed)"

RTSP_PORT = 554
WEB_PORTS = (80, 8080, 8000)


@dataclass(frozen=True)
class DiscoveryConfig:
    """Per-scan settings, built from effective runtime settings on each request."""

    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS
    probe_ports: Tuple[int, ...] = DEFAULT_PROBE_PORTS
    arp_cache_path: str = DEFAULT_ARP_CACHE_PATH
    fallback_subnet: str = FALLBACK_SUBNET
    port_heuristics_enabled: bool = True


@dataclass
class DiscoveredDevice:
    """One network device found during a scan. Never persisted."""

    address: str
    hardware_address: str = NULL_HARDWARE_ADDRESS
    manufacturer: str = "Unknown"
    model: str = MODEL_UNKNOWN
    suggested_snapshot_url: str = ""
    already_registered: bool = False
    hostname: Optional[str] = None
    source: str = SOURCE_PROBE
    open_ports: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def guess_model(open_ports: Sequence[int]) -> str:
    """Best-guess device class from open service ports."""
    ports = set(open_ports)
    if RTSP_PORT in ports:
        return MODEL_RTSP_CAMERA
    if ports.intersection(WEB_PORTS):
        return MODEL_WEB_CAMERA
    return MODEL_UNKNOWN


def _address_sort_key(device: DiscoveredDevice) -> Tuple[int, int]:
    order = 0 if device.source == SOURCE_PROBE else 1
    return order, int(ipaddress.IPv4Address(device.address))


class ScanOrchestrator:
    """Coordinates one discovery scan.

    All collaborators are injected so tests can replace the probe, the ARP
    reader and the interface enumeration without touching the network.

    Args:
        probe: Active probe runner.
        parser: Parser for the probe's raw output.
        classifier: Vendor classifier and snapshot URL table.
        arp_reader: Callable taking a cache path and returning ``{ip: mac}``.
        subnet_resolver: Callable taking a fallback CIDR and returning the
            local subnet.
        config: Default per-scan settings; ``scan(config=...)`` overrides it.
    """

    def __init__(
        self,
        probe: HostProbe,
        parser: ProbeOutputParser,
        classifier: VendorClassifier = DEFAULT_CLASSIFIER,
        arp_reader: Callable[[str], Dict[str, str]] = read_address_cache,
        subnet_resolver: Callable[..., str] = resolve_local_subnet,
        config: Optional[DiscoveryConfig] = None,
    ):
        self.probe = probe
        self.parser = parser
        self.classifier = classifier
        self.arp_reader = arp_reader
        self.subnet_resolver = subnet_resolver
        self.config = config or DiscoveryConfig()

    def resolve_subnet(self, subnet_override: Optional[str], config: DiscoveryConfig) -> str:
        """Pick the subnet to scan.

        Raises:
            InvalidSubnetError: If ``subnet_override`` is given but malformed.
        """
        if subnet_override:
            return parse_subnet_override(subnet_override)
        subnet = self.subnet_resolver(fallback=config.fallback_subnet)
        if subnet == config.fallback_subnet:
            logger.warning(
                "No usable IPv4 interface found; scanning fallback subnet %s", subnet
            )
        return subnet

    def scan(
        self,
        subnet_override: Optional[str] = None,
        config: Optional[DiscoveryConfig] = None,
    ) -> List[DiscoveredDevice]:
        """Run one discovery pass.

        Args:
            subnet_override: Optional CIDR to scan instead of the local subnet.
            config: Settings for this scan; defaults to the orchestrator's.

        Returns:
            Devices with unique addresses; probe results first, then hosts
            only known from the ARP cache.

        Raises:
            InvalidSubnetError: If ``subnet_override`` is malformed. Probe
                failures never raise.
        """
        config = config or self.config
        subnet = self.resolve_subnet(subnet_override, config)
        arp_entries = self.arp_reader(config.arp_cache_path)

        log_event(
            "discovery_scan_started",
            subnet=subnet,
            timeout_seconds=config.probe_timeout_seconds,
            arp_entries=len(arp_entries),
        )

        probed_hosts = self._run_probe(subnet, config)
        if probed_hosts is None:
            devices = self._arp_only_devices(arp_entries)
            degraded = True
        else:
            devices = [self._device_from_probe(host, arp_entries, config) for host in probed_hosts]
            devices = self._merge_arp_entries(devices, arp_entries)
            degraded = False

        log_event(
            "discovery_scan_completed",
            subnet=subnet,
            devices=len(devices),
            degraded=degraded,
        )
        return devices

    def _run_probe(self, subnet: str, config: DiscoveryConfig) -> Optional[List[ProbedHost]]:
        try:
            raw_output = self.probe.run(
                subnet,
                timeout_seconds=config.probe_timeout_seconds,
                ports=config.probe_ports,
            )
            return self.parser.parse(raw_output)
        except ProbeError as exc:
            log_event(
                "discovery_probe_degraded",
                severity="WARNING",
                subnet=subnet,
                reason=type(exc).__name__,
                detail=str(exc),
            )
            return None
        except Exception as exc:
            logger.exception("Unexpected discovery probe failure for subnet %s", subnet)
            with sentry_sdk.new_scope() as scope:
                scope.set_tag("component", "discovery")
                scope.set_context("discovery", {"subnet": subnet})
                sentry_sdk.capture_exception(exc)
            log_event(
                "discovery_probe_degraded",
                severity="WARNING",
                subnet=subnet,
                reason="unexpected_error",
                detail=str(exc),
            )
            return None

    def _classify(self, host: ProbedHost, hardware_address: str, config: DiscoveryConfig) -> str:
        if not self.classifier.is_generic(host.vendor_hint):
            return host.vendor_hint
        manufacturer = self.classifier.classify(hardware_address)
        if config.port_heuristics_enabled and self.classifier.is_generic(manufacturer):
            manufacturer = self.classifier.vendor_from_ports(host.open_ports) or manufacturer
        return manufacturer

    def _device_from_probe(
        self,
        host: ProbedHost,
        arp_entries: Dict[str, str],
        config: DiscoveryConfig,
    ) -> DiscoveredDevice:
        hardware_address = (
            host.hardware_address or arp_entries.get(host.address) or NULL_HARDWARE_ADDRESS
        )
        manufacturer = self._classify(host, hardware_address, config)
        return DiscoveredDevice(
            address=host.address,
            hardware_address=hardware_address,
            manufacturer=manufacturer,
            model=guess_model(host.open_ports),
            suggested_snapshot_url=self.classifier.suggest_snapshot_url(manufacturer, host.address),
            hostname=host.hostname,
            source=SOURCE_PROBE,
            open_ports=sorted(host.open_ports),
        )

    def _device_from_arp(self, address: str, hardware_address: str) -> DiscoveredDevice:
        manufacturer = self.classifier.classify(hardware_address)
        return DiscoveredDevice(
            address=address,
            hardware_address=hardware_address,
            manufacturer=manufacturer,
            model=MODEL_ARP_ONLY,
            suggested_snapshot_url=self.classifier.suggest_snapshot_url(manufacturer, address),
            source=SOURCE_ARP,
        )

    def _arp_only_devices(self, arp_entries: Dict[str, str]) -> List[DiscoveredDevice]:
        devices = [
            self._device_from_arp(address, hardware_address)
            for address, hardware_address in arp_entries.items()
        ]
        return sorted(devices, key=_address_sort_key)

    def _merge_arp_entries(
        self,
        devices: List[DiscoveredDevice],
        arp_entries: Dict[str, str],
    ) -> List[DiscoveredDevice]:
        merged: List[DiscoveredDevice] = []
        seen = set()
        for device in devices:
            if device.address in seen:
                continue
            seen.add(device.address)
            merged.append(device)

        for address, hardware_address in sorted(
            arp_entries.items(), key=lambda item: int(ipaddress.IPv4Address(item[0]))
        ):
            if address in seen:
                continue
            seen.add(address)
            merged.append(self._device_from_arp(address, hardware_address))
        return merged


def mark_registered(
    devices: Sequence[DiscoveredDevice],
    registered_addresses: Sequence[str],
) -> List[DiscoveredDevice]:
    """Return copies of ``devices`` with ``already_registered`` set."""
    known = {address.strip() for address in registered_addresses if address}
    return [replace(device, already_registered=device.address in known) for device in devices]
