"""Local subnet resolution for network discovery scans.

Inspects the host's IPv4 interfaces and picks the network to scan, preferring
the conventional home LAN block over virtual or container adapters.
"""

import ipaddress
import logging
import socket
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil


logger = logging.getLogger(__name__)

FALLBACK_SUBNET = "192.168.0.0/24"
PREFERRED_NETWORK = ipaddress.IPv4Network("192.168.0.0/16")
# Widest network a manual override may name.
MIN_OVERRIDE_PREFIX = 16

InterfacesProvider = Callable[[], Dict[str, List[Any]]]


class InvalidSubnetError(ValueError):
    """Raised when a manual subnet override is not an IPv4 CIDR string."""


def _octets(dotted_quad: str) -> List[int]:
    parts = dotted_quad.strip().split(".")
    if len(parts) != 4:
        message = f"not a dotted-quad address: {dotted_quad!r}"
        raise ValueError(message)
    octets = [int(part) for part in parts]
    if any(octet < 0 or octet > 255 for octet in octets):
        message = f"octet out of range in {dotted_quad!r}"
        raise ValueError(message)
    return octets


def network_base(address: str, netmask: str) -> str:
    """AND an address with its netmask octet by octet."""
    return ".".join(
        str(addr_octet & mask_octet)
        for addr_octet, mask_octet in zip(_octets(address), _octets(netmask))
    )


def prefix_length(netmask: str) -> int:
    """Count the set bits of a dotted-quad netmask."""
    return sum(bin(octet).count("1") for octet in _octets(netmask))


def subnet_for(address: str, netmask: str) -> str:
    """Return the CIDR (``a.b.c.d/n``) of the network an interface lives on.

    Example:
        >>> subnet_for("192.168.1.100", "255.255.255.192")
        '192.168.1.64/26'
    """
    return f"{network_base(address, netmask)}/{prefix_length(netmask)}"


def _candidate_interfaces(interfaces: Dict[str, List[Any]]) -> List[Tuple[str, str, str]]:
    candidates: List[Tuple[str, str, str]] = []
    for name, addresses in interfaces.items():
        for addr in addresses:
            if getattr(addr, "family", None) != socket.AF_INET:
                continue
            address = getattr(addr, "address", None)
            netmask = getattr(addr, "netmask", None)
            if not address or not netmask:
                continue
            try:
                if ipaddress.IPv4Address(address).is_loopback:
                    continue
                candidates.append((name, address, subnet_for(address, netmask)))
            except ValueError:
                logger.debug("Skipping interface %s with unusable address %s/%s", name, address, netmask)
    return candidates


def resolve_local_subnet(
    interfaces_provider: Optional[InterfacesProvider] = None,
    fallback: str = FALLBACK_SUBNET,
) -> str:
    """Compute the CIDR of the local network to scan.

    Among non-loopback IPv4 interfaces, an address inside 192.168.0.0/16 wins;
    otherwise the first usable interface is used; otherwise ``fallback``.
    Never raises.

    Args:
        interfaces_provider: Callable returning ``{name: [addr, ...]}`` where each
            addr exposes ``family``, ``address`` and ``netmask`` (the shape of
            ``psutil.net_if_addrs()``). Defaults to psutil.
        fallback: Subnet returned when no interface qualifies.

    Returns:
        CIDR string such as ``"192.168.1.0/24"``.
    """
    provider = interfaces_provider or psutil.net_if_addrs
    try:
        interfaces = provider()
    except Exception as exc:
        logger.debug("Interface enumeration failed: %s", exc)
        return fallback

    candidates = _candidate_interfaces(interfaces)
    if not candidates:
        return fallback

    for name, address, subnet in candidates:
        if ipaddress.IPv4Address(address) in PREFERRED_NETWORK:
            logger.debug("Selected home LAN interface %s (%s) -> %s", name, address, subnet)
            return subnet

    name, address, subnet = candidates[0]
    logger.debug("No 192.168.x.x interface; using %s (%s) -> %s", name, address, subnet)
    return subnet


def parse_subnet_override(raw: str) -> str:
    """Validate a caller-supplied subnet and return it in normalized CIDR form.

    Host bits are allowed and masked away (``192.168.1.7/24`` -> ``192.168.1.0/24``).

    Raises:
        InvalidSubnetError: If ``raw`` is not an ``a.b.c.d/n`` IPv4 network, or
            is wider than ``/MIN_OVERRIDE_PREFIX``.
    """
    candidate = (raw or "").strip()
    if "/" not in candidate:
        message = f"subnet must be in CIDR form a.b.c.d/n, got: {raw!r}"
        raise InvalidSubnetError(message)
    try:
        network = ipaddress.IPv4Network(candidate, strict=False)
    except ValueError as exc:
        message = f"subnet is not a valid IPv4 CIDR: {raw!r}"
        raise InvalidSubnetError(message) from exc
    if network.prefixlen < MIN_OVERRIDE_PREFIX:
        message = (
            f"subnet {network.with_prefixlen} is too wide to scan; "
            f"use a prefix of /{MIN_OVERRIDE_PREFIX} or longer"
        )
        raise InvalidSubnetError(message)
    return network.with_prefixlen
