"""Reader for the kernel's IPv4 address-resolution (ARP) cache."""

import ipaddress
import logging
from pathlib import Path
from typing import Dict, Union

from .vendors import NULL_HARDWARE_ADDRESS


logger = logging.getLogger(__name__)

DEFAULT_ARP_CACHE_PATH = "/proc/net/arp"


def parse_address_cache(content: str) -> Dict[str, str]:
    """Parse the text of ``/proc/net/arp`` into ``{ip: mac}``.

    The first line is a header. Columns are whitespace separated; the IP is
    the first column and the hardware address the fourth. Incomplete entries
    (all-zero MAC) and unparseable rows are dropped.
    """
    entries: Dict[str, str] = {}
    for line in content.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 4:
            continue
        address, hardware_address = parts[0], parts[3].lower()
        if hardware_address == NULL_HARDWARE_ADDRESS:
            continue
        try:
            ipaddress.IPv4Address(address)
        except ValueError:
            continue
        entries[address] = hardware_address
    return entries


def read_address_cache(path: Union[str, Path] = DEFAULT_ARP_CACHE_PATH) -> Dict[str, str]:
    """Read the live ARP cache as ``{ip: mac}``.

    Best effort: an unreadable cache (missing file, permissions, non-Linux
    host, sandbox) yields an empty mapping.
    """
    try:
        content = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("ARP cache %s unreadable: %s", path, exc)
        return {}
    return parse_address_cache(content)
