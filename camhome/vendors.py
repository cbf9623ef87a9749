"""Hardware vendor classification for discovered network devices.

Maps the OUI prefix of a MAC address to a manufacturer name using a static,
offline table, and suggests a snapshot URL template for known camera brands.
Tables are immutable module constants injected into ``VendorClassifier`` so
tests can build classifiers over their own tables.
"""

from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple


UNKNOWN_MANUFACTURER = "Unknown"
NULL_HARDWARE_ADDRESS = "00:00:00:00:00:00"

GENERIC_SNAPSHOT_TEMPLATE = "http://[IP]/snapshot.jpg"

# Lowercase "aa:bb:cc" prefix -> display name.
VENDOR_TABLE: Mapping[str, str] = MappingProxyType(
    {
        # Hikvision / HiLook / EZVIZ
        "18:62:2c": "Hikvision",
        "28:57:be": "Hikvision",
        "44:19:b6": "Hikvision",
        "4c:bd:8f": "Hikvision",
        "54:c4:15": "Hikvision",
        "7c:1e:52": "Hikvision",
        "bc:ad:28": "Hikvision",
        "c0:56:e3": "Hikvision",
        "e4:24:6c": "Hikvision",
        # Dahua / Intelbras OEM
        "3c:ef:8c": "Dahua",
        "90:02:a9": "Dahua",
        # Axis
        "00:40:8c": "Axis Communications",
        "ac:cc:8e": "Axis Communications",
        # Hanwha (Samsung Techwin)
        "00:09:18": "Hanwha Techwin",
        # Ring
        "00:62:6e": "Ring",
        "14:23:d7": "Ring",
        "34:3e:a4": "Ring",
        "4c:17:44": "Ring",
        "64:9e:f3": "Ring",
        "a0:16:98": "Ring",
        # Tuya white-label cameras
        "34:ea:34": "Tuya",
        "7c:78:b2": "Tuya",
        "d8:1f:12": "Tuya",
        # Espressif (ESP32-CAM and many cheap IoT cameras)
        "08:3a:f2": "Espressif",
        "18:fe:34": "Espressif",
        "24:0a:c4": "Espressif",
        "24:62:ab": "Espressif",
        "24:6f:28": "Espressif",
        "30:ae:a4": "Espressif",
        "3c:71:bf": "Espressif",
        "5c:cf:7f": "Espressif",
        "84:cc:a8": "Espressif",
        "a4:cf:12": "Espressif",
        "ac:67:b2": "Espressif",
        "c4:4f:33": "Espressif",
        "cc:50:e3": "Espressif",
        "dc:4f:22": "Espressif",
        "ec:fa:bc": "Espressif",
        # Raspberry Pi (motion / motionEye style cameras)
        "28:cd:c1": "Raspberry Pi",
        "2c:cf:67": "Raspberry Pi",
        "b8:27:eb": "Raspberry Pi",
        "d8:3a:dd": "Raspberry Pi",
        "dc:a6:32": "Raspberry Pi",
        "e4:5f:01": "Raspberry Pi",
        # Network gear that commonly shows up on a home LAN
        "00:27:19": "TP-Link",
        "00:31:92": "TP-Link",
        "14:cc:20": "TP-Link",
        "18:a6:f7": "TP-Link",
        "50:c7:bf": "TP-Link",
        "60:32:b1": "TP-Link",
        "00:15:6d": "Ubiquiti",
        "04:18:d6": "Ubiquiti",
        "24:5a:4c": "Ubiquiti",
        "44:d9:e7": "Ubiquiti",
        "00:1a:11": "Google",
        "08:9e:08": "Google",
        "00:bb:3a": "Amazon",
        "08:84:9d": "Amazon",
        "00:9e:c8": "Xiaomi",
        "04:cf:8c": "Xiaomi",
    }
)

# Brand keyword (matched case-insensitively inside a manufacturer name) ->
# snapshot URL template. [IP] is substituted at scan time; [USER] and [PASS]
# are left for the operator to fill in.
SNAPSHOT_URL_TEMPLATES: Mapping[str, str] = MappingProxyType(
    {
        "hikvision": "http://[IP]/ISAPI/Streaming/channels/101/picture",
        "hilook": "http://[IP]/ISAPI/Streaming/channels/101/picture",
        "dahua": "http://[IP]/cgi-bin/snapshot.cgi?channel=1",
        "intelbras": "http://[IP]/cgi-bin/snapshot.cgi?channel=1",
        "vstarcam": "http://[IP]/snapshot.cgi?user=[USER]&pwd=[PASS]",
        "yoosee": "http://[IP]:5000/snapshot",
        "xiongmai": "http://[IP]/snap.jpg",
        "onvif": "http://[IP]:8080/onvif/snapshot",
        "axis": "http://[IP]/axis-cgi/jpg/image.cgi",
        "raspberry pi": "http://[IP]:8000/snapshot.jpg",
        "espressif": "http://[IP]/capture",
    }
)

# Well-known service ports -> best-guess vendor. Order matters: the first
# matching port wins, so vendor-specific SDK ports come before RTSP.
PORT_VENDOR_HINTS: Tuple[Tuple[int, str], ...] = (
    (37777, "Dahua"),
    (34567, "XiongMai"),
    (554, "ONVIF Compatible"),
)

_GENERIC_LABELS = {"", "unknown", "generic", UNKNOWN_MANUFACTURER.lower()}


def oui_prefix(hardware_address: str) -> str:
    """Return the lowercase first three octets of a MAC address ("aa:bb:cc")."""
    octets = hardware_address.strip().lower().replace("-", ":").split(":")
    return ":".join(octets[:3])


class VendorClassifier:
    """Classifies devices by hardware vendor and suggests snapshot URLs.

    All lookups are pure reads against the tables passed in at construction,
    which are never mutated afterwards, so one instance may be shared across
    concurrent requests.
    """

    def __init__(
        self,
        vendor_table: Mapping[str, str] = VENDOR_TABLE,
        snapshot_templates: Mapping[str, str] = SNAPSHOT_URL_TEMPLATES,
        port_hints: Iterable[Tuple[int, str]] = PORT_VENDOR_HINTS,
        fallback_label: str = UNKNOWN_MANUFACTURER,
    ):
        self.vendor_table = MappingProxyType(dict(vendor_table))
        self.snapshot_templates = MappingProxyType(dict(snapshot_templates))
        self.port_hints = tuple(port_hints)
        self.fallback_label = fallback_label

    def classify(self, hardware_address: Optional[str]) -> str:
        """Return the manufacturer for a MAC address, or the fallback label.

        Args:
            hardware_address: MAC address in colon (or dash) separated hex.

        Returns:
            Manufacturer display name; never empty.
        """
        if not hardware_address:
            return self.fallback_label
        return self.vendor_table.get(oui_prefix(hardware_address), self.fallback_label)

    def is_generic(self, manufacturer: Optional[str]) -> bool:
        if manufacturer is None:
            return True
        label = manufacturer.strip().lower()
        return label in _GENERIC_LABELS or label == self.fallback_label.lower()

    def vendor_from_ports(self, open_ports: Iterable[int]) -> Optional[str]:
        """Guess a vendor from open service ports.

        Heuristic only; callers apply it after hardware-address classification
        and only to replace a generic label.
        """
        ports = set(open_ports)
        for port, vendor in self.port_hints:
            if port in ports:
                return vendor
        return None

    def snapshot_template(self, manufacturer: str) -> str:
        label = manufacturer.lower()
        for keyword, template in self.snapshot_templates.items():
            if keyword in label:
                return template
        return GENERIC_SNAPSHOT_TEMPLATE

    def suggest_snapshot_url(self, manufacturer: str, address: str) -> str:
        """Return the manufacturer's snapshot URL template with [IP] filled in."""
        return self.snapshot_template(manufacturer).replace("[IP]", address)


DEFAULT_CLASSIFIER = VendorClassifier()


def classify(hardware_address: Optional[str]) -> str:
    """Classify a MAC address against the built-in vendor table."""
    return DEFAULT_CLASSIFIER.classify(hardware_address)
