"""
Canonical record model.

One CanonicalRecord is produced per analyzed file, whatever vendor syntax
the file was written in. Engines fill it line by line; the anomaly engine
and the topology builder only ever read vendor-neutral fields from it.

Vendor data without a universal equivalent lives in ``vendor_extensions``
as one of a small set of typed extension kinds.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Union


class Vendor(str, Enum):
    """Stable identity of an extraction engine."""
    HUAWEI = "Huawei"
    CISCO = "Cisco"
    JUNIPER = "Juniper"
    MIKROTIK = "Mikrotik"
    GENERIC = "Generic"


class LogType(str, Enum):
    """Coarse category of a captured text file."""
    UNKNOWN = "Unknown"
    RUNNING_CONFIG = "RunningConfig"
    STARTUP_CONFIG = "StartupConfig"
    TECH_SUPPORT = "TechSupport"
    SYSLOG = "Syslog"
    SHOW_INTERFACES = "ShowInterfaces"
    SHOW_VERSION = "ShowVersion"
    AUDIT = "Audit"
    OTHER = "Other"

    @property
    def is_config_like(self) -> bool:
        return self in _CONFIG_LIKE


_CONFIG_LIKE = {
    LogType.RUNNING_CONFIG,
    LogType.STARTUP_CONFIG,
    LogType.SHOW_INTERFACES,
    LogType.SHOW_VERSION,
    LogType.TECH_SUPPORT,
    LogType.AUDIT,
}

# Interface classification
PHYSICAL = "physical"
VIRTUAL = "virtual"
AGGREGATION = "aggregation"

# Finding severities, most to least severe
CRITICAL = "Critical"
HIGH = "High"
MEDIUM = "Medium"
LOW = "Low"

# Finding categories
SECURITY = "Security"
PERFORMANCE = "Performance"
CONFIGURATION = "Configuration"
SEARCH = "Search"


@dataclass
class Interface:
    """A single interface as reconstructed from configuration or show output."""
    name: str
    description: str = ""
    ip: str = ""
    mask: str = ""
    shutdown: bool = False
    oper_status: str = ""
    kind: str = PHYSICAL
    vrf: str = ""
    speed: str = ""
    vlans: set[int] = field(default_factory=set)
    redundancy: list[str] = field(default_factory=list)
    raw_lines: list[str] = field(default_factory=list)
    # Counters
    utilization_in: Optional[float] = None
    utilization_out: Optional[float] = None
    errors_in: Optional[int] = None
    errors_out: Optional[int] = None
    packets_in: Optional[int] = None
    packets_out: Optional[int] = None

    @property
    def status(self) -> str:
        if self.oper_status:
            return self.oper_status
        return "down" if self.shutdown else "up"

    @property
    def is_active(self) -> bool:
        return not self.shutdown and self.status == "up"

    @property
    def address(self) -> str:
        if not self.ip:
            return ""
        return f"{self.ip} {self.mask}".strip()

    @property
    def utilization(self) -> Optional[float]:
        values = [v for v in (self.utilization_in, self.utilization_out) if v is not None]
        return max(values) if values else None

    @property
    def total_errors(self) -> int:
        return (self.errors_in or 0) + (self.errors_out or 0)


@dataclass
class Finding:
    """One anomaly detected for a record."""
    category: str
    subcategory: str
    description: str
    severity: str
    remediation: str = ""
    vendor_specific: bool = False
    interface: str = ""
    matched_text: str = ""


@dataclass(frozen=True)
class ArpEntry:
    ip: str
    mac: str
    interface: str = ""


@dataclass(frozen=True)
class DhcpLease:
    ip: str
    mac: str
    interface: str = ""


@dataclass(frozen=True)
class NeighborEntry:
    remote: str
    interface: str = ""
    protocol: str = ""


@dataclass
class SystemResources:
    """Resource gauges; percentages are 0-100 and None when not reported."""
    cpu: Optional[float] = None
    memory: Optional[float] = None
    disk: Optional[float] = None
    temperature: Optional[float] = None
    alarms: list[str] = field(default_factory=list)


# Vendor extension kinds

@dataclass
class LicenseList:
    licenses: list[str] = field(default_factory=list)

    def strings(self) -> list[str]:
        return list(self.licenses)


@dataclass
class ModuleList:
    modules: list[str] = field(default_factory=list)

    def strings(self) -> list[str]:
        return list(self.modules)


@dataclass
class PortRecord:
    port: str
    name: str = ""
    status: str = ""
    vlan: str = ""
    duplex: str = ""
    speed: str = ""
    type: str = ""


@dataclass
class PortInfo:
    ports: list[PortRecord] = field(default_factory=list)

    def strings(self) -> list[str]:
        return [
            " ".join(v for v in (p.port, p.name, p.status, p.vlan, p.duplex, p.speed, p.type) if v)
            for p in self.ports
        ]


@dataclass
class TextValue:
    value: str

    def strings(self) -> list[str]:
        return [self.value]


@dataclass
class TextList:
    values: list[str] = field(default_factory=list)

    def strings(self) -> list[str]:
        return list(self.values)


VendorExtension = Union[LicenseList, ModuleList, PortInfo, TextValue, TextList]


@dataclass
class CanonicalRecord:
    """Vendor-neutral result of parsing one input file."""
    vendor: Vendor = Vendor.GENERIC
    source_name: str = ""
    log_type: LogType = LogType.UNKNOWN
    # Identity
    device: str = ""
    system_name: str = ""
    version: str = ""
    serial: str = ""
    model: str = ""
    management_ip: str = ""
    # Configuration
    interfaces: list[Interface] = field(default_factory=list)
    vlans: set[int] = field(default_factory=set)
    acls: set[str] = field(default_factory=set)
    bgp_asn: str = ""
    bgp_peers: list[str] = field(default_factory=list)
    bgp_peer_asns: dict[str, str] = field(default_factory=dict)
    bgp_authenticated_peers: set[str] = field(default_factory=set)
    local_users: list[str] = field(default_factory=list)
    ntp_servers: list[str] = field(default_factory=list)
    resources: SystemResources = field(default_factory=SystemResources)
    # Discovery tables
    arp_table: list[ArpEntry] = field(default_factory=list)
    dhcp_leases: list[DhcpLease] = field(default_factory=list)
    neighbors: list[NeighborEntry] = field(default_factory=list)
    mac_addresses: list[str] = field(default_factory=list)
    # Analysis
    findings: list[Finding] = field(default_factory=list)
    health_score: float = 100.0
    parse_errors: list[str] = field(default_factory=list)
    total_lines: int = 0
    parsed_lines: int = 0
    vendor_extensions: dict[str, VendorExtension] = field(default_factory=dict)
    _index: dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    @property
    def identity(self) -> str:
        return self.device or self.system_name

    def find_interface(self, name: str) -> Optional[Interface]:
        idx = self._index.get(name.lower())
        return None if idx is None else self.interfaces[idx]

    def interface_position(self, name: str, kind: str = PHYSICAL) -> int:
        """Return the list index of ``name``, creating the interface if needed."""
        key = name.lower()
        if key not in self._index:
            self.interfaces.append(Interface(name=name, kind=kind))
            self._index[key] = len(self.interfaces) - 1
        return self._index[key]

    def open_interface(self, name: str, kind: str = PHYSICAL) -> Interface:
        return self.interfaces[self.interface_position(name, kind)]

    def rename_interface(self, old: str, new: str) -> Interface:
        """Rename an interface, merging into ``new`` if that name already exists."""
        iface = self.open_interface(old)
        if old.lower() == new.lower():
            iface.name = new
            return iface
        existing = self.find_interface(new)
        if existing is not None:
            _merge_interface(existing, iface)
            self._drop_interface(old)
            return existing
        idx = self._index.pop(old.lower())
        iface.name = new
        self._index[new.lower()] = idx
        return iface

    def _drop_interface(self, name: str) -> None:
        idx = self._index.pop(name.lower())
        del self.interfaces[idx]
        self._index = {i.name.lower(): pos for pos, i in enumerate(self.interfaces)}

    def add_vlans(self, vlans) -> None:
        self.vlans.update(vlans)

    def add_peer(self, peer: str, asn: str = "") -> None:
        if peer not in self.bgp_peers:
            self.bgp_peers.append(peer)
        if asn:
            self.bgp_peer_asns[peer] = asn

    def add_user(self, name: str) -> None:
        if name and name not in self.local_users:
            self.local_users.append(name)

    def add_ntp_server(self, server: str) -> None:
        if server and server not in self.ntp_servers:
            self.ntp_servers.append(server)

    def add_mac(self, mac: str) -> None:
        if mac not in self.mac_addresses:
            self.mac_addresses.append(mac)

    def add_text(self, key: str, value: str) -> None:
        """Append ``value`` to the TextList extension stored under ``key``."""
        ext = self.vendor_extensions.get(key)
        if not isinstance(ext, TextList):
            ext = TextList()
            self.vendor_extensions[key] = ext
        if value not in ext.values:
            ext.values.append(value)

    def extension_strings(self) -> dict[str, list[str]]:
        return {k: v.strings() for k, v in self.vendor_extensions.items()}

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("_index", None)
        data["vendor"] = self.vendor.value
        data["log_type"] = self.log_type.value
        data["vlans"] = sorted(self.vlans)
        data["acls"] = sorted(self.acls)
        data["bgp_authenticated_peers"] = sorted(self.bgp_authenticated_peers)
        for iface in data["interfaces"]:
            iface["vlans"] = sorted(iface["vlans"])
        data["vendor_extensions"] = {
            k: {"kind": type(v).__name__, "values": v.strings()}
            for k, v in self.vendor_extensions.items()
        }
        return data


def _merge_interface(target: Interface, source: Interface) -> None:
    for attr in ("description", "ip", "mask", "oper_status", "vrf", "speed"):
        if getattr(source, attr) and not getattr(target, attr):
            setattr(target, attr, getattr(source, attr))
    target.shutdown = target.shutdown or source.shutdown
    target.vlans |= source.vlans
    target.redundancy.extend(r for r in source.redundancy if r not in target.redundancy)
    target.raw_lines.extend(source.raw_lines)
