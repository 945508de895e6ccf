"""
Cisco IOS / IOS-XE extraction engine.

Understands ``show running-config`` (``!`` separated, one-space indented
blocks), ``show version``, ``show interfaces``, ``show interfaces
status`` and ``show inventory`` captures.
"""

import re

from ..models.record import LicenseList, ModuleList, PortInfo, PortRecord, TextValue, Vendor
from .base import (
    PARSED,
    SKIPPED,
    ExtractionEngine,
    LineResult,
    ParseState,
    assign_address,
)
from .common import expand_vlan_ranges, first_ipv4, split_cidr

_HOSTNAME = re.compile(r"^hostname\s+(\S+)", re.IGNORECASE)
_PROMPT = re.compile(r"^([A-Za-z][\w.-]*)[#>]\s*(?:show|sh|dir|term)\b", re.IGNORECASE)
_INTERFACE = re.compile(r"^interface\s+(\S+)", re.IGNORECASE)
# IOS 'show interfaces' header
_IOS_INTF_HEADER = re.compile(
    r"^(\S+)\s+is\s+(administratively\s+)?(up|down),\s+"
    r"line\s+protocol\s+is\s+(up|down)"
)
_IOS_VERSION = re.compile(r"(?:Cisco IOS|IOS \(tm\)|IOS-XE).*?Version\s+([\w.()]+)", re.IGNORECASE)
_CONFIG_VERSION = re.compile(r"^version\s+(\S+)", re.IGNORECASE)
_MODEL_NUMBER = re.compile(r"^Model\s+Number\s*:\s*(\S+)", re.IGNORECASE)
_CHASSIS_MODEL = re.compile(r"^cisco\s+(\S+)\s+\(.+\)\s+processor", re.IGNORECASE)
_SERIAL = re.compile(r"^(?:System\s+Serial\s+Number|Serial\s+Number|Processor\s+board\s+ID)\s*:?\s*(\S+)", re.IGNORECASE)
_VLAN = re.compile(r"^vlan\s+([\d,\-\s]+)$", re.IGNORECASE)
_ROUTER_BGP = re.compile(r"^router\s+bgp\s+(\d+)", re.IGNORECASE)
_ACCESS_LIST = re.compile(r"^access-list\s+(\S+)", re.IGNORECASE)
_NAMED_ACL = re.compile(r"^ip(?:v6)?\s+access-list\s+(?:extended\s+|standard\s+)?(\S+)", re.IGNORECASE)
_PREFIX_LIST = re.compile(r"^ip(?:v6)?\s+prefix-list\s+(\S+)", re.IGNORECASE)
_ROUTE_MAP = re.compile(r"^route-map\s+(\S+)", re.IGNORECASE)
_USERNAME = re.compile(r"^username\s+(\S+)", re.IGNORECASE)
_NTP = re.compile(r"^ntp\s+(?:server|peer)\s+(?:vrf\s+\S+\s+)?(\S+)", re.IGNORECASE)
_ENABLE_PASSWORD = re.compile(r"^enable\s+password\s+(?:level\s+\d+\s+)?(?:0\s+)?(\S+)", re.IGNORECASE)
_SNMP_COMMUNITY = re.compile(r"^snmp-server\s+community\s+(\S+)(?:\s+(RO|RW))?(?:\s+(\S+))?", re.IGNORECASE)
_CIPHER = re.compile(r"^(ip\s+ssh\s+.*(?:cipher|encryption|algorithm).*|ip\s+http\s+secure-ciphersuite.*|crypto\s+.*)$", re.IGNORECASE)
_DEFAULT_ROUTE = re.compile(r"^ip\s+route\s+0\.0\.0\.0\s+0\.0\.0\.0\s+(\S+)", re.IGNORECASE)
_LICENSE = re.compile(r"^license\s+(udi\s+pid\s+\S+\s+sn\s+\S+|boot\s+level\s+\S+)", re.IGNORECASE)
_INVENTORY = re.compile(r"^PID:\s*(\S+)\s*,.*SN:\s*(\S+)", re.IGNORECASE)
_PORT_STATUS = re.compile(
    r"^(\S+)\s+(.*?)\s*(connected|notconnect|disabled|err-disabled|inactive|sfpAbsent)\s+"
    r"(\S+)\s+(\S+)\s+(\S+)\s*(.*)$"
)

# Interface body
_DESCRIPTION = re.compile(r"^description\s+(.+)$", re.IGNORECASE)
_IP_ADDRESS = re.compile(r"^ip\s+address\s+(\S+)\s+(\S+)(\s+secondary)?", re.IGNORECASE)
_SHOW_ADDRESS = re.compile(r"^Internet\s+address\s+is\s+(\S+)", re.IGNORECASE)
_SHOW_DESCRIPTION = re.compile(r"^Description:\s+(.+)", re.IGNORECASE)
_VRRP = re.compile(r"^(vrrp|standby)\s+(\d+)\s+(ip\s+\S+|priority\s+\d+|preempt)", re.IGNORECASE)
_TRUNK_VLANS = re.compile(r"^switchport\s+trunk\s+allowed\s+vlan\s+(?:add\s+)?(.+)$", re.IGNORECASE)
_ACCESS_VLAN = re.compile(r"^switchport\s+access\s+vlan\s+(\d+)", re.IGNORECASE)
_VRF = re.compile(r"^(?:ip\s+)?vrf\s+forwarding\s+(\S+)", re.IGNORECASE)
_SPEED = re.compile(r"^(?:speed|bandwidth)\s+(\S+)", re.IGNORECASE)

# BGP body
_NEIGHBOR_AS = re.compile(r"^neighbor\s+(\S+)\s+remote-as\s+(\d+)", re.IGNORECASE)
_NEIGHBOR_AUTH = re.compile(r"^neighbor\s+(\S+)\s+password\b", re.IGNORECASE)
_NEIGHBOR = re.compile(r"^neighbor\s+(\S+)", re.IGNORECASE)


class CiscoEngine(ExtractionEngine):
    """
    Cisco IOS configuration and show-output engine.

    Supports:
      - running/startup configuration blocks
      - 'show version', 'show inventory' and license lines
      - 'show interfaces' blocks (counters, status, address)
      - 'show interfaces status' tables
    """

    vendor = Vendor.CISCO
    _SIGNALS = (
        (re.compile(r"cisco", re.IGNORECASE), 35),
        (re.compile(r"\bios\b", re.IGNORECASE), 30),
        (re.compile(r"hostname", re.IGNORECASE), 15),
        (re.compile(r"Cisco IOS Software|IOS \(tm\)", re.IGNORECASE), 20),
        (re.compile(r"router bgp", re.IGNORECASE), 10),
    )

    def can_parse(self, sample: str) -> bool:
        lowered = sample.lower()
        if "cisco" in lowered or re.search(r"\bios\b", lowered):
            return True
        return "hostname" in lowered and "interface" in lowered

    def parse_line(self, state: ParseState, line: str) -> LineResult:
        text = line.strip()
        if text.startswith("!") or text == "end":
            state.close_interface()
            state.section = ""
            return SKIPPED

        if line[:1] in (" ", "\t"):
            if state.interface is not None:
                return self._interface_line(state, text)
            return self._block_line(state, text)
        return self._top_level(state, text)

    def _top_level(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        state.close_interface()
        state.section = ""

        m = _INTERFACE.match(text)
        if m:
            state.section = "interface"
            state.open_interface(m.group(1))
            return PARSED
        m = _IOS_INTF_HEADER.match(text)
        if m:
            state.section = "interface"
            iface = state.open_interface(m.group(1))
            iface.shutdown = bool(m.group(2))
            iface.oper_status = m.group(4)
            return PARSED
        m = _HOSTNAME.match(text)
        if m:
            record.system_name = m.group(1)
            record.device = m.group(1)
            return PARSED
        m = _PROMPT.match(text)
        if m:
            if not record.system_name:
                record.system_name = m.group(1)
                return PARSED
            return SKIPPED
        m = _VLAN.match(text)
        if m:
            vlans = expand_vlan_ranges(m.group(1))
            if not vlans:
                return LineResult.failed(f"no valid VLANs in '{text}'")
            record.add_vlans(vlans)
            return PARSED
        m = _ROUTER_BGP.match(text)
        if m:
            state.section = "bgp"
            record.bgp_asn = m.group(1)
            return PARSED
        if text.lower().startswith("router "):
            state.section = "router"
            return PARSED
        m = _PREFIX_LIST.match(text)
        if m:
            record.acls.add(f"prefix-list:{m.group(1)}")
            return PARSED
        m = _ROUTE_MAP.match(text)
        if m:
            record.acls.add(f"route-map:{m.group(1)}")
            return PARSED
        m = _ACCESS_LIST.match(text) or _NAMED_ACL.match(text)
        if m:
            record.acls.add(m.group(1))
            return PARSED
        m = _USERNAME.match(text)
        if m:
            record.add_user(m.group(1))
            return PARSED
        m = _NTP.match(text)
        if m:
            record.add_ntp_server(m.group(1))
            return PARSED
        m = _ENABLE_PASSWORD.match(text)
        if m:
            record.vendor_extensions["EnablePassword"] = TextValue(m.group(1))
            return PARSED
        m = _SNMP_COMMUNITY.match(text)
        if m:
            mode = (m.group(2) or "RO").upper()
            record.add_text("SNMP", f"{m.group(1)} {mode}")
            if m.group(3):
                record.acls.add(f"snmp:{m.group(3)}")
            return PARSED
        if _CIPHER.match(text):
            record.add_text("SSL" if "http" in text.lower() else "SSH", text)
            return PARSED
        m = _DEFAULT_ROUTE.match(text)
        if m:
            record.add_text("DefaultGateway", m.group(1))
            return PARSED
        m = _LICENSE.match(text)
        if m:
            self._extension(record, "Licenses", LicenseList).licenses.append(m.group(1))
            return PARSED
        return self._show_line(state, text)

    def _show_line(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        m = _IOS_VERSION.search(text)
        if m and not record.version:
            record.version = m.group(1).rstrip(",")
            return PARSED
        m = _CONFIG_VERSION.match(text)
        if m and not record.version:
            record.version = m.group(1)
            return PARSED
        m = _MODEL_NUMBER.match(text) or _CHASSIS_MODEL.match(text)
        if m and not record.model:
            record.model = m.group(1)
            return PARSED
        m = _SERIAL.match(text)
        if m and not record.serial:
            record.serial = m.group(1)
            return PARSED
        m = _INVENTORY.match(text)
        if m:
            self._extension(record, "Modules", ModuleList).modules.append(f"{m.group(1)} SN {m.group(2)}")
            return PARSED
        m = _PORT_STATUS.match(text)
        if m:
            port = PortRecord(
                port=m.group(1), name=m.group(2), status=m.group(3), vlan=m.group(4),
                duplex=m.group(5), speed=m.group(6), type=m.group(7).strip(),
            )
            self._extension(record, "PortInfo", PortInfo).ports.append(port)
            return PARSED
        if "management" in text.lower() and "ip address" in text.lower():
            ip = first_ipv4(text)
            if ip:
                record.management_ip = ip
                return PARSED
        return SKIPPED

    def _interface_line(self, state: ParseState, text: str) -> LineResult:
        iface = state.interface
        iface.raw_lines.append(text)
        lowered = text.lower()

        m = _DESCRIPTION.match(text) or _SHOW_DESCRIPTION.match(text)
        if m:
            iface.description = m.group(1).strip()
            return PARSED
        m = _IP_ADDRESS.match(text)
        if m:
            if m.group(3) and iface.ip:
                return PARSED
            return assign_address(iface, m.group(1), m.group(2))
        m = _SHOW_ADDRESS.match(text)
        if m:
            ip, mask = split_cidr(m.group(1))
            return assign_address(iface, ip, mask)
        if lowered == "shutdown":
            iface.shutdown = True
            return PARSED
        if lowered == "no shutdown":
            iface.shutdown = False
            return PARSED
        m = _VRRP.match(text)
        if m:
            iface.redundancy.append(f"{m.group(1).lower()} {m.group(2)} {m.group(3)}")
            return PARSED
        m = _TRUNK_VLANS.match(text) or _ACCESS_VLAN.match(text)
        if m:
            if m.group(1).strip().lower() in ("all", "none"):
                return PARSED
            vlans = expand_vlan_ranges(m.group(1))
            if not vlans:
                return LineResult.failed(f"no valid VLANs in '{text}'")
            iface.vlans.update(vlans)
            state.record.add_vlans(vlans)
            return PARSED
        m = _VRF.match(text)
        if m:
            iface.vrf = m.group(1)
            return PARSED
        m = _SPEED.match(text)
        if m:
            iface.speed = m.group(1)
            return PARSED
        return SKIPPED

    def _block_line(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        if state.section != "bgp":
            return SKIPPED
        m = _NEIGHBOR_AS.match(text)
        if m:
            record.add_peer(m.group(1), m.group(2))
            return PARSED
        m = _NEIGHBOR_AUTH.match(text)
        if m:
            record.add_peer(m.group(1))
            record.bgp_authenticated_peers.add(m.group(1))
            return PARSED
        m = _NEIGHBOR.match(text)
        if m and first_ipv4(m.group(1)) == m.group(1):
            record.add_peer(m.group(1))
            return PARSED
        return SKIPPED

    @staticmethod
    def _extension(record, key, kind):
        ext = record.vendor_extensions.get(key)
        if not isinstance(ext, kind):
            ext = kind()
            record.vendor_extensions[key] = ext
        return ext
