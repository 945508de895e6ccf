"""
Huawei VRP extraction engine.

Handles ``display current-configuration`` output (indentation-nested,
``#`` separated blocks) as well as ``display version`` and
``display interface`` captures.
"""

import re

from ..models.record import Vendor
from .base import (
    PARSED,
    SKIPPED,
    ExtractionEngine,
    LineResult,
    ParseState,
    assign_address,
)
from .common import expand_vlan_ranges, first_ipv4, is_valid_ipv4

_SYSNAME = re.compile(r"^sysname\s+(\S+)", re.IGNORECASE)
_PROMPT = re.compile(r"^[<\[]([^>\]\s]+)[>\]]")
_INTERFACE = re.compile(r"^interface\s+(\S+)", re.IGNORECASE)
_DISPLAY_HEADER = re.compile(
    r"^(\S+)\s+current\s+state\s*:\s*(?:administratively\s+)?(UP|DOWN)", re.IGNORECASE
)
_VERSION = re.compile(r"(V\d{3}R\d{3}C\d+\w*)")
_MODEL = re.compile(r"^(?:HUAWEI|Quidway)\s+([A-Z]+\d[\w-]*)\s", re.IGNORECASE)
_SERIAL = re.compile(r"^(?:ESN|SN|BarCode)\b[^:]*:\s*(\S+)", re.IGNORECASE)
_DISPLAY_COMMAND = re.compile(r"\bdisplay\s+[a-z][\w-]*", re.IGNORECASE)
_VLAN_BATCH = re.compile(r"^vlan\s+batch\s+(.+)$", re.IGNORECASE)
_VLAN = re.compile(r"^vlan\s+(\d+)\s*$", re.IGNORECASE)
_VPN_INSTANCE = re.compile(r"^ip\s+vpn-instance\s+(\S+)", re.IGNORECASE)
_BGP = re.compile(r"^bgp\s+(\d+)", re.IGNORECASE)
_ACL = re.compile(r"^acl\s+(?:number\s+|name\s+)?(\S+)", re.IGNORECASE)
_IP_PREFIX = re.compile(r"^ip\s+ip-prefix\s+(\S+)", re.IGNORECASE)
_ROUTE_POLICY = re.compile(r"^route-policy\s+(\S+)", re.IGNORECASE)
_LOCAL_USER = re.compile(r"^local-user\s+(\S+)", re.IGNORECASE)
_NTP = re.compile(r"^ntp-service\s+unicast-(?:server|peer)\s+(\S+)", re.IGNORECASE)
_SNMP_COMMUNITY = re.compile(
    r"^snmp-agent\s+community\s+(read|write)\s+(?:cipher\s+)?(\S+)(?:.*\bacl\s+(\S+))?",
    re.IGNORECASE,
)
_SNMP_ACL = re.compile(r"^snmp-agent\s+acl\s+(\S+)", re.IGNORECASE)
_CIPHER = re.compile(r"^(ssh\s+(?:server|client)\s+cipher|ssl\s+(?:cipher-suite|version|policy)).*", re.IGNORECASE)

# Interface body
_DESCRIPTION = re.compile(r"^description\s+(.+)$", re.IGNORECASE)
_IP_ADDRESS = re.compile(r"^ip\s+address\s+(\S+)\s+(\S+)(\s+sub)?", re.IGNORECASE)
_VPN_BINDING = re.compile(r"^ip\s+binding\s+vpn-instance\s+(\S+)", re.IGNORECASE)
_VRRP = re.compile(r"^vrrp\s+vrid\s+(\d+)\s+(virtual-ip\s+\S+|priority\s+\d+)", re.IGNORECASE)
_TRUNK_VLANS = re.compile(r"^port\s+trunk\s+(?:allow-pass|pvid)\s+vlan\s+(.+)$", re.IGNORECASE)
_ACCESS_VLAN = re.compile(r"^port\s+default\s+vlan\s+(\d+)", re.IGNORECASE)
_SPEED = re.compile(r"^speed\s+(\S+)", re.IGNORECASE)
_DISPLAY_DESCRIPTION = re.compile(r"^Description\s*:\s*(.*)$", re.IGNORECASE)
_DISPLAY_ADDRESS = re.compile(r"^Internet\s+Address\s+is\s+(\S+)/(\d+)", re.IGNORECASE)
_LINE_PROTOCOL = re.compile(r"^Line\s+protocol\s+current\s+state\s*:\s*(UP|DOWN)", re.IGNORECASE)

# BGP body
_PEER_AS = re.compile(r"^peer\s+(\S+)\s+as-number\s+(\d+)", re.IGNORECASE)
_PEER_AUTH = re.compile(r"^peer\s+(\S+)\s+(?:password|keychain|tcp-ao)\b", re.IGNORECASE)
_PEER = re.compile(r"^peer\s+(\S+)", re.IGNORECASE)


class HuaweiEngine(ExtractionEngine):
    """
    Huawei VRP configuration and display-output engine.

    Top-level lines start at column 0; lines indented under ``interface``,
    ``bgp`` or ``aaa`` belong to that block. ``display interface`` blocks
    are unindented and end at a blank line.
    """

    vendor = Vendor.HUAWEI
    _SIGNALS = (
        (re.compile(r"huawei", re.IGNORECASE), 40),
        (re.compile(r"vrp", re.IGNORECASE), 30),
        (re.compile(r"sysname", re.IGNORECASE), 15),
        (re.compile(r"V\d+R\d+C\d+"), 20),
        (_DISPLAY_COMMAND, 25),
    )

    def can_parse(self, sample: str) -> bool:
        lowered = sample.lower()
        if "huawei" in lowered or "vrp" in lowered or _DISPLAY_COMMAND.search(sample):
            return True
        return "interface" in lowered and "sysname" in lowered

    def on_blank_line(self, state: ParseState) -> None:
        if state.flags.pop("display", False):
            state.close_interface()

    def parse_line(self, state: ParseState, line: str) -> LineResult:
        text = line.strip()
        if text.startswith("#") or text == "return":
            state.close_interface()
            state.flags.pop("display", None)
            state.section = ""
            return SKIPPED
        m = _PROMPT.match(text)
        if m:
            state.close_interface()
            state.flags.pop("display", None)
            state.section = ""
            if not state.record.system_name:
                state.record.system_name = m.group(1)
                return PARSED
            return SKIPPED

        nested = line[:1] in (" ", "\t")
        if state.flags.get("display") and state.interface is not None:
            m = _DISPLAY_HEADER.match(text)
            if not m:
                return self._interface_line(state, text)
            state.flags.pop("display")

        if nested:
            if state.interface is not None:
                return self._interface_line(state, text)
            return self._block_line(state, text)
        return self._top_level(state, text)

    def _top_level(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        state.close_interface()
        state.section = text.split()[0].lower()

        m = _INTERFACE.match(text)
        if m:
            state.open_interface(m.group(1))
            return PARSED
        m = _DISPLAY_HEADER.match(text)
        if m:
            iface = state.open_interface(m.group(1))
            iface.oper_status = m.group(2).lower()
            if "administratively" in text.lower():
                iface.shutdown = True
            state.flags["display"] = True
            return PARSED
        m = _SYSNAME.match(text)
        if m:
            record.system_name = m.group(1)
            record.device = m.group(1)
            return PARSED
        m = _VLAN_BATCH.match(text)
        if m:
            vlans = expand_vlan_ranges(m.group(1))
            if not vlans:
                return LineResult.failed(f"no valid VLANs in '{text}'")
            record.add_vlans(vlans)
            return PARSED
        m = _VLAN.match(text)
        if m:
            vlans = expand_vlan_ranges(m.group(1))
            if not vlans:
                return LineResult.failed(f"VLAN out of range in '{text}'")
            record.add_vlans(vlans)
            return PARSED
        m = _BGP.match(text)
        if m:
            record.bgp_asn = m.group(1)
            return PARSED
        m = _VPN_INSTANCE.match(text)
        if m:
            record.add_text("VpnInstances", m.group(1))
            return PARSED
        m = _IP_PREFIX.match(text)
        if m:
            record.acls.add(f"prefix-list:{m.group(1)}")
            return PARSED
        m = _ROUTE_POLICY.match(text)
        if m:
            record.acls.add(f"route-map:{m.group(1)}")
            return PARSED
        m = _ACL.match(text)
        if m:
            record.acls.add(m.group(1))
            return PARSED
        m = _LOCAL_USER.match(text)
        if m:
            record.add_user(m.group(1))
            return PARSED
        m = _NTP.match(text)
        if m:
            record.add_ntp_server(m.group(1))
            return PARSED
        m = _SNMP_COMMUNITY.match(text)
        if m:
            record.add_text("SNMP", f"{m.group(1).lower()} {m.group(2)}")
            if m.group(3):
                record.acls.add(f"snmp:{m.group(3)}")
            return PARSED
        m = _SNMP_ACL.match(text)
        if m:
            record.acls.add(f"snmp:{m.group(1)}")
            return PARSED
        if _CIPHER.match(text):
            record.add_text("SSL" if text.lower().startswith("ssl") else "SSH", text)
            return PARSED
        return self._identity_line(state, text)

    def _identity_line(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        lowered = text.lower()
        if "version" in lowered:
            m = _VERSION.search(text)
            if m and not record.version:
                record.version = m.group(1)
                return PARSED
        m = _MODEL.match(text)
        if m and not record.model:
            record.model = m.group(1)
            return PARSED
        m = _SERIAL.match(text)
        if m and not record.serial:
            record.serial = m.group(1)
            return PARSED
        return SKIPPED

    def _interface_line(self, state: ParseState, text: str) -> LineResult:
        iface = state.interface
        iface.raw_lines.append(text)
        lowered = text.lower()

        m = _DESCRIPTION.match(text) or _DISPLAY_DESCRIPTION.match(text)
        if m:
            iface.description = m.group(1).strip()
            return PARSED
        m = _IP_ADDRESS.match(text)
        if m:
            if m.group(3) and iface.ip:
                return PARSED
            return assign_address(iface, m.group(1), m.group(2))
        m = _DISPLAY_ADDRESS.match(text)
        if m:
            return assign_address(iface, m.group(1), m.group(2))
        if lowered == "shutdown":
            iface.shutdown = True
            return PARSED
        if lowered in ("undo shutdown", "no shutdown"):
            iface.shutdown = False
            return PARSED
        m = _LINE_PROTOCOL.match(text)
        if m:
            iface.oper_status = m.group(1).lower()
            return PARSED
        m = _VPN_BINDING.match(text)
        if m:
            iface.vrf = m.group(1)
            return PARSED
        m = _VRRP.match(text)
        if m:
            iface.redundancy.append(f"vrrp {m.group(1)} {m.group(2)}")
            return PARSED
        m = _TRUNK_VLANS.match(text) or _ACCESS_VLAN.match(text)
        if m:
            vlans = expand_vlan_ranges(m.group(1))
            if not vlans:
                return LineResult.failed(f"no valid VLANs in '{text}'")
            iface.vlans.update(vlans)
            state.record.add_vlans(vlans)
            return PARSED
        m = _SPEED.match(text)
        if m:
            iface.speed = m.group(1)
            return PARSED
        return SKIPPED

    def _block_line(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        if state.section == "bgp":
            m = _PEER_AS.match(text)
            if m:
                record.add_peer(m.group(1), m.group(2))
                return PARSED
            m = _PEER_AUTH.match(text)
            if m:
                record.add_peer(m.group(1))
                record.bgp_authenticated_peers.add(m.group(1))
                return PARSED
            m = _PEER.match(text)
            if m and is_valid_ipv4(m.group(1)):
                record.add_peer(m.group(1))
                return PARSED
        elif state.section == "aaa":
            m = _LOCAL_USER.match(text)
            if m:
                record.add_user(m.group(1))
                return PARSED
        elif state.section == "ntp-service":
            ip = first_ipv4(text)
            if ip:
                record.add_ntp_server(ip)
                return PARSED
        return SKIPPED
