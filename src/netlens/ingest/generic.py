"""
Vendor-neutral fallback engine.

Used when no vendor engine produces a meaningful record, and preferred for
syslog captures. Every line is swept with loose patterns:

  - device name and version keywords
  - IPv4 addresses (the first public one becomes the management address)
  - interface name mentions and link state changes
  - VLAN, BGP, user and NTP keywords
  - syslog messages of severity 0-2 (recorded as alarms)
"""

import re

from ..models.record import Vendor
from .base import PARSED, SKIPPED, ExtractionEngine, LineResult, ParseState
from .common import (
    expand_vlan_ranges,
    find_ipv4s,
    first_percent,
    is_private_ipv4,
    is_routable_ipv4,
)

_DEVICE = re.compile(
    r"\b(?:hostname|sysname|host-name|device(?![\s_-]*id\b)(?:[\s_-]?name)?|system[\s_-]?name)\s*[:=\s]\s*([A-Za-z0-9][^\s,;]*)",
    re.IGNORECASE,
)
_VERSION = re.compile(r"\bversion\s*[:=\s]\s*([^\s,;]*\d[^\s,;]*)", re.IGNORECASE)
_INTERFACE = re.compile(
    r"\b((?:eth|ether|Gi|GigabitEthernet|Fa|FastEthernet|Te|TenGigabitEthernet|lo|vlan|port|interface)"
    r"\d+(?:/\d+)*(?:\.\d+)?)\b",
    re.IGNORECASE,
)
_LINK_STATE = re.compile(r"\b(?:changed\s+state\s+to|is|went|link)\s+(up|down)\b", re.IGNORECASE)
_VLAN = re.compile(r"\bvlan[\s:=]*(\d+)", re.IGNORECASE)
_ASN = re.compile(r"\b(?:asn|as|autonomous[\s-]*system)[\s:=]+(\d+)", re.IGNORECASE)
_PEER = re.compile(r"\b(?:peer|neighbou?r)[\s:=]+(\d{1,3}(?:\.\d{1,3}){3})", re.IGNORECASE)
_USER = re.compile(r"\buser(?:name)?[\s:=]+([A-Za-z_][\w.\-]*)", re.IGNORECASE)
_SYSLOG = re.compile(r"%+(?:\d+)?([A-Z][\w-]*)[-/]([0-7])[-/]([\w()]+)")


class GenericEngine(ExtractionEngine):
    """Keyword-driven engine for text that follows no known vendor grammar."""

    vendor = Vendor.GENERIC

    def can_parse(self, sample: str) -> bool:
        return True

    def confidence_score(self, sample: str) -> int:
        return 5

    def parse_line(self, state: ParseState, line: str) -> LineResult:
        record = state.record
        text = line.strip()
        lowered = text.lower()

        m = _DEVICE.search(text)
        if m and not record.device:
            record.device = m.group(1)
            record.system_name = m.group(1)
            state.hit()
        m = _VERSION.search(text)
        if m and not record.version:
            record.version = m.group(1)
            state.hit()

        addresses = find_ipv4s(text)
        for ip in addresses:
            record.add_text("Addresses", ip)
            if not record.management_ip and is_routable_ipv4(ip) and not is_private_ipv4(ip):
                record.management_ip = ip
        if addresses:
            state.hit()

        names = _INTERFACE.findall(text)
        for name in names:
            iface = record.open_interface(name)
            state_match = _LINK_STATE.search(text)
            if state_match and len(names) == 1:
                iface.oper_status = state_match.group(1).lower()
        if names:
            state.hit()

        if "vlan" in lowered:
            for vlan in _VLAN.findall(text):
                vlans = expand_vlan_ranges(vlan)
                if not vlans:
                    return LineResult.failed(f"VLAN out of range in '{text}'")
                record.add_vlans(vlans)
                state.hit()

        if any(word in lowered for word in ("bgp", "asn", "autonomous")):
            m = _ASN.search(text)
            if m and not record.bgp_asn:
                record.bgp_asn = m.group(1)
                state.hit()
            for peer in _PEER.findall(text):
                record.add_peer(peer)
                state.hit()

        if "cpu" in lowered and record.resources.cpu is None:
            pct = first_percent(text)
            if pct is not None:
                record.resources.cpu = pct
                state.hit()
        if "memory" in lowered and record.resources.memory is None:
            pct = first_percent(text)
            if pct is not None:
                record.resources.memory = pct
                state.hit()

        if "user" in lowered:
            m = _USER.search(text)
            if m:
                record.add_user(m.group(1))
                state.hit()
        if "ntp" in lowered:
            for ip in addresses[:1]:
                record.add_ntp_server(ip)

        m = _SYSLOG.search(text)
        if m and int(m.group(2)) <= 2 and text not in record.resources.alarms:
            record.resources.alarms.append(text)
            state.hit()

        return PARSED if state.hits else SKIPPED
