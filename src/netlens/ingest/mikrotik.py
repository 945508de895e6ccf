"""
MikroTik RouterOS extraction engine.

Two capture styles are understood:

  - interactive console output (``identity: X``, ``ether1: disabled false``,
    ``[admin@X] /interface ethernet`` prompts and ``>`` property lines)
  - ``/export`` scripts: a ``/section`` header followed by ``add`` / ``set``
    commands made of ``key=value`` pairs, with ``\\`` line continuations
"""

import re
from typing import Optional

from ..models.record import (
    AGGREGATION,
    VIRTUAL,
    ArpEntry,
    DhcpLease,
    LicenseList,
    Vendor,
)
from .base import (
    PARSED,
    SKIPPED,
    ExtractionEngine,
    LineResult,
    ParseState,
    assign_address,
)
from .common import (
    expand_vlan_ranges,
    find_ipv4s,
    first_ipv4,
    first_percent,
    is_valid_ipv4,
    normalize_mac,
    split_cidr,
    unquote,
)

_KEY_VALUE = re.compile(r'(\S+?)=("[^"]*"|\S+)')
_FIND = re.compile(r"\[\s*find\s*([^\]]*)\]")
_PROMPT = re.compile(r"^\[([^@\]]+)@([^\]]+)\]\s*(.*)$")
_INLINE_COMMAND = re.compile(r"\s((?:add|set)\s)")
_FIREWALL_RULE = re.compile(r"rule\s+([\w-]+)")
_USER = re.compile(r"user\s+(?:add\s+name=)?(\S+)")
_VLAN = re.compile(r"\bvlan\s+(\d+)", re.IGNORECASE)
_DIGITS = re.compile(r"(\d+)")
_PATH_SPLIT = re.compile(r"[\s/]+")
_CONSOLE_IFACE = re.compile(
    r"^((?:ether|sfp|sfpplus|qsfp|combo|wlan|bridge|vlan|bond|pppoe|lte|wg|gre|eoip|vrrp)[\w.\-]*)\s*:\s*(.*)$",
    re.IGNORECASE,
)
_PROPERTY = re.compile(r"^([\w\-. ]+?)\s*:\s*(.*)$")
_VERSION = re.compile(r"(\d+\.\d+[\d.]*)")
_EXPORT_BANNER = re.compile(r"by\s+RouterOS\s+(\d+\.\d+[\d.]*)", re.IGNORECASE)
_EXPORT_COMMENT = re.compile(r"^#\s*(model|serial number|software id)\s*=\s*(\S+)", re.IGNORECASE)
_SIZE = re.compile(r"(\d+(?:\.\d+)?)\s*([KMGT]i?B)?", re.IGNORECASE)
_SIZE_UNITS = {"k": 1 << 10, "m": 1 << 20, "g": 1 << 30, "t": 1 << 40}

_TRUE = {"yes", "true"}
_COMMANDS = {"print", "export", "add", "set", "remove", "edit"}


def _is_true(value: str) -> bool:
    return value.strip().lower() in _TRUE


def _to_bytes(text: str) -> Optional[float]:
    m = _SIZE.search(text)
    if not m:
        return None
    value = float(m.group(1))
    unit = (m.group(2) or "").lower()
    return value * _SIZE_UNITS.get(unit[:1], 1)


class MikrotikEngine(ExtractionEngine):
    """MikroTik RouterOS console and export engine."""

    vendor = Vendor.MIKROTIK
    _SIGNALS = (
        (re.compile(r"mikrotik", re.IGNORECASE), 40),
        (re.compile(r"routeros", re.IGNORECASE), 35),
        (re.compile(r"identity:", re.IGNORECASE), 20),
        (re.compile(r"\[admin@", re.IGNORECASE), 20),
        (re.compile(r"interface ethernet", re.IGNORECASE), 10),
    )

    def can_parse(self, sample: str) -> bool:
        lowered = sample.lower()
        return any(marker in lowered for marker in (
            "mikrotik", "routeros", "identity:", "[admin@", "/interface ethernet"))

    def parse_line(self, state: ParseState, line: str) -> LineResult:
        text = line.strip()
        pending = state.flags.pop("continued", "")
        if text.endswith("\\"):
            state.flags["continued"] = pending + text[:-1].strip() + " "
            return SKIPPED
        text = pending + text

        if text.startswith("#"):
            return self._export_comment(state, text)
        m = _PROMPT.match(text)
        if m:
            return self._prompt(state, m.group(2), m.group(3))
        if text.startswith("/"):
            state.close_interface()
            state.section = self._section_name(text)
            m = _INLINE_COMMAND.search(text)
            if m:
                return self._command(state, text[m.start(1):])
            return SKIPPED
        if text.startswith(("add ", "set ")):
            state.close_interface()
            return self._command(state, text)
        return self._console_line(state, text)

    # Console output

    def _prompt(self, state: ParseState, host: str, command: str) -> LineResult:
        record = state.record
        command = command.lstrip(">").strip()
        state.close_interface()
        if command.startswith("/"):
            state.section = self._section_name(command)
        if not record.system_name:
            record.system_name = host
        lowered = command.lower()
        if "bgp peer" in lowered:
            ip = first_ipv4(command)
            if ip:
                record.add_peer(ip)
        elif "ip firewall" in lowered:
            m = _FIREWALL_RULE.search(command)
            if m:
                record.acls.add(m.group(1))
        elif "user" in lowered:
            m = _USER.search(command)
            if m and m.group(1) not in _COMMANDS and not m.group(1).startswith("/"):
                record.add_user(m.group(1))
        return PARSED

    def _console_line(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        is_property = text.startswith(">")
        body = text.lstrip(">").strip()

        m = _CONSOLE_IFACE.match(body)
        if m and not (is_property and state.interface is not None and m.group(1).lower() == "vlan"):
            iface = state.open_interface(m.group(1))
            if "disabled" in m.group(2).lower():
                iface.shutdown = "true" in m.group(2).lower() or "yes" in m.group(2).lower()
            return PARSED
        if is_property and state.interface is not None:
            return self._interface_property(state, body)

        m = _PROPERTY.match(body)
        if not m:
            return self._console_keywords(state, body)
        key, value = m.group(1).strip().lower(), m.group(2).strip()
        if key == "identity" or (key == "name" and state.section == "system identity"):
            record.system_name = value
            record.device = value
            return PARSED
        if key == "version":
            vm = _VERSION.search(value)
            if vm:
                record.version = vm.group(1)
                return PARSED
            return SKIPPED
        if key in ("model", "board-name") and not record.model:
            record.model = value
            return PARSED
        if key in ("serial number", "serial-number") and not record.serial:
            record.serial = value
            return PARSED
        if key in ("cpu", "cpu-load"):
            pct = first_percent(value)
            if pct is not None:
                record.resources.cpu = pct
                return PARSED
        if key == "memory":
            pct = first_percent(value)
            if pct is not None:
                record.resources.memory = pct
                return PARSED
        if key in ("free-memory", "total-memory", "free-hdd-space", "total-hdd-space"):
            state.flags.setdefault("sizes", {})[key] = _to_bytes(value)
            return PARSED
        if key in ("nlevel", "level") and state.section.startswith("system license"):
            record.vendor_extensions["Licenses"] = LicenseList([f"level {value}"])
            return PARSED
        return self._console_keywords(state, body)

    def _console_keywords(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        lowered = text.lower()
        if "ntp" in lowered and "server" in lowered:
            servers = find_ipv4s(text)
            for ip in servers:
                record.add_ntp_server(ip)
            return PARSED if servers else SKIPPED
        m = _VLAN.search(text)
        if m:
            vlans = expand_vlan_ranges(m.group(1))
            if not vlans:
                return LineResult.failed(f"VLAN out of range in '{text}'")
            record.add_vlans(vlans)
            return PARSED
        return SKIPPED

    def _interface_property(self, state: ParseState, body: str) -> LineResult:
        iface = state.interface
        iface.raw_lines.append(body)
        m = _PROPERTY.match(body)
        if not m:
            return SKIPPED
        key, value = m.group(1).strip().lower(), m.group(2).strip()
        if key == "name":
            state.rename_interface(iface.name, unquote(value))
            return PARSED
        if key == "disabled":
            iface.shutdown = _is_true(value)
            return PARSED
        if key == "mtu":
            if not value.isdigit():
                return LineResult.failed(f"invalid MTU '{value}' on {iface.name}")
            return PARSED
        if key == "vrrp":
            vm = _DIGITS.search(value)
            iface.redundancy.append(f"vrrp {vm.group(1) if vm else value}")
            return PARSED
        if key in ("vlan", "vlan-id"):
            vlans = expand_vlan_ranges(value)
            if not vlans:
                return LineResult.failed(f"no valid VLANs in '{value}'")
            iface.vlans.update(vlans)
            state.record.add_vlans(vlans)
            return PARSED
        if key == "address":
            ip, mask = split_cidr(value.split()[0])
            return assign_address(iface, ip, mask)
        if key in ("comment", "description"):
            iface.description = unquote(value)
            return PARSED
        return SKIPPED

    def _export_comment(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        m = _EXPORT_BANNER.search(text)
        if m:
            record.version = m.group(1)
            return PARSED
        m = _EXPORT_COMMENT.match(text)
        if m:
            key = m.group(1).lower()
            if key == "model":
                record.model = m.group(2)
            elif key == "serial number":
                record.serial = m.group(2)
            else:
                record.vendor_extensions["Licenses"] = LicenseList([f"software-id {m.group(2)}"])
            return PARSED
        return SKIPPED

    # Export scripts

    @staticmethod
    def _section_name(text: str) -> str:
        path = text.strip().lstrip("/")
        words = []
        for word in _PATH_SPLIT.split(path):
            if word in ("add", "set", "print", "export", "remove") or "=" in word or word.startswith("["):
                break
            words.append(word.lower())
        return " ".join(words)

    def _command(self, state: ParseState, text: str) -> LineResult:
        record = state.record
        find = {}
        m = _FIND.search(text)
        if m:
            find = {k: unquote(v) for k, v in _KEY_VALUE.findall(m.group(1))}
            text = text[:m.start()] + text[m.end():]
        props = {k.lower(): unquote(v) for k, v in _KEY_VALUE.findall(text)}
        verb, _, rest = text.partition(" ")
        positional = rest.split()[0] if rest.split() and "=" not in rest.split()[0] else ""
        section = state.section

        if section == "system identity":
            if "name" in props:
                record.system_name = props["name"]
                record.device = props["name"]
                return PARSED
        elif section == "interface ethernet":
            return self._ethernet(state, find, props)
        elif section in ("interface vlan", "interface bonding", "interface bridge"):
            return self._logical_interface(state, section, props)
        elif section == "interface vrrp":
            parent = record.open_interface(props.get("interface", props.get("name", "vrrp")))
            parts = [f"vrrp {props.get('vrid', '1')}"]
            if "priority" in props:
                parts.append(f"priority {props['priority']}")
            parent.redundancy.append(" ".join(parts))
            return PARSED
        elif section == "ip address":
            if "address" not in props:
                return LineResult.failed("ip address entry without address")
            iface = state.open_interface(props.get("interface", "unknown"))
            try:
                if iface.ip:
                    return PARSED
                ip, mask = split_cidr(props["address"])
                return assign_address(iface, ip, mask)
            finally:
                state.close_interface()
        elif section == "interface bridge vlan":
            vlans = expand_vlan_ranges(props.get("vlan-ids", ""))
            if not vlans:
                return LineResult.failed(f"no valid VLANs in '{text}'")
            record.add_vlans(vlans)
            return PARSED
        elif section.startswith("routing bgp"):
            return self._bgp(state, props)
        elif section.startswith("routing filter"):
            if "chain" in props:
                record.acls.add(f"route-map:{props['chain']}")
                return PARSED
        elif section.startswith("ip firewall"):
            if "chain" in props:
                record.acls.add(f"filter-{props['chain']}")
                return PARSED
        elif section == "user":
            if "name" in props:
                record.add_user(props["name"])
                return PARSED
        elif section in ("system ntp client", "system ntp client servers"):
            servers = props.get("servers") or props.get("address") or ",".join(
                v for k, v in props.items() if k in ("primary-ntp", "secondary-ntp"))
            added = False
            for server in filter(None, servers.split(",")):
                if server != "0.0.0.0":
                    record.add_ntp_server(server)
                    added = True
            return PARSED if added else SKIPPED
        elif section in ("ip dhcp-server lease", "ip arp"):
            return self._binding(state, section, props)
        elif section == "ip service":
            service = find.get("name") or positional
            if service in ("telnet", "ftp", "www", "api") and not _is_true(props.get("disabled", "no")):
                record.add_text("Services", service)
                return PARSED
            return SKIPPED
        elif section == "ip ssh":
            if "strong-crypto" in props and not _is_true(props["strong-crypto"]):
                record.add_text("SSH", "strong-crypto=no")
                return PARSED
        elif section == "snmp community":
            name = props.get("name") or find.get("name") or ("public" if find.get("default") else "")
            if name:
                record.add_text("SNMP", name)
                addresses = props.get("addresses", "")
                if addresses and addresses not in ("0.0.0.0/0", "::/0"):
                    record.acls.add(f"snmp:{name}")
                return PARSED
        elif section == "system resource":
            results = [self._console_line(state, f"{k}: {v}") for k, v in props.items()]
            return PARSED if PARSED in results else SKIPPED
        return SKIPPED

    def _ethernet(self, state: ParseState, find: dict, props: dict) -> LineResult:
        record = state.record
        original = find.get("default-name") or find.get("name") or props.get("default-name")
        current = original or props.get("name")
        if not current:
            return LineResult.failed("ethernet entry without a name")
        iface = record.open_interface(current)
        if original and props.get("name") and props["name"] != original:
            iface = state.rename_interface(original, props["name"])
        if "comment" in props:
            iface.description = props["comment"]
        if "disabled" in props:
            iface.shutdown = _is_true(props["disabled"])
        if "speed" in props:
            iface.speed = props["speed"]
        return PARSED

    def _logical_interface(self, state: ParseState, section: str, props: dict) -> LineResult:
        record = state.record
        name = props.get("name")
        if not name:
            return SKIPPED
        kind = AGGREGATION if section == "interface bonding" else VIRTUAL
        iface = state.open_interface(name, kind)
        try:
            if "comment" in props:
                iface.description = props["comment"]
            if "disabled" in props:
                iface.shutdown = _is_true(props["disabled"])
            if "vlan-id" in props:
                vlans = expand_vlan_ranges(props["vlan-id"])
                if not vlans:
                    return LineResult.failed(f"VLAN out of range on {name}")
                iface.vlans.update(vlans)
                record.add_vlans(vlans)
            if "slaves" in props:
                iface.raw_lines.append(f"slaves={props['slaves']}")
        finally:
            state.close_interface()
        return PARSED

    def _bgp(self, state: ParseState, props: dict) -> LineResult:
        record = state.record
        if "as" in props and not record.bgp_asn:
            record.bgp_asn = props["as"]
        address = props.get("remote-address") or props.get("remote.address", "")
        peer = address.split("/")[0]
        if not peer:
            return PARSED if "as" in props else SKIPPED
        if not is_valid_ipv4(peer):
            return LineResult.failed(f"invalid BGP peer address '{address}'")
        record.add_peer(peer, props.get("remote-as") or props.get("remote.as", ""))
        if props.get("tcp-md5-key") or props.get("tcp.md5-key"):
            record.bgp_authenticated_peers.add(peer)
        return PARSED

    def _binding(self, state: ParseState, section: str, props: dict) -> LineResult:
        record = state.record
        ip, mac = props.get("address", ""), props.get("mac-address", "")
        if not is_valid_ipv4(ip) or not mac:
            return LineResult.failed(f"incomplete {section} entry")
        mac = normalize_mac(mac)
        iface = props.get("interface") or props.get("server", "")
        if section == "ip arp":
            record.arp_table.append(ArpEntry(ip, mac, iface))
        else:
            record.dhcp_leases.append(DhcpLease(ip, mac, iface))
        record.add_mac(mac)
        state.flags["discovered"] = True
        return PARSED

    def finish(self, state: ParseState) -> None:
        res = state.record.resources
        sizes = state.flags.get("sizes", {})
        for free_key, total_key, attr in (
            ("free-memory", "total-memory", "memory"),
            ("free-hdd-space", "total-hdd-space", "disk"),
        ):
            free, total = sizes.get(free_key), sizes.get(total_key)
            if getattr(res, attr) is None and free is not None and total:
                setattr(res, attr, round((1 - free / total) * 100, 1))
