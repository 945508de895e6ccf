"""
Juniper Junos extraction engine.

Reads both configuration styles Junos emits:

  - hierarchical ``show configuration`` output, where ``{`` opens and
    ``}`` closes a block and statements end with ``;``
  - flat ``show configuration | display set`` output (``set ...`` lines)

plus ``show version`` / ``show chassis hardware`` identity lines.
"""

import re
from typing import Optional

from ..models.record import TextValue, Vendor
from .base import (
    PARSED,
    SKIPPED,
    ExtractionEngine,
    LineResult,
    ParseState,
    assign_address,
)
from .common import expand_vlan_ranges, first_ipv4, is_valid_ipv4, split_cidr, unquote

_TOKEN = re.compile(r'"[^"]*"|\[[^\]]*\]|\S+')
_JUNOS_IFACE = re.compile(
    r"^(?:(?:ge|xe|et|fe|gr|lt|st|mt)-\d\S*|ae\d+|lo\d+|reth\d+|fxp\d+|em\d+|me\d+|vme|irb)$",
    re.IGNORECASE,
)
_VERSION = re.compile(r"junos:?\s+(?:software\s+release\s+\[)?(\d[\w.\-]*)", re.IGNORECASE)
_MODEL = re.compile(r"^Model\s*:\s*(\S+)", re.IGNORECASE)
_SERIAL = re.compile(r"^(?:Serial\s*(?:Number)?\s*:\s*(\S+)|Chassis\s+(\S+)\s+\S+)", re.IGNORECASE)
_ASN = re.compile(r"autonomous-system\s+(\d+)", re.IGNORECASE)
_SET_STATEMENT = re.compile(
    r"^\s*set\s+(?:interfaces|system|protocols|policy-options|routing-options|vlans|firewall)\b",
    re.IGNORECASE | re.MULTILINE,
)
_INTERFACES_BLOCK = re.compile(r"\binterfaces\s*\{", re.IGNORECASE)


class JuniperEngine(ExtractionEngine):
    """
    Juniper Junos configuration engine.

    The block hierarchy is kept as a stack of header strings in
    ``state.context``; an interface stays open while its header is on
    the stack.
    """

    vendor = Vendor.JUNIPER
    _SIGNALS = (
        (re.compile(r"juniper", re.IGNORECASE), 40),
        (re.compile(r"junos", re.IGNORECASE), 35),
        (re.compile(r"host-name", re.IGNORECASE), 15),
        (re.compile(r"configuration\s+\{", re.IGNORECASE), 15),
        (re.compile(r"autonomous-system", re.IGNORECASE), 10),
        (_SET_STATEMENT, 30),
        (_INTERFACES_BLOCK, 25),
    )

    def can_parse(self, sample: str) -> bool:
        lowered = sample.lower()
        if any(marker in lowered for marker in ("juniper", "junos", "host-name")):
            return True
        return bool(_SET_STATEMENT.search(sample) or _INTERFACES_BLOCK.search(sample))

    def parse_line(self, state: ParseState, line: str) -> LineResult:
        text = line.strip()
        if text.startswith(("#", "/*", "*")):
            return SKIPPED
        if text.startswith("set "):
            return self._set_line(state, text[4:])

        m = _ASN.search(text)
        if m:
            state.record.bgp_asn = m.group(1)
            state.hit()

        if "{" in text:
            header, _, rest = text.partition("{")
            result = self._enter(state, header.strip())
            body, _, _ = rest.partition("}")
            for stmt in body.split(";"):
                if stmt.strip():
                    self._statement(state, stmt.strip())
            for _ in range(rest.count("}")):
                self._exit(state)
            return result if result.status is not SKIPPED.status else state.outcome()
        if text.startswith("}"):
            for _ in range(text.count("}")):
                self._exit(state)
            return SKIPPED
        return self._statement(state, text.rstrip(";").strip())

    # Hierarchical syntax

    def _enter(self, state: ParseState, header: str) -> LineResult:
        record = state.record
        parent = (state.context[-1].split() or [""])[0].lower() if state.context else ""
        words = header.split()
        state.context.append(header)
        if not words:
            return SKIPPED
        key = words[0].lower()

        if _JUNOS_IFACE.match(words[0]) and parent in ("", "interfaces"):
            state.open_interface(words[0])
            state.flags["iface_depth"] = len(state.context)
            return PARSED
        if key == "address" and state.interface is not None and len(words) > 1:
            return self._interface_statement(state, key, words[1], header)
        if key == "group" and self._in(state, "bgp") and len(words) > 1:
            state.flags["bgp_group"] = words[1]
            self._group(state, words[1])
            return PARSED
        if key == "neighbor" and self._in(state, "bgp") and len(words) > 1:
            self._add_neighbor(state, words[1])
            return PARSED
        if key == "filter" and self._in(state, "firewall") and len(words) > 1:
            record.acls.add(words[1])
            return PARSED
        if key == "prefix-list" and self._in(state, "policy-options") and len(words) > 1:
            record.acls.add(f"prefix-list:{words[1]}")
            return PARSED
        if key == "policy-statement" and len(words) > 1:
            record.acls.add(f"route-map:{words[1]}")
            return PARSED
        if key == "user" and self._in(state, "login") and len(words) > 1:
            record.add_user(words[1])
            return PARSED
        if key == "server" and self._in(state, "ntp") and len(words) > 1:
            record.add_ntp_server(words[1])
            return PARSED
        if key == "community" and self._in(state, "snmp") and len(words) > 1:
            record.add_text("SNMP", unquote(words[1]))
            return PARSED
        if key in ("clients", "client-list") and self._in(state, "snmp"):
            record.acls.add(f"snmp:{self._context_arg(state, 'community') or key}")
            return PARSED
        return SKIPPED

    def _exit(self, state: ParseState) -> None:
        if not state.context:
            return
        header = state.context.pop()
        if header.split()[:1] == ["group"]:
            state.flags.pop("bgp_group", None)
        depth = state.flags.get("iface_depth")
        if depth is not None and len(state.context) < depth:
            state.close_interface()
            state.flags.pop("iface_depth", None)

    def _statement(self, state: ParseState, stmt: str) -> LineResult:
        record = state.record
        words = [unquote(w) for w in _TOKEN.findall(stmt)]
        if not words:
            return SKIPPED
        key = words[0].lower()
        arg = " ".join(words[1:])

        if state.interface is not None:
            return self._interface_statement(state, key, arg, stmt)

        if key in ("host-name", "hostname:") and arg:
            record.system_name = arg
            record.device = arg
            return PARSED
        if key == "version" and arg and not state.context and not record.version:
            record.version = arg
            return PARSED
        if key == "vlan-id" and self._in(state, "vlans"):
            return self._add_vlans(state, arg)
        if key == "neighbor" and self._in(state, "bgp") and arg:
            self._add_neighbor(state, words[1])
            return PARSED
        if key == "peer-as" and self._in(state, "bgp"):
            neighbor = self._current_neighbor(state)
            if neighbor:
                record.bgp_peer_asns[neighbor] = arg
            elif state.flags.get("bgp_group"):
                self._group(state, state.flags["bgp_group"])["asn"] = arg
            return PARSED
        if key in ("authentication-key", "authentication-key-chain") and self._in(state, "bgp"):
            neighbor = self._current_neighbor(state)
            if neighbor:
                record.bgp_authenticated_peers.add(neighbor)
            elif state.flags.get("bgp_group"):
                self._group(state, state.flags["bgp_group"])["auth"] = True
            return PARSED
        if key == "server" and self._in(state, "ntp") and arg:
            record.add_ntp_server(words[1])
            return PARSED
        if key in ("clients", "client-list-name") and self._in(state, "snmp"):
            record.acls.add(f"snmp:{self._context_arg(state, 'community') or arg}")
            return PARSED
        if key == "root-login" and arg:
            record.vendor_extensions["RootLogin"] = TextValue(arg)
            return PARSED
        if key == "ciphers" and self._in(state, "ssh"):
            record.add_text("SSH", f"ciphers {arg}")
            return PARSED
        if key in ("telnet", "ftp", "rlogin") and self._in(state, "services"):
            record.add_text("Services", key)
            return PARSED
        return self._identity_line(state, stmt)

    def _interface_statement(self, state: ParseState, key: str, arg: str, stmt: str) -> LineResult:
        iface = state.interface
        iface.raw_lines.append(stmt)
        if key == "description":
            iface.description = arg
            return PARSED
        if key == "address" and arg:
            if iface.ip:
                return PARSED
            ip, mask = split_cidr(arg.split()[0])
            return assign_address(iface, ip, mask)
        if key == "disable":
            iface.shutdown = True
            return PARSED
        if key == "enable":
            iface.shutdown = False
            return PARSED
        if key == "speed":
            iface.speed = arg
            return PARSED
        if key in ("vlan-id", "members", "vlan-id-list"):
            return self._add_vlans(state, arg, iface)
        if key in ("virtual-address", "priority") and self._in(state, "vrrp-group"):
            group = self._context_arg(state, "vrrp-group")
            iface.redundancy.append(f"vrrp {group} {key} {arg}")
            return PARSED
        return SKIPPED

    def _identity_line(self, state: ParseState, text: str) -> LineResult:
        record = state.record
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
            record.serial = m.group(1) or m.group(2)
            return PARSED
        return SKIPPED

    # Flat 'set' syntax

    def _set_line(self, state: ParseState, rest: str) -> LineResult:
        record = state.record
        words = [unquote(w) for w in _TOKEN.findall(rest)]
        if len(words) < 2:
            return SKIPPED
        path = [w.lower() for w in words]

        if path[0] == "interfaces" and len(words) >= 2:
            state.open_interface(words[1])
            try:
                return self._set_interface(state, words[2:], rest)
            finally:
                state.close_interface()
        if path[:2] == ["system", "host-name"] and len(words) > 2:
            record.system_name = words[2]
            record.device = words[2]
            return PARSED
        if path[0] == "version":
            record.version = words[1]
            return PARSED
        if path[:3] == ["system", "login", "user"] and len(words) > 3:
            record.add_user(words[3])
            return PARSED
        if path[:3] == ["system", "ntp", "server"] and len(words) > 3:
            record.add_ntp_server(words[3])
            return PARSED
        if path[:3] == ["system", "services", "ssh"] and len(words) > 4:
            if path[3] == "root-login":
                record.vendor_extensions["RootLogin"] = TextValue(words[4])
            elif path[3] == "ciphers":
                record.add_text("SSH", "ciphers " + " ".join(words[4:]))
            return PARSED
        if path[:2] == ["system", "services"] and len(words) > 2 and path[2] in ("telnet", "ftp", "rlogin"):
            record.add_text("Services", path[2])
            return PARSED
        if path[:2] == ["snmp", "community"] and len(words) > 2:
            record.add_text("SNMP", words[2])
            if "clients" in path or "client-list-name" in path:
                record.acls.add(f"snmp:{words[2]}")
            return PARSED
        if path[0] == "vlans" and "vlan-id" in path:
            return self._add_vlans(state, words[path.index("vlan-id") + 1])
        if path[:2] == ["routing-options", "autonomous-system"] and len(words) > 2:
            record.bgp_asn = words[2]
            return PARSED
        if path[:2] == ["protocols", "bgp"]:
            return self._set_bgp(state, words[2:])
        if path[0] == "firewall" and "filter" in path:
            idx = path.index("filter")
            if idx + 1 < len(words):
                record.acls.add(words[idx + 1])
                return PARSED
        if path[0] == "policy-options" and len(words) > 2:
            if path[1] == "prefix-list":
                record.acls.add(f"prefix-list:{words[2]}")
                return PARSED
            if path[1] == "policy-statement":
                record.acls.add(f"route-map:{words[2]}")
                return PARSED
        return SKIPPED

    def _set_interface(self, state: ParseState, words: list[str], raw: str) -> LineResult:
        iface = state.interface
        iface.raw_lines.append(raw)
        lowered = [w.lower() for w in words]
        if "description" in lowered:
            iface.description = " ".join(words[lowered.index("description") + 1:])
            return PARSED
        if "address" in lowered:
            idx = lowered.index("address")
            if idx + 1 >= len(words):
                return LineResult.failed(f"missing address in 'set interfaces {iface.name}'")
            if iface.ip:
                return PARSED
            ip, mask = split_cidr(words[idx + 1])
            return assign_address(iface, ip, mask)
        if lowered[:1] == ["disable"]:
            iface.shutdown = True
            return PARSED
        for key in ("vlan-id", "members"):
            if key in lowered and lowered.index(key) + 1 < len(words):
                return self._add_vlans(state, " ".join(words[lowered.index(key) + 1:]), iface)
        if "virtual-address" in lowered:
            group = words[lowered.index("vrrp-group") + 1] if "vrrp-group" in lowered else "?"
            addr = words[lowered.index("virtual-address") + 1]
            iface.redundancy.append(f"vrrp {group} virtual-address {addr}")
            return PARSED
        if "speed" in lowered and lowered.index("speed") + 1 < len(words):
            iface.speed = words[lowered.index("speed") + 1]
            return PARSED
        return SKIPPED

    def _set_bgp(self, state: ParseState, words: list[str]) -> LineResult:
        record = state.record
        lowered = [w.lower() for w in words]
        group = words[1] if lowered[:1] == ["group"] and len(words) > 1 else None
        neighbor = None
        if "neighbor" in lowered and lowered.index("neighbor") + 1 < len(words):
            neighbor = words[lowered.index("neighbor") + 1]
            self._add_neighbor(state, neighbor, group)

        target = neighbor
        for key in ("peer-as", "authentication-key", "authentication-key-chain"):
            if key not in lowered:
                continue
            value = words[lowered.index(key) + 1] if lowered.index(key) + 1 < len(words) else ""
            if target:
                if key == "peer-as":
                    record.bgp_peer_asns[target] = value
                else:
                    record.bgp_authenticated_peers.add(target)
            elif group:
                if key == "peer-as":
                    self._group(state, group)["asn"] = value
                else:
                    self._group(state, group)["auth"] = True
            return PARSED
        return PARSED if neighbor or group else SKIPPED

    # Helpers

    def finish(self, state: ParseState) -> None:
        record = state.record
        for group in state.flags.get("groups", {}).values():
            for peer in group["peers"]:
                if group["auth"]:
                    record.bgp_authenticated_peers.add(peer)
                if group["asn"] and peer not in record.bgp_peer_asns:
                    record.bgp_peer_asns[peer] = group["asn"]

    def _add_neighbor(self, state: ParseState, peer: str, group: Optional[str] = None) -> None:
        if not is_valid_ipv4(peer) and first_ipv4(peer) is None:
            return
        state.record.add_peer(peer)
        group = group or state.flags.get("bgp_group")
        if group:
            peers = self._group(state, group)["peers"]
            if peer not in peers:
                peers.append(peer)

    @staticmethod
    def _group(state: ParseState, name: str) -> dict:
        groups = state.flags.setdefault("groups", {})
        return groups.setdefault(name, {"peers": [], "auth": False, "asn": ""})

    def _add_vlans(self, state: ParseState, members: str, iface=None) -> LineResult:
        vlans = expand_vlan_ranges(members)
        if not vlans:
            return LineResult.failed(f"no valid VLANs in '{members}'")
        state.record.add_vlans(vlans)
        if iface is not None:
            iface.vlans.update(vlans)
        return PARSED

    @staticmethod
    def _in(state: ParseState, keyword: str) -> bool:
        return any(h.split()[:1] == [keyword] for h in state.context)

    @staticmethod
    def _context_arg(state: ParseState, keyword: str) -> str:
        for header in reversed(state.context):
            words = header.split()
            if words[:1] == [keyword]:
                return words[1] if len(words) > 1 else ""
        return ""

    def _current_neighbor(self, state: ParseState) -> str:
        return self._context_arg(state, "neighbor")
