"""
Shared lexical helpers for the extraction engines.

Address and hardware-address patterns, VLAN range expansion and small
normalization helpers used by more than one vendor engine.
"""

import ipaddress
import re
from typing import Iterable, Optional

from ..models.record import AGGREGATION, PHYSICAL, VIRTUAL

IPV4 = r"(?:25[0-5]|2[0-4]\d|1?\d?\d)(?:\.(?:25[0-5]|2[0-4]\d|1?\d?\d)){3}"
MAC = (
    r"(?:[0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}"
    r"|[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4}"
    r"|[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}"
)

IPV4_RE = re.compile(rf"(?<![\d.])({IPV4})(?![\d.]*\d)")
LOOSE_IPV4_RE = re.compile(r"\b\d{1,3}(?:\.\d{1,3}){3}\b")
MAC_RE = re.compile(rf"\b({MAC})\b")
PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")

VLAN_MIN = 1
VLAN_MAX = 4094

_VLAN_SPLIT = re.compile(r"[\s,]+")
_VLAN_HYPHEN = re.compile(r"^(\d+)-(\d+)$")
_VLAN_KEYWORDS = {"add", "remove", "except", "none", "all", "vlan", "batch", "members", "[", "]"}


def expand_vlan_ranges(text: str) -> list[int]:
    """
    Expand a VLAN list into individual IDs.

    Accepts ``"100 to 103"`` (word separator), ``"10-20"`` and plain IDs
    separated by whitespace or commas. Malformed or out-of-range items are
    skipped whole; nothing is partially expanded.
    """
    tokens = [t for t in _VLAN_SPLIT.split(text.strip().strip("[];")) if t]
    vlans: list[int] = []
    i = 0
    while i < len(tokens):
        token = tokens[i].lower()
        if token in _VLAN_KEYWORDS:
            i += 1
            continue
        if i + 2 < len(tokens) and tokens[i + 1].lower() == "to":
            start, end = tokens[i], tokens[i + 2]
            if start.isdigit() and end.isdigit():
                vlans.extend(_inclusive_range(int(start), int(end)))
            i += 3
            continue
        if i + 1 < len(tokens) and tokens[i + 1].lower() == "to":
            # Dangling "N to" at the end of the list
            i += 2
            continue
        m = _VLAN_HYPHEN.match(token)
        if m:
            vlans.extend(_inclusive_range(int(m.group(1)), int(m.group(2))))
        elif token.isdigit() and VLAN_MIN <= int(token) <= VLAN_MAX:
            vlans.append(int(token))
        i += 1
    return vlans


def _inclusive_range(start: int, end: int) -> list[int]:
    lo, hi = min(start, end), max(start, end)
    if lo < VLAN_MIN or hi > VLAN_MAX:
        return []
    return list(range(lo, hi + 1))


def is_valid_ipv4(text: str) -> bool:
    try:
        ipaddress.IPv4Address(text)
    except ValueError:
        return False
    return True


def is_private_ipv4(text: str) -> bool:
    """RFC 1918, loopback, link-local and shared address space count as private."""
    try:
        addr = ipaddress.IPv4Address(text)
    except ValueError:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local or addr in _CGNAT


_CGNAT = ipaddress.IPv4Network("100.64.0.0/10")


def is_routable_ipv4(text: str) -> bool:
    try:
        addr = ipaddress.IPv4Address(text)
    except ValueError:
        return False
    return not (addr.is_loopback or addr.is_unspecified)


def prefix_to_mask(prefix: int) -> str:
    return str(ipaddress.IPv4Network(f"0.0.0.0/{prefix}").netmask)


def split_cidr(text: str) -> tuple[str, str]:
    """Split ``a.b.c.d/len`` into address and dotted mask."""
    addr, _, length = text.partition("/")
    if not is_valid_ipv4(addr):
        raise ValueError(f"invalid address {text!r}")
    if not length:
        return addr, ""
    if not length.isdigit() or int(length) > 32:
        raise ValueError(f"invalid prefix length in {text!r}")
    return addr, prefix_to_mask(int(length))


def normalize_mac(text: str) -> str:
    """Return a MAC as upper-case colon-separated octets."""
    digits = re.sub(r"[^0-9A-Fa-f]", "", text).upper()
    return ":".join(digits[i:i + 2] for i in range(0, 12, 2))


def find_ipv4s(text: str) -> list[str]:
    return IPV4_RE.findall(text)


def first_ipv4(text: str) -> Optional[str]:
    m = IPV4_RE.search(text)
    return m.group(1) if m else None


def first_percent(text: str) -> Optional[float]:
    m = PERCENT_RE.search(text)
    return float(m.group(1)) if m else None


def unquote(text: str) -> str:
    return text.strip().rstrip(";").strip().strip('"').strip("'")


def unique(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


_AGGREGATE_NAME = re.compile(r"^(?:eth-trunk|port-channel|po\d|ae\d|bond)", re.IGNORECASE)
_VIRTUAL_NAME = re.compile(
    r"^(?:vlanif|vlan|loopback|lo\d|tunnel|irb|nve|null|bvi|gre|vif)", re.IGNORECASE
)


def classify_interface(name: str) -> str:
    """Infer physical / virtual / aggregation from an interface name."""
    if _AGGREGATE_NAME.match(name):
        return AGGREGATION
    if "." in name or _VIRTUAL_NAME.match(name):
        return VIRTUAL
    return PHYSICAL
