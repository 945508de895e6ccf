"""
Extraction engine contract and shared line-loop driver.

Every vendor engine is a single forward pass over the input lines. The
driver owns the loop: it checks for cancellation at each line boundary,
hands the line to the engine's ``parse_line`` and consumes the returned
LineResult. Heuristics that do not depend on vendor syntax run here too:

  - discovery (address + hardware address co-occurrence, LLDP/CDP neighbors)
  - resource gauges (CPU, memory, disk, temperature, alarms)
  - interface counters from show-interfaces style output
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from ..detect.anomaly import AnomalyEngine
from ..errors import CancelSignal, raise_if_cancelled
from ..models.record import (
    ArpEntry,
    CanonicalRecord,
    DhcpLease,
    Interface,
    NeighborEntry,
    PHYSICAL,
    Vendor,
)
from .common import (
    IPV4,
    MAC,
    classify_interface,
    first_percent,
    is_valid_ipv4,
    normalize_mac,
    prefix_to_mask,
)

_LOGGER = logging.getLogger(__name__)

CAN_PARSE_LINES = 50
CONFIDENCE_LINES = 30

# Discovery patterns
_ARP = re.compile(rf"(?<![\d.])({IPV4})(?![\d.]*\d).{{0,60}}?\b({MAC})\b")
_LEASE = re.compile(rf"(?<![\d.])({IPV4})(?![\d.]*\d).{{0,80}}?\b({MAC})\b")
_LEASE_HINT = re.compile(r"dhcp|lease|binding", re.IGNORECASE)
_NEIGHBOR_MENTION = re.compile(r"\b(lldp|cdp)\b.*?\bneighbou?r\b[:\s]+(\S+)", re.IGNORECASE)
_LLDP_SYS_NAME = re.compile(r"^(?:System\s+Name|SysName)\s*:\s*(\S+)", re.IGNORECASE)
_CDP_DEVICE_ID = re.compile(r"^Device\s+ID\s*:\s*(\S+)", re.IGNORECASE)

# Resource gauges
_CPU_HINT = re.compile(r"\bcpu\b.*(usage|utiliz|load|:)", re.IGNORECASE)
_MEMORY_HINT = re.compile(r"\bmem(ory)?\b.*(usage|utiliz|using|used|percentage|:)", re.IGNORECASE)
_DISK_HINT = re.compile(r"\b(disk|flash|cfcard|storage)\b.*(usage|utiliz|used)", re.IGNORECASE)
_TEMPERATURE = re.compile(r"\btemperature\b\D{0,30}?(-?\d+(?:\.\d+)?)", re.IGNORECASE)
_ALARM = re.compile(r"\balarm\b.*\b(active|major|critical|raised)\b", re.IGNORECASE)

# Interface counters (show interfaces / display interface)
_IN_ERRORS = re.compile(r"(\d+)\s+input\s+errors", re.IGNORECASE)
_OUT_ERRORS = re.compile(r"(\d+)\s+output\s+errors", re.IGNORECASE)
_IN_PACKETS = re.compile(r"(\d+)\s+packets\s+input", re.IGNORECASE)
_OUT_PACKETS = re.compile(r"(\d+)\s+packets\s+output", re.IGNORECASE)
_INPUT_RATE = re.compile(r"input\s+rate\s*:?\s*(\d+)\s+bits/sec", re.IGNORECASE)
_OUTPUT_RATE = re.compile(r"output\s+rate\s*:?\s*(\d+)\s+bits/sec", re.IGNORECASE)
_BANDWIDTH = re.compile(r"\bBW\s+(\d+)\s+Kbit", re.IGNORECASE)
_IN_UTIL = re.compile(r"input\s+bandwidth\s+utilization\s*:\s*(\d+(?:\.\d+)?)%", re.IGNORECASE)
_OUT_UTIL = re.compile(r"output\s+bandwidth\s+utilization\s*:\s*(\d+(?:\.\d+)?)%", re.IGNORECASE)

# Management port naming
_MGMT_NAME = re.compile(r"^(?:mgmt|management|meth|fxp0|em0|me0)", re.IGNORECASE)
_MGMT_DESC = re.compile(r"\b(?:mgmt|management|oob)\b", re.IGNORECASE)


class LineStatus(Enum):
    PARSED = "parsed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class LineResult:
    """Outcome of handling one input line."""
    status: LineStatus
    message: str = ""

    @classmethod
    def failed(cls, message: str) -> "LineResult":
        return cls(LineStatus.FAILED, message)


PARSED = LineResult(LineStatus.PARSED)
SKIPPED = LineResult(LineStatus.SKIPPED)


@dataclass
class ParseState:
    """
    Mutable state of one parse.

    ``current`` is either None (no open interface) or the index of the
    open interface in ``record.interfaces``. Interfaces are looked up by
    name before being created, so re-opening a name updates in place.
    """
    record: CanonicalRecord
    current: Optional[int] = None
    section: str = ""
    context: list[str] = field(default_factory=list)
    flags: dict = field(default_factory=dict)
    line_no: int = 0
    hits: int = 0
    # keyed by lower-cased interface name; list indexes shift when a rename merges
    rates: dict[str, dict[str, float]] = field(default_factory=dict)

    @property
    def interface(self) -> Optional[Interface]:
        if self.current is None:
            return None
        return self.record.interfaces[self.current]

    def open_interface(self, name: str, kind: Optional[str] = None) -> Interface:
        kind = kind or classify_interface(name)
        self.current = self.record.interface_position(name, kind)
        iface = self.record.interfaces[self.current]
        if kind != PHYSICAL:
            iface.kind = kind
        self.hit()
        return iface

    def rename_interface(self, old: str, new: str) -> Interface:
        """Rename through the record, carrying collected rates to the new name."""
        open_name = self.interface.name if self.interface is not None else None
        iface = self.record.rename_interface(old, new)
        moved = self.rates.pop(old.lower(), None)
        if moved:
            target = self.rates.setdefault(new.lower(), {})
            for key, value in moved.items():
                target.setdefault(key, value)
        if open_name is not None:
            name = new if open_name.lower() == old.lower() else open_name
            self.current = self.record.interface_position(name)
        return iface

    def close_interface(self) -> None:
        self.current = None

    def begin_line(self, line_no: int) -> None:
        self.line_no = line_no
        self.hits = 0

    def hit(self, count: int = 1) -> None:
        self.hits += count

    def outcome(self) -> LineResult:
        return PARSED if self.hits else SKIPPED


class ExtractionEngine:
    """
    Base class for vendor extraction engines.

    Subclasses set ``vendor`` and ``_SIGNALS`` (pattern, weight) pairs for
    confidence scoring, and implement ``parse_line``.
    """

    vendor: Vendor = Vendor.GENERIC
    _SIGNALS: tuple[tuple[re.Pattern, int], ...] = ()

    def __init__(self, rules: Optional[AnomalyEngine] = None):
        self.rules = rules or AnomalyEngine()

    def can_parse(self, sample: str) -> bool:
        raise NotImplementedError

    def confidence_score(self, sample: str) -> int:
        score = sum(weight for pattern, weight in self._SIGNALS if pattern.search(sample))
        return min(score, 100)

    def parse(self, path: str | Path, cancel: Optional[CancelSignal] = None) -> CanonicalRecord:
        """Parse a file. Only cancellation raises; bad lines become parse errors."""
        path = Path(path)
        with open(path, encoding="utf-8", errors="replace") as f:
            return self._run(f, path.name, path.stem, cancel)

    def parse_text(
        self,
        text: str,
        source_name: str = "input.txt",
        cancel: Optional[CancelSignal] = None,
    ) -> CanonicalRecord:
        return self._run(text.splitlines(), source_name, Path(source_name).stem, cancel)

    def parse_line(self, state: ParseState, line: str) -> LineResult:
        raise NotImplementedError

    def on_blank_line(self, state: ParseState) -> None:
        """Hook for syntaxes where a blank line ends a block."""

    def finish(self, state: ParseState) -> None:
        """Hook run once after the last line, before the anomaly pass."""

    def _run(
        self,
        lines: Iterable[str],
        source_name: str,
        stem: str,
        cancel: Optional[CancelSignal],
    ) -> CanonicalRecord:
        record = CanonicalRecord(vendor=self.vendor, source_name=source_name)
        state = ParseState(record)

        for line_no, raw in enumerate(lines, start=1):
            raise_if_cancelled(cancel)
            record.total_lines = line_no
            line = raw.rstrip("\r\n")
            if not line.strip():
                self.on_blank_line(state)
                continue

            state.begin_line(line_no)
            result = self._handle_line(state, line)
            if result.status is LineStatus.FAILED:
                record.parse_errors.append(f"Line {line_no}: {result.message}")
            elif result.status is LineStatus.PARSED:
                record.parsed_lines += 1

        state.close_interface()
        self.finish(state)
        self._finalize(state, stem)
        self.rules.evaluate(record)
        _LOGGER.debug(
            "%s engine parsed %s: %d/%d lines, %d interfaces, %d errors",
            self.vendor.value, source_name, record.parsed_lines,
            record.total_lines, len(record.interfaces), len(record.parse_errors),
        )
        return record

    def _handle_line(self, state: ParseState, line: str) -> LineResult:
        try:
            result = self.parse_line(state, line)
        except (ValueError, IndexError, KeyError) as exc:
            return LineResult.failed(str(exc))
        finally:
            discovered = state.flags.pop("discovered", False)
        if result.status is LineStatus.FAILED:
            return result

        text = line.strip()
        if not discovered:
            self._discover(state, text)
        self._scan_resources(state, text)
        if state.interface is not None:
            self._scan_counters(state, text)
        if result.status is LineStatus.PARSED:
            return PARSED
        return state.outcome()

    # Shared heuristics

    def _discover(self, state: ParseState, text: str) -> None:
        record = state.record
        iface = state.interface
        iface_name = iface.name if iface is not None else ""

        if _LEASE_HINT.search(text):
            m = _LEASE.search(text)
            if m:
                mac = normalize_mac(m.group(2))
                record.dhcp_leases.append(DhcpLease(m.group(1), mac, iface_name))
                record.add_mac(mac)
                state.hit()
        else:
            m = _ARP.search(text)
            if m:
                mac = normalize_mac(m.group(2))
                record.arp_table.append(ArpEntry(m.group(1), mac, iface_name))
                record.add_mac(mac)
                state.hit()

        neighbor = None
        m = _NEIGHBOR_MENTION.search(text)
        if m:
            neighbor = NeighborEntry(m.group(2), iface_name, m.group(1).upper())
        else:
            m = _LLDP_SYS_NAME.match(text)
            if m:
                neighbor = NeighborEntry(m.group(1), iface_name, "LLDP")
            else:
                m = _CDP_DEVICE_ID.match(text)
                if m:
                    neighbor = NeighborEntry(m.group(1), iface_name, "CDP")
        if neighbor is not None and neighbor not in record.neighbors:
            record.neighbors.append(neighbor)
            state.hit()

    def _scan_resources(self, state: ParseState, text: str) -> None:
        res = state.record.resources
        if "%" in text:
            value = first_percent(text)
            if value is not None:
                if _CPU_HINT.search(text) and res.cpu is None:
                    res.cpu = value
                    state.hit()
                elif _MEMORY_HINT.search(text) and res.memory is None:
                    res.memory = value
                    state.hit()
                elif _DISK_HINT.search(text) and res.disk is None:
                    res.disk = value
                    state.hit()
        m = _TEMPERATURE.search(text)
        if m and res.temperature is None:
            res.temperature = float(m.group(1))
            state.hit()
        if _ALARM.search(text) and text not in res.alarms:
            res.alarms.append(text)
            state.hit()

    def _scan_counters(self, state: ParseState, text: str) -> None:
        iface = state.interface
        for pattern, attr in (
            (_IN_ERRORS, "errors_in"),
            (_OUT_ERRORS, "errors_out"),
            (_IN_PACKETS, "packets_in"),
            (_OUT_PACKETS, "packets_out"),
        ):
            m = pattern.search(text)
            if m:
                setattr(iface, attr, int(m.group(1)))
                state.hit()
        for pattern, attr in ((_IN_UTIL, "utilization_in"), (_OUT_UTIL, "utilization_out")):
            m = pattern.search(text)
            if m:
                setattr(iface, attr, float(m.group(1)))
                state.hit()
        for pattern, key in (
            (_BANDWIDTH, "bw_kbit"),
            (_INPUT_RATE, "in_bps"),
            (_OUTPUT_RATE, "out_bps"),
        ):
            m = pattern.search(text)
            if m:
                state.rates.setdefault(iface.name.lower(), {})[key] = float(m.group(1))
                state.hit()

    def _finalize(self, state: ParseState, stem: str) -> None:
        record = state.record

        for name, rates in state.rates.items():
            bw = rates.get("bw_kbit", 0.0)
            iface = record.find_interface(name)
            if bw <= 0 or iface is None:
                continue
            if "in_bps" in rates and iface.utilization_in is None:
                iface.utilization_in = min(rates["in_bps"] / (bw * 1000) * 100, 100.0)
            if "out_bps" in rates and iface.utilization_out is None:
                iface.utilization_out = min(rates["out_bps"] / (bw * 1000) * 100, 100.0)

        if not record.device:
            record.device = record.system_name or stem

        if not record.management_ip:
            for iface in record.interfaces:
                if iface.ip and (_MGMT_NAME.match(iface.name) or _MGMT_DESC.search(iface.description)):
                    record.management_ip = iface.ip
                    break


def assign_address(iface: Interface, ip: str, mask: str = "") -> LineResult:
    """Set an interface's primary address, rejecting malformed values."""
    if not is_valid_ipv4(ip):
        return LineResult.failed(f"invalid IP address '{ip}' on {iface.name}")
    if mask.isdigit():
        if int(mask) > 32:
            return LineResult.failed(f"invalid prefix length '{mask}' on {iface.name}")
        mask = prefix_to_mask(int(mask))
    elif mask and not is_valid_ipv4(mask):
        return LineResult.failed(f"invalid netmask '{mask}' on {iface.name}")
    iface.ip = ip
    iface.mask = mask
    return PARSED
