"""
Anomaly rule engine for canonical device records.

Evaluates a record against three independent rule groups and condenses
the result into a 0-100 health score:

  - Security: exposure without access control, weak credentials, routing
    peers without authentication or filters, cleartext services, weak
    ciphers and vendor default credentials
  - Performance: CPU/memory/disk gauges, interface errors and utilization
  - Configuration: time synchronization, parse errors, local users and
    interface activity

A caller-driven pattern search adds findings on top of the rule output.
Findings are always recomputed from scratch; the health score is always
derived from the full finding list.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..ingest.common import is_private_ipv4, is_routable_ipv4
from ..models.record import (
    CONFIGURATION,
    CRITICAL,
    HIGH,
    LOW,
    MEDIUM,
    PERFORMANCE,
    SEARCH,
    SECURITY,
    CanonicalRecord,
    Finding,
    TextValue,
    Vendor,
)

_LOGGER = logging.getLogger(__name__)

SEVERITY_PENALTIES = {CRITICAL: 25, HIGH: 15, MEDIUM: 8, LOW: 3}
UNKNOWN_PENALTY = 1
MAX_MATCH_LENGTH = 200

WEAK_USERNAMES = (
    "admin", "password", "123456", "12345678", "qwerty",
    "root", "test", "guest", "default", "123",
)
RESERVED_ASNS = {"0", "23456", "64512", "65535", "4294967295"}
HUAWEI_DEFAULT_USERS = ("huawei", "admin123")
CISCO_DEFAULT_ENABLE = "cisco"

_CLEARTEXT_SERVICE = re.compile(r"\b(telnet|rlogin|rsh|tftp)\b", re.IGNORECASE)
_CIPHER_CONTEXT = re.compile(r"\b(ssh|ssl|tls|cipher|ciphers|encryption|crypto)\b", re.IGNORECASE)
_WEAK_CIPHER = re.compile(
    r"\b(3des(?:-cbc)?|des(?:-cbc)?|rc4|arcfour\d*|sslv[23]|tlsv1(?:\.[01])?(?![.\d]))",
    re.IGNORECASE,
)
_AUTH_MARKER = re.compile(r"md5|auth", re.IGNORECASE)
_ROUTE_FILTER = re.compile(r"prefix|route-map|route-policy|policy-statement", re.IGNORECASE)
_CIPHER_KEYS = {"SSL", "SSH", "Crypto"}


@dataclass
class RuleThresholds:
    """Numeric limits used by the performance and configuration rules."""
    cpu_high: float = 80.0
    cpu_critical: float = 95.0
    memory_high: float = 80.0
    memory_critical: float = 95.0
    disk_high: float = 90.0
    disk_critical: float = 95.0
    errors_medium: int = 100
    errors_high: int = 1000
    utilization_medium: float = 85.0
    utilization_high: float = 95.0
    inactive_min_interfaces: int = 10
    inactive_min_ratio: float = 0.3


@dataclass
class AnomalyReport:
    """Findings and health score for one record."""
    findings: list[Finding] = field(default_factory=list)
    health_score: float = 100.0

    def by_severity(self) -> dict[str, int]:
        return dict(Counter(f.severity for f in self.findings))


def compute_health_score(findings: Iterable[Finding]) -> float:
    """Start at 100, subtract a fixed penalty per finding, clamp to [0, 100]."""
    score = 100.0
    for finding in findings:
        score -= SEVERITY_PENALTIES.get(finding.severity, UNKNOWN_PENALTY)
    return max(0.0, min(100.0, score))


class AnomalyEngine:
    """
    Rule-based anomaly detection over canonical records.

    ``analyze`` is pure; ``evaluate`` and ``search`` update a record in
    place and recompute its health score.
    """

    def __init__(self, thresholds: Optional[RuleThresholds] = None):
        self.thresholds = thresholds or RuleThresholds()

    def analyze(self, record: CanonicalRecord) -> AnomalyReport:
        findings: list[Finding] = []
        findings.extend(self.security_findings(record))
        findings.extend(self.performance_findings(record))
        findings.extend(self.configuration_findings(record))
        return AnomalyReport(findings=findings, health_score=compute_health_score(findings))

    def evaluate(self, record: CanonicalRecord) -> AnomalyReport:
        report = self.analyze(record)
        record.findings = list(report.findings)
        record.health_score = report.health_score
        return report

    # Security

    def security_findings(self, record: CanonicalRecord) -> list[Finding]:
        findings: list[Finding] = []
        self._detect_unprotected_interfaces(record, findings)
        self._detect_weak_credentials(record, findings)
        self._detect_routing_exposure(record, findings)
        self._detect_management_exposure(record, findings)
        self._detect_duplicate_addresses(record, findings)
        self._detect_cleartext_services(record, findings)
        self._detect_weak_ciphers(record, findings)
        self._detect_snmp_exposure(record, findings)
        self._detect_vendor_defaults(record, findings)
        return findings

    def _detect_unprotected_interfaces(self, record, findings):
        if record.acls:
            return
        for iface in record.interfaces:
            if iface.ip and is_routable_ipv4(iface.ip):
                findings.append(Finding(
                    SECURITY, "Access Control",
                    f"Interface {iface.name} has IP address {iface.ip} but no access control lists are configured",
                    HIGH,
                    "Define ACLs and apply them to interfaces carrying routable addresses",
                    interface=iface.name,
                ))

    def _detect_weak_credentials(self, record, findings):
        for user in record.local_users:
            lowered = user.lower()
            if any(weak in lowered for weak in WEAK_USERNAMES):
                findings.append(Finding(
                    SECURITY, "Authentication",
                    f"Local user '{user}' matches a weak or default credential pattern",
                    HIGH,
                    "Rename default accounts and enforce strong, unique credentials",
                ))

    def _detect_routing_exposure(self, record, findings):
        if not record.bgp_peers:
            return
        if not record.acls:
            findings.append(Finding(
                SECURITY, "Routing Security",
                f"{len(record.bgp_peers)} BGP peer(s) configured without any access control lists",
                HIGH,
                "Restrict BGP sessions with ACLs or control-plane policing",
            ))
        for peer in record.bgp_peers:
            if peer in record.bgp_authenticated_peers or _AUTH_MARKER.search(peer):
                continue
            findings.append(Finding(
                SECURITY, "BGP Authentication",
                f"BGP peer {peer} has no authentication configured",
                HIGH,
                "Configure MD5 or TCP-AO authentication for the BGP session",
            ))
        asns = dict(record.bgp_peer_asns)
        if record.bgp_asn:
            asns["local"] = record.bgp_asn
        for peer, asn in asns.items():
            if asn in RESERVED_ASNS:
                who = "Local AS" if peer == "local" else f"BGP peer {peer}"
                findings.append(Finding(
                    SECURITY, "BGP Configuration",
                    f"{who} uses reserved or default AS number {asn}",
                    MEDIUM,
                    "Use an assigned public or documented private AS number",
                ))
        if not any(_ROUTE_FILTER.search(acl) for acl in record.acls):
            findings.append(Finding(
                SECURITY, "Route Filtering",
                "BGP is configured without prefix lists or route maps",
                HIGH,
                "Filter received and advertised prefixes with prefix lists or route policies",
            ))

    def _detect_management_exposure(self, record, findings):
        ip = record.management_ip
        if ip and not is_private_ipv4(ip):
            findings.append(Finding(
                SECURITY, "Management Access",
                f"Management address {ip} is publicly routable",
                MEDIUM,
                "Move management to a private out-of-band network",
            ))

    def _detect_duplicate_addresses(self, record, findings):
        counts = Counter(i.ip for i in record.interfaces if i.ip)
        for ip, count in sorted(counts.items()):
            if count > 1:
                names = ", ".join(i.name for i in record.interfaces if i.ip == ip)
                findings.append(Finding(
                    SECURITY, "IP Address Conflict",
                    f"Address {ip} is configured on {count} interfaces ({names})",
                    CRITICAL,
                    "Assign a unique address to each interface",
                ))

    def _detect_cleartext_services(self, record, findings):
        for iface in record.interfaces:
            for line in iface.raw_lines:
                m = _CLEARTEXT_SERVICE.search(line)
                if m:
                    findings.append(Finding(
                        SECURITY, "Insecure Service",
                        f"Cleartext service '{m.group(1).lower()}' referenced on {iface.name}",
                        HIGH,
                        "Disable cleartext remote access and use SSH",
                        interface=iface.name,
                        matched_text=line,
                    ))
                    break

    def _detect_weak_ciphers(self, record, findings):
        for iface in record.interfaces:
            for line in iface.raw_lines:
                if _CIPHER_CONTEXT.search(line) and _WEAK_CIPHER.search(line):
                    findings.append(Finding(
                        SECURITY, "Weak Cryptography",
                        f"Weak cipher referenced on {iface.name}: {line}",
                        HIGH,
                        "Remove DES, 3DES, RC4 and legacy SSL/TLS versions",
                        interface=iface.name,
                        matched_text=line,
                    ))
                    break
        for key, ext in record.vendor_extensions.items():
            if key not in _CIPHER_KEYS:
                continue
            for value in ext.strings():
                m = _WEAK_CIPHER.search(value)
                if m:
                    findings.append(Finding(
                        SECURITY, "Weak Cryptography",
                        f"Weak cipher {m.group(1)} in {key} settings",
                        HIGH,
                        "Remove DES, 3DES, RC4 and legacy SSL/TLS versions",
                        vendor_specific=True,
                        matched_text=value,
                    ))

    def _detect_snmp_exposure(self, record, findings):
        if "SNMP" not in record.vendor_extensions:
            return
        if any("snmp" in acl.lower() for acl in record.acls):
            return
        findings.append(Finding(
            SECURITY, "SNMP",
            "SNMP communities are configured without an SNMP access list",
            MEDIUM,
            "Bind SNMP communities to an ACL or migrate to SNMPv3",
            vendor_specific=True,
        ))

    def _detect_vendor_defaults(self, record, findings):
        if _vendor_matches(record, Vendor.HUAWEI):
            for user in record.local_users:
                if any(d in user.lower() for d in HUAWEI_DEFAULT_USERS):
                    findings.append(Finding(
                        SECURITY, "Default Credentials",
                        f"Huawei factory default account '{user}' is present",
                        CRITICAL,
                        "Remove or rename factory default accounts",
                        vendor_specific=True,
                    ))
        if _vendor_matches(record, Vendor.CISCO):
            ext = record.vendor_extensions.get("EnablePassword")
            if isinstance(ext, TextValue) and ext.value.lower() == CISCO_DEFAULT_ENABLE:
                findings.append(Finding(
                    SECURITY, "Default Credentials",
                    "Enable password is set to the Cisco default",
                    CRITICAL,
                    "Replace 'enable password' with a strong 'enable secret'",
                    vendor_specific=True,
                ))
        if _vendor_matches(record, Vendor.JUNIPER):
            ext = record.vendor_extensions.get("RootLogin")
            if isinstance(ext, TextValue) and ext.value.lower() in ("allow", "enabled", "true"):
                findings.append(Finding(
                    SECURITY, "Default Credentials",
                    "Root login over SSH is allowed",
                    HIGH,
                    "Set 'root-login deny' under system services ssh",
                    vendor_specific=True,
                ))

    # Performance

    def performance_findings(self, record: CanonicalRecord) -> list[Finding]:
        t = self.thresholds
        res = record.resources
        findings: list[Finding] = []
        for label, value, high, critical in (
            ("CPU", res.cpu, t.cpu_high, t.cpu_critical),
            ("Memory", res.memory, t.memory_high, t.memory_critical),
            ("Disk", res.disk, t.disk_high, t.disk_critical),
        ):
            if value is None or value <= high:
                continue
            findings.append(Finding(
                PERFORMANCE, f"{label} Utilization",
                f"{label} utilization is {value:g}%",
                CRITICAL if value > critical else HIGH,
                f"Investigate {label.lower()} consumers and plan capacity",
            ))

        for iface in record.interfaces:
            errors = iface.total_errors
            if errors > t.errors_medium:
                findings.append(Finding(
                    PERFORMANCE, "Interface Errors",
                    f"Interface {iface.name} has {errors} errors",
                    HIGH if errors > t.errors_high else MEDIUM,
                    "Check cabling, optics and duplex settings",
                    interface=iface.name,
                ))
            util = iface.utilization
            if util is not None and util > t.utilization_medium:
                findings.append(Finding(
                    PERFORMANCE, "Interface Utilization",
                    f"Interface {iface.name} utilization is {util:.1f}%",
                    HIGH if util > t.utilization_high else MEDIUM,
                    "Add capacity or rebalance traffic",
                    interface=iface.name,
                ))
        return findings

    # Configuration

    def configuration_findings(self, record: CanonicalRecord) -> list[Finding]:
        t = self.thresholds
        findings: list[Finding] = []
        if not record.ntp_servers:
            findings.append(Finding(
                CONFIGURATION, "Time Synchronization",
                "No NTP servers are configured",
                LOW,
                "Configure at least two NTP servers",
            ))
        if record.parse_errors:
            findings.append(Finding(
                CONFIGURATION, "Parse Errors",
                f"{len(record.parse_errors)} line(s) could not be parsed",
                LOW,
                "Review the listed lines in the source file",
            ))
        if not record.local_users:
            findings.append(Finding(
                CONFIGURATION, "User Management",
                "No local user accounts are configured",
                LOW,
                "Configure a local fallback account for AAA outages",
            ))
        total = len(record.interfaces)
        if total > t.inactive_min_interfaces:
            active = sum(1 for i in record.interfaces if not i.shutdown)
            if active / total < t.inactive_min_ratio:
                findings.append(Finding(
                    CONFIGURATION, "Interface Utilization",
                    f"Only {active} of {total} interfaces are administratively up",
                    LOW,
                    "Review unused interfaces and document the port plan",
                ))
        return findings

    # Pattern search

    def search(
        self,
        record: CanonicalRecord,
        patterns: Iterable[str],
        use_regex: bool = False,
        severity: str = MEDIUM,
    ) -> list[Finding]:
        """Append one finding per pattern match and recompute the health score."""
        added: list[Finding] = []
        for pattern in _clean_patterns(patterns):
            matches = _matcher(pattern, use_regex)
            for iface in record.interfaces:
                for line in iface.raw_lines:
                    if matches(line):
                        added.append(Finding(
                            SEARCH, "PatternMatch",
                            f"Pattern '{pattern}' matched on interface {iface.name}: {_truncate(line)}",
                            severity,
                            "Review the matched configuration",
                            interface=iface.name,
                            matched_text=_truncate(line),
                        ))
            for key, ext in record.vendor_extensions.items():
                for value in ext.strings():
                    if matches(value):
                        added.append(Finding(
                            SEARCH, "VendorData",
                            f"Pattern '{pattern}' matched in {key}: {_truncate(value)}",
                            severity,
                            "Review the matched vendor data",
                            vendor_specific=True,
                            matched_text=_truncate(value),
                        ))
        record.findings.extend(added)
        record.health_score = compute_health_score(record.findings)
        return added


def _vendor_matches(record: CanonicalRecord, vendor: Vendor) -> bool:
    return record.vendor is vendor or vendor.value.lower() in record.identity.lower()


def _clean_patterns(patterns: Iterable[str]) -> list[str]:
    cleaned: list[str] = []
    for pattern in patterns:
        pattern = (pattern or "").strip()
        if pattern and pattern not in cleaned:
            cleaned.append(pattern)
    return cleaned


def _matcher(pattern: str, use_regex: bool):
    if use_regex:
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as exc:
            _LOGGER.warning("Invalid search regex %r (%s); matching literally", pattern, exc)
        else:
            return lambda text: compiled.search(text) is not None
    needle = pattern.lower()
    return lambda text: needle in text.lower()


def _truncate(text: str) -> str:
    if len(text) <= MAX_MATCH_LENGTH:
        return text
    return text[:MAX_MATCH_LENGTH] + "..."


_DEFAULT_ENGINE = AnomalyEngine()


def evaluate(record: CanonicalRecord) -> AnomalyReport:
    """Recompute a record's findings and health score with default thresholds."""
    return _DEFAULT_ENGINE.evaluate(record)


def search(
    record: CanonicalRecord,
    patterns: Iterable[str],
    use_regex: bool = False,
    severity: str = MEDIUM,
) -> list[Finding]:
    return _DEFAULT_ENGINE.search(record, patterns, use_regex, severity)
