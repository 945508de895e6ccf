"""Tests for the anomaly rule engine."""

import pytest

from netlens.detect.anomaly import (
    AnomalyEngine,
    AnomalyReport,
    RuleThresholds,
    compute_health_score,
    evaluate,
    search,
)
from netlens.models.record import (
    CRITICAL,
    HIGH,
    LOW,
    MEDIUM,
    CanonicalRecord,
    Finding,
    Interface,
    TextList,
    TextValue,
    Vendor,
)


def _finding(severity):
    return Finding("Security", "Test", "test finding", severity)


def _quiet_record(**kwargs):
    """A record that triggers no configuration findings."""
    record = CanonicalRecord(**kwargs)
    record.ntp_servers = ["192.0.2.1"]
    record.local_users = ["netops"]
    return record


def _subcategories(record):
    return [f.subcategory for f in record.findings]


class TestHealthScore:
    def test_no_findings(self):
        assert compute_health_score([]) == 100.0

    def test_single_critical(self):
        assert compute_health_score([_finding(CRITICAL)]) == 75.0

    def test_mixed(self):
        findings = [_finding(HIGH), _finding(MEDIUM), _finding(LOW)]
        assert compute_health_score(findings) == 74.0

    def test_clamped_at_zero(self):
        assert compute_health_score([_finding(CRITICAL)] * 5) == 0.0

    def test_unknown_severity(self):
        assert compute_health_score([_finding("Informational")]) == 99.0


class TestEvaluate:
    def test_empty_record(self):
        record = CanonicalRecord()
        report = evaluate(record)
        assert isinstance(report, AnomalyReport)
        assert _subcategories(record) == ["Time Synchronization", "User Management"]
        assert record.health_score == 94.0
        assert report.by_severity() == {LOW: 2}

    def test_quiet_record_is_healthy(self):
        record = _quiet_record()
        evaluate(record)
        assert record.findings == []
        assert record.health_score == 100.0

    def test_evaluate_is_idempotent(self):
        record = CanonicalRecord()
        record.resources.cpu = 99.0
        evaluate(record)
        first = list(record.findings)
        evaluate(record)
        assert record.findings == first

    def test_parse_errors(self):
        record = _quiet_record()
        record.parse_errors = ["Line 3: bad"]
        evaluate(record)
        assert _subcategories(record) == ["Parse Errors"]


class TestSecurityRules:
    def test_access_control(self):
        record = _quiet_record()
        record.interfaces = [Interface("Gi0/0", ip="10.0.0.1"), Interface("Lo0", ip="127.0.0.1")]
        evaluate(record)
        access = [f for f in record.findings if f.subcategory == "Access Control"]
        assert len(access) == 1
        assert access[0].interface == "Gi0/0"
        assert access[0].severity == HIGH

    def test_access_control_satisfied_by_acl(self):
        record = _quiet_record()
        record.interfaces = [Interface("Gi0/0", ip="10.0.0.1")]
        record.acls = {"MGMT"}
        evaluate(record)
        assert record.findings == []

    def test_weak_username(self):
        record = _quiet_record()
        record.local_users = ["Administrator", "netops"]
        evaluate(record)
        assert _subcategories(record) == ["Authentication"]

    def test_bgp_exposure(self):
        record = _quiet_record(bgp_asn="65001")
        record.add_peer("192.0.2.2", "65002")
        record.add_peer("192.0.2.6", "23456")
        record.bgp_authenticated_peers = {"192.0.2.2"}
        evaluate(record)
        subs = _subcategories(record)
        assert subs.count("Routing Security") == 1
        assert subs.count("BGP Authentication") == 1
        assert subs.count("BGP Configuration") == 1
        assert subs.count("Route Filtering") == 1

    def test_route_filter_present(self):
        record = _quiet_record()
        record.add_peer("192.0.2.2")
        record.bgp_authenticated_peers = {"192.0.2.2"}
        record.acls = {"route-map:RM-IN"}
        evaluate(record)
        assert record.findings == []

    def test_reserved_local_asn(self):
        record = _quiet_record(bgp_asn="0")
        record.add_peer("192.0.2.2")
        record.bgp_authenticated_peers = {"192.0.2.2"}
        record.acls = {"prefix-list:PL"}
        evaluate(record)
        assert _subcategories(record) == ["BGP Configuration"]
        assert "Local AS" in record.findings[0].description

    def test_public_management_address(self):
        record = _quiet_record(management_ip="8.8.8.8")
        evaluate(record)
        assert _subcategories(record) == ["Management Access"]

    def test_private_management_address(self):
        record = _quiet_record(management_ip="10.20.30.40")
        evaluate(record)
        assert record.findings == []

    def test_duplicate_address(self):
        record = _quiet_record()
        record.acls = {"ACL"}
        record.interfaces = [
            Interface("Gi0/1", ip="10.0.0.1"),
            Interface("Gi0/2", ip="10.0.0.1"),
        ]
        evaluate(record)
        conflicts = [f for f in record.findings if f.subcategory == "IP Address Conflict"]
        assert len(conflicts) == 1
        assert conflicts[0].severity == CRITICAL
        assert "Gi0/1, Gi0/2" in conflicts[0].description

    def test_cleartext_service(self):
        record = _quiet_record()
        record.interfaces = [Interface("vty0", raw_lines=["transport input telnet ssh"])]
        evaluate(record)
        insecure = [f for f in record.findings if f.subcategory == "Insecure Service"]
        assert len(insecure) == 1
        assert "'telnet'" in insecure[0].description

    def test_weak_cipher_in_interface_lines(self):
        record = _quiet_record()
        record.interfaces = [Interface("tun0", raw_lines=["crypto ipsec transform-set T esp-3des"])]
        evaluate(record)
        assert _subcategories(record) == ["Weak Cryptography"]

    def test_weak_cipher_ignores_unrelated_extensions(self):
        record = _quiet_record()
        record.vendor_extensions["Banner"] = TextValue("rc4 des 3des")
        evaluate(record)
        assert record.findings == []

    def test_snmp_without_acl(self):
        record = _quiet_record()
        record.add_text("SNMP", "public RO")
        evaluate(record)
        assert _subcategories(record) == ["SNMP"]

        record.acls = {"snmp:10"}
        evaluate(record)
        assert record.findings == []

    def test_huawei_default_account(self):
        record = _quiet_record(vendor=Vendor.HUAWEI)
        record.local_users = ["huawei"]
        evaluate(record)
        defaults = [f for f in record.findings if f.subcategory == "Default Credentials"]
        assert len(defaults) == 1
        assert defaults[0].severity == CRITICAL

    def test_vendor_default_matched_by_identity(self):
        record = _quiet_record(device="cisco-edge-01")
        record.vendor_extensions["EnablePassword"] = TextValue("Cisco")
        evaluate(record)
        assert _subcategories(record) == ["Default Credentials"]

    def test_juniper_root_login(self):
        record = _quiet_record(vendor=Vendor.JUNIPER)
        record.vendor_extensions["RootLogin"] = TextValue("deny")
        evaluate(record)
        assert record.findings == []


class TestPerformanceRules:
    def test_cpu_critical(self):
        record = _quiet_record()
        record.resources.cpu = 96.0
        evaluate(record)
        assert len(record.findings) == 1
        assert record.findings[0].subcategory == "CPU Utilization"
        assert record.findings[0].severity == CRITICAL
        assert record.health_score == 75.0

    def test_memory_high(self):
        record = _quiet_record()
        record.resources.memory = 85.0
        evaluate(record)
        assert record.findings[0].subcategory == "Memory Utilization"
        assert record.findings[0].severity == HIGH

    def test_at_threshold_is_not_a_finding(self):
        record = _quiet_record()
        record.resources.cpu = 80.0
        record.resources.disk = 90.0
        evaluate(record)
        assert record.findings == []

    def test_custom_thresholds(self):
        engine = AnomalyEngine(RuleThresholds(cpu_high=50.0, cpu_critical=99.0))
        record = _quiet_record()
        record.resources.cpu = 60.0
        engine.evaluate(record)
        assert record.findings[0].severity == HIGH

    def test_interface_errors(self):
        record = _quiet_record()
        record.interfaces = [
            Interface("Gi0/1", errors_in=150),
            Interface("Gi0/2", errors_in=900, errors_out=200),
        ]
        evaluate(record)
        severities = {f.interface: f.severity for f in record.findings}
        assert severities == {"Gi0/1": MEDIUM, "Gi0/2": HIGH}

    def test_interface_utilization(self):
        record = _quiet_record()
        record.interfaces = [Interface("Gi0/1", utilization_in=20.0, utilization_out=96.5)]
        evaluate(record)
        assert record.findings[0].subcategory == "Interface Utilization"
        assert record.findings[0].severity == HIGH
        assert "96.5%" in record.findings[0].description


class TestConfigurationRules:
    def test_mostly_inactive_interfaces(self):
        record = _quiet_record()
        record.interfaces = [Interface(f"Gi0/{i}", shutdown=i > 1) for i in range(12)]
        evaluate(record)
        assert _subcategories(record) == ["Interface Utilization"]
        assert record.findings[0].severity == LOW
        assert "Only 2 of 12" in record.findings[0].description

    def test_small_device_not_flagged(self):
        record = _quiet_record()
        record.interfaces = [Interface(f"Gi0/{i}", shutdown=True) for i in range(10)]
        evaluate(record)
        assert record.findings == []


@pytest.fixture
def searchable():
    record = _quiet_record()
    record.interfaces = [
        Interface("Gi0/1", raw_lines=[" description Uplink [core]", " snmp-server community public"]),
    ]
    record.vendor_extensions["Licenses"] = TextList(["ipservices permanent"])
    evaluate(record)
    return record


class TestSearch:
    def test_interface_match(self, searchable):
        added = search(searchable, ["public"])
        assert len(added) == 1
        assert added[0].category == "Search"
        assert added[0].subcategory == "PatternMatch"
        assert added[0].interface == "Gi0/1"
        assert searchable.health_score == 92.0

    def test_vendor_data_match(self, searchable):
        added = search(searchable, ["IPSERVICES"])
        assert [f.subcategory for f in added] == ["VendorData"]
        assert added[0].vendor_specific

    def test_regex(self, searchable):
        added = search(searchable, [r"community\s+\w+"], use_regex=True)
        assert len(added) == 1

    def test_invalid_regex_matches_literally(self, searchable):
        added = search(searchable, ["[core"], use_regex=True)
        assert len(added) == 1
        assert "Uplink" in added[0].matched_text

    def test_duplicate_and_blank_patterns(self, searchable):
        added = search(searchable, ["public", " public ", "", None])
        assert len(added) == 1

    def test_custom_severity(self, searchable):
        search(searchable, ["public"], severity=CRITICAL)
        assert searchable.health_score == 75.0

    def test_long_match_truncated(self):
        record = _quiet_record()
        record.interfaces = [Interface("Gi0/1", raw_lines=["x" * 300])]
        added = search(record, ["xxx"])
        assert len(added[0].matched_text) == 203
        assert added[0].matched_text.endswith("...")

    def test_no_match(self, searchable):
        assert search(searchable, ["nothing-here"]) == []
        assert searchable.health_score == 100.0

    def test_evaluate_drops_search_findings(self, searchable):
        search(searchable, ["public"])
        evaluate(searchable)
        assert searchable.findings == []
