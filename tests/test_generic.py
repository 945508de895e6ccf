"""Tests for the vendor-neutral fallback engine."""

import pytest

from netlens.ingest.generic import GenericEngine
from netlens.models.record import Vendor


SAMPLE_SYSLOG = """Jan 12 10:00:01 edge-fw %LINK-3-UPDOWN: Interface GigabitEthernet0/1, changed state to down
Jan 12 10:00:02 edge-fw %SYS-2-MALLOCFAIL: Memory allocation of 65536 bytes failed
Jan 12 10:00:03 edge-fw kernel: eth0 link up
Jan 12 10:00:04 edge-fw hostname=edge-fw version=9.1.3 peer 151.101.1.7 bgp asn 65500
Jan 12 10:00:05 edge-fw dhcpd: vlan 20 lease 192.168.1.50
"""


@pytest.fixture
def engine():
    return GenericEngine()


class TestGenericEngine:
    def test_identity(self, engine):
        record = engine.parse_text(SAMPLE_SYSLOG)
        assert record.vendor == Vendor.GENERIC
        assert record.device == "edge-fw"
        assert record.version == "9.1.3"

    def test_device_keywords(self, engine):
        assert engine.parse_text("device-name: core-01\n").device == "core-01"
        assert engine.parse_text("Device: edge-2 booted\n").device == "edge-2"

    def test_cdp_device_id_is_not_identity(self, engine):
        text = "Device ID: R2\nPlatform: cisco WS-C2960,  Capabilities: Switch\n"
        record = engine.parse_text(text, "cdp.txt")
        assert record.device == "cdp"

    def test_addresses(self, engine):
        record = engine.parse_text(SAMPLE_SYSLOG)
        assert record.vendor_extensions["Addresses"].values == ["151.101.1.7", "192.168.1.50"]
        assert record.management_ip == "151.101.1.7"

    def test_interfaces_and_link_state(self, engine):
        record = engine.parse_text(SAMPLE_SYSLOG)
        assert [i.name for i in record.interfaces] == ["GigabitEthernet0/1", "eth0"]
        assert record.find_interface("GigabitEthernet0/1").oper_status == "down"
        assert record.find_interface("eth0").oper_status == "up"

    def test_routing_and_vlans(self, engine):
        record = engine.parse_text(SAMPLE_SYSLOG)
        assert record.bgp_asn == "65500"
        assert record.bgp_peers == ["151.101.1.7"]
        assert record.vlans == {20}

    def test_severe_syslog_becomes_alarm(self, engine):
        record = engine.parse_text(SAMPLE_SYSLOG)
        assert len(record.resources.alarms) == 1
        assert "MALLOCFAIL" in record.resources.alarms[0]

    def test_every_line_parsed(self, engine):
        record = engine.parse_text(SAMPLE_SYSLOG)
        assert record.parsed_lines == 5
        assert record.parse_errors == []

    def test_out_of_range_vlan(self, engine):
        record = engine.parse_text("vlan 5000 created\nvlan 30 created\n")
        assert record.vlans == {30}
        assert len(record.parse_errors) == 1

    def test_users_and_resources(self, engine):
        record = engine.parse_text("login by user operator\nCPU usage 91%\nmemory used 40%\n")
        assert record.local_users == ["operator"]
        assert record.resources.cpu == pytest.approx(91.0)
        assert record.resources.memory == pytest.approx(40.0)

    def test_scoring(self, engine):
        assert engine.can_parse("anything at all")
        assert engine.confidence_score("hostname R1") == 5

    def test_repeated_parse_identical(self, engine, tmp_path):
        path = tmp_path / "messages.log"
        path.write_text(SAMPLE_SYSLOG)
        first = engine.parse(path)
        second = engine.parse(path)
        assert [i.name for i in first.interfaces] == [i.name for i in second.interfaces]
        assert first.vlans == second.vlans
        assert first.findings == second.findings
