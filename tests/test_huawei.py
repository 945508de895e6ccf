"""Tests for the Huawei VRP extraction engine."""

import pytest

from netlens.ingest.huawei import HuaweiEngine
from netlens.models.record import AGGREGATION, VIRTUAL, Vendor


SAMPLE_CONFIG = """#
sysname CoreSwitch
#
vlan batch 10 20 100 to 103
#
ntp-service unicast-server 10.1.1.1
#
acl number 3000
 rule 5 permit ip
#
aaa
 local-user admin password irreversible-cipher xxx
 local-user netops password irreversible-cipher yyy
#
interface Vlanif10
 description Uplink to DistSwitch
 ip address 192.168.10.1 255.255.255.0
 vrrp vrid 1 virtual-ip 192.168.10.254
#
interface GigabitEthernet0/0/1
 port link-type trunk
 port trunk allow-pass vlan 10 20
 undo shutdown
#
interface GigabitEthernet0/0/2
 shutdown
#
interface Eth-Trunk1
 description to-core
#
bgp 65001
 peer 10.0.0.2 as-number 65002
 peer 10.0.0.2 password cipher abc
 peer 10.0.0.3 as-number 65003
#
return
"""

SAMPLE_DISPLAY_INTERFACE = """GigabitEthernet0/0/1 current state : UP
Line protocol current state : UP
Description:Uplink
Internet Address is 10.0.0.1/30
Input bandwidth utilization  : 97.5%
Output bandwidth utilization : 12%

GigabitEthernet0/0/2 current state : Administratively DOWN
Line protocol current state : DOWN
"""

SAMPLE_VERSION = """<AR-Branch>display version
Huawei Versatile Routing Platform Software
VRP (R) software, Version 5.170 (AR2200 V200R010C00SPC500)
HUAWEI AR2220 Router uptime is 10 weeks
ESN of master: 2102351931P0A1000123
"""


@pytest.fixture
def engine():
    return HuaweiEngine()


class TestHuaweiConfig:
    def test_identity(self, engine):
        record = engine.parse_text(SAMPLE_CONFIG, "core.cfg")
        assert record.vendor == Vendor.HUAWEI
        assert record.device == "CoreSwitch"
        assert record.system_name == "CoreSwitch"

    def test_vlans(self, engine):
        record = engine.parse_text(SAMPLE_CONFIG)
        assert record.vlans == {10, 20, 100, 101, 102, 103}

    def test_users_and_ntp(self, engine):
        record = engine.parse_text(SAMPLE_CONFIG)
        assert record.local_users == ["admin", "netops"]
        assert record.ntp_servers == ["10.1.1.1"]
        assert "3000" in record.acls

    def test_interfaces(self, engine):
        record = engine.parse_text(SAMPLE_CONFIG)
        names = [i.name for i in record.interfaces]
        assert names == ["Vlanif10", "GigabitEthernet0/0/1", "GigabitEthernet0/0/2", "Eth-Trunk1"]

        vlanif = record.find_interface("vlanif10")
        assert vlanif.description == "Uplink to DistSwitch"
        assert vlanif.ip == "192.168.10.1"
        assert vlanif.mask == "255.255.255.0"
        assert vlanif.kind == VIRTUAL
        assert vlanif.redundancy == ["vrrp 1 virtual-ip 192.168.10.254"]

        assert record.find_interface("GigabitEthernet0/0/1").vlans == {10, 20}
        assert not record.find_interface("GigabitEthernet0/0/1").shutdown
        assert record.find_interface("GigabitEthernet0/0/2").shutdown
        assert record.find_interface("Eth-Trunk1").kind == AGGREGATION

    def test_bgp(self, engine):
        record = engine.parse_text(SAMPLE_CONFIG)
        assert record.bgp_asn == "65001"
        assert record.bgp_peers == ["10.0.0.2", "10.0.0.3"]
        assert record.bgp_peer_asns == {"10.0.0.2": "65002", "10.0.0.3": "65003"}
        assert record.bgp_authenticated_peers == {"10.0.0.2"}

    def test_no_parse_errors(self, engine):
        record = engine.parse_text(SAMPLE_CONFIG)
        assert record.parse_errors == []
        assert record.parsed_lines > 0
        assert record.total_lines == len(SAMPLE_CONFIG.splitlines())

    def test_findings(self, engine):
        record = engine.parse_text(SAMPLE_CONFIG)
        subcategories = {f.subcategory for f in record.findings}
        assert "BGP Authentication" in subcategories
        assert "Route Filtering" in subcategories
        assert any("10.0.0.3" in f.description for f in record.findings)
        assert not any("10.0.0.2 has no authentication" in f.description for f in record.findings)
        assert record.health_score < 100

    def test_bad_vlan_is_parse_error(self, engine):
        record = engine.parse_text("sysname R1\nvlan 5000\nvlan 30\n")
        assert record.vlans == {30}
        assert len(record.parse_errors) == 1
        assert record.parse_errors[0].startswith("Line 2:")

    def test_bad_address_is_parse_error(self, engine):
        record = engine.parse_text("interface Vlanif1\n ip address 10.0.0.999 255.255.255.0\n")
        assert record.find_interface("Vlanif1").ip == ""
        assert len(record.parse_errors) == 1

    def test_reopened_interface_updates_in_place(self, engine):
        text = "interface Vlanif1\n description first\n#\ninterface Vlanif1\n ip address 10.0.0.1 255.255.255.0\n"
        record = engine.parse_text(text)
        assert len(record.interfaces) == 1
        assert record.interfaces[0].description == "first"
        assert record.interfaces[0].ip == "10.0.0.1"

    def test_device_defaults_to_file_stem(self, engine):
        record = engine.parse_text("#\nreturn\n", "edge-07.log")
        assert record.device == "edge-07"


class TestHuaweiDisplay:
    def test_display_interface(self, engine):
        record = engine.parse_text(SAMPLE_DISPLAY_INTERFACE)
        gi1 = record.find_interface("GigabitEthernet0/0/1")
        assert gi1.oper_status == "up"
        assert gi1.description == "Uplink"
        assert gi1.ip == "10.0.0.1"
        assert gi1.mask == "255.255.255.252"
        assert gi1.utilization_in == pytest.approx(97.5)
        assert gi1.utilization_out == pytest.approx(12.0)

        gi2 = record.find_interface("GigabitEthernet0/0/2")
        assert gi2.shutdown
        assert gi2.oper_status == "down"

    def test_utilization_finding(self, engine):
        record = engine.parse_text(SAMPLE_DISPLAY_INTERFACE)
        util = [f for f in record.findings if f.subcategory == "Interface Utilization"]
        assert len(util) == 1
        assert util[0].severity == "High"
        assert util[0].interface == "GigabitEthernet0/0/1"

    def test_display_version(self, engine):
        record = engine.parse_text(SAMPLE_VERSION)
        assert record.system_name == "AR-Branch"
        assert record.version == "V200R010C00SPC500"
        assert record.model == "AR2220"
        assert record.serial == "2102351931P0A1000123"


class TestHuaweiScoring:
    def test_confidence(self, engine):
        assert engine.confidence_score(SAMPLE_VERSION) == 100
        assert engine.confidence_score("sysname R1") == 15
        assert engine.confidence_score("display interface brief\n") == 25
        assert engine.confidence_score("hostname R1") == 0

    def test_can_parse(self, engine):
        assert engine.can_parse(SAMPLE_CONFIG)
        assert not engine.can_parse("hostname R1\ninterface Gi0/1\n")
        assert engine.can_parse("display interface brief\n")

    def test_repeated_parse_identical(self, engine, tmp_path):
        path = tmp_path / "core.cfg"
        path.write_text(SAMPLE_CONFIG)
        first = engine.parse(path)
        second = engine.parse(path)
        assert [i.name for i in first.interfaces] == [i.name for i in second.interfaces]
        assert first.vlans == second.vlans
        assert first.findings == second.findings
