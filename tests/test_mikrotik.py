"""Tests for the MikroTik RouterOS extraction engine."""

import pytest

from netlens.ingest.mikrotik import MikrotikEngine
from netlens.models.record import AGGREGATION, VIRTUAL, ArpEntry, DhcpLease, Vendor


SAMPLE_EXPORT = """# jan/02/2024 10:00:00 by RouterOS 7.12.1
# software id = ABCD-1234
#
# model = RB4011iGS+
# serial number = HE108ABCDEF
/interface bridge
add name=bridge-lan comment="LAN bridge"
/interface ethernet
set [ find default-name=ether1 ] comment="WAN" name=ether1-wan
set [ find default-name=ether5 ] disabled=yes
/interface vlan
add interface=bridge-lan name=vlan100 vlan-id=100
/interface bonding
add name=bond1 slaves=ether2,ether3
/ip address
add address=198.51.100.2/30 interface=ether1-wan
add address=192.168.88.1/24 interface=bridge-lan
/ip arp
add address=192.168.88.10 interface=bridge-lan mac-address=AA:BB:CC:DD:EE:01
/ip dhcp-server lease
add address=192.168.88.20 mac-address=aa:bb:cc:dd:ee:02 server=dhcp1
/ip firewall filter
add action=accept chain=input protocol=icmp
/ip service
set telnet disabled=no
set ftp disabled=yes
/routing bgp connection
add as=65400 name=upstream remote.address=198.51.100.1 remote.as=65401 tcp-md5-key=secret
/system identity
set name=core-mikrotik
/system ntp client
set enabled=yes servers=162.159.200.1,162.159.200.123
/user
add name=backup group=read
/snmp community
set [ find default=yes ] name=public addresses=0.0.0.0/0
"""

SAMPLE_CONSOLE = """[admin@MikroTik] > /system identity print
identity: MikrotikBox
[admin@MikroTik] > /interface ethernet print
ether1: disabled false
ether2: disabled true
[admin@MikroTik] > /system resource print
cpu-load: 97%
free-memory: 64.0MiB
total-memory: 256.0MiB
"""


@pytest.fixture
def engine():
    return MikrotikEngine()


class TestMikrotikExport:
    def test_identity(self, engine):
        record = engine.parse_text(SAMPLE_EXPORT)
        assert record.vendor == Vendor.MIKROTIK
        assert record.device == "core-mikrotik"
        assert record.version == "7.12.1"
        assert record.model == "RB4011iGS+"
        assert record.serial == "HE108ABCDEF"
        assert record.vendor_extensions["Licenses"].licenses == ["software-id ABCD-1234"]

    def test_interfaces(self, engine):
        record = engine.parse_text(SAMPLE_EXPORT)
        assert [i.name for i in record.interfaces] == [
            "bridge-lan", "ether1-wan", "ether5", "vlan100", "bond1",
        ]
        assert record.find_interface("ether1") is None

        wan = record.find_interface("ether1-wan")
        assert wan.description == "WAN"
        assert wan.ip == "198.51.100.2"
        assert wan.mask == "255.255.255.252"

        bridge = record.find_interface("bridge-lan")
        assert bridge.description == "LAN bridge"
        assert bridge.ip == "192.168.88.1"
        assert bridge.kind == VIRTUAL

        assert record.find_interface("ether5").shutdown
        assert record.find_interface("vlan100").vlans == {100}
        assert record.find_interface("bond1").kind == AGGREGATION
        assert record.vlans == {100}

    def test_discovery_tables(self, engine):
        record = engine.parse_text(SAMPLE_EXPORT)
        assert record.arp_table == [ArpEntry("192.168.88.10", "AA:BB:CC:DD:EE:01", "bridge-lan")]
        assert record.dhcp_leases == [DhcpLease("192.168.88.20", "AA:BB:CC:DD:EE:02", "dhcp1")]
        assert record.mac_addresses == ["AA:BB:CC:DD:EE:01", "AA:BB:CC:DD:EE:02"]

    def test_routing_and_services(self, engine):
        record = engine.parse_text(SAMPLE_EXPORT)
        assert record.bgp_asn == "65400"
        assert record.bgp_peers == ["198.51.100.1"]
        assert record.bgp_peer_asns == {"198.51.100.1": "65401"}
        assert record.bgp_authenticated_peers == {"198.51.100.1"}
        assert record.acls == {"filter-input"}
        assert record.vendor_extensions["Services"].values == ["telnet"]
        assert record.vendor_extensions["SNMP"].values == ["public"]

    def test_users_and_ntp(self, engine):
        record = engine.parse_text(SAMPLE_EXPORT)
        assert record.local_users == ["backup"]
        assert record.ntp_servers == ["162.159.200.1", "162.159.200.123"]
        assert record.parse_errors == []

    def test_snmp_without_acl_finding(self, engine):
        record = engine.parse_text(SAMPLE_EXPORT)
        assert any(f.subcategory == "SNMP" for f in record.findings)

    def test_line_continuation(self, engine):
        text = "/ip address\nadd address=10.0.0.1/24 \\\n    interface=ether2\n"
        record = engine.parse_text(text)
        assert record.find_interface("ether2").ip == "10.0.0.1"
        assert record.parse_errors == []

    def test_inline_section_command(self, engine):
        record = engine.parse_text("/system identity set name=edge-rb\n")
        assert record.device == "edge-rb"

    def test_incomplete_lease_is_parse_error(self, engine):
        record = engine.parse_text("/ip dhcp-server lease\nadd address=10.0.0.5 server=dhcp1\n")
        assert record.dhcp_leases == []
        assert len(record.parse_errors) == 1

    def test_invalid_bgp_peer_is_parse_error(self, engine):
        record = engine.parse_text("/routing bgp connection\nadd as=65000 remote.address=bogus\n")
        assert record.bgp_peers == []
        assert len(record.parse_errors) == 1

    def test_disabled_service_ignored(self, engine):
        record = engine.parse_text("/ip service\nset telnet disabled=yes\n")
        assert "Services" not in record.vendor_extensions


class TestMikrotikConsole:
    def test_identity_and_interfaces(self, engine):
        record = engine.parse_text(SAMPLE_CONSOLE)
        assert record.device == "MikrotikBox"
        assert [i.name for i in record.interfaces] == ["ether1", "ether2"]
        assert not record.find_interface("ether1").shutdown
        assert record.find_interface("ether2").shutdown

    def test_resources(self, engine):
        record = engine.parse_text(SAMPLE_CONSOLE)
        assert record.resources.cpu == pytest.approx(97.0)
        assert record.resources.memory == pytest.approx(75.0)
        cpu = [f for f in record.findings if f.subcategory == "CPU Utilization"]
        assert len(cpu) == 1
        assert cpu[0].severity == "Critical"

    def test_prompt_sets_system_name(self, engine):
        record = engine.parse_text("[admin@MikroTik] /interface ethernet\n> ether1: disabled true\n")
        assert record.system_name == "MikroTik"
        assert record.find_interface("ether1").shutdown

    def test_property_lines(self, engine):
        text = (
            "ether3: disabled false\n"
            "> name: uplink\n"
            "> comment: to ISP\n"
            "> address: 203.0.113.2/30\n"
            "> vlan: 5000\n"
        )
        record = engine.parse_text(text)
        iface = record.find_interface("uplink")
        assert iface is not None
        assert record.find_interface("ether3") is None
        assert iface.description == "to ISP"
        assert iface.ip == "203.0.113.2"
        assert len(record.parse_errors) == 1

    def test_rates_follow_interface_after_merge(self, engine):
        text = (
            "ether1: disabled false\n"
            "ether2: disabled false\n"
            "> BW 1000000 Kbit\n"
            "> input rate: 500000000 bits/sec\n"
            "ether3: disabled false\n"
            "ether1: disabled false\n"
            "> name: ether3\n"
        )
        record = engine.parse_text(text)
        assert [i.name for i in record.interfaces] == ["ether2", "ether3"]
        assert record.find_interface("ether2").utilization_in == pytest.approx(50.0)
        assert record.find_interface("ether3").utilization_in is None

    def test_rates_carried_through_rename(self, engine):
        text = (
            "ether4: disabled false\n"
            "> BW 100000 Kbit\n"
            "> output rate: 25000000 bits/sec\n"
            "> name: wan\n"
        )
        record = engine.parse_text(text)
        assert record.find_interface("wan").utilization_out == pytest.approx(25.0)


class TestMikrotikScoring:
    def test_confidence(self, engine):
        assert engine.confidence_score(SAMPLE_CONSOLE) == 90
        assert engine.confidence_score(SAMPLE_EXPORT) == 85

    def test_can_parse(self, engine):
        assert engine.can_parse(SAMPLE_CONSOLE)
        assert engine.can_parse(SAMPLE_EXPORT)
        assert not engine.can_parse("hostname R1\n")

    def test_repeated_parse_identical(self, engine, tmp_path):
        path = tmp_path / "export.rsc"
        path.write_text(SAMPLE_EXPORT)
        first = engine.parse(path)
        second = engine.parse(path)
        assert [i.name for i in first.interfaces] == [i.name for i in second.interfaces]
        assert first.vlans == second.vlans
        assert first.findings == second.findings
