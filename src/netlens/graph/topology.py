"""
Topology inference across many canonical records.

Devices are linked when one record's configuration points at another:

  - an interface description names another device
  - an interface address is owned by another device
  - a BGP peer address is owned by another device
  - an LLDP/CDP neighbor entry names another device

Optionally, addresses that belong to no known device become endpoint
nodes, and ARP / DHCP hardware addresses become hardware nodes.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import networkx as nx

from ..ingest.common import find_ipv4s, first_ipv4, is_routable_ipv4, unique
from ..models.record import CanonicalRecord
from .layout import ForceLayout

_LOGGER = logging.getLogger(__name__)

# Node kinds
DEVICE = "device"
ENDPOINT = "endpoint"
HARDWARE = "hardware"

DEVICE_MASS = 1.0
ENDPOINT_MASS = 0.5
HARDWARE_MASS = 0.4
COLLAPSE_THRESHOLD = 3


@dataclass
class GraphNode:
    id: str
    label: str = ""
    kind: str = DEVICE
    x: float = 0.0
    y: float = 0.0
    mass: float = DEVICE_MASS
    origin: str = ""


@dataclass
class GraphEdge:
    source: str
    target: str
    label: str = ""


class TopologyGraph:
    """
    Undirected node/edge graph keyed by case-insensitive node id.

    An edge between A and B exists at most once whatever its direction.
    """

    def __init__(self):
        self._nodes: dict[str, GraphNode] = {}
        self.edges: list[GraphEdge] = []
        self._edge_index: set[frozenset[str]] = set()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id.lower() in self._nodes

    def node(self, node_id: str) -> Optional[GraphNode]:
        return self._nodes.get(node_id.lower())

    def node_list(self) -> list[GraphNode]:
        return list(self._nodes.values())

    def add_node(
        self,
        node_id: str,
        kind: str = DEVICE,
        mass: float = DEVICE_MASS,
        origin: str = "",
        label: str = "",
    ) -> GraphNode:
        existing = self.node(node_id)
        if existing is not None:
            return existing
        node = GraphNode(node_id, label or node_id, kind, mass=mass, origin=origin)
        self._nodes[node_id.lower()] = node
        return node

    def add_edge(self, a: str, b: str, label: str = "") -> bool:
        """Add an undirected edge, creating missing endpoints as device nodes."""
        if not a.strip() or not b.strip() or a.lower() == b.lower():
            return False
        key = frozenset((a.lower(), b.lower()))
        if key in self._edge_index:
            return False
        self.add_node(a)
        self.add_node(b)
        self._edge_index.add(key)
        self.edges.append(GraphEdge(self.node(a).id, self.node(b).id, label))
        return True

    def has_edge(self, a: str, b: str) -> bool:
        return frozenset((a.lower(), b.lower())) in self._edge_index

    def neighbors(self, node_id: str) -> list[GraphNode]:
        key = node_id.lower()
        out = []
        for edge in self.edges:
            if edge.source.lower() == key:
                out.append(self.node(edge.target))
            elif edge.target.lower() == key:
                out.append(self.node(edge.source))
        return out

    def remove_node(self, node_id: str) -> None:
        key = node_id.lower()
        if self._nodes.pop(key, None) is None:
            return
        self.edges = [e for e in self.edges if key not in (e.source.lower(), e.target.lower())]
        self._edge_index = {k for k in self._edge_index if key not in k}

    def edge_keys(self) -> set[frozenset[str]]:
        return set(self._edge_index)

    def nodes_of_kind(self, kind: str) -> list[GraphNode]:
        return [n for n in self._nodes.values() if n.kind == kind]

    def to_networkx(self) -> nx.Graph:
        """Convert to a NetworkX graph carrying label, kind, position and mass."""
        G = nx.Graph()
        for n in self._nodes.values():
            G.add_node(n.id, label=n.label, kind=n.kind, x=n.x, y=n.y, mass=n.mass, origin=n.origin)
        for e in self.edges:
            G.add_edge(e.source, e.target, label=e.label)
        return G


def _host_address(ip: str) -> bool:
    return is_routable_ipv4(ip) and not ip.startswith("255.")


class TopologyBuilder:
    """
    Builds a TopologyGraph from a batch of records.

    Args:
        include_endpoints: Add nodes for addresses owned by no known device.
        include_hardware_addresses: Add nodes for ARP / DHCP hardware addresses.
        collapse_clusters: Fold leaf nodes of busy devices into a label count.
        layout: Layout to run once the graph is complete.
        collapse_threshold: Leaf count above which a device is collapsed.
    """

    def __init__(
        self,
        include_endpoints: bool = True,
        include_hardware_addresses: bool = True,
        collapse_clusters: bool = False,
        layout: Optional[ForceLayout] = None,
        collapse_threshold: int = COLLAPSE_THRESHOLD,
    ):
        self.include_endpoints = include_endpoints
        self.include_hardware_addresses = include_hardware_addresses
        self.collapse_clusters = collapse_clusters
        self.layout = layout or ForceLayout()
        self.collapse_threshold = collapse_threshold

    def build(self, records: Iterable[CanonicalRecord]) -> TopologyGraph:
        records = list(records)
        graph = TopologyGraph()
        ids = [r.identity or f"device-{i + 1}" for i, r in enumerate(records)]
        for device_id in ids:
            graph.add_node(device_id)

        owners: dict[str, str] = {}
        for record, device_id in zip(records, ids):
            for iface in record.interfaces:
                if iface.ip and iface.ip not in owners:
                    owners[iface.ip] = device_id

        for record, device_id in zip(records, ids):
            self._link_devices(graph, records, ids, record, device_id, owners)
            if self.include_endpoints:
                self._add_endpoints(graph, record, device_id, owners)
        if self.include_hardware_addresses:
            for record, device_id in zip(records, ids):
                self._add_hardware(graph, record, device_id)
        if self.collapse_clusters:
            self._collapse(graph)

        self.layout.apply(graph)
        _LOGGER.info(
            "Built topology: %d nodes, %d edges from %d records",
            len(graph), len(graph.edges), len(records),
        )
        return graph

    def _link_devices(self, graph, records, ids, record, device_id, owners):
        for iface in record.interfaces:
            if not iface.description:
                continue
            description = iface.description.lower()
            for other, other_id in zip(records, ids):
                if other is record or not other.identity:
                    continue
                if other.identity.lower() in description:
                    graph.add_edge(device_id, other_id, iface.name)

        for iface in record.interfaces:
            owner = owners.get(iface.ip) if iface.ip else None
            if owner and owner.lower() != device_id.lower():
                graph.add_edge(device_id, owner, f"{iface.name} / {iface.ip}")

        for peer in record.bgp_peers:
            ip = first_ipv4(peer)
            owner = owners.get(ip) if ip else None
            if owner and owner.lower() != device_id.lower():
                graph.add_edge(device_id, owner, "BGP")

        known = {i.lower(): i for i in ids}
        for neighbor in record.neighbors:
            other_id = known.get(neighbor.remote.lower())
            if other_id and other_id.lower() != device_id.lower():
                graph.add_edge(device_id, other_id, neighbor.protocol or "neighbor")

    def _add_endpoints(self, graph, record, device_id, owners):
        found = []
        for values in record.extension_strings().values():
            for value in values:
                found.extend(find_ipv4s(value))
        for iface in record.interfaces:
            if iface.description:
                found.extend(find_ipv4s(iface.description))
            if iface.ip:
                found.append(iface.ip)

        for ip in unique(found):
            if not _host_address(ip):
                continue
            owner = owners.get(ip)
            if owner is not None:
                if owner.lower() != device_id.lower():
                    graph.add_edge(device_id, owner, "connected")
                continue
            graph.add_node(ip, ENDPOINT, ENDPOINT_MASS, origin=device_id)
            graph.add_edge(device_id, ip, "connected")

    def _add_hardware(self, graph, record, device_id):
        bindings = [(a.ip, a.mac, "ARP", f"ARP from {a.interface}" if a.interface else "ARP") for a in record.arp_table]
        bindings += [(d.ip, d.mac, "DHCP", "DHCP lease") for d in record.dhcp_leases]
        for ip, mac, label, origin in bindings:
            if not mac:
                continue
            mac_id = mac.upper()
            graph.add_node(mac_id, HARDWARE, HARDWARE_MASS, origin=origin)
            graph.add_edge(device_id, mac_id, label)
            if ip and ip in graph:
                graph.add_edge(ip, mac_id, "MAC")

    def _collapse(self, graph: TopologyGraph) -> None:
        for device in graph.nodes_of_kind(DEVICE):
            if device.id not in graph:
                continue
            leaves = [n for n in graph.neighbors(device.id) if n.kind != DEVICE]
            if len(leaves) <= self.collapse_threshold:
                continue
            for leaf in leaves:
                graph.remove_node(leaf.id)
            device.label += f"\n[{len(leaves)} collapsed]"


def build_graph(
    records: Iterable[CanonicalRecord],
    include_endpoints: bool = True,
    include_hardware_addresses: bool = True,
    collapse_clusters: bool = False,
    layout: Optional[ForceLayout] = None,
) -> TopologyGraph:
    """Convenience: build a laid-out topology graph from records."""
    builder = TopologyBuilder(
        include_endpoints=include_endpoints,
        include_hardware_addresses=include_hardware_addresses,
        collapse_clusters=collapse_clusters,
        layout=layout,
    )
    return builder.build(records)
