"""
Visualization export for inferred topologies.

Exports to D3.js JSON (with the precomputed layout coordinates, so the
front end can render without re-simulating) and Mermaid diagram syntax.
Both take the NetworkX form of a topology, ``TopologyGraph.to_networkx()``.
"""

import json
from typing import Optional

import networkx as nx

_GROUPS = {"device": 1, "endpoint": 2, "hardware": 3}


class D3Exporter:
    """Export topology graphs to D3.js force-directed JSON format."""

    @staticmethod
    def to_d3_json(G: nx.Graph, node_scores: Optional[dict] = None) -> dict:
        """
        Convert graph to D3.js JSON.

        Returns dict with 'nodes' and 'links' arrays. ``node_scores`` maps a
        node id to its health score and is attached where present.
        """
        node_map = {n: i for i, n in enumerate(G.nodes())}

        nodes = []
        for node, data in G.nodes(data=True):
            kind = data.get("kind", "device")
            d = {
                "id": node,
                "index": node_map[node],
                "label": data.get("label", node),
                "kind": kind,
                "group": _GROUPS.get(kind, 0),
                "x": round(data.get("x", 0.0), 2),
                "y": round(data.get("y", 0.0), 2),
                "mass": data.get("mass", 1.0),
            }
            if data.get("origin"):
                d["origin"] = data["origin"]
            if node_scores and node in node_scores:
                d["health_score"] = node_scores[node]
            nodes.append(d)

        links = []
        for u, v, data in G.edges(data=True):
            links.append({
                "source": node_map[u],
                "target": node_map[v],
                "label": data.get("label", ""),
            })

        return {"nodes": nodes, "links": links}

    @staticmethod
    def save(filepath: str, G: nx.Graph, **kwargs):
        """Save D3.js JSON to file."""
        data = D3Exporter.to_d3_json(G, **kwargs)
        with open(filepath, "w") as f:
            json.dump(data, f, indent=2, default=str)


class MermaidExporter:
    """Export topology graphs to Mermaid diagram syntax."""

    @staticmethod
    def to_mermaid(G: nx.Graph, direction: str = "TB", title: str = "") -> str:
        """Convert graph to Mermaid flowchart syntax."""
        lines = [f"graph {direction}"]
        if title:
            lines.insert(0, f"---\ntitle: {title}\n---")

        safe: dict[str, str] = {}
        taken: set[str] = set()
        for node in G.nodes():
            name = _mermaid_safe(node)
            candidate, n = name, 2
            while candidate in taken:
                candidate = f"{name}_{n}"
                n += 1
            taken.add(candidate)
            safe[node] = candidate

        # Shape by kind: device box, endpoint rounded, hardware hexagon
        for node, data in G.nodes(data=True):
            name = safe[node]
            label = _mermaid_label(data.get("label", node))
            kind = data.get("kind", "device")
            if kind == "hardware":
                lines.append(f"    {name}{{{{\"{label}\"}}}}")
            elif kind == "endpoint":
                lines.append(f"    {name}(\"{label}\")")
            else:
                lines.append(f"    {name}[\"{label}\"]")

        for u, v, data in G.edges(data=True):
            label = _mermaid_label(data.get("label", ""))
            if label:
                lines.append(f"    {safe[u]} -- \"{label}\" --- {safe[v]}")
            else:
                lines.append(f"    {safe[u]} --- {safe[v]}")

        return "\n".join(lines)

    @staticmethod
    def save(filepath: str, G: nx.Graph, **kwargs):
        """Save Mermaid diagram to file."""
        content = MermaidExporter.to_mermaid(G, **kwargs)
        with open(filepath, "w") as f:
            f.write(content)


def _mermaid_label(text: str) -> str:
    return text.replace('"', "#quot;").replace("\n", "<br/>")


def _mermaid_safe(name: str) -> str:
    """Make a node name safe for Mermaid diagram syntax."""
    safe = name.replace("-", "_").replace(".", "_").replace("/", "_")
    safe = safe.replace(" ", "_").replace(":", "_")
    if not safe or safe[0].isdigit():
        safe = "n" + safe
    return safe
