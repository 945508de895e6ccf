"""
Force-directed layout for topology graphs.

Fruchterman-Reingold style simulation, vectorized with numpy:

  - nodes start evenly spaced on a circle, with a small seeded jitter
  - every pair repels with k^2 / d, every edge attracts with d^2 / k,
    where k = sqrt(area / n)
  - displacement is applied with a small fixed step, scaled by a
    temperature that cools linearly to zero
  - final positions are clamped inside the canvas margins

Identical graphs and seeds always give identical coordinates.
"""

import math
from typing import Optional

import numpy as np

DEFAULT_WIDTH = 800.0
DEFAULT_HEIGHT = 600.0
DEFAULT_RADIUS = 200.0
DEFAULT_ITERATIONS = 300
DEFAULT_SEED = 0
STEP = 0.001
MARGIN = 20.0
JITTER = 1.0
DISTANCE_EPSILON = 0.01


class ForceLayout:
    """Deterministic force-directed layout."""

    def __init__(
        self,
        width: float = DEFAULT_WIDTH,
        height: float = DEFAULT_HEIGHT,
        radius: float = DEFAULT_RADIUS,
        iterations: int = DEFAULT_ITERATIONS,
        seed: int = DEFAULT_SEED,
        step: float = STEP,
        margin: float = MARGIN,
    ):
        self.width = width
        self.height = height
        self.radius = radius
        self.iterations = iterations
        self.seed = seed
        self.step = step
        self.margin = margin

    def initial_positions(self, n: int) -> np.ndarray:
        """Evenly spaced points on the layout circle, jittered by the seed."""
        rng = np.random.default_rng(self.seed)
        angles = 2 * math.pi * np.arange(n) / max(n, 1)
        pos = np.empty((n, 2))
        pos[:, 0] = self.width / 2 + self.radius * np.cos(angles)
        pos[:, 1] = self.height / 2 + self.radius * np.sin(angles)
        return pos + rng.uniform(-JITTER, JITTER, size=(n, 2))

    def run(self, n: int, edges: list[tuple[int, int]], pos: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Simulate ``iterations`` steps for ``n`` nodes.

        Args:
            n: Node count.
            edges: Node index pairs.
            pos: Optional (n, 2) starting positions.

        Returns:
            (n, 2) array of clamped coordinates.
        """
        if n == 0:
            return np.empty((0, 2))
        pos = self.initial_positions(n) if pos is None else np.array(pos, dtype=float)
        k = math.sqrt(self.width * self.height / n)
        t0 = max(self.width, self.height) / 10.0
        cooling = t0 / (self.iterations + 1)
        temperature = t0

        src = np.array([e[0] for e in edges], dtype=int)
        dst = np.array([e[1] for e in edges], dtype=int)

        for _ in range(self.iterations):
            delta = pos[:, None, :] - pos[None, :, :]
            dist = np.linalg.norm(delta, axis=2) + DISTANCE_EPSILON
            repulse = (k * k) / dist
            np.fill_diagonal(repulse, 0.0)
            disp = np.sum(delta / dist[:, :, None] * repulse[:, :, None], axis=1)

            if len(src):
                d = pos[src] - pos[dst]
                dlen = np.linalg.norm(d, axis=1) + DISTANCE_EPSILON
                pull = d / dlen[:, None] * (dlen * dlen / k)[:, None]
                np.add.at(disp, src, -pull)
                np.add.at(disp, dst, pull)

            pos += disp * self.step * (temperature / t0)
            temperature -= cooling

        pos[:, 0] = np.clip(pos[:, 0], self.margin, self.width - self.margin)
        pos[:, 1] = np.clip(pos[:, 1], self.margin, self.height - self.margin)
        return pos

    def apply(self, graph) -> None:
        """Lay out a TopologyGraph in place, writing each node's x / y."""
        nodes = graph.node_list()
        index = {node.id.lower(): i for i, node in enumerate(nodes)}
        edges = [(index[e.source.lower()], index[e.target.lower()]) for e in graph.edges]
        pos = self.run(len(nodes), edges)
        for node, (x, y) in zip(nodes, pos):
            node.x = float(x)
            node.y = float(y)
