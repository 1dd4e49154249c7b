"""Topological scheduling of workflow graphs.

Computes a dependency-respecting execution order with Kahn's algorithm and
tags each node with its depth level (longest dependency chain from a root).
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any

from nodeflow.core.models import Edge, Node, SortedNode, as_edges, as_nodes

logger = logging.getLogger(__name__)


class SchedulerError(Exception):
    """Error in topological scheduler."""

    pass


class CycleDetectedError(SchedulerError):
    """Graph contains a cycle; no complete execution order exists."""

    def __init__(self, node_ids: list[str]):
        self.node_ids = list(node_ids)
        super().__init__(
            f"Cycle detected: {len(self.node_ids)} node(s) could not be scheduled: "
            f"{', '.join(self.node_ids)}"
        )


class TopologicalScheduler:
    """Order nodes so every edge's source runs before its target.

    ORDERING:
    - Nodes with no incoming edges are seeded in node declaration order
    - Outgoing edges are relaxed in edge declaration order
    - Newly ready nodes join the back of a FIFO queue

    The order is therefore fully determined by the input order. Because the
    queue is FIFO, levels leave it in non-decreasing order, so the last
    predecessor to release a node is also its deepest one and
    ``level = that level + 1`` is the longest chain length from a root.
    """

    def sort(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> list[SortedNode]:
        """Sort nodes topologically.

        Args:
            nodes: Nodes to schedule. Duplicate ids keep the first declaration.
            edges: Dependencies. Edges touching unknown ids are ignored.

        Returns:
            Every node exactly once, each with its level.

        Raises:
            CycleDetectedError: If fewer nodes were emitted than exist.
        """
        node_map: dict[str, Node] = {}
        for node in as_nodes(nodes):
            node_map.setdefault(node.id, node)

        # Adjacency list: node -> nodes that depend on it
        dependents: dict[str, list[str]] = {node_id: [] for node_id in node_map}
        in_degree: dict[str, int] = {node_id: 0 for node_id in node_map}

        for edge in as_edges(edges):
            if edge.source not in node_map or edge.target not in node_map:
                logger.debug(f"Ignoring edge {edge.describe()} with unknown endpoint")
                continue
            dependents[edge.source].append(edge.target)
            in_degree[edge.target] += 1

        queue: deque[tuple[str, int]] = deque(
            (node_id, 0) for node_id, degree in in_degree.items() if degree == 0
        )
        result: list[SortedNode] = []

        while queue:
            node_id, level = queue.popleft()
            result.append(SortedNode(node=node_map[node_id], level=level))

            for dependent in dependents[node_id]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append((dependent, level + 1))

        if len(result) != len(node_map):
            # Remaining nodes with in_degree > 0 are on or behind a cycle
            stuck = [node_id for node_id, degree in in_degree.items() if degree > 0]
            raise CycleDetectedError(stuck)

        logger.debug(
            f"Scheduled {len(result)} nodes across "
            f"{(max(sn.level for sn in result) + 1) if result else 0} level(s)"
        )
        return result

    def execution_order(self, sorted_nodes: list[SortedNode]) -> list[str]:
        """Flatten a sort result to node ids."""
        return [sn.node.id for sn in sorted_nodes]

    def group_by_level(self, sorted_nodes: list[SortedNode]) -> dict[int, list[Node]]:
        """Group scheduled nodes by level, preserving order within a level."""
        levels: dict[int, list[Node]] = {}
        for sn in sorted_nodes:
            levels.setdefault(sn.level, []).append(sn.node)
        return levels
