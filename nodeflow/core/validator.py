"""Structural validation of workflow graphs.

Checks a node/edge set before any execution is attempted:
- Graph is non-empty (the only short-circuiting check)
- Nodes carry ids and types, ids are unique
- Edges have endpoints that exist, and handles that match declared ports
- The dependency graph is acyclic (DFS cycle search via NetworkX)

Validation is pure: problems are returned as data in a ValidationResult.
Disconnected nodes and the absence of any source node are warnings only.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import networkx as nx

from nodeflow.core.models import (
    Edge,
    ErrorKind,
    Node,
    ValidationIssue,
    ValidationResult,
    as_edges,
    as_nodes,
)

logger = logging.getLogger(__name__)


class GraphValidationError(Exception):
    """Graph failed structural validation; no node was executed."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = list(issues)
        summary = ", ".join(issue.message for issue in self.issues)
        super().__init__(f"Graph validation failed: {summary}")

    @property
    def kinds(self) -> list[ErrorKind]:
        return [issue.kind for issue in self.issues]


class GraphValidator:
    """Validate node/edge collections before execution."""

    def validate(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> ValidationResult:
        """Run every structural check and collect the results.

        Args:
            nodes: Node models or serializable node records
            edges: Edge models or serializable edge records

        Returns:
            ValidationResult; ``valid`` is True iff no errors were found.
        """
        nodes = as_nodes(nodes)
        edges = as_edges(edges)
        result = ValidationResult()

        if not nodes:
            result.errors.append(
                ValidationIssue(kind=ErrorKind.GRAPH_EMPTY, message="Graph is empty")
            )
            return result

        result.errors.extend(self._check_nodes(nodes))

        # First declaration wins for port lookups when ids are duplicated
        node_map: dict[str, Node] = {}
        for node in nodes:
            if node.id:
                node_map.setdefault(node.id, node)

        for edge in edges:
            result.errors.extend(self._check_edge(edge, node_map))

        cycle = self.find_cycle(nodes, edges)
        if cycle:
            result.errors.append(
                ValidationIssue(
                    kind=ErrorKind.GRAPH_CYCLE_DETECTED,
                    message=f"Graph contains a cycle: {' -> '.join(cycle)}",
                    cycle=cycle,
                )
            )

        disconnected = self.find_disconnected_nodes(nodes, edges)
        if disconnected:
            result.warnings.append(
                f"Found {len(disconnected)} disconnected nodes: {', '.join(disconnected)}"
            )

        targets = {edge.target for edge in edges}
        if not any(node.id not in targets for node in nodes):
            result.warnings.append("No source nodes found - graph may not execute properly")

        for warning in result.warnings:
            logger.warning(warning)
        if result.errors:
            logger.info(f"Graph validation found {len(result.errors)} error(s)")

        return result

    def can_execute(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> bool:
        return self.validate(nodes, edges).valid

    def _check_nodes(self, nodes: list[Node]) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        seen: set[str] = set()
        reported_duplicates: set[str] = set()

        for index, node in enumerate(nodes):
            if not node.id:
                issues.append(
                    ValidationIssue(
                        kind=ErrorKind.NODE_MISSING_ID,
                        message=f"Node at position {index} is missing an id",
                    )
                )
            if not node.type:
                issues.append(
                    ValidationIssue(
                        kind=ErrorKind.NODE_MISSING_TYPE,
                        message=f"Node '{node.id or index}' is missing a type",
                        node_id=node.id or None,
                    )
                )
            if node.id:
                if node.id in seen and node.id not in reported_duplicates:
                    issues.append(
                        ValidationIssue(
                            kind=ErrorKind.NODE_DUPLICATE_ID,
                            message=f"Duplicate node id: '{node.id}'",
                            node_id=node.id,
                        )
                    )
                    reported_duplicates.add(node.id)
                seen.add(node.id)

        return issues

    def _check_edge(self, edge: Edge, node_map: dict[str, Node]) -> list[ValidationIssue]:
        """Check one edge's endpoints and handles.

        A missing endpoint is reported once as missing, not also as not-found.
        Handles are only checked against nodes that declare ports.
        """
        issues: list[ValidationIssue] = []
        label = edge.describe()

        source = node_map.get(edge.source)
        target = node_map.get(edge.target)

        if not edge.source:
            issues.append(
                ValidationIssue(
                    kind=ErrorKind.EDGE_MISSING_SOURCE,
                    message=f"Edge {label} is missing a source",
                    edge_id=edge.id,
                )
            )
        elif source is None:
            issues.append(
                ValidationIssue(
                    kind=ErrorKind.EDGE_SOURCE_NOT_FOUND,
                    message=f"Edge {label}: source '{edge.source}' not found",
                    edge_id=edge.id,
                    node_id=edge.source,
                )
            )

        if not edge.target:
            issues.append(
                ValidationIssue(
                    kind=ErrorKind.EDGE_MISSING_TARGET,
                    message=f"Edge {label} is missing a target",
                    edge_id=edge.id,
                )
            )
        elif target is None:
            issues.append(
                ValidationIssue(
                    kind=ErrorKind.EDGE_TARGET_NOT_FOUND,
                    message=f"Edge {label}: target '{edge.target}' not found",
                    edge_id=edge.id,
                    node_id=edge.target,
                )
            )

        if edge.source_handle and source is not None:
            ports = source.output_port_names()
            if ports is not None and edge.source_handle not in ports:
                issues.append(
                    ValidationIssue(
                        kind=ErrorKind.EDGE_INVALID_SOURCE_PORT,
                        message=(
                            f"Edge {label}: node '{source.id}' has no output port "
                            f"'{edge.source_handle}'"
                        ),
                        edge_id=edge.id,
                        node_id=source.id,
                        port=edge.source_handle,
                    )
                )

        if edge.target_handle and target is not None:
            ports = target.input_port_names()
            if ports is not None and edge.target_handle not in ports:
                issues.append(
                    ValidationIssue(
                        kind=ErrorKind.EDGE_INVALID_TARGET_PORT,
                        message=(
                            f"Edge {label}: node '{target.id}' has no input port "
                            f"'{edge.target_handle}'"
                        ),
                        edge_id=edge.id,
                        node_id=target.id,
                        port=edge.target_handle,
                    )
                )

        return issues

    @staticmethod
    def _to_networkx(nodes: list[Node], edges: list[Edge]) -> nx.DiGraph:
        """Build a DiGraph of known nodes; dangling edges are left out."""
        G = nx.DiGraph()
        for node in nodes:
            if node.id:
                G.add_node(node.id)
        for edge in edges:
            if edge.source in G and edge.target in G:
                G.add_edge(edge.source, edge.target)
        return G

    def find_cycle(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> list[str] | None:
        """Return a cycle path (first id == last id) or None if acyclic.

        NetworkX explores from every node in declaration order using DFS,
        so the reported cycle is deterministic for a given input order.
        """
        G = self._to_networkx(as_nodes(nodes), as_edges(edges))
        try:
            cycle_edges = nx.find_cycle(G)
        except nx.NetworkXNoCycle:
            return None
        path = [u for u, _ in cycle_edges]
        path.append(cycle_edges[-1][1])
        return path

    def find_disconnected_nodes(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> list[str]:
        """Ids of nodes with neither incoming nor outgoing edges."""
        edges = as_edges(edges)
        connected = {edge.source for edge in edges} | {edge.target for edge in edges}
        return [node.id for node in as_nodes(nodes) if node.id not in connected]
