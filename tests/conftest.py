# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the NodeFlow test suite.

This module provides foundational fixtures used across all test modules:
- Handler registries and executors
- Sample graphs (linear chain, diamond, fan-in, cycle)
- A callback recorder that captures executor events in order
- Graph documents written to temporary files

Usage:
    Import fixtures implicitly via pytest's fixture discovery.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from nodeflow.core.executor import ExecutionCallbacks, GraphExecutor
from nodeflow.core.handlers import HandlerRegistry
from nodeflow.core.models import Edge, Node


# =============================================================================
# Graph Fixtures
# =============================================================================


def build_nodes(*ids: str, node_type: str = "step") -> list[Node]:
    """Build nodes from ids, optionally typed as ``id:type``."""
    nodes = []
    for item in ids:
        node_id, _, explicit_type = item.partition(":")
        nodes.append(Node(id=node_id, type=explicit_type or node_type))
    return nodes


def build_edges(*pairs: str) -> list[Edge]:
    """Build edges from ``"A->B"`` strings."""
    edges = []
    for pair in pairs:
        source, target = pair.split("->")
        edges.append(Edge(source=source.strip(), target=target.strip()))
    return edges


@pytest.fixture
def make_nodes():
    """Factory fixture building nodes from ids.

    Example:
        nodes = make_nodes("A", "B:transform")  # B gets type "transform"
    """
    return build_nodes


@pytest.fixture
def make_edges():
    """Factory fixture building edges from ``"A->B"`` strings.

    Example:
        edges = make_edges("A->B", "B->C")
    """
    return build_edges


@pytest.fixture
def linear_graph() -> tuple[list[Node], list[Edge]]:
    """A -> B -> C"""
    return build_nodes("A", "B", "C"), build_edges("A->B", "B->C")


@pytest.fixture
def diamond_graph() -> tuple[list[Node], list[Edge]]:
    """A -> B, A -> C, B -> D, C -> D"""
    return build_nodes("A", "B", "C", "D"), build_edges("A->B", "A->C", "B->D", "C->D")


@pytest.fixture
def fan_in_graph() -> tuple[list[Node], list[Edge]]:
    """A -> C, B -> C (no edge between A and B)"""
    return build_nodes("A", "B", "C"), build_edges("A->C", "B->C")


@pytest.fixture
def cyclic_graph() -> tuple[list[Node], list[Edge]]:
    """A -> B -> A"""
    return build_nodes("A", "B"), build_edges("A->B", "B->A")


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def registry() -> HandlerRegistry:
    """Registry with an echo handler for type ``step``.

    ``step`` nodes emit ``{"id": node.id, "inputs": inputs}``, which makes
    data propagation easy to assert.
    """
    reg = HandlerRegistry()

    @reg.handler("step")
    def step(node, inputs, context):
        return {"data": {"id": node.id, "inputs": dict(inputs)}}

    return reg


@pytest.fixture
def executor(registry: HandlerRegistry) -> GraphExecutor:
    return GraphExecutor(registry)


class CallbackRecorder:
    """Record executor callback events as (event, *args) tuples in order."""

    def __init__(self):
        self.events: list[tuple[Any, ...]] = []

    def callbacks(self, **overrides: Any) -> ExecutionCallbacks:
        hooks = {
            "on_progress": lambda progress: self.events.append(("progress", progress)),
            "on_node_execute": lambda node_id: self.events.append(("execute", node_id)),
            "on_node_complete": lambda node_id, output: self.events.append(
                ("complete", node_id, output)
            ),
            "on_node_error": lambda node_id, error: self.events.append(
                ("node_error", node_id, error)
            ),
            "on_complete": lambda outputs: self.events.append(("done", outputs)),
            "on_error": lambda error: self.events.append(("error", error)),
        }
        hooks.update(overrides)
        return ExecutionCallbacks(**hooks)

    def names(self) -> list[str]:
        return [event[0] for event in self.events]

    def of(self, name: str) -> list[tuple[Any, ...]]:
        return [event for event in self.events if event[0] == name]

    def node_ids(self, name: str) -> list[str]:
        return [event[1] for event in self.of(name)]


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()


# =============================================================================
# File Fixtures
# =============================================================================


@pytest.fixture
def write_graph(tmp_path: Path):
    """Factory that writes a graph document to a YAML file and returns its path."""

    def _write(document: dict[str, Any], name: str = "graph.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(document, sort_keys=False))
        return path

    return _write


@pytest.fixture
def pipeline_document() -> dict[str, Any]:
    """input -> transform(upper) -> output, using built-in node types."""
    return {
        "name": "shout",
        "nodes": [
            {"id": "source", "type": "input", "data": {"value": "hello"}},
            {"id": "shout", "type": "transform", "data": {"operation": "upper"}},
            {"id": "sink", "type": "output"},
        ],
        "edges": [
            {"source": "source", "target": "shout"},
            {"source": "shout", "target": "sink"},
        ],
    }
