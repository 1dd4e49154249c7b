"""Data models for the NodeFlow graph engine.

Uses Pydantic for the records that cross the API boundary (nodes, edges,
validation results, progress snapshots) and plain dataclasses for
run-scoped bookkeeping owned by the engine.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class NodeStatus(str, Enum):
    """Status of a node within one execution pass."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExecutorState(str, Enum):
    """Lifecycle state of a GraphExecutor."""

    IDLE = "idle"
    VALIDATING = "validating"
    SCHEDULING = "scheduling"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


class ErrorKind(str, Enum):
    """Structural problems reported by the graph validator."""

    GRAPH_EMPTY = "graph_empty"
    NODE_MISSING_ID = "node_missing_id"
    NODE_MISSING_TYPE = "node_missing_type"
    NODE_DUPLICATE_ID = "node_duplicate_id"
    EDGE_MISSING_SOURCE = "edge_missing_source"
    EDGE_MISSING_TARGET = "edge_missing_target"
    EDGE_SOURCE_NOT_FOUND = "edge_source_not_found"
    EDGE_TARGET_NOT_FOUND = "edge_target_not_found"
    EDGE_INVALID_SOURCE_PORT = "edge_invalid_source_port"
    EDGE_INVALID_TARGET_PORT = "edge_invalid_target_port"
    GRAPH_CYCLE_DETECTED = "graph_cycle_detected"


# --- Graph Models ---


class PortSpec(BaseModel):
    """A named input or output port declared by a node."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str | None = None
    data_type: str = "any"

    @model_validator(mode="before")
    @classmethod
    def accept_bare_name(cls, value: Any) -> Any:
        """Allow ports to be declared as plain strings."""
        if isinstance(value, str):
            return {"name": value}
        return value


class Node(BaseModel):
    """A unit of work in a workflow graph.

    ``data`` is opaque handler configuration; the engine never inspects it.
    ``inputs``/``outputs`` are optional port declarations used only for
    edge handle validation. ``None`` means "no port metadata".
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    type: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    inputs: list[PortSpec] | None = None
    outputs: list[PortSpec] | None = None
    timeout: float | None = Field(default=None, gt=0)  # Per-node override (seconds)

    @field_validator("id", "type", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        # Missing ids/types are reported by the validator, not rejected here
        return "" if v is None else v

    @model_validator(mode="before")
    @classmethod
    def lift_ports_from_data(cls, values: Any) -> Any:
        """React Flow keeps port declarations under ``data``; lift them."""
        if not isinstance(values, dict):
            return values
        data = values.get("data")
        if not isinstance(data, dict):
            return values
        lifted = dict(values)
        for key in ("inputs", "outputs"):
            if lifted.get(key) is None and isinstance(data.get(key), list):
                lifted[key] = data[key]
        return lifted

    def input_port_names(self) -> set[str] | None:
        if self.inputs is None:
            return None
        return {p.name for p in self.inputs}

    def output_port_names(self) -> set[str] | None:
        if self.outputs is None:
            return None
        return {p.name for p in self.outputs}


class Edge(BaseModel):
    """Directed dependency: ``target`` consumes the output of ``source``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = None
    source: str = ""
    target: str = ""
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")

    @field_validator("source", "target", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    def port_key(self) -> str:
        """Key under which this edge's value appears in the target's inputs."""
        return self.target_handle or self.source_handle or self.source

    def describe(self) -> str:
        return self.id or f"{self.source or '?'}->{self.target or '?'}"


def as_nodes(items: Iterable[Node | Mapping[str, Any]]) -> list[Node]:
    """Coerce serializable node records into Node models."""
    return [item if isinstance(item, Node) else Node.model_validate(item) for item in items]


def as_edges(items: Iterable[Edge | Mapping[str, Any]]) -> list[Edge]:
    """Coerce serializable edge records into Edge models."""
    return [item if isinstance(item, Edge) else Edge.model_validate(item) for item in items]


# --- Validation Models ---


class ValidationIssue(BaseModel):
    """A single structural error found by the validator."""

    kind: ErrorKind
    message: str
    node_id: str | None = None
    edge_id: str | None = None
    port: str | None = None
    cycle: list[str] | None = None  # Closed path (first id == last id), only for GRAPH_CYCLE_DETECTED

    def __str__(self) -> str:
        return self.message


class ValidationResult(BaseModel):
    """Outcome of validating a graph. Warnings never affect validity."""

    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def kinds(self) -> list[ErrorKind]:
        return [issue.kind for issue in self.errors]

    def find(self, kind: ErrorKind) -> ValidationIssue | None:
        return next((issue for issue in self.errors if issue.kind == kind), None)


# --- Execution Models ---


class HandlerResult(BaseModel):
    """What a node handler produces: opaque data plus optional metadata."""

    data: Any = None
    metadata: dict[str, Any] | None = None


class ExecutionProgress(BaseModel):
    """Point-in-time snapshot of a pass. Always a copy, never a live view."""

    current_node_id: str | None = None
    completed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    remaining: list[str] = Field(default_factory=list)
    total_nodes: int = 0

    @property
    def percent_complete(self) -> int:
        if self.total_nodes == 0:
            return 0
        return round(len(self.completed) / self.total_nodes * 100)


@dataclass
class NodeRecord:
    """Per-pass run record for one node, owned by the ExecutionContext."""

    node_id: str
    status: NodeStatus = NodeStatus.PENDING
    data: Any = None
    metadata: dict[str, Any] | None = None
    error: BaseException | None = None
    started_at: datetime | None = None
    timestamp: datetime | None = None  # When the terminal result was recorded

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.timestamp is None:
            return None
        return (self.timestamp - self.started_at).total_seconds()


@dataclass(frozen=True)
class SortedNode:
    """A node placed by the scheduler, with its dependency depth."""

    node: Node
    level: int
