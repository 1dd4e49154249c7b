"""Run-scoped state for a single execution pass.

The ExecutionContext owns per-node run records, progress counters and the
abort flag for exactly one pass over a fixed node set and execution order.
It is created fresh by the executor for every pass and never shared between
concurrent passes.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from nodeflow.core.models import (
    Edge,
    ExecutionProgress,
    Node,
    NodeRecord,
    NodeStatus,
    as_edges,
)

logger = logging.getLogger(__name__)


class ContextError(Exception):
    """Invalid use of an ExecutionContext."""

    pass


class UnknownNodeError(ContextError):
    """Node id is not part of this pass."""

    pass


class OutputAlreadyRecordedError(ContextError):
    """A terminal result was already recorded for this node in this pass."""

    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionContext:
    """Mutable bookkeeping for one execution pass.

    Thread-safety: progress may be read from a UI thread while the executor
    writes, so all state changes happen under ``_lock``. ``abort()`` may be
    called from any thread.
    """

    def __init__(
        self,
        nodes: Iterable[Node],
        execution_order: list[str],
        execution_id: str | None = None,
    ):
        self.nodes = list(nodes)
        self.execution_order = list(execution_order)
        self.execution_id = execution_id or str(uuid.uuid4())
        self._lock = threading.RLock()
        self._aborted = threading.Event()
        self._reset_state()

    def _reset_state(self) -> None:
        self._records: dict[str, NodeRecord] = {
            node_id: NodeRecord(node_id=node_id) for node_id in self.execution_order
        }
        self._current_node_id: str | None = None
        self._completed: list[str] = []
        self._failed: list[str] = []
        self._remaining: list[str] = list(self.execution_order)
        self._finished: list[str] = []

    def _record(self, node_id: str) -> NodeRecord:
        try:
            return self._records[node_id]
        except KeyError:
            raise UnknownNodeError(
                f"Node '{node_id}' is not part of execution {self.execution_id}"
            ) from None

    # ========== Outputs ==========

    def get_node_output(self, node_id: str) -> NodeRecord | None:
        """Copy of the run record for a node, or None if nothing was recorded."""
        with self._lock:
            record = self._records.get(node_id)
            if record is None or record.status not in (NodeStatus.COMPLETED, NodeStatus.FAILED):
                return None
            return dataclasses.replace(record)

    def set_node_output(
        self,
        node_id: str,
        data: Any,
        error: BaseException | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record a node's terminal result. Allowed once per node per pass.

        Raises:
            UnknownNodeError: If the node is not in the execution order
            OutputAlreadyRecordedError: If a result was already recorded
        """
        with self._lock:
            record = self._record(node_id)
            if record.status in (NodeStatus.COMPLETED, NodeStatus.FAILED):
                raise OutputAlreadyRecordedError(
                    f"Node '{node_id}' already has a {record.status.value} result "
                    f"in execution {self.execution_id}"
                )

            record.data = data
            record.metadata = metadata
            record.error = error
            record.timestamp = _now()
            if error is not None:
                record.status = NodeStatus.FAILED
                self._failed.append(node_id)
            else:
                record.status = NodeStatus.COMPLETED
                self._completed.append(node_id)

            self._finished.append(node_id)
            if node_id in self._remaining:
                self._remaining.remove(node_id)

    def get_node_inputs(
        self,
        node_id: str,
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> dict[str, Any]:
        """Resolve a node's inputs from the outputs of its upstream nodes.

        Port key is ``target_handle``, else ``source_handle``, else the source
        node id. A failed or not-yet-run source contributes no entry at all.
        When several edges resolve to the same key, the later edge wins.
        """
        inputs: dict[str, Any] = {}
        with self._lock:
            for edge in as_edges(edges):
                if edge.target != node_id:
                    continue
                record = self._records.get(edge.source)
                if record is None or record.status != NodeStatus.COMPLETED:
                    continue
                key = edge.port_key()
                if key in inputs:
                    logger.debug(f"Input '{key}' of node '{node_id}' overwritten by {edge.describe()}")
                inputs[key] = record.data
        return inputs

    def get_all_outputs(self) -> dict[str, NodeRecord]:
        """Copy of every terminal record, in the order results were recorded."""
        with self._lock:
            return {nid: dataclasses.replace(self._records[nid]) for nid in self._finished}

    def get_node_status(self, node_id: str) -> NodeStatus:
        with self._lock:
            return self._record(node_id).status

    # ========== Progress ==========

    def set_current_node(self, node_id: str) -> None:
        """Mark a node as the one currently executing."""
        with self._lock:
            record = self._record(node_id)
            record.status = NodeStatus.RUNNING
            record.started_at = _now()
            self._current_node_id = node_id

    def get_progress(self) -> ExecutionProgress:
        """Snapshot of progress; mutating it does not affect the context."""
        with self._lock:
            return ExecutionProgress(
                current_node_id=self._current_node_id,
                completed=list(self._completed),
                failed=list(self._failed),
                remaining=list(self._remaining),
                total_nodes=len(self.nodes),
            )

    # ========== Cancellation ==========

    def abort(self) -> None:
        """Request cooperative cancellation before the next node starts."""
        self._aborted.set()

    def is_aborted(self) -> bool:
        return self._aborted.is_set()

    def clear(self) -> None:
        """Reset all per-pass state, including the abort flag."""
        with self._lock:
            self._reset_state()
            self._aborted.clear()
