"""Execution store: observable run state for a front end.

Wraps a GraphExecutor and keeps the state a UI needs between renders -
per-node status, a log of what happened, the latest progress snapshot and
the final results - driven entirely through the executor's callbacks.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from nodeflow.core.executor import (
    AlreadyRunningError,
    ExecutionCallbacks,
    ExecutionError,
    GraphExecutor,
)
from nodeflow.core.models import (
    Edge,
    ExecutionProgress,
    ExecutorState,
    HandlerResult,
    Node,
    NodeStatus,
    as_nodes,
)
from nodeflow.core.scheduler import SchedulerError
from nodeflow.core.validator import GraphValidationError

logger = logging.getLogger(__name__)

LogLevel = Literal["info", "warn", "error"]
StoreStatus = Literal["idle", "running", "completed", "error", "aborted"]

_LOG_LEVELS = {"info": logging.INFO, "warn": logging.WARNING, "error": logging.ERROR}


@dataclass
class ExecutionLog:
    """One entry in the store's execution log."""

    level: LogLevel
    message: str
    node_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class NodeExecutionState:
    """What the UI shows for one node."""

    status: NodeStatus = NodeStatus.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    output: HandlerResult | None = None
    error: str | None = None


class ExecutionStore:
    """Track the state of graph executions for display."""

    def __init__(self, executor: GraphExecutor):
        self.executor = executor
        self.is_running = False
        self.progress: ExecutionProgress | None = None
        self.node_states: dict[str, NodeExecutionState] = {}
        self.logs: list[ExecutionLog] = []
        self.results: dict[str, HandlerResult] | None = None
        self.error: str | None = None
        self.aborted = False

    async def execute_graph(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
    ) -> None:
        """Run a graph, recording its progress and outcome in this store.

        Pass failures are recorded in ``error`` and the log rather than
        raised. A call while a pass is running is ignored with a warning.
        """
        if self.is_running or self.executor.is_running():
            self.add_log("warn", "Execution already in progress")
            return

        nodes = as_nodes(nodes)
        self._reset_run_state()
        self.is_running = True
        self.node_states = {node.id: NodeExecutionState() for node in nodes}
        self.add_log("info", f"Starting execution of {len(nodes)} nodes")

        try:
            result = await self.executor.execute(nodes, edges, self.callbacks())
            if result.status == ExecutorState.ABORTED:
                self.aborted = True
                self.add_log("warn", "Execution aborted before completion")
            for warning in result.warnings:
                self.add_log("warn", warning)
        except AlreadyRunningError as e:
            self.add_log("warn", str(e))
        except (ExecutionError, GraphValidationError, SchedulerError) as e:
            self.error = str(e)
            self.add_log("error", f"Execution error: {e}")
        finally:
            self.is_running = False

    def callbacks(self) -> ExecutionCallbacks:
        """Callbacks that feed executor events into this store."""
        return ExecutionCallbacks(
            on_progress=self._on_progress,
            on_node_execute=self._on_node_execute,
            on_node_complete=self._on_node_complete,
            on_node_error=self._on_node_error,
            on_complete=self._on_complete,
            on_error=self._on_error,
        )

    def _on_progress(self, progress: ExecutionProgress) -> None:
        self.progress = progress

    def _on_node_execute(self, node_id: str) -> None:
        self._update_node_state(
            node_id, status=NodeStatus.RUNNING, started_at=datetime.now(timezone.utc)
        )
        self.add_log("info", f"Executing node: {node_id}", node_id)

    def _on_node_complete(self, node_id: str, output: HandlerResult) -> None:
        self._update_node_state(
            node_id,
            status=NodeStatus.COMPLETED,
            finished_at=datetime.now(timezone.utc),
            output=output,
        )
        self.add_log("info", f"Node completed: {node_id}", node_id)

    def _on_node_error(self, node_id: str, error: BaseException) -> None:
        self._update_node_state(
            node_id,
            status=NodeStatus.FAILED,
            finished_at=datetime.now(timezone.utc),
            error=str(error),
        )
        self.add_log("error", f"Node error: {error}", node_id)

    def _on_complete(self, outputs: dict[str, HandlerResult]) -> None:
        self.results = dict(outputs)
        self.add_log("info", "Execution completed successfully")

    def _on_error(self, error: BaseException) -> None:
        self.error = str(error)
        self.add_log("error", f"Execution failed: {error}")

    def _update_node_state(self, node_id: str, **changes: Any) -> None:
        state = self.node_states.setdefault(node_id, NodeExecutionState())
        for key, value in changes.items():
            setattr(state, key, value)

    def abort_execution(self) -> None:
        """Ask the executor to stop before its next node."""
        if not self.is_running:
            return
        self.executor.abort()
        self.add_log("warn", "Execution aborted by user")

    def add_log(self, level: LogLevel, message: str, node_id: str | None = None) -> None:
        self.logs.append(ExecutionLog(level=level, message=message, node_id=node_id))
        logger.log(_LOG_LEVELS[level], message)

    def clear_logs(self) -> None:
        self.logs = []

    def get_node_state(self, node_id: str) -> NodeExecutionState | None:
        return self.node_states.get(node_id)

    def status(self) -> StoreStatus:
        if self.error:
            return "error"
        if self.is_running:
            return "running"
        if self.aborted:
            return "aborted"
        if self.results is not None:
            return "completed"
        return "idle"

    def completion_percentage(self) -> int:
        if self.progress is None:
            return 0
        return self.progress.percent_complete

    def _reset_run_state(self) -> None:
        self.progress = None
        self.node_states = {}
        self.logs = []
        self.results = None
        self.error = None
        self.aborted = False

    def reset(self) -> None:
        """Forget everything about previous runs."""
        if self.is_running:
            raise AlreadyRunningError("Cannot reset the store while an execution is running")
        self._reset_run_state()
        self.executor.reset()
