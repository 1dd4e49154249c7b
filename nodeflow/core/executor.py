"""Graph execution engine.

The GraphExecutor orchestrates one pass over a graph:

    validate -> schedule -> create context -> dispatch nodes in order

Nodes run one at a time in topological order. The first node failure stops
the pass (fail-fast, no retries); abort is cooperative and checked between
nodes. Progress is reported through optional caller-supplied callbacks.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from nodeflow.core.config import EngineConfig
from nodeflow.core.context import ExecutionContext
from nodeflow.core.handlers import HandlerRegistry, invoke_handler, passthrough_result
from nodeflow.core.models import (
    Edge,
    ErrorKind,
    ExecutionProgress,
    ExecutorState,
    HandlerResult,
    Node,
    ValidationIssue,
    as_edges,
    as_nodes,
)
from nodeflow.core.scheduler import CycleDetectedError, TopologicalScheduler
from nodeflow.core.validator import GraphValidationError, GraphValidator

logger = logging.getLogger(__name__)


class ExecutionError(Exception):
    """Error raised by the graph executor."""

    pass


class AlreadyRunningError(ExecutionError):
    """A pass is already in flight on this executor instance."""

    pass


class NodeExecutionError(ExecutionError):
    """A node's handler failed; the pass was stopped."""

    def __init__(self, node_id: str, cause: BaseException, message: str | None = None):
        self.node_id = node_id
        self.cause = cause
        super().__init__(message or f"Node '{node_id}' failed: {cause}")


class CallbackError(ExecutionError):
    """A caller-supplied callback raised."""

    def __init__(self, callback_name: str, cause: BaseException):
        self.callback_name = callback_name
        self.cause = cause
        super().__init__(f"Callback '{callback_name}' failed: {cause}")


class NodeTimeoutError(NodeExecutionError):
    """A node's handler did not finish within its timeout."""

    def __init__(self, node_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            node_id,
            TimeoutError(f"timed out after {timeout}s"),
            message=f"Node '{node_id}' timed out after {timeout}s",
        )


@dataclass
class ExecutionCallbacks:
    """Optional progress hooks. Each may be a function or coroutine function.

    Firing order per node: on_node_execute, then on_node_complete or
    on_node_error, then on_progress.
    """

    on_progress: Callable[[ExecutionProgress], Any] | None = None
    on_node_execute: Callable[[str], Any] | None = None
    on_node_complete: Callable[[str, HandlerResult], Any] | None = None
    on_node_error: Callable[[str, BaseException], Any] | None = None
    on_complete: Callable[[dict[str, HandlerResult]], Any] | None = None
    on_error: Callable[[BaseException], Any] | None = None


@dataclass
class ExecutionResult:
    """Outcome of a pass that completed or was aborted."""

    execution_id: str
    status: ExecutorState
    outputs: dict[str, HandlerResult]
    progress: ExecutionProgress
    warnings: list[str] = field(default_factory=list)
    error: BaseException | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


async def _emit(callbacks: ExecutionCallbacks, name: str, *args: Any) -> None:
    """Fire one callback, awaiting it when it returns an awaitable.

    Raises:
        CallbackError: If the callback raises, chained to its exception
    """
    callback: Callable[..., Any] | None = getattr(callbacks, name)
    if callback is None:
        return
    try:
        value = callback(*args)
        if inspect.isawaitable(value):
            await value
    except Exception as e:
        raise CallbackError(name, e) from e


class GraphExecutor:
    """Run workflow graphs against a handler registry.

    One executor runs at most one pass at a time. Collaborators are injected;
    defaults are created per executor, never shared globally.

    Example:
        registry = HandlerRegistry()
        registry.register("source", lambda node, inputs, ctx: {"data": "x"})
        executor = GraphExecutor(registry)
        result = asyncio.run(executor.execute(nodes, edges))
    """

    def __init__(
        self,
        registry: HandlerRegistry | None = None,
        *,
        validator: GraphValidator | None = None,
        scheduler: TopologicalScheduler | None = None,
        config: EngineConfig | None = None,
    ):
        self.registry = registry if registry is not None else HandlerRegistry()
        self.validator = validator or GraphValidator()
        self.scheduler = scheduler or TopologicalScheduler()
        self.config = config or EngineConfig()
        self._state = ExecutorState.IDLE
        self._running = False
        self._abort_requested = False
        self._context: ExecutionContext | None = None
        self.last_result: ExecutionResult | None = None

    # ========== Lifecycle ==========

    @property
    def state(self) -> ExecutorState:
        return self._state

    @property
    def context(self) -> ExecutionContext | None:
        """Context of the current or most recent pass."""
        return self._context

    def is_running(self) -> bool:
        return self._running

    def abort(self) -> None:
        """Stop the running pass before its next node starts.

        Does not interrupt a handler that is already executing. No-op when
        idle.
        """
        if not self._running:
            return
        self._abort_requested = True
        if self._context is not None:
            self._context.abort()
        logger.warning("Abort requested for running graph execution")

    def reset(self) -> None:
        """Return to Idle, dropping the previous pass's context and result."""
        if self._running:
            raise AlreadyRunningError("Cannot reset while a graph execution is in progress")
        self._state = ExecutorState.IDLE
        self._context = None
        self._abort_requested = False
        self.last_result = None

    # ========== Execution ==========

    async def execute(
        self,
        nodes: Iterable[Node | Mapping[str, Any]],
        edges: Iterable[Edge | Mapping[str, Any]],
        callbacks: ExecutionCallbacks | None = None,
    ) -> ExecutionResult:
        """Validate, schedule and run a graph.

        Args:
            nodes: Node models or serializable node records
            edges: Edge models or serializable edge records
            callbacks: Optional progress hooks

        Returns:
            ExecutionResult with status COMPLETED or ABORTED.

        Raises:
            AlreadyRunningError: If this executor is already running a pass
            GraphValidationError: If validation or scheduling finds errors
            NodeExecutionError: If a node's handler fails or times out
            CallbackError: If a callback raises. Callbacks fired while
                reporting a failure (``on_node_error``, ``on_error``) are
                only logged when they raise.
        """
        if self._running:
            raise AlreadyRunningError("Graph execution already in progress")

        self._running = True
        self._abort_requested = False
        self._context = None
        self.last_result = None
        callbacks = callbacks or ExecutionCallbacks()
        started_at = datetime.now(timezone.utc)
        warnings: list[str] = []

        try:
            nodes = as_nodes(nodes)
            edges = as_edges(edges)
            execution_order, warnings = self._prepare(nodes, edges)
            return await self._run(nodes, edges, execution_order, warnings, callbacks, started_at)
        except Exception as e:
            self._state = ExecutorState.FAILED
            # A pass that got as far as running always leaves a FAILED result
            if self._context is not None and (
                self.last_result is None or self.last_result.status != ExecutorState.FAILED
            ):
                self.last_result = self._build_result(
                    self._context, ExecutorState.FAILED, warnings, started_at, error=e
                )
            try:
                await _emit(callbacks, "on_error", e)
            except CallbackError as callback_error:
                logger.error(f"{callback_error} while reporting execution failure")
            raise
        finally:
            self._running = False

    def _prepare(self, nodes: list[Node], edges: list[Edge]) -> tuple[list[str], list[str]]:
        """Validate and schedule. Returns the execution order and warnings."""
        self._state = ExecutorState.VALIDATING
        validation = self.validator.validate(nodes, edges)
        if not validation.valid:
            logger.error(f"Graph validation failed with {len(validation.errors)} error(s)")
            raise GraphValidationError(validation.errors)

        self._state = ExecutorState.SCHEDULING
        try:
            sorted_nodes = self.scheduler.sort(nodes, edges)
        except CycleDetectedError as e:
            # Scheduler is the final authority on acyclicity. Its error lists every
            # stuck node, the issue gets a closed path.
            raise GraphValidationError(
                [
                    ValidationIssue(
                        kind=ErrorKind.GRAPH_CYCLE_DETECTED,
                        message=str(e),
                        cycle=GraphValidator().find_cycle(nodes, edges),
                    )
                ]
            ) from e

        return self.scheduler.execution_order(sorted_nodes), list(validation.warnings)

    async def _run(
        self,
        nodes: list[Node],
        edges: list[Edge],
        execution_order: list[str],
        warnings: list[str],
        callbacks: ExecutionCallbacks,
        started_at: datetime,
    ) -> ExecutionResult:
        context = ExecutionContext(nodes, execution_order)
        self._context = context
        if self._abort_requested:
            context.abort()

        self._state = ExecutorState.RUNNING
        node_map = {node.id: node for node in nodes}
        logger.info(
            f"Starting execution {context.execution_id}: {len(execution_order)} nodes, "
            f"{len(edges)} edges"
        )

        for node_id in execution_order:
            if context.is_aborted():
                logger.warning(
                    f"Execution {context.execution_id} aborted before node '{node_id}'"
                )
                self._state = ExecutorState.ABORTED
                result = self._build_result(context, ExecutorState.ABORTED, warnings, started_at)
                self.last_result = result
                return result

            node = node_map[node_id]
            context.set_current_node(node_id)
            await _emit(callbacks, "on_node_execute", node_id)

            inputs = context.get_node_inputs(node_id, edges)
            try:
                output = await self._execute_node(node, inputs, context, warnings)
            except Exception as e:
                context.set_node_output(node_id, None, error=e)
                logger.error(f"Node {node_id} failed: {e}")
                self._state = ExecutorState.FAILED
                self.last_result = self._build_result(
                    context, ExecutorState.FAILED, warnings, started_at, error=e
                )

                try:
                    await _emit(callbacks, "on_node_error", node_id, e)
                    await _emit(callbacks, "on_progress", context.get_progress())
                except CallbackError as callback_error:
                    # The node failure is what execute() reports
                    logger.error(f"{callback_error} while reporting failure of node '{node_id}'")

                if isinstance(e, NodeExecutionError):
                    raise e
                raise NodeExecutionError(node_id, e) from e

            context.set_node_output(node_id, output.data, metadata=output.metadata)
            await _emit(callbacks, "on_node_complete", node_id, output)
            await _emit(callbacks, "on_progress", context.get_progress())

        self._state = ExecutorState.COMPLETED
        result = self._build_result(context, ExecutorState.COMPLETED, warnings, started_at)
        self.last_result = result
        logger.info(
            f"Execution {context.execution_id} completed: {len(result.outputs)} node outputs"
        )
        await _emit(callbacks, "on_complete", result.outputs)
        return result

    async def _execute_node(
        self,
        node: Node,
        inputs: dict[str, Any],
        context: ExecutionContext,
        warnings: list[str],
    ) -> HandlerResult:
        """Dispatch one node to its handler, or fall back to passthrough."""
        handler = self.registry.resolve(node.type)
        if handler is None:
            message = (
                f"No handler registered for node type '{node.type}' (node '{node.id}'); "
                "passing data through"
            )
            logger.warning(message)
            warnings.append(message)
            return passthrough_result(node, inputs)

        logger.debug(f"Executing node '{node.id}' ({node.type}) with inputs {sorted(inputs)}")
        timeout = node.timeout or self.config.node_timeout
        if timeout is None:
            return await invoke_handler(handler, node, inputs, context)

        try:
            return await asyncio.wait_for(invoke_handler(handler, node, inputs, context), timeout)
        except asyncio.TimeoutError:
            raise NodeTimeoutError(node.id, timeout) from None

    @staticmethod
    def _build_result(
        context: ExecutionContext,
        status: ExecutorState,
        warnings: list[str],
        started_at: datetime,
        error: BaseException | None = None,
    ) -> ExecutionResult:
        outputs = {
            node_id: HandlerResult(data=record.data, metadata=record.metadata)
            for node_id, record in context.get_all_outputs().items()
            if record.error is None
        }
        return ExecutionResult(
            execution_id=context.execution_id,
            status=status,
            outputs=outputs,
            progress=context.get_progress(),
            warnings=list(warnings),
            error=error,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
