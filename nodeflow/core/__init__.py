"""Core modules for the NodeFlow graph engine."""

from nodeflow.core.context import ExecutionContext
from nodeflow.core.executor import (
    AlreadyRunningError,
    CallbackError,
    ExecutionCallbacks,
    ExecutionResult,
    GraphExecutor,
    NodeExecutionError,
    NodeTimeoutError,
)
from nodeflow.core.handlers import HandlerRegistry, NodeHandler
from nodeflow.core.models import (
    Edge,
    ErrorKind,
    ExecutionProgress,
    ExecutorState,
    HandlerResult,
    Node,
    NodeStatus,
    ValidationResult,
)
from nodeflow.core.scheduler import CycleDetectedError, TopologicalScheduler
from nodeflow.core.validator import GraphValidationError, GraphValidator

__all__ = [
    "AlreadyRunningError",
    "CallbackError",
    "CycleDetectedError",
    "Edge",
    "ErrorKind",
    "ExecutionCallbacks",
    "ExecutionContext",
    "ExecutionProgress",
    "ExecutionResult",
    "ExecutorState",
    "GraphExecutor",
    "GraphValidationError",
    "GraphValidator",
    "HandlerRegistry",
    "HandlerResult",
    "Node",
    "NodeExecutionError",
    "NodeHandler",
    "NodeStatus",
    "NodeTimeoutError",
    "TopologicalScheduler",
    "ValidationResult",
]
