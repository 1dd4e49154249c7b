"""Built-in handlers for the generic node types.

These cover the pure, side-effect free node types every editor ships with:
- input: emits the configured ``value``
- transform: applies a whitelisted text/data operation to its single input
- output: collects its input(s) as the workflow result
- merge: shallow-merges mapping inputs

Integrations with external services (HTTP, storage, messaging) are supplied
by the host application as additional handlers.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from nodeflow.core.handlers import HandlerRegistry
from nodeflow.core.models import HandlerResult, Node

if TYPE_CHECKING:
    from nodeflow.core.context import ExecutionContext


class BuiltinHandlerError(ValueError):
    """Built-in handler received configuration or inputs it cannot process."""

    pass


# SECURITY: Only named operations, no expression evaluation
TRANSFORM_OPERATIONS: dict[str, Callable[[Any], Any]] = {
    "identity": lambda value: value,
    "upper": lambda value: str(value).upper(),
    "lower": lambda value: str(value).lower(),
    "strip": lambda value: str(value).strip(),
    "length": lambda value: len(value),
}


def _single_input(node: Node, inputs: dict[str, Any]) -> Any:
    if len(inputs) != 1:
        raise BuiltinHandlerError(
            f"Node '{node.id}' ({node.type}) expects exactly one input, got {len(inputs)}"
        )
    return next(iter(inputs.values()))


def input_handler(node: Node, inputs: dict[str, Any], context: ExecutionContext) -> HandlerResult:
    return HandlerResult(data=node.data.get("value"))


def transform_handler(
    node: Node, inputs: dict[str, Any], context: ExecutionContext
) -> HandlerResult:
    operation = node.data.get("operation", "identity")
    func = TRANSFORM_OPERATIONS.get(operation)
    if func is None:
        raise BuiltinHandlerError(
            f"Unknown transform operation '{operation}'. "
            f"Available: {sorted(TRANSFORM_OPERATIONS)}"
        )
    value = _single_input(node, inputs)
    try:
        result = func(value)
    except TypeError as e:
        raise BuiltinHandlerError(
            f"Transform '{operation}' failed on node '{node.id}': {e}"
        ) from e
    return HandlerResult(data=result, metadata={"operation": operation})


def output_handler(node: Node, inputs: dict[str, Any], context: ExecutionContext) -> HandlerResult:
    if len(inputs) == 1:
        return HandlerResult(data=next(iter(inputs.values())))
    return HandlerResult(data=dict(inputs))


def merge_handler(node: Node, inputs: dict[str, Any], context: ExecutionContext) -> HandlerResult:
    merged: dict[str, Any] = {}
    for key in sorted(inputs):
        value = inputs[key]
        if not isinstance(value, dict):
            raise BuiltinHandlerError(
                f"Merge node '{node.id}' input '{key}' is {type(value).__name__}, expected a mapping"
            )
        merged.update(value)
    return HandlerResult(data=merged, metadata={"sources": sorted(inputs)})


BUILTIN_HANDLERS = {
    "input": input_handler,
    "transform": transform_handler,
    "output": output_handler,
    "merge": merge_handler,
}


def register_builtin_handlers(registry: HandlerRegistry, *, replace: bool = False) -> HandlerRegistry:
    """Install the built-in handlers into ``registry`` and return it."""
    for node_type, func in BUILTIN_HANDLERS.items():
        registry.register(node_type, func, replace=replace)
    return registry
