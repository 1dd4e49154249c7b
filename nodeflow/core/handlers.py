"""Node handler contract and registry.

A handler is any object with an ``execute(node, inputs, context)`` method that
returns (or resolves to) a HandlerResult. Handlers are looked up by node type
through an explicit HandlerRegistry instance; there is no global registry.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from nodeflow.core.models import HandlerResult, Node

if TYPE_CHECKING:
    from nodeflow.core.context import ExecutionContext

logger = logging.getLogger(__name__)


HandlerFunc = Callable[[Node, dict[str, Any], "ExecutionContext"], Any]


class HandlerRegistrationError(Exception):
    """Invalid or conflicting handler registration."""

    pass


@runtime_checkable
class NodeHandler(Protocol):
    """Capability interface every handler implements.

    ``execute`` may be a plain method or a coroutine; it may raise to signal
    node failure. The return value is normalized with ``coerce_result``.
    """

    def execute(
        self,
        node: Node,
        inputs: dict[str, Any],
        context: ExecutionContext,
    ) -> HandlerResult | Awaitable[HandlerResult] | Any: ...


class FunctionHandler:
    """Adapt a plain (sync or async) function to the handler interface."""

    def __init__(self, func: HandlerFunc, name: str | None = None):
        self.func = func
        self.name = name or getattr(func, "__name__", "handler")

    def execute(self, node: Node, inputs: dict[str, Any], context: ExecutionContext) -> Any:
        return self.func(node, inputs, context)

    def __repr__(self) -> str:
        return f"FunctionHandler({self.name})"


def coerce_result(value: Any) -> HandlerResult:
    """Normalize a handler's return value into a HandlerResult.

    - HandlerResult instances pass through
    - Mappings shaped like ``{"data": ..., "metadata": ...}`` are parsed
    - Anything else becomes ``HandlerResult(data=value)``
    """
    if isinstance(value, HandlerResult):
        return value
    if isinstance(value, Mapping) and "data" in value and set(value) <= {"data", "metadata"}:
        return HandlerResult.model_validate(dict(value))
    return HandlerResult(data=value)


async def invoke_handler(
    handler: NodeHandler,
    node: Node,
    inputs: dict[str, Any],
    context: ExecutionContext,
) -> HandlerResult:
    """Call a handler and await it when it returns an awaitable."""
    value = handler.execute(node, inputs, context)
    if inspect.isawaitable(value):
        value = await value
    return coerce_result(value)


def passthrough_result(node: Node, inputs: Mapping[str, Any]) -> HandlerResult:
    """Fallback output for nodes whose type has no registered handler."""
    return HandlerResult(
        data={
            "node_id": node.id,
            "type": node.type,
            "config": dict(node.data),
            "inputs": dict(inputs),
        },
        metadata={"passthrough": True},
    )


class HandlerRegistry:
    """Maps node type tags to handlers.

    Read-only during execution; one registry may be shared by several
    executors and passes.
    """

    def __init__(self, handlers: Mapping[str, NodeHandler | HandlerFunc] | None = None):
        self._handlers: dict[str, NodeHandler] = {}
        for node_type, handler in (handlers or {}).items():
            self.register(node_type, handler)

    def register(
        self,
        node_type: str,
        handler: NodeHandler | HandlerFunc,
        *,
        replace: bool = False,
    ) -> NodeHandler:
        """Register a handler (or plain function) for a node type.

        Raises:
            HandlerRegistrationError: On empty type, a non-handler value, a
                handler class instead of an instance, or an existing
                registration when ``replace`` is False.
        """
        if not node_type:
            raise HandlerRegistrationError("Node type must be a non-empty string")
        if node_type in self._handlers and not replace:
            raise HandlerRegistrationError(
                f"Handler already registered for node type '{node_type}'"
            )

        if inspect.isclass(handler):
            raise HandlerRegistrationError(
                f"Handler for '{node_type}' must be an instance, got class {handler.__name__}"
            )
        if isinstance(handler, NodeHandler):
            resolved = handler
        elif callable(handler):
            resolved = FunctionHandler(handler)
        else:
            raise HandlerRegistrationError(
                f"Handler for '{node_type}' must define execute() or be callable, "
                f"got {type(handler).__name__}"
            )

        self._handlers[node_type] = resolved
        logger.debug(f"Registered handler {resolved!r} for node type '{node_type}'")
        return resolved

    def handler(self, node_type: str, *, replace: bool = False):
        """Decorator form of ``register`` for handler functions.

        Example:
            @registry.handler("uppercase")
            def uppercase(node, inputs, context):
                return {"data": str(inputs.get("text", "")).upper()}
        """

        def decorator(func: HandlerFunc) -> HandlerFunc:
            self.register(node_type, func, replace=replace)
            return func

        return decorator

    def unregister(self, node_type: str) -> None:
        self._handlers.pop(node_type, None)

    def resolve(self, node_type: str) -> NodeHandler | None:
        """Return the handler for ``node_type``, or None when unregistered."""
        return self._handlers.get(node_type)

    def types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[str]:
        return iter(self.types())
