"""Rich terminal UI components for the nodeflow CLI."""

from nodeflow.cli_ui.graph_renderer import (
    ExecutionOrderRenderer,
    StatusTableRenderer,
    ValidationRenderer,
)

__all__ = [
    "ExecutionOrderRenderer",
    "StatusTableRenderer",
    "ValidationRenderer",
]
