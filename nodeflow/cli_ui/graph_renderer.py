"""Terminal rendering of graphs and execution status using Rich."""

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from nodeflow.core.models import HandlerResult, Node, NodeStatus, SortedNode, ValidationResult


def _normalize_status(status: NodeStatus | str | None) -> str:
    """Normalize status to string for consistent lookup."""
    if isinstance(status, NodeStatus):
        return status.value
    return str(status) if status else "pending"


def _truncate(text: str, width: int = 40) -> str:
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


class ExecutionOrderRenderer:
    """Renders a scheduled graph as a table or a level tree.

    SECURITY: Node ids and types come from user files; all of them are
    escaped to prevent Rich markup injection.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_order_table(self, sorted_nodes: list[SortedNode]) -> Table:
        table = Table(title="Execution Order")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Node", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Level", justify="right")

        for index, sn in enumerate(sorted_nodes, start=1):
            table.add_row(
                str(index), escape(sn.node.id), escape(sn.node.type), str(sn.level)
            )
        return table

    def render_levels(self, levels: dict[int, list[Node]], title: str = "Graph") -> Tree:
        tree = Tree(f"[bold]{escape(title)}[/]")
        for level in sorted(levels):
            branch = tree.add(f"[yellow]Level {level}[/]")
            for node in levels[level]:
                branch.add(f"[cyan]{escape(node.id)}[/] [dim]({escape(node.type)})[/]")
        return tree


class ValidationRenderer:
    """Prints validation errors and warnings."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def print_result(self, result: ValidationResult) -> None:
        if result.valid:
            self.console.print("[green]Graph validation passed[/green]")
        else:
            self.console.print("[red]Validation errors:[/red]")
            for issue in result.errors:
                kind = escape(f"[{issue.kind.value}]")
                self.console.print(f"  - {kind} {escape(issue.message)}")
        for warning in result.warnings:
            self.console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")


class StatusTableRenderer:
    """Renders node execution status as a Rich table."""

    STATUS_TEXT = {
        "completed": "[green]✓ Completed[/]",
        "failed": "[red]✗ Failed[/]",
        "running": "[blue]⟳ Running[/]",
        "pending": "[dim]○ Pending[/]",
    }

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_status_table(
        self,
        nodes: list[Node],
        execution_id: str,
        statuses: dict[str, NodeStatus | str],
        outputs: dict[str, HandlerResult | Any] | None = None,
    ) -> Table:
        safe_exec_id = escape(execution_id[:8])
        table = Table(title=f"Execution: {safe_exec_id}...")

        table.add_column("Node", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Status", justify="center")
        table.add_column("Output", max_width=40)

        for node in nodes:
            status = _normalize_status(statuses.get(node.id))
            val = outputs.get(node.id) if outputs else None
            if isinstance(val, HandlerResult):
                val = val.data
            output = "" if val is None else str(val)

            table.add_row(
                escape(node.id),
                escape(node.type),
                self.STATUS_TEXT.get(status, self.STATUS_TEXT["pending"]),
                escape(_truncate(output)),
            )

        return table
