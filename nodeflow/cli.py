"""CLI entry point for NodeFlow.

Commands:
- nodeflow validate: Check a graph document for structural errors
- nodeflow order: Show the execution order and dependency levels
- nodeflow run: Execute a graph with the built-in handlers
- nodeflow version: Show version information
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from nodeflow import __version__
from nodeflow.cli_ui.graph_renderer import (
    ExecutionOrderRenderer,
    StatusTableRenderer,
    ValidationRenderer,
)
from nodeflow.core.builtins import register_builtin_handlers
from nodeflow.core.config import ConfigError, EngineConfig, load_config
from nodeflow.core.executor import GraphExecutor
from nodeflow.core.handlers import HandlerRegistry
from nodeflow.core.loader import GraphDocument, GraphLoadError, load_graph
from nodeflow.core.scheduler import CycleDetectedError, TopologicalScheduler
from nodeflow.core.store import ExecutionStore
from nodeflow.core.validator import GraphValidator

console = Console()


def _load_document(graph_file: str) -> GraphDocument:
    try:
        return load_graph(graph_file)
    except GraphLoadError as e:
        console.print(f"[red]Error loading graph:[/red] {escape(str(e))}", highlight=False)
        sys.exit(1)


def _load_config(config_path: str | None) -> EngineConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}", highlight=False)
        sys.exit(1)


def _configure_logging(config: EngineConfig) -> None:
    logging.basicConfig(
        level=config.log_level_value,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="nodeflow")
def main() -> None:
    """NodeFlow - graph execution engine for node-based workflows."""
    pass


@main.command()
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
def validate(graph_file: str) -> None:
    """Validate a graph document (YAML or JSON)."""
    document = _load_document(graph_file)
    result = GraphValidator().validate(document.nodes, document.edges)
    ValidationRenderer(console).print_result(result)

    console.print(f"  Nodes: {len(document.nodes)}")
    console.print(f"  Edges: {len(document.edges)}")
    if not result.valid:
        sys.exit(1)


@main.command()
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--tree", "as_tree", is_flag=True, help="Group nodes by dependency level")
def order(graph_file: str, as_tree: bool) -> None:
    """Show the execution order of a graph."""
    document = _load_document(graph_file)
    scheduler = TopologicalScheduler()
    try:
        sorted_nodes = scheduler.sort(document.nodes, document.edges)
    except CycleDetectedError as e:
        console.print(f"[red]Cannot order graph:[/red] {escape(str(e))}", highlight=False)
        sys.exit(1)

    renderer = ExecutionOrderRenderer(console)
    if as_tree:
        title = document.name or Path(graph_file).name
        console.print(renderer.render_levels(scheduler.group_by_level(sorted_nodes), title))
    else:
        console.print(renderer.render_order_table(sorted_nodes))


@main.command()
@click.argument("graph_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "config_path", type=click.Path(), help="Engine config YAML")
@click.option("--timeout", type=float, help="Per-node timeout in seconds")
@click.option("--verbose", "-v", is_flag=True, help="Show engine logs")
def run(graph_file: str, config_path: str | None, timeout: float | None, verbose: bool) -> None:
    """Execute a graph with the built-in handlers.

    Node types without a built-in handler pass their data and inputs through.
    """
    document = _load_document(graph_file)
    config = _load_config(config_path)
    if timeout is not None:
        if timeout <= 0:
            console.print("[red]--timeout must be positive[/red]")
            sys.exit(1)
        config = config.model_copy(update={"node_timeout": timeout})
    if verbose:
        _configure_logging(config)

    registry = register_builtin_handlers(HandlerRegistry())
    executor = GraphExecutor(registry, config=config)
    store = ExecutionStore(executor)

    asyncio.run(store.execute_graph(document.nodes, document.edges))

    statuses = {node_id: state.status for node_id, state in store.node_states.items()}
    outputs = {
        node_id: state.output
        for node_id, state in store.node_states.items()
        if state.output is not None
    }
    execution_id = executor.context.execution_id if executor.context else "-"
    table = StatusTableRenderer(console).render_status_table(
        document.nodes, execution_id, statuses, outputs
    )
    console.print(table)

    for entry in store.logs:
        if entry.level == "warn":
            console.print(f"[yellow]Warning:[/yellow] {escape(entry.message)}", highlight=False)

    final_status = store.status()
    if final_status == "completed":
        console.print("[green]Graph completed successfully[/green]")
    else:
        detail = f": {escape(store.error)}" if store.error else ""
        console.print(
            Panel(f"Graph {final_status}{detail}", style="red", title="Execution"),
            highlight=False,
        )
        sys.exit(1)


@main.command()
def version() -> None:
    """Show version information."""
    console.print(f"NodeFlow v{__version__}")
    console.print("Graph execution engine for node-based workflows")


if __name__ == "__main__":
    main()
