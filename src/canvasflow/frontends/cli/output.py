"""Output formatting utilities for CLI commands."""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any, NoReturn

import rich_click as click
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from canvasflow.core.types import Stoppage

_REASON_STYLES = {
    "complete": "green",
    "error": "red",
    "stopped": "yellow",
}


def output_json(data: Any, indent: int = 2) -> None:
    """Output data as formatted JSON."""
    click.echo(json.dumps(data, indent=indent, default=str))


def error_exit(message: str, code: int = 1) -> NoReturn:
    """Print error message and exit with code."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def print_stoppage(stoppage: Stoppage, console: Console | None = None) -> None:
    """Print how a run ended and what it cost.

    Args:
        stoppage: The run's terminal report.
        console: Console to print to. Defaults to stdout.
    """
    console = console or Console()
    style = _REASON_STYLES.get(stoppage.reason, "white")
    console.print(f"Run [bold {style}]{stoppage.reason}[/]")
    if stoppage.message:
        console.print(f"  {stoppage.message}", style=style, markup=False)

    if not stoppage.usage:
        return

    table = Table(title="Usage", title_justify="left")
    table.add_column("Model")
    table.add_column("Prompt tokens", justify="right")
    table.add_column("Completion tokens", justify="right")
    table.add_column("Cost ($)", justify="right")
    for model, usage in sorted(stoppage.usage.items()):
        table.add_row(
            model,
            str(usage.prompt_tokens),
            str(usage.completion_tokens),
            f"{usage.total_cost:.6f}",
        )
    table.add_row("[bold]Total[/]", "", "", f"[bold]{stoppage.total_cost:.6f}[/]")
    console.print(table)


def print_outputs(outputs: dict[str, Any], console: Console | None = None) -> None:
    """Print display node outputs, one titled block per node."""
    console = console or Console()
    for node_id, output in outputs.items():
        console.rule(node_id)
        text = output if isinstance(output, str) else json.dumps(output, indent=2)
        console.print(text, markup=False)


def print_statuses(counts: dict[str, int], console: Console | None = None) -> None:
    """Print object counts per status, skipping empty ones."""
    console = console or Console()
    parts = [f"{status}={count}" for status, count in counts.items() if count]
    console.print("Objects: " + ", ".join(parts), markup=False)
