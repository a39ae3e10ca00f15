"""canvasflow commands: run and validate."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

import rich_click as click

from canvasflow.core.config import Settings
from canvasflow.core.errors import CanvasflowError
from canvasflow.core.graph import CanvasDocument, Graph
from canvasflow.core.logging_config import configure_logging, get_logger
from canvasflow.core.run import Run, validate
from canvasflow.core.types import NodeType, Stoppage
from canvasflow.frontends.cli.output import (
    error_exit,
    output_json,
    print_outputs,
    print_statuses,
    print_stoppage,
)

logger = get_logger(__name__)

# Configure rich-click styling
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = "Try running '--help' for more information."
click.rich_click.ERRORS_EPILOGUE = ""
click.rich_click.MAX_WIDTH = 100

# Exit codes by stop reason
EXIT_CODES = {"complete": 0, "error": 1, "stopped": 130}


def load_graph(path: str) -> Graph:
    """Parse and hydrate a canvas file, exiting with a message on failure."""
    try:
        return Graph.from_document(CanvasDocument.load(path))
    except CanvasflowError as e:
        error_exit(f"{path}: {e}")
    except OSError as e:
        error_exit(f"Cannot read {path}: {e}")


async def execute_canvas(graph: Graph, settings: Settings, is_mock: bool) -> tuple[Run, Stoppage]:
    """Run a hydrated graph with providers built from settings.

    Waits for abandoned provider calls to settle before closing the
    provider.
    """
    provider = None if is_mock else settings.create_provider()
    run = Run(
        graph,
        provider=provider,
        content_store=settings.create_content_store(),
        is_mock=is_mock,
        budget=settings.budget(),
        default_model=settings.model,
    )
    try:
        stoppage = await run.start()
        await run.drain()
    finally:
        if provider is not None:
            await provider.close()
    return run, stoppage


def display_outputs(graph: Graph) -> dict[str, Any]:
    """Outputs of every display node that produced one, clones included."""
    return {
        node.id: node.output
        for node in graph.nodes()
        if node.node_type is NodeType.DISPLAY and node.output is not None
    }


@click.group()
@click.version_option(package_name="canvasflow")
def cli() -> None:
    """canvasflow - run canvas-drawn LLM workflows.

    A canvas document describes nodes, typed edges and groups. canvasflow
    executes it: every node runs as soon as its inputs are complete, and
    loop groups fire their members once per iteration.

    **Commands:**

        canvasflow run        Execute a canvas

        canvasflow validate   Dry-run a canvas without calling any provider
    """


@cli.command("run")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--mock", "-m", is_flag=True, help="Replace provider and note calls with no-cost stand-ins"
)
@click.option("--model", default=None, help="Default model (overrides CANVASFLOW_MODEL)")
@click.option(
    "--notes-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory backing reference nodes (overrides CANVASFLOW_NOTES_DIR)",
)
@click.option("--max-cost", type=float, default=None, help="Dollar budget for the run")
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
@click.option("--log-level", default=None, help="Log level (overrides CANVASFLOW_LOG_LEVEL)")
def run_command(
    file: str,
    mock: bool,
    model: str | None,
    notes_dir: str | None,
    max_cost: float | None,
    json_output: bool,
    log_level: str | None,
) -> None:
    """Execute a canvas document.

    **Examples:**

        canvasflow run story.canvas

        canvasflow run story.canvas --notes-dir ./notes --max-cost 0.5

        canvasflow run story.canvas --mock --json
    """
    configure_logging(level=log_level)

    try:
        settings = Settings.from_env()
    except CanvasflowError as e:
        error_exit(str(e))
    if model:
        settings.model = model
    if notes_dir:
        settings.notes_dir = Path(notes_dir)
    if max_cost is not None:
        settings.max_cost_dollars = max_cost

    graph = load_graph(file)
    try:
        run, stoppage = asyncio.run(execute_canvas(graph, settings, mock))
    except CanvasflowError as e:
        error_exit(str(e))
    except KeyboardInterrupt:
        error_exit("Interrupted", code=EXIT_CODES["stopped"])

    outputs = display_outputs(graph)
    if json_output:
        output_json(
            {
                "stoppage": stoppage.to_dict(),
                "statuses": graph.status_counts(),
                "outputs": outputs,
                "run_id": run.run_id,
            }
        )
    else:
        print_outputs(outputs)
        print_statuses(graph.status_counts())
        print_stoppage(stoppage)

    sys.exit(EXIT_CODES[stoppage.reason])


@cli.command("validate")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
def validate_command(file: str, json_output: bool) -> None:
    """Check that a canvas hydrates and runs to completion in mock mode.

    **Examples:**

        canvasflow validate story.canvas
    """
    configure_logging()
    graph = load_graph(file)
    stoppage = asyncio.run(validate(graph.document))

    if json_output:
        output_json({"valid": stoppage.reason == "complete", "stoppage": stoppage.to_dict()})
    elif stoppage.reason == "complete":
        click.echo(f"{file}: valid ({len(graph)} objects)")
    else:
        click.echo(f"{file}: invalid: {stoppage.message}", err=True)

    sys.exit(0 if stoppage.reason == "complete" else 1)
