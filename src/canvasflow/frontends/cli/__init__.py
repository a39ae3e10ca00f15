"""CLI frontend for canvasflow.

Commands:
    canvasflow run        Execute a canvas document
    canvasflow validate   Dry-run a canvas document in mock mode

Example:
    $ canvasflow validate story.canvas
    $ canvasflow run story.canvas --notes-dir ./notes --max-cost 0.50
"""

from canvasflow.frontends.cli.main import main

__all__ = ["main"]
