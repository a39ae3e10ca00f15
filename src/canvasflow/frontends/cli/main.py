"""CLI entry point."""

from __future__ import annotations

import sys


def main() -> None:
    """Main entry point for the CLI."""
    import importlib.util

    if importlib.util.find_spec("rich_click") is None:
        print("CLI dependencies not installed. Run: pip install canvasflow")
        sys.exit(1)

    from canvasflow.frontends.cli.commands import cli

    cli()


if __name__ == "__main__":
    main()
