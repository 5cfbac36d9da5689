"""Main Typer application: imports and registers all CLI commands.

Entry point: ``dockhand`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import typer
from rich.console import Console

from dockhand import __version__
from dockhand.cli.commands.deploy_cmd import deploy_cmd
from dockhand.cli.commands.plan_cmd import plan_cmd

app = typer.Typer(
    name="dockhand",
    help="Dockhand: gated build, publish and container deployment pipeline.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="plan", help="Show the stages a trigger would run (dry run).")(plan_cmd)
app.command(name="deploy", help="Execute a pipeline run for a trigger.")(deploy_cmd)


@app.command(name="version", help="Print the Dockhand version.")
def version_cmd() -> None:
    """Print the installed Dockhand version."""
    Console().print(f"dockhand {__version__}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
