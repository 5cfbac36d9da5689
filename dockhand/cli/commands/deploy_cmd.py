"""``dockhand deploy``: execute a pipeline run.

Builds, verifies and publishes the image with the local docker client,
then deploys to every environment whose gate accepts the trigger. Secrets
are read from the environment variables named in the pipeline config.

Exit status: 0 completed, 1 failed, 2 aborted (Ctrl-C between stages),
3 configuration or trigger error (nothing executed).
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.text import Text

from dockhand.cli.commands.common import EXIT_SETUP_ERROR, load_config, trigger_context
from dockhand.config import settings
from dockhand.core.collaborators import EnvCredentialProvider, LoggingReleaseNotifier
from dockhand.core.errors import DockhandError
from dockhand.core.executor import RemoteExecutor
from dockhand.core.orchestrator import DeploymentOrchestrator
from dockhand.integrations.docker_cli import (
    DockerCheckRunner,
    DockerCliBuilder,
    DockerRegistryPusher,
)
from dockhand.logging_setup import configure_logging
from dockhand.models.context import EventKind
from dockhand.models.hosts import EnvironmentLabel
from dockhand.models.outcomes import RunState
from dockhand.monitor.renderer import RunRenderer

console = Console()

_EXIT_CODES: dict[RunState, int] = {
    RunState.COMPLETED: 0,
    RunState.FAILED: 1,
    RunState.ABORTED: 2,
}


def deploy_cmd(
    branch: str = typer.Option(
        ...,
        "--branch",
        "-b",
        help="Branch that triggered the run (refs/heads/ prefix accepted).",
    ),
    event: EventKind = typer.Option(
        EventKind.PUSH, "--event", case_sensitive=False, help="Trigger event kind."
    ),
    environment: Optional[EnvironmentLabel] = typer.Option(
        None,
        "--environment",
        "-e",
        case_sensitive=False,
        help="Target environment for a manual dispatch.",
    ),
    run_number: int = typer.Option(
        0, "--run-number", help="CI run number, used in release tag names."
    ),
    commit_message: str = typer.Option(
        "", "--commit-message", "-m", help="Commit message recorded with the release."
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Pipeline TOML file (defaults to DOCKHAND_CONFIG_PATH or dockhand.toml).",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override DOCKHAND_LOG_LEVEL."
    ),
) -> None:
    """Run the pipeline for the trigger and render the outcome."""
    configure_logging(log_level or settings.log_level)

    local = RemoteExecutor.local(settings)
    try:
        config = load_config(config_path)
        context = trigger_context(branch, event, environment, run_number, commit_message)
        orchestrator = DeploymentOrchestrator.from_config(
            config,
            context,
            EnvCredentialProvider(),
            builder=DockerCliBuilder(local, config.artifact, docker_binary=settings.docker_binary),
            checks=DockerCheckRunner(local, config.checks, docker_binary=settings.docker_binary),
            pusher=DockerRegistryPusher(local, docker_binary=settings.docker_binary),
            notifier=LoggingReleaseNotifier(),
            settings=settings,
        )
    except DockhandError as exc:
        console.print(Text.assemble(("Cannot start run: ", "bold red"), str(exc)))
        raise typer.Exit(code=EXIT_SETUP_ERROR)

    console.print(f"[bold green]Run created:[/bold green] {orchestrator.run_id}")

    with local, ThreadPoolExecutor(max_workers=1, thread_name_prefix="dockhand-run") as pool:
        future = pool.submit(orchestrator.start)
        try:
            summary = future.result()
        except KeyboardInterrupt:
            orchestrator.cancel()
            console.print("[yellow]Cancelling after the current stage...[/yellow]")
            summary = future.result()
        except DockhandError as exc:
            console.print(Text.assemble(("Cannot start run: ", "bold red"), str(exc)))
            raise typer.Exit(code=EXIT_SETUP_ERROR)

    RunRenderer(console=console).print_summary(summary)
    code = _EXIT_CODES.get(summary.state, 1)
    if code:
        raise typer.Exit(code=code)
