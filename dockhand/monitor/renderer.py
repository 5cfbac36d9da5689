"""Rich terminal renderer for plans and run outcomes.

Color scheme
------------
- green     : SUCCEEDED / COMPLETED / eligible
- red       : FAILED
- yellow    : ABORTED
- dim       : SKIPPED / not eligible
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from dockhand.core.plan import DeploymentPlan
from dockhand.models.context import TriggerContext
from dockhand.models.outcomes import OutcomeStatus, RunState, RunSummary

_STATUS_ICONS: dict[OutcomeStatus, str] = {
    OutcomeStatus.SUCCEEDED: "[green]SUCCEEDED[/green]",
    OutcomeStatus.FAILED: "[bold red]FAILED[/bold red]",
    OutcomeStatus.SKIPPED: "[dim]SKIPPED[/dim]",
}

_RUN_STYLES: dict[RunState, str] = {
    RunState.COMPLETED: "green",
    RunState.FAILED: "red",
    RunState.ABORTED: "yellow",
    RunState.RUNNING: "cyan",
    RunState.IDLE: "dim",
}


class RunRenderer:
    """Renders plans and run summaries as Rich output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Plan (dry run)
    # ------------------------------------------------------------------

    def render_plan(self, plan: DeploymentPlan, context: TriggerContext) -> Panel:
        eligible = {s.name for s in plan.eligible_stages(context)}

        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Stage", min_width=18)
        table.add_column("Action", min_width=8)
        table.add_column("Eligible", justify="center")
        table.add_column("Gate", style="dim")

        for i, stage in enumerate(plan):
            mark = "[green]yes[/green]" if stage.name in eligible else "[dim]no[/dim]"
            table.add_row(str(i), stage.name, stage.action.kind, mark, Text(repr(stage.gate)))

        header = (
            f"[bold]Trigger:[/bold] {context.event_kind.value} on {context.branch}"
            + (
                f"  |  [bold]Requested:[/bold] {context.requested_environment.value}"
                if context.requested_environment
                else ""
            )
            + f"  |  [bold]Artifact:[/bold] {plan.artifact.image_ref}"
        )
        return Panel(
            Group(Text.from_markup(header), Text(""), table),
            title="[bold]Dockhand Plan[/bold]",
            border_style="blue",
            padding=(1, 2),
        )

    # ------------------------------------------------------------------
    # Run summary
    # ------------------------------------------------------------------

    def render_summary(self, summary: RunSummary) -> Panel:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Stage", min_width=18)
        table.add_column("Status", justify="center", min_width=11)
        table.add_column("Duration", justify="right", width=10)
        table.add_column("Diagnostics")

        for outcome in summary.outcomes:
            table.add_row(
                outcome.stage_name,
                _STATUS_ICONS.get(outcome.status, outcome.status.value),
                f"{outcome.duration_ms / 1000:.1f}s",
                Text("\n".join(outcome.diagnostics)),
            )

        if not summary.outcomes:
            table.add_row("[dim]-[/dim]", "[dim]no eligible stages[/dim]", "", "")

        style = _RUN_STYLES.get(summary.state, "")
        footer_parts = [
            f"[bold]Run:[/bold] {summary.run_id}",
            f"[bold]State:[/bold] [{style}]{summary.state.value.upper()}[/{style}]",
        ]
        if summary.artifact is not None:
            footer_parts.append(f"[bold]Artifact:[/bold] {summary.artifact.image_ref}")

        return Panel(
            Group(table, Text(""), Text.from_markup("  |  ".join(footer_parts))),
            title="[bold]Dockhand Run[/bold]",
            border_style=style or "blue",
            padding=(1, 2),
        )

    def print_plan(self, plan: DeploymentPlan, context: TriggerContext) -> None:
        self.console.print(self.render_plan(plan, context))

    def print_summary(self, summary: RunSummary) -> None:
        self.console.print(self.render_summary(summary))
