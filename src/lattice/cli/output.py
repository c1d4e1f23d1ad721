"""Output utilities for CLI commands with clear intent.

user_output goes to stderr (human messages); machine_output goes to stdout
(data meant for pipes). Rich renderables are printed to stderr as well.
"""

from typing import Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lattice.engine.exec import Committed, ExecuteResult, Paused, Undone
from lattice.engine.health import Severity
from lattice.engine.plan import Plan
from lattice.engine.runner import NeedsRepair, NoChanges, RunResult
from lattice.engine.scan import RepoSnapshot


def user_output(message: str = "", nl: bool = True) -> None:
    click.echo(message, err=True, nl=nl)


def machine_output(message: str = "", nl: bool = True) -> None:
    click.echo(message, nl=nl)


def print_renderable(renderable: Any) -> None:
    Console(stderr=True).print(renderable)


_SEVERITY_STYLE = {
    Severity.BLOCKING: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "dim",
}


def format_status_panel(snapshot: RepoSnapshot) -> Panel:
    """Summarize repository health, in-flight operation, and divergence."""
    lines: list[Text] = []

    trunk = str(snapshot.trunk) if snapshot.trunk is not None else "(not configured)"
    lines.append(Text(f"Trunk: {trunk}"))
    lines.append(Text(f"Tracked branches: {len(snapshot.metadata)}"))
    lines.append(Text(f"Fingerprint: {snapshot.fingerprint.value[:12]}", style="dim"))

    op_state = snapshot.op_state
    if op_state is None:
        lines.append(Text("Operation: none", style="green"))
    else:
        style = "yellow" if op_state.is_paused else "red"
        lines.append(Text(f"Operation: {op_state.command} ({op_state.phase})", style=style))
        if op_state.awaiting_reason is not None:
            lines.append(Text(f"  {op_state.awaiting_reason.detail}", style=style))

    if snapshot.git_state.is_in_progress:
        lines.append(Text(f"Git: {snapshot.git_state.description} in progress", style="yellow"))

    if snapshot.divergence is not None:
        changed = ", ".join(snapshot.divergence.changed_refs)
        lines.append(Text(f"Changed outside lattice: {changed}", style="yellow"))

    border = "green"
    if snapshot.health.issues:
        lines.append(Text(""))
        lines.append(Text("Issues:", style="bold"))
        for issue in snapshot.health.issues:
            issue_style = _SEVERITY_STYLE[issue.severity]
            lines.append(Text(f"  [{issue.id}] {issue.message}", style=issue_style))
            if issue.hint:
                lines.append(Text(f"      {issue.hint}", style="dim"))
        if snapshot.health.blocking_issues():
            border = "red"
        else:
            border = "yellow"

    return Panel(Text("\n").join(lines), title="lattice status", border_style=border)


def format_events_table(rows: list[dict[str, Any]]) -> Table:
    table = Table(title="Event ledger (newest first)")
    table.add_column("Time", style="dim")
    table.add_column("Event")
    table.add_column("Detail")
    for row in rows:
        table.add_row(row["timestamp"], row["type"], row["detail"])
    return table


def report_result(command: str, result: ExecuteResult) -> None:
    """Print an executor outcome. Aborted exits with status 1."""
    if isinstance(result, Committed):
        user_output(click.style(f"✓ {command} complete", fg="green"))
        for failure in result.remote_failures:
            user_output(
                click.style("Warning: ", fg="yellow")
                + f"{failure.step.describe()} failed: {failure.error}"
            )
        return

    if isinstance(result, Paused):
        if result.reason.kind == "conflict":
            where = f" on '{result.branch}'" if result.branch is not None else ""
            prefix = click.style(f"{command} paused{where}: ", fg="yellow")
            user_output(prefix + result.reason.detail)
            user_output("Resolve conflicts, then run 'lattice continue'.")
            user_output("To undo the whole operation, run 'lattice abort'.")
        else:
            refs = ", ".join(str(r) for r in result.failed_refs)
            user_output(click.style("Error: ", fg="red") + f"Rollback incomplete for: {refs}")
            user_output("Restore these refs manually, then run 'lattice abort' again.")
            raise SystemExit(1)
        return

    restored = len(result.rollback.restored)
    user_output(click.style("Error: ", fg="red") + f"{command} failed: {result.error}")
    user_output(f"All changes were rolled back ({restored} refs restored).")
    raise SystemExit(1)


def report_run_result(command: str, result: RunResult) -> None:
    """Print a run_command outcome. Repair bundles and aborts exit with status 1."""
    if isinstance(result, NeedsRepair):
        user_output(click.style("Error: ", fg="red") + result.bundle.render())
        raise SystemExit(1)
    if isinstance(result, NoChanges):
        user_output(f"{command}: nothing to do")
        return
    report_result(command, result)


def report_preview(result: Plan | NeedsRepair) -> None:
    """Print a dry-run plan to stdout. A repair bundle exits with status 1."""
    if isinstance(result, NeedsRepair):
        user_output(click.style("Error: ", fg="red") + result.bundle.render())
        raise SystemExit(1)
    machine_output(result.preview())


def report_undo(result: Undone | NeedsRepair) -> None:
    if isinstance(result, NeedsRepair):
        user_output(click.style("Error: ", fg="red") + result.bundle.render())
        raise SystemExit(1)
    restored = len(result.rollback.restored)
    user_output(
        click.style("✓ ", fg="green")
        + f"Undid {result.command} ({result.op_id[:8]}, {restored} refs restored)"
    )
