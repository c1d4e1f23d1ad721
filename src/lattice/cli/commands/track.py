"""track command implementation."""

import click

from lattice.cli.ensure import handle_lattice_errors
from lattice.cli.output import report_preview, report_run_result
from lattice.commands.track import TrackCommand
from lattice.core.context import LatticeContext
from lattice.core.types import BranchName
from lattice.engine.runner import preview_command, run_command


@click.command("track")
@click.argument("branch")
@click.option("--parent", help="Parent branch (defaults to trunk).")
@click.option("--dry-run", is_flag=True, help="Print the plan without applying it.")
@click.pass_obj
@handle_lattice_errors
def track_cmd(ctx: LatticeContext, branch: str, parent: str | None, dry_run: bool) -> None:
    """Start tracking an existing BRANCH."""
    command = TrackCommand(
        ctx.git,
        ctx.cwd,
        BranchName(branch),
        BranchName(parent) if parent is not None else None,
        now=ctx.time.now(),
    )
    if dry_run:
        report_preview(preview_command(ctx, command))
        return
    report_run_result("track", run_command(ctx, command))
