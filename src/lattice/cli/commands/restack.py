"""restack command implementation."""

import click

from lattice.cli.ensure import Ensure, handle_lattice_errors
from lattice.cli.output import report_preview, report_run_result
from lattice.commands.restack import RestackCommand
from lattice.core.context import LatticeContext
from lattice.core.types import BranchName
from lattice.engine.runner import preview_command, run_command


@click.command("restack")
@click.argument("branch", required=False)
@click.option("--only", is_flag=True, help="Restack only BRANCH, not its descendants.")
@click.option("--dry-run", is_flag=True, help="Print the plan without applying it.")
@click.pass_obj
@handle_lattice_errors
def restack_cmd(ctx: LatticeContext, branch: str | None, only: bool, dry_run: bool) -> None:
    """Rebase BRANCH and its descendants onto their parents (all stacks by default)."""
    Ensure.invariant(branch is not None or not only, "--only requires a BRANCH")
    target = BranchName(branch) if branch is not None else None
    command = RestackCommand(target, only=only)
    if dry_run:
        report_preview(preview_command(ctx, command))
        return
    report_run_result("restack", run_command(ctx, command))
