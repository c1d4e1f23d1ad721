"""continue, abort and undo: resolve a paused operation or reverse a finished one."""

import click

from lattice.cli.ensure import handle_lattice_errors
from lattice.cli.output import report_result, report_undo, user_output
from lattice.core.context import LatticeContext
from lattice.engine.exec import Committed
from lattice.engine.recovery import abort_operation, continue_operation, undo_last_operation


@click.command("continue")
@click.option(
    "--all",
    "stage_all",
    is_flag=True,
    help="Stage all changes (git add -A) before continuing.",
)
@click.pass_obj
@handle_lattice_errors
def continue_cmd(ctx: LatticeContext, stage_all: bool) -> None:
    """Resume a paused operation after resolving conflicts."""
    result = continue_operation(ctx, stage_all=stage_all)
    report_result("continue", result)


@click.command("abort")
@click.pass_obj
@handle_lattice_errors
def abort_cmd(ctx: LatticeContext) -> None:
    """Undo every change made by the paused operation."""
    result = abort_operation(ctx)
    if isinstance(result, Committed):
        user_output("The operation had already committed; nothing was rolled back.")
        user_output("To reverse it, run 'lattice undo'.")
        return
    restored = len(result.rollback.restored)
    user_output(click.style("✓ ", fg="green") + f"Operation aborted ({restored} refs restored)")


@click.command("undo")
@click.pass_obj
@handle_lattice_errors
def undo_cmd(ctx: LatticeContext) -> None:
    """Reverse the most recent committed operation."""
    report_undo(undo_last_operation(ctx))
