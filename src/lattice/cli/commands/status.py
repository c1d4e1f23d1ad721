"""Status command implementation."""

import click

from lattice.cli.ensure import handle_lattice_errors
from lattice.cli.output import format_status_panel, print_renderable
from lattice.core.context import LatticeContext
from lattice.engine.runner import scan_repository


@click.command("status")
@click.pass_obj
@handle_lattice_errors
def status_cmd(ctx: LatticeContext) -> None:
    """Show repository health and any operation in progress."""
    snapshot = scan_repository(ctx)
    print_renderable(format_status_panel(snapshot))
