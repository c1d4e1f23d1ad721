import logging
import os

import click

from lattice.cli.commands.events import events_cmd
from lattice.cli.commands.init import init_cmd
from lattice.cli.commands.recovery import abort_cmd, continue_cmd, undo_cmd
from lattice.cli.commands.restack import restack_cmd
from lattice.cli.commands.status import status_cmd
from lattice.cli.commands.track import track_cmd
from lattice.cli.output import user_output
from lattice.core.context import create_context
from lattice.core.errors import LatticeError

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])  # terse help flags


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="lattice")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Stacked branches with transactional, recoverable operations."""
    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is None:
        try:
            ctx.obj = create_context()
        except (LatticeError, ValueError) as e:
            user_output(click.style("Error: ", fg="red") + str(e))
            raise SystemExit(1) from e


cli.add_command(abort_cmd)
cli.add_command(continue_cmd)
cli.add_command(events_cmd)
cli.add_command(init_cmd)
cli.add_command(restack_cmd)
cli.add_command(status_cmd)
cli.add_command(track_cmd)
cli.add_command(undo_cmd)


def main() -> None:
    """CLI entry point used by the `lattice` console script."""
    # Enable debug logging if LATTICE_DEBUG environment variable is set
    if os.getenv("LATTICE_DEBUG"):
        logging.basicConfig(level=logging.DEBUG, format="[DEBUG %(name)s:%(lineno)d] %(message)s")
    cli()
