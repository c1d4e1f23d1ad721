"""init: write repository configuration."""

import click

from lattice.cli.ensure import Ensure, handle_lattice_errors
from lattice.cli.output import user_output
from lattice.core.config import SUPPORTED_FORGES, write_repo_config_value
from lattice.core.context import LatticeContext
from lattice.core.types import BranchName, RefName


@click.command("init")
@click.option("--trunk", required=True, help="Trunk branch every stack is based on.")
@click.option("--remote", help="Remote used for pushes.")
@click.option("--forge", type=click.Choice(SUPPORTED_FORGES), help="Code-review host.")
@click.pass_obj
@handle_lattice_errors
def init_cmd(ctx: LatticeContext, trunk: str, remote: str | None, forge: str | None) -> None:
    """Configure lattice for this repository."""
    trunk_branch = BranchName(trunk)
    Ensure.invariant(
        ctx.git.resolve_ref(ctx.cwd, RefName.for_branch(trunk_branch)) is not None,
        f"Branch '{trunk}' does not exist",
    )
    paths = ctx.paths
    paths.ensure_dirs()
    write_repo_config_value(paths.config_path, "trunk", str(trunk_branch))
    if remote is not None:
        write_repo_config_value(paths.config_path, "remote", remote)
    if forge is not None:
        write_repo_config_value(paths.config_path, "forge", forge)
    user_output(f"Wrote {paths.config_path}")
