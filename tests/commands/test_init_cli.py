import tomllib
from pathlib import Path

from click.testing import CliRunner

from lattice.cli.cli import cli
from tests.test_utils.builders import StackBuilder


def test_init_writes_repository_config(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")
    ctx = builder.context(builder.build())

    result = CliRunner().invoke(
        cli, ["init", "--trunk", "main", "--remote", "origin", "--forge", "github"], obj=ctx
    )

    assert result.exit_code == 0, result.output
    config_path = ctx.paths.config_path
    data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    assert data["lattice"] == {"trunk": "main", "remote": "origin", "forge": "github"}


def test_init_rejects_missing_trunk(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")
    ctx = builder.context(builder.build())

    result = CliRunner().invoke(cli, ["init", "--trunk", "develop"], obj=ctx)

    assert result.exit_code == 1
    assert "Branch 'develop' does not exist" in result.output
    assert not ctx.paths.config_path.exists()


def test_init_rejects_unknown_forge(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")

    result = CliRunner().invoke(
        cli, ["init", "--trunk", "main", "--forge", "gitlab"], obj=builder.context(builder.build())
    )

    assert result.exit_code == 2
