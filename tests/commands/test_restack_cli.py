from pathlib import Path

from click.testing import CliRunner

from lattice.cli.cli import cli
from lattice.core.types import BranchName, RefName
from tests.test_utils.builders import StackBuilder


def _behind_stack(tmp_path: Path) -> StackBuilder:
    builder = StackBuilder(tmp_path / "repo")
    builder.branch("b1").branch("b2", parent="b1")
    builder.advance("main")
    return builder


def test_restack_completes(tmp_path: Path) -> None:
    builder = _behind_stack(tmp_path)
    git = builder.build()

    result = CliRunner().invoke(cli, ["restack"], obj=builder.context(git))

    assert result.exit_code == 0, result.output
    assert "restack complete" in result.output
    tip = git.refs[RefName.for_branch(BranchName("b1"))]
    assert git.is_ancestor(builder.root, builder.tip("main"), tip)


def test_restack_with_nothing_to_do(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")
    builder.branch("b1")

    result = CliRunner().invoke(cli, ["restack"], obj=builder.context(builder.build()))

    assert result.exit_code == 0, result.output
    assert "restack: nothing to do" in result.output


def test_restack_conflict_pauses_with_instructions(tmp_path: Path) -> None:
    builder = _behind_stack(tmp_path)
    git = builder.build(rebase_conflicts={BranchName("b2"): 1})

    result = CliRunner().invoke(cli, ["restack"], obj=builder.context(git))

    assert result.exit_code == 0, result.output
    assert "restack paused on 'b2'" in result.output
    assert "lattice continue" in result.output
    assert "lattice abort" in result.output


def test_only_requires_branch(tmp_path: Path) -> None:
    builder = _behind_stack(tmp_path)

    result = CliRunner().invoke(cli, ["restack", "--only"], obj=builder.context(builder.build()))

    assert result.exit_code == 1
    assert "--only requires a BRANCH" in result.output


def test_restack_frozen_target_needs_repair(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")
    builder.branch("b1", frozen=True)
    builder.advance("main")

    result = CliRunner().invoke(cli, ["restack", "b1"], obj=builder.context(builder.build()))

    assert result.exit_code == 1
    assert "Cannot run 'restack'" in result.output
    assert "Branch 'b1' is frozen" in result.output


def test_invalid_branch_name_is_rejected(tmp_path: Path) -> None:
    builder = _behind_stack(tmp_path)

    result = CliRunner().invoke(cli, ["restack", "bad..name"], obj=builder.context(builder.build()))

    assert result.exit_code == 1
    assert "Invalid branch name" in result.output


def test_restack_dry_run_prints_plan_and_writes_nothing(tmp_path: Path) -> None:
    builder = _behind_stack(tmp_path)
    git = builder.build()

    result = CliRunner().invoke(cli, ["restack", "--dry-run"], obj=builder.context(git))

    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("restack:")
    assert "b1" in result.stdout
    assert git.ref_updates == []
    assert git.run_git_calls == []
