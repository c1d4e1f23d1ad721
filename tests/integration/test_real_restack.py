"""End-to-end restack, continue, abort, and lock contention on real repositories."""

from pathlib import Path

import pytest
from click.testing import CliRunner

from lattice.cli.cli import cli
from lattice.commands.restack import RestackCommand
from lattice.core.config import DEFAULT_CONFIG_VERSION, RepoConfig
from lattice.core.context import LatticeContext
from lattice.core.errors import LockContention
from lattice.core.git.abc import GitState
from lattice.core.git.real import RealGit
from lattice.core.ops.op_state import OpState
from lattice.core.types import BranchName
from lattice.engine.runner import run_command
from tests.fakes.time import FakeTime
from tests.test_utils.git_repo import commit_file, git


def _context(cwd: Path, time: FakeTime | None = None) -> LatticeContext:
    config = RepoConfig(
        trunk=BranchName("main"),
        remote=None,
        forge=None,
        lock_timeout_seconds=1.0,
        config_version=DEFAULT_CONFIG_VERSION,
    )
    return LatticeContext.for_test(git=RealGit(), time=time, cwd=cwd, config=config)


def _tracked_conflicting_stack(repo: Path) -> LatticeContext:
    """feat edits file.txt; main then edits the same line."""
    git(repo, "checkout", "-q", "-b", "feat")
    commit_file(repo, "file.txt", "feat\n", "feat change")
    git(repo, "checkout", "-q", "main")
    ctx = _context(repo)
    tracked = CliRunner().invoke(cli, ["track", "feat"], obj=ctx)
    assert tracked.exit_code == 0, tracked.output
    commit_file(repo, "file.txt", "main\n", "main change")
    return ctx


def test_restack_without_conflict(repo: Path) -> None:
    git(repo, "checkout", "-q", "-b", "feat")
    commit_file(repo, "other.txt", "feat\n", "feat change")
    git(repo, "checkout", "-q", "main")
    ctx = _context(repo)
    assert CliRunner().invoke(cli, ["track", "feat"], obj=ctx).exit_code == 0
    main_tip = commit_file(repo, "file.txt", "main\n", "main change")

    result = CliRunner().invoke(cli, ["restack"], obj=ctx)

    assert result.exit_code == 0, result.output
    assert git(repo, "merge-base", "main", "feat") == main_tip
    assert git(repo, "branch", "--show-current") == "main"


def test_conflict_then_continue(repo: Path) -> None:
    ctx = _tracked_conflicting_stack(repo)

    paused = CliRunner().invoke(cli, ["restack"], obj=ctx)
    assert "restack paused on 'feat'" in paused.output
    assert RealGit().get_state(repo) is GitState.REBASE

    (repo / "file.txt").write_text("resolved\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["continue", "--all"], obj=ctx)

    assert result.exit_code == 0, result.output
    assert RealGit().get_state(repo) is GitState.CLEAN
    assert git(repo, "show", "feat:file.txt") == "resolved"
    assert git(repo, "merge-base", "main", "feat") == git(repo, "rev-parse", "main")
    assert OpState.read(ctx.paths.op_state_path) is None


def test_conflict_then_abort(repo: Path) -> None:
    ctx = _tracked_conflicting_stack(repo)
    feat_before = git(repo, "rev-parse", "feat")
    CliRunner().invoke(cli, ["restack"], obj=ctx)

    result = CliRunner().invoke(cli, ["abort"], obj=ctx)

    assert result.exit_code == 0, result.output
    assert RealGit().get_state(repo) is GitState.CLEAN
    assert git(repo, "rev-parse", "feat") == feat_before
    assert OpState.read(ctx.paths.op_state_path) is None


def test_lock_held_from_another_worktree(repo: Path) -> None:
    git(repo, "checkout", "-q", "-b", "feat")
    commit_file(repo, "other.txt", "feat\n", "feat change")
    git(repo, "checkout", "-q", "main")
    ctx = _context(repo, FakeTime())
    assert CliRunner().invoke(cli, ["track", "feat"], obj=ctx).exit_code == 0
    commit_file(repo, "file.txt", "main\n", "main change")
    linked = repo.parent / "linked"
    git(repo, "worktree", "add", "-q", "--detach", str(linked))
    holder = _context(linked.resolve())
    feat_before = git(repo, "rev-parse", "feat")

    with holder.executor().lock("sync from linked worktree"):
        with pytest.raises(LockContention) as exc_info:
            run_command(ctx, RestackCommand())

    assert "sync from linked worktree" in (exc_info.value.holder or "")
    assert git(repo, "rev-parse", "feat") == feat_before
    assert OpState.read(ctx.paths.op_state_path) is None
