from pathlib import Path

from click.testing import CliRunner

from lattice.cli.cli import cli
from lattice.core.metadata.store import MetadataStore
from lattice.core.types import BranchName
from tests.test_utils.builders import StackBuilder


def test_track_writes_metadata(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")
    builder.branch("b1").branch("feat", parent="b1", tracked=False)
    git = builder.build()

    result = CliRunner().invoke(cli, ["track", "feat", "--parent", "b1"], obj=builder.context(git))

    assert result.exit_code == 0, result.output
    assert "track complete" in result.output
    scanned = MetadataStore(git, builder.root).read(BranchName("feat"))
    assert scanned is not None
    assert scanned.metadata.parent.name == BranchName("b1")
    assert scanned.metadata.base.oid == builder.tip("b1")


def test_track_refuses_tracked_branch(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")
    builder.branch("b1")

    result = CliRunner().invoke(cli, ["track", "b1"], obj=builder.context(builder.build()))

    assert result.exit_code == 1
    assert "already tracked" in result.output


def test_track_dry_run_leaves_branch_untracked(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")
    builder.branch("feat", tracked=False)
    git = builder.build()

    result = CliRunner().invoke(cli, ["track", "feat", "--dry-run"], obj=builder.context(git))

    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("track:")
    assert MetadataStore(git, builder.root).read(BranchName("feat")) is None
    assert git.ref_updates == []
