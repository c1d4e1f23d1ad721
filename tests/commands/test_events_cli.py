import json
from pathlib import Path

from click.testing import CliRunner

from lattice.cli.cli import cli
from tests.test_utils.builders import StackBuilder


def _restacked(tmp_path: Path):
    builder = StackBuilder(tmp_path / "repo")
    builder.branch("b1")
    builder.advance("main")
    ctx = builder.context(builder.build())
    assert CliRunner().invoke(cli, ["restack"], obj=ctx).exit_code == 0
    return ctx


def test_events_json_lists_newest_first(tmp_path: Path) -> None:
    ctx = _restacked(tmp_path)

    result = CliRunner().invoke(cli, ["events", "--format", "json"], obj=ctx)

    assert result.exit_code == 0, result.output
    events = json.loads(result.stdout)
    assert [e["type"] for e in events] == ["committed", "intent_recorded"]
    assert events[0]["op_id"] == events[1]["op_id"]


def test_events_limit(tmp_path: Path) -> None:
    ctx = _restacked(tmp_path)

    result = CliRunner().invoke(cli, ["events", "--format", "json", "--limit", "1"], obj=ctx)

    assert [e["type"] for e in json.loads(result.stdout)] == ["committed"]


def test_events_text_table(tmp_path: Path) -> None:
    ctx = _restacked(tmp_path)

    result = CliRunner().invoke(cli, ["events"], obj=ctx)

    assert result.exit_code == 0, result.output
    assert "intent_recorded" in result.output
    assert "committed" in result.output


def test_events_empty_ledger(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")

    result = CliRunner().invoke(cli, ["events"], obj=builder.context(builder.build()))

    assert result.exit_code == 0
    assert "No events recorded" in result.output


def test_events_rejects_non_positive_limit(tmp_path: Path) -> None:
    builder = StackBuilder(tmp_path / "repo")

    result = CliRunner().invoke(
        cli, ["events", "--limit", "0"], obj=builder.context(builder.build())
    )

    assert result.exit_code == 1
    assert "--limit must be a positive number" in result.output


def test_undo_is_logged(tmp_path: Path) -> None:
    ctx = _restacked(tmp_path)
    assert CliRunner().invoke(cli, ["undo"], obj=ctx).exit_code == 0

    result = CliRunner().invoke(cli, ["events", "--format", "json"], obj=ctx)

    events = json.loads(result.stdout)
    assert [e["type"] for e in events] == ["undo_applied", "committed", "intent_recorded"]
    assert events[0]["undone_op_id"] == events[1]["op_id"]
