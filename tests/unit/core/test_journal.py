"""Tests for the operation journal: persistence and rollback ordering."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from lattice.core.errors import CorruptStateError
from lattice.core.ops.journal import (
    CheckpointEntry,
    ConflictPausedEntry,
    GitProcessEntry,
    Journal,
    MetadataWriteEntry,
    PendingEffect,
    RefEffect,
    RefUpdateEntry,
)
from lattice.core.types import BranchName, Oid, RefName
from lattice.engine.plan import RunGit, SetBaseCas

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
OLD = Oid("1" * 40)
NEW = Oid("2" * 40)
FEAT = RefName("refs/heads/feat")
TOPIC = RefName("refs/heads/topic")


def _journal() -> Journal:
    return Journal(op_id="op-1", command="restack", plan_digest="sha256:x", started_at=NOW)


def _paused_journal() -> Journal:
    journal = _journal()
    journal.append(RefUpdateEntry(timestamp=NOW, refname=FEAT, old_oid=OLD, new_oid=NEW))
    journal.append(CheckpointEntry(timestamp=NOW, name="before-topic"))
    journal.append(
        ConflictPausedEntry(
            timestamp=NOW,
            branch=BranchName("topic"),
            git_state="rebase",
            pending_effects=(PendingEffect(refname=TOPIC, old_oid=OLD),),
            remaining_steps=(
                SetBaseCas(
                    branch=BranchName("topic"),
                    old_ref_oid=OLD,
                    base_ref=RefName("refs/heads/feat"),
                ),
                RunGit(args=("checkout", "main"), description="Return to main"),
            ),
        )
    )
    return journal


def test_write_and_read_preserve_entries(tmp_path: Path) -> None:
    journal = _paused_journal()
    path = tmp_path / "ops" / "op-1.json"

    journal.write(path)
    loaded = Journal.read(path)

    assert loaded == journal
    assert [type(s).__name__ for s in loaded.remaining_steps()] == ["SetBaseCas", "RunGit"]
    assert not path.with_name("op-1.json.tmp").exists()


def test_read_missing_returns_none(tmp_path: Path) -> None:
    assert Journal.read(tmp_path / "absent.json") is None


def test_read_garbage_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "op.json"
    path.write_text('{"op_id": 1}', encoding="utf-8")

    with pytest.raises(CorruptStateError):
        Journal.read(path)


def test_rollback_entries_use_pending_effects_while_paused() -> None:
    journal = _paused_journal()

    entries = list(journal.rollback_entries())

    assert entries[0] == PendingEffect(refname=TOPIC, old_oid=OLD)
    assert isinstance(entries[1], RefUpdateEntry)
    assert len(entries) == 2
    assert not journal.pause_is_resolved()


def test_rollback_entries_use_completed_effects_after_continue() -> None:
    journal = _paused_journal()
    journal.append(
        GitProcessEntry(
            timestamp=NOW,
            args=("continue",),
            description="completed rebase",
            ref_effects=(RefEffect(refname=TOPIC, old_oid=OLD, new_oid=NEW),),
            completes_pause=True,
        )
    )
    journal.append(
        MetadataWriteEntry(
            timestamp=NOW,
            branch=BranchName("topic"),
            old_ref_oid=OLD,
            new_ref_oid=NEW,
            old_content="{}",
        )
    )

    entries = list(journal.rollback_entries())

    assert isinstance(entries[0], MetadataWriteEntry)
    assert entries[1] == RefEffect(refname=TOPIC, old_oid=OLD, new_oid=NEW)
    assert isinstance(entries[2], RefUpdateEntry)
    assert len(entries) == 3
    assert journal.pause_is_resolved()


def test_touched_refnames_cover_every_entry_kind() -> None:
    journal = _paused_journal()
    journal.append(
        MetadataWriteEntry(
            timestamp=NOW, branch=BranchName("topic"), old_ref_oid=None, new_ref_oid=NEW
        )
    )

    assert journal.touched_refnames() == {
        FEAT,
        TOPIC,
        RefName.for_metadata(BranchName("topic")),
    }
