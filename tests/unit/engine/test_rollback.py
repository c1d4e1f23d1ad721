"""Tests for reverse-order journal rollback."""

from datetime import UTC, datetime
from pathlib import Path

from lattice.core.ops.journal import (
    ConflictPausedEntry,
    Journal,
    MetadataDeleteEntry,
    MetadataWriteEntry,
    PendingEffect,
    RefUpdateEntry,
)
from lattice.core.types import BranchName, Oid, RefName
from lattice.engine.rollback import rollback
from tests.fakes.git import FakeGit, fake_object_id

ROOT = Path("/repo")
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
OLD = Oid("1" * 40)
NEW = Oid("2" * 40)
OTHER = Oid("3" * 40)
FEAT = RefName("refs/heads/feat")
TOPIC = RefName("refs/heads/topic")


def _journal(*entries) -> Journal:
    journal = Journal(op_id="op-1", command="restack", plan_digest="sha256:x", started_at=NOW)
    for entry in entries:
        journal.append(entry)
    return journal


def _repo(refs: dict[RefName, Oid]) -> FakeGit:
    return FakeGit(repos={}, refs=refs)


def test_ref_updates_are_reversed() -> None:
    git = _repo({FEAT: NEW, TOPIC: NEW})
    journal = _journal(
        RefUpdateEntry(timestamp=NOW, refname=FEAT, old_oid=OLD, new_oid=NEW),
        RefUpdateEntry(timestamp=NOW, refname=TOPIC, old_oid=None, new_oid=NEW),
    )

    report = rollback(git, ROOT, journal)

    assert report.complete
    assert report.restored == [TOPIC, FEAT]
    assert git.refs == {FEAT: OLD}


def test_drifted_ref_is_reported_and_others_still_restored() -> None:
    git = _repo({FEAT: NEW, TOPIC: OTHER})
    journal = _journal(
        RefUpdateEntry(timestamp=NOW, refname=FEAT, old_oid=OLD, new_oid=NEW),
        RefUpdateEntry(timestamp=NOW, refname=TOPIC, old_oid=OLD, new_oid=NEW),
    )

    report = rollback(git, ROOT, journal)

    assert not report.complete
    assert report.failed_refs == [TOPIC]
    assert report.failures[0].expected == NEW
    assert report.failures[0].actual == OTHER
    assert git.refs[FEAT] == OLD
    assert git.refs[TOPIC] == OTHER


def test_rollback_twice_is_harmless() -> None:
    git = _repo({FEAT: NEW})
    journal = _journal(RefUpdateEntry(timestamp=NOW, refname=FEAT, old_oid=OLD, new_oid=NEW))

    assert rollback(git, ROOT, journal).complete
    updates = len(git.ref_updates)
    assert rollback(git, ROOT, journal).complete

    assert len(git.ref_updates) == updates


def test_metadata_write_restores_previous_content() -> None:
    content = '{"old": true}'
    old_blob = fake_object_id("blob", content.encode("utf-8"))
    meta = RefName.for_metadata(BranchName("feat"))
    git = _repo({meta: NEW})
    journal = _journal(
        MetadataWriteEntry(
            timestamp=NOW,
            branch=BranchName("feat"),
            old_ref_oid=old_blob,
            new_ref_oid=NEW,
            old_content=content,
        )
    )

    assert rollback(git, ROOT, journal).complete

    assert git.refs[meta] == old_blob
    assert git.read_blob(ROOT, old_blob) == content.encode("utf-8")


def test_metadata_create_is_deleted() -> None:
    meta = RefName.for_metadata(BranchName("feat"))
    git = _repo({meta: NEW})
    journal = _journal(
        MetadataWriteEntry(
            timestamp=NOW, branch=BranchName("feat"), old_ref_oid=None, new_ref_oid=NEW
        )
    )

    assert rollback(git, ROOT, journal).complete
    assert meta not in git.refs


def test_metadata_delete_is_recreated() -> None:
    content = '{"kept": true}'
    blob = fake_object_id("blob", content.encode("utf-8"))
    meta = RefName.for_metadata(BranchName("feat"))
    git = _repo({})
    journal = _journal(
        MetadataDeleteEntry(
            timestamp=NOW, branch=BranchName("feat"), old_ref_oid=blob, old_content=content
        )
    )

    assert rollback(git, ROOT, journal).complete
    assert git.refs[meta] == blob


def test_pending_effect_must_be_back_at_its_old_value() -> None:
    git = _repo({TOPIC: NEW})
    journal = _journal(
        ConflictPausedEntry(
            timestamp=NOW,
            branch=BranchName("topic"),
            git_state="rebase",
            pending_effects=(PendingEffect(refname=TOPIC, old_oid=OLD),),
        )
    )

    report = rollback(git, ROOT, journal)

    assert report.failed_refs == [TOPIC]
    assert git.refs[TOPIC] == NEW
