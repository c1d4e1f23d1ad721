"""Tests for the commit-chain event ledger."""

from pathlib import Path

import pytest

from lattice.core.errors import CorruptStateError, LedgerConcurrentAppend
from lattice.core.types import Oid
from lattice.engine.ledger import (
    LEDGER_REF,
    Aborted,
    Committed,
    DivergenceObserved,
    EventLedger,
    IntentRecorded,
    UndoApplied,
)
from tests.fakes.git import FakeGit
from tests.fakes.time import DEFAULT_NOW

ROOT = Path("/repo")


class _StaleHeadLedger(EventLedger):
    """Reads an empty head, as a process that started before another appended."""

    def head(self) -> Oid | None:
        return None


def _intent(op_id: str = "op-1") -> IntentRecorded:
    return IntentRecorded(
        timestamp=DEFAULT_NOW,
        op_id=op_id,
        command="restack",
        plan_digest="sha256:x",
        fingerprint_before="f0",
    )


def _committed(op_id: str = "op-1", fingerprint: str = "f1") -> Committed:
    return Committed(timestamp=DEFAULT_NOW, op_id=op_id, fingerprint_after=fingerprint)


def _divergence(current: str) -> DivergenceObserved:
    return DivergenceObserved(
        timestamp=DEFAULT_NOW, prior_fingerprint="f1", current_fingerprint=current
    )


def test_empty_ledger() -> None:
    ledger = EventLedger(FakeGit(), ROOT)

    assert ledger.head() is None
    assert list(ledger.events()) == []
    assert ledger.last_committed() is None


def test_events_are_returned_newest_first() -> None:
    git = FakeGit()
    ledger = EventLedger(git, ROOT)

    ledger.append(_intent())
    ledger.append(_committed())
    head = ledger.append(Aborted(timestamp=DEFAULT_NOW, op_id="op-2", reason="user abort"))

    assert ledger.head() == head
    assert [e.type for e in ledger.events()] == ["aborted", "committed", "intent_recorded"]
    assert [update[0] for update in git.ref_updates] == [LEDGER_REF] * 3


def test_concurrent_append_is_detected() -> None:
    git = FakeGit()
    EventLedger(git, ROOT).append(_intent())

    with pytest.raises(LedgerConcurrentAppend):
        _StaleHeadLedger(git, ROOT).append(_committed())

    assert len(list(EventLedger(git, ROOT).events())) == 1


def test_last_committed_skips_later_events() -> None:
    ledger = EventLedger(FakeGit(), ROOT)
    ledger.append(_committed(fingerprint="f1"))
    ledger.append(_divergence("f2"))
    ledger.append(_intent("op-2"))

    last = ledger.last_committed()

    assert last is not None
    assert last.fingerprint_after == "f1"


def test_divergence_lookup_stops_at_commit() -> None:
    ledger = EventLedger(FakeGit(), ROOT)
    ledger.append(_divergence("f2"))
    assert ledger.last_divergence_since_commit() is not None

    ledger.append(_committed(op_id="op-2", fingerprint="f2"))

    assert ledger.last_divergence_since_commit() is None


def test_commit_without_event_file_is_corrupt() -> None:
    commit = Oid("a" * 40)
    git = FakeGit(refs={LEDGER_REF: commit}, commits={commit: ()})

    with pytest.raises(CorruptStateError):
        list(EventLedger(git, ROOT).events())


class _RacedLedger(EventLedger):
    """Reads an empty head for the first `stale_reads` appends, then the real one."""

    def __init__(self, git: FakeGit, cwd: Path, stale_reads: int) -> None:
        super().__init__(git, cwd)
        self._stale_reads = stale_reads

    def head(self) -> Oid | None:
        if self._stale_reads > 0:
            self._stale_reads -= 1
            return None
        return super().head()


def test_retrying_append_lands_after_a_lost_race() -> None:
    git = FakeGit()
    EventLedger(git, ROOT).append(_intent())

    _RacedLedger(git, ROOT, stale_reads=1).append_retrying(_committed())

    assert [e.type for e in EventLedger(git, ROOT).events()] == ["committed", "intent_recorded"]


def test_retrying_append_gives_up_after_its_attempts() -> None:
    git = FakeGit()
    EventLedger(git, ROOT).append(_intent())

    with pytest.raises(LedgerConcurrentAppend):
        _RacedLedger(git, ROOT, stale_reads=3).append_retrying(_committed(), attempts=3)

    assert len(list(EventLedger(git, ROOT).events())) == 1


def test_has_committed_only_looks_at_the_latest_run_of_an_operation() -> None:
    ledger = EventLedger(FakeGit(), ROOT)
    ledger.append(_intent("op-1"))
    ledger.append(_committed("op-1"))
    ledger.append(_intent("op-2"))

    assert ledger.has_committed("op-1")
    assert not ledger.has_committed("op-2")
    assert not ledger.has_committed("op-3")


def test_undo_is_a_known_good_state() -> None:
    ledger = EventLedger(FakeGit(), ROOT)
    ledger.append(_committed(fingerprint="f1"))
    ledger.append(_divergence("f2"))
    ledger.append(
        UndoApplied(
            timestamp=DEFAULT_NOW, undone_op_id="op-1", refs_restored=2, fingerprint_after="f0"
        )
    )

    last = ledger.last_committed()

    assert isinstance(last, UndoApplied)
    assert last.fingerprint_after == "f0"
    assert ledger.last_divergence_since_commit() is None
