"""Append-only event ledger stored as a commit chain.

Each event is a commit whose tree holds a single event.json blob, parented on
the previous head. The head ref (refs/lattice/event-log) is advanced with the
same CAS discipline as every other ref, so concurrent appends cannot silently
drop an entry. The ledger is never rewritten or truncated.
"""

import json
import logging
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from lattice.core.errors import CasFailed, CorruptStateError, LedgerConcurrentAppend
from lattice.core.git.abc import Git
from lattice.core.types import Oid, RefName

logger = logging.getLogger(__name__)

LEDGER_REF = RefName("refs/lattice/event-log")
EVENT_FILE = "event.json"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: datetime


class IntentRecorded(_Event):
    type: Literal["intent_recorded"] = "intent_recorded"
    op_id: str
    command: str
    plan_digest: str
    fingerprint_before: str


class Committed(_Event):
    type: Literal["committed"] = "committed"
    op_id: str
    fingerprint_after: str
    # Fingerprint inputs, so later divergence can name what changed.
    refs: dict[str, str] = Field(default_factory=dict)


class Aborted(_Event):
    type: Literal["aborted"] = "aborted"
    op_id: str
    reason: str
    evidence: list[str] = Field(default_factory=list)


class DivergenceObserved(_Event):
    type: Literal["divergence_observed"] = "divergence_observed"
    prior_fingerprint: str
    current_fingerprint: str
    changed_refs: list[str] = Field(default_factory=list)


class DoctorProposed(_Event):
    type: Literal["doctor_proposed"] = "doctor_proposed"
    issue_ids: list[str]
    fix_ids: list[str]


class DoctorApplied(_Event):
    type: Literal["doctor_applied"] = "doctor_applied"
    fix_ids: list[str]
    fingerprint_after: str
    refs: dict[str, str] = Field(default_factory=dict)


class UndoApplied(_Event):
    type: Literal["undo_applied"] = "undo_applied"
    undone_op_id: str
    refs_restored: int
    fingerprint_after: str
    refs: dict[str, str] = Field(default_factory=dict)


Event = Annotated[
    IntentRecorded
    | Committed
    | Aborted
    | DivergenceObserved
    | DoctorProposed
    | DoctorApplied
    | UndoApplied,
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[Event] = TypeAdapter(Event)

# Events whose fingerprint is a state lattice itself produced.
KnownGood = Committed | DoctorApplied | UndoApplied

APPEND_ATTEMPTS = 3


class EventLedger:
    """Read and append ledger events for one repository."""

    def __init__(self, git: Git, cwd: Path) -> None:
        self._git = git
        self._cwd = cwd

    def head(self) -> Oid | None:
        return self._git.resolve_ref(self._cwd, LEDGER_REF)

    def append(self, event: Event) -> Oid:
        """Append one event and CAS-advance the head.

        Raises:
            LedgerConcurrentAppend: If the head moved while appending
        """
        parent = self.head()
        payload = json.dumps(
            _EVENT_ADAPTER.dump_python(event, mode="json"), sort_keys=True, indent=2
        )
        blob = self._git.write_blob(self._cwd, payload.encode("utf-8"))
        tree = self._git.make_tree(self._cwd, {EVENT_FILE: blob})
        parents = [parent] if parent is not None else []
        commit = self._git.commit_tree(self._cwd, tree, parents, f"lattice: {event.type}")
        try:
            self._git.update_ref_cas(
                self._cwd, LEDGER_REF, commit, parent, message=f"lattice: {event.type}"
            )
        except CasFailed as e:
            raise LedgerConcurrentAppend(
                f"Event ledger moved during append (expected {e.expected}, found {e.actual})"
            ) from e
        logger.debug("ledger: appended %s at %s", event.type, commit.short())
        return commit

    def append_retrying(self, event: Event, attempts: int = APPEND_ATTEMPTS) -> Oid:
        """Append, re-reading the head each time a concurrent append wins the CAS.

        The log is append-only, so a lost race only means another event now
        precedes this one.

        Raises:
            LedgerConcurrentAppend: If every attempt lost the race
        """
        attempt = 1
        while True:
            try:
                return self.append(event)
            except LedgerConcurrentAppend as e:
                if attempt >= attempts:
                    raise
                logger.debug("ledger: append of %s raced (attempt %d): %s", event.type, attempt, e)
                attempt += 1

    def has_committed(self, op_id: str) -> bool:
        """Whether a committed event for op_id follows that operation's intent."""
        for event in self.events():
            if isinstance(event, Committed) and event.op_id == op_id:
                return True
            if isinstance(event, IntentRecorded) and event.op_id == op_id:
                return False
        return False

    def events(self) -> Iterator[Event]:
        """Yield events newest first."""
        current = self.head()
        while current is not None:
            raw = self._git.read_file_at(self._cwd, current, EVENT_FILE)
            if raw is None:
                raise CorruptStateError(f"Ledger commit {current} has no {EVENT_FILE}")
            try:
                yield _EVENT_ADAPTER.validate_json(raw)
            except ValidationError as e:
                raise CorruptStateError(f"Unreadable ledger event at {current}: {e}") from e
            parents = self._git.read_commit_parents(self._cwd, current)
            current = parents[0] if parents else None

    def last_committed(self) -> KnownGood | None:
        """Most recent event that records a known-good fingerprint."""
        for event in self.events():
            if isinstance(event, KnownGood):
                return event
        return None

    def last_divergence_since_commit(self) -> DivergenceObserved | None:
        for event in self.events():
            if isinstance(event, KnownGood):
                return None
            if isinstance(event, DivergenceObserved):
                return event
        return None
