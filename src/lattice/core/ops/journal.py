"""Operation journal: the write-ahead record of steps as executed.

One JSON file per operation at <common_dir>/lattice/ops/<op_id>.json. Every
append is written atomically (temp file, fsync, rename) before the executor
moves on, so after a crash the journal is an exact prefix of what was applied.

The journal is what rollback replays in reverse, and its conflict_paused
entries carry the serialized remaining steps that 'continue' resumes from.
"""

import json
import logging
import os
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lattice.core.errors import CorruptStateError
from lattice.core.types import BranchName, Oid, RefName
from lattice.engine.plan import PlanStep

logger = logging.getLogger(__name__)


class _Entry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: datetime


class RefEffect(BaseModel):
    """One ref transition: old_oid None = created, new_oid None = deleted."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    refname: RefName
    old_oid: Oid | None
    new_oid: Oid | None


class PendingEffect(BaseModel):
    """A ref an interrupted git command may move, with its pre-command value."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    refname: RefName
    old_oid: Oid | None


class RefUpdateEntry(_Entry):
    kind: Literal["ref_update"] = "ref_update"
    refname: RefName
    old_oid: Oid | None
    new_oid: Oid | None


class MetadataWriteEntry(_Entry):
    kind: Literal["metadata_write"] = "metadata_write"
    branch: BranchName
    old_ref_oid: Oid | None
    new_ref_oid: Oid
    old_content: str | None = None


class MetadataDeleteEntry(_Entry):
    kind: Literal["metadata_delete"] = "metadata_delete"
    branch: BranchName
    old_ref_oid: Oid
    old_content: str


class CheckpointEntry(_Entry):
    kind: Literal["checkpoint"] = "checkpoint"
    name: str


class GitProcessEntry(_Entry):
    kind: Literal["git_process"] = "git_process"
    args: tuple[str, ...]
    description: str
    ref_effects: tuple[RefEffect, ...] = ()
    # True when this records the completion of a paused git command.
    completes_pause: bool = False


class ConflictPausedEntry(_Entry):
    """The suspended continuation: everything needed to resume or undo."""

    kind: Literal["conflict_paused"] = "conflict_paused"
    branch: BranchName | None
    git_state: str
    pending_effects: tuple[PendingEffect, ...] = ()
    remaining_steps: tuple[PlanStep, ...] = ()


JournalEntry = Annotated[
    RefUpdateEntry
    | MetadataWriteEntry
    | MetadataDeleteEntry
    | CheckpointEntry
    | GitProcessEntry
    | ConflictPausedEntry,
    Field(discriminator="kind"),
]

Undoable = RefUpdateEntry | MetadataWriteEntry | MetadataDeleteEntry | RefEffect | PendingEffect

JournalPhase = Literal["in_progress", "paused", "committed", "rolled_back", "undone"]


class Journal(BaseModel):
    model_config = ConfigDict(extra="forbid")

    op_id: str
    command: str
    plan_digest: str
    started_at: datetime
    finished_at: datetime | None = None
    phase: JournalPhase = "in_progress"
    # Verification problems that predate the operation and are not its fault.
    baseline_problems: list[str] = Field(default_factory=list)
    steps: list[JournalEntry] = Field(default_factory=list)

    def append(self, entry: JournalEntry) -> None:
        self.steps.append(entry)

    def last_pause(self) -> ConflictPausedEntry | None:
        for entry in reversed(self.steps):
            if isinstance(entry, ConflictPausedEntry):
                return entry
        return None

    def remaining_steps(self) -> list[PlanStep]:
        """Steps embedded in the most recent conflict_paused entry."""
        pause = self.last_pause()
        if pause is None:
            return []
        return list(pause.remaining_steps)

    def pause_is_resolved(self) -> bool:
        """Whether the git command interrupted by the latest pause has been journaled."""
        for entry in reversed(self.steps):
            if isinstance(entry, ConflictPausedEntry):
                return False
            if isinstance(entry, GitProcessEntry) and entry.completes_pause:
                return True
        return False

    def touched_refnames(self) -> set[RefName]:
        """Every ref some journaled entry has moved or may have moved."""
        refs: set[RefName] = set()
        for entry in self.steps:
            if isinstance(entry, RefUpdateEntry):
                refs.add(entry.refname)
            elif isinstance(entry, MetadataWriteEntry | MetadataDeleteEntry):
                refs.add(RefName.for_metadata(entry.branch))
            elif isinstance(entry, GitProcessEntry):
                refs.update(effect.refname for effect in entry.ref_effects)
            elif isinstance(entry, ConflictPausedEntry):
                refs.update(effect.refname for effect in entry.pending_effects)
        return refs

    def final_ref_values(self) -> dict[RefName, Oid | None]:
        """The value each journaled ref was left at, None for deleted refs."""
        values: dict[RefName, Oid | None] = {}
        for entry in self.steps:
            if isinstance(entry, RefUpdateEntry):
                values[entry.refname] = entry.new_oid
            elif isinstance(entry, MetadataWriteEntry):
                values[RefName.for_metadata(entry.branch)] = entry.new_ref_oid
            elif isinstance(entry, MetadataDeleteEntry):
                values[RefName.for_metadata(entry.branch)] = None
            elif isinstance(entry, GitProcessEntry):
                for effect in entry.ref_effects:
                    values[effect.refname] = effect.new_oid
        return values

    def rollback_entries(self) -> Iterator[Undoable]:
        """Undoable records in exact reverse of recorded order.

        A conflict_paused entry whose git step never completed contributes its
        pending effects; once continue has journaled the completed git step,
        that git_process entry carries the effects instead.
        """
        resolved = False
        for entry in reversed(self.steps):
            if isinstance(entry, RefUpdateEntry | MetadataWriteEntry | MetadataDeleteEntry):
                yield entry
            elif isinstance(entry, GitProcessEntry):
                resolved = entry.completes_pause
                yield from reversed(entry.ref_effects)
            elif isinstance(entry, ConflictPausedEntry):
                if not resolved:
                    yield from reversed(entry.pending_effects)
                resolved = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def write(self, path: Path) -> None:
        """Atomically persist the journal, fsyncing file and directory."""
        write_json_atomic(path, self.model_dump(mode="json"))
        logger.debug("journal %s: %d steps, phase=%s", self.op_id, len(self.steps), self.phase)

    @classmethod
    def read(cls, path: Path) -> "Journal | None":
        if not path.exists():
            return None
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise CorruptStateError(f"Unreadable operation journal {path}: {e}") from e


def write_json_atomic(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    payload = json.dumps(data, indent=2, sort_keys=True) + "\n"
    with tmp.open("w", encoding="utf-8") as f:
        f.write(payload)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)
    dir_fd = os.open(path.parent, os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
