"""Reverse an operation's journaled effects.

Entries are undone in exact reverse of their recorded order. Each inverse is
itself a CAS against the value the entry wrote, so a ref that something else
has moved since is reported rather than clobbered, and the remaining entries
are still attempted.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from lattice.core.errors import CasFailed, GitCommandError
from lattice.core.git.abc import Git
from lattice.core.ops.journal import (
    Journal,
    MetadataDeleteEntry,
    MetadataWriteEntry,
    PendingEffect,
    Undoable,
)
from lattice.core.types import Oid, RefName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RollbackFailure:
    refname: RefName
    expected: Oid | None
    actual: Oid | None
    error: str


@dataclass
class RollbackReport:
    restored: list[RefName] = field(default_factory=list)
    failures: list[RollbackFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures

    @property
    def failed_refs(self) -> list[RefName]:
        return [f.refname for f in self.failures]


def rollback(git: Git, cwd: Path, journal: Journal) -> RollbackReport:
    """Undo every journaled effect, newest first, continuing past failures."""
    report = RollbackReport()
    for entry in journal.rollback_entries():
        refname = _refname_of(entry)
        try:
            _undo(git, cwd, entry)
        except CasFailed as e:
            logger.debug("rollback of %s failed: %s", refname, e)
            report.failures.append(
                RollbackFailure(refname=refname, expected=e.expected, actual=e.actual, error=str(e))
            )
        except GitCommandError as e:
            report.failures.append(
                RollbackFailure(refname=refname, expected=None, actual=None, error=str(e))
            )
        else:
            report.restored.append(refname)
    logger.debug(
        "rollback %s: %d restored, %d failed",
        journal.op_id,
        len(report.restored),
        len(report.failures),
    )
    return report


def _refname_of(entry: Undoable) -> RefName:
    if isinstance(entry, MetadataWriteEntry | MetadataDeleteEntry):
        return RefName.for_metadata(entry.branch)
    return entry.refname


def _undo(git: Git, cwd: Path, entry: Undoable) -> None:
    if isinstance(entry, MetadataWriteEntry):
        ref = RefName.for_metadata(entry.branch)
        if entry.old_content is not None:
            # Re-writing the old content recreates the same blob even if it was pruned.
            git.write_blob(cwd, entry.old_content.encode("utf-8"))
        _restore(git, cwd, ref, entry.new_ref_oid, entry.old_ref_oid)
        return

    if isinstance(entry, MetadataDeleteEntry):
        if git.resolve_ref(cwd, RefName.for_metadata(entry.branch)) == entry.old_ref_oid:
            return
        git.write_blob(cwd, entry.old_content.encode("utf-8"))
        git.update_ref_cas(
            cwd,
            RefName.for_metadata(entry.branch),
            entry.old_ref_oid,
            None,
            message="lattice: rollback metadata delete",
        )
        return

    if isinstance(entry, PendingEffect):
        # The interrupted command's final value was never observed; aborting
        # it must have put the ref back, and that is all we can check.
        actual = git.resolve_ref(cwd, entry.refname)
        if actual != entry.old_oid:
            raise CasFailed(entry.refname, entry.old_oid, actual)
        return

    _restore(git, cwd, entry.refname, entry.new_oid, entry.old_oid)


def _restore(git: Git, cwd: Path, ref: RefName, written: Oid | None, original: Oid | None) -> None:
    """CAS ref from the value we wrote back to the value it had before.

    A ref already holding its original value counts as restored, so a repeated
    abort after a partial rollback only retries what is still outstanding.
    """
    if written == original or git.resolve_ref(cwd, ref) == original:
        return
    if original is None:
        if written is not None:
            git.delete_ref_cas(cwd, ref, written)
        return
    git.update_ref_cas(cwd, ref, original, written, message="lattice: rollback")
