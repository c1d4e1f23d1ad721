"""Error taxonomy for the operation engine.

Every error raised by core and engine code derives from LatticeError. The CLI
layer is the only place these are converted into exit codes.

A conflict pause is NOT an error: it is reported through the Paused outcome.
"""

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lattice.core.types import BranchName, Oid, RefName


class LatticeError(Exception):
    """Base class for all lattice errors."""


class InvalidNameError(LatticeError, ValueError):
    """A branch name, ref name, or object id failed validation."""

    def __init__(self, kind: str, value: str, reason: str) -> None:
        self.kind = kind
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {kind} {value!r}: {reason}")


def _fmt_oid(oid: "Oid | None") -> str:
    if oid is None:
        return "<absent>"
    return str(oid)


class CasFailed(LatticeError):
    """A compare-and-swap precondition did not hold for a specific ref."""

    def __init__(self, refname: "RefName", expected: "Oid | None", actual: "Oid | None") -> None:
        self.refname = refname
        self.expected = expected
        self.actual = actual
        super().__init__(self._describe())

    def _describe(self) -> str:
        return (
            f"CAS failed for {self.refname}: "
            f"expected {_fmt_oid(self.expected)}, found {_fmt_oid(self.actual)}"
        )


class RepositoryChangedError(CasFailed):
    """A remaining step's precondition drifted while the operation was paused."""

    def _describe(self) -> str:
        return (
            f"repository changed since operation paused: {self.refname} "
            f"expected {_fmt_oid(self.expected)}, found {_fmt_oid(self.actual)}"
        )


class UndoBlocked(CasFailed):
    """A ref the operation wrote has moved since it committed."""

    def _describe(self) -> str:
        return (
            f"cannot undo: {self.refname} changed after the operation committed "
            f"(expected {_fmt_oid(self.expected)}, found {_fmt_oid(self.actual)})"
        )


class OccupancyViolation(LatticeError):
    """A branch the plan touches is checked out in another worktree."""

    def __init__(self, branch: "BranchName", worktree_path: Path) -> None:
        self.branch = branch
        self.worktree_path = worktree_path
        super().__init__(
            f"Branch '{branch}' is checked out in another worktree: {worktree_path}"
        )


class VerificationFailed(LatticeError):
    """Post-execution structural verification found problems."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("Post-verification failed: " + "; ".join(problems))


class RollbackIncomplete(LatticeError):
    """One or more inverse CAS steps failed during rollback."""

    def __init__(self, failed_refs: "list[RefName]") -> None:
        self.failed_refs = failed_refs
        names = ", ".join(str(r) for r in failed_refs)
        super().__init__(f"Rollback incomplete; could not restore: {names}")


class SchemaVersionMismatch(LatticeError):
    """A paused operation was recorded with an incompatible plan schema."""

    def __init__(self, expected: int, found: int) -> None:
        self.expected = expected
        self.found = found
        super().__init__(
            f"Paused operation uses plan schema version {found}, "
            f"but this version of lattice supports {expected}"
        )


class LockContention(LatticeError):
    """The repository lock (or credential lock) could not be acquired in time."""

    def __init__(self, lock_path: Path, timeout: float, holder: str | None) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        self.holder = holder
        msg = f"Timed out after {timeout:g}s waiting for lock {lock_path}"
        if holder:
            msg += f" (held by {holder})"
        super().__init__(msg)


class OperationInProgressError(LatticeError):
    """An op-state marker already exists for this repository."""

    def __init__(self, op_id: str, command: str) -> None:
        self.op_id = op_id
        self.command = command
        super().__init__(
            f"Operation '{command}' ({op_id}) is already in progress. "
            "Run 'lattice continue' or 'lattice abort'."
        )


class NoOperationInProgress(LatticeError):
    def __init__(self) -> None:
        super().__init__("No operation in progress")


class OperationNotPaused(LatticeError):
    def __init__(self, command: str, phase: str) -> None:
        self.phase = phase
        super().__init__(f"Operation '{command}' is not paused (phase: {phase})")


class NothingToUndo(LatticeError):
    def __init__(self, detail: str = "No committed operation to undo") -> None:
        super().__init__(detail)


class WrongWorktreeError(LatticeError):
    """Recovery was attempted from a worktree other than the one that started the op."""

    def __init__(self, origin: Path, current: Path) -> None:
        self.origin = origin
        self.current = current
        super().__init__(
            f"This operation was started in worktree {origin}. "
            f"Run 'lattice continue' or 'lattice abort' from there (current: {current})."
        )


class PlanError(LatticeError):
    """A command could not build a plan from the gated snapshot."""


class LedgerConcurrentAppend(LatticeError):
    """Another process appended to the event ledger between read and CAS."""


class CorruptStateError(LatticeError):
    """A journal or op-state file exists but cannot be parsed."""


class MetadataError(LatticeError):
    """Branch metadata could not be parsed or written."""


class ForgeError(LatticeError):
    """A remote forge operation failed."""


class RepositoryError(LatticeError):
    """Passthrough failure from the repository interface."""


class NotARepositoryError(RepositoryError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Not inside a git repository: {path}")


class GitCommandError(RepositoryError, RuntimeError):
    """A git subprocess failed unexpectedly."""
