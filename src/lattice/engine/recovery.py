"""Resume or abort an interrupted operation, or undo the last committed one.

continue and abort must run from the worktree that started the operation,
because the interrupted git command's state lives in that worktree's git dir.
An operation whose Committed event reached the ledger before the process died
is finished by either of them, never rolled back.
"""

import logging

from lattice.core.context import LatticeContext
from lattice.core.errors import (
    CorruptStateError,
    GitCommandError,
    NoOperationInProgress,
    NothingToUndo,
    OperationInProgressError,
    OperationNotPaused,
    RollbackIncomplete,
    SchemaVersionMismatch,
    WrongWorktreeError,
)
from lattice.core.git.abc import GitState
from lattice.core.ops.journal import Journal
from lattice.core.ops.op_state import AwaitingReason, OpState
from lattice.engine.capabilities import RECOVERY
from lattice.engine.exec import Aborted, Committed, ExecuteResult, Paused, Undone
from lattice.engine.gate import RepairBundle, gate
from lattice.engine.ledger import Committed as CommittedEvent
from lattice.engine.plan import PLAN_SCHEMA_VERSION
from lattice.engine.runner import NeedsRepair, scan_repository

logger = logging.getLogger(__name__)


def load_operation(ctx: LatticeContext) -> tuple[OpState, Journal]:
    """Read the op-state marker and its journal, checking the origin worktree.

    Raises:
        NoOperationInProgress: If there is no op-state marker
        WrongWorktreeError: If the operation started in another worktree
        CorruptStateError: If the marker exists but its journal does not
    """
    paths = ctx.paths
    op_state = OpState.read(paths.op_state_path)
    if op_state is None:
        raise NoOperationInProgress()

    origin = op_state.origin_worktree.resolve()
    here = ctx.worktree_root.resolve()
    if origin != here:
        raise WrongWorktreeError(origin, here)

    journal = Journal.read(paths.journal_path(op_state.op_id))
    if journal is None:
        raise CorruptStateError(
            f"Operation {op_state.op_id} has an op-state marker but no journal"
        )
    return op_state, journal


def continue_operation(ctx: LatticeContext, *, stage_all: bool = False) -> ExecuteResult:
    """Finish the interrupted git command and resume the remaining steps.

    Returns Paused again while the git command still has conflicts.

    Raises:
        OperationNotPaused: If an uncommitted operation is still marked executing,
            as after a crash; only abort applies
        SchemaVersionMismatch: If the plan was recorded by an incompatible version
        RollbackIncomplete: If the pause is a failed rollback (only abort applies)
        RepositoryChangedError: If a remaining step's ref moved while paused
    """
    op_state, journal = load_operation(ctx)
    executor = ctx.executor()
    if executor.is_committed(op_state.op_id, journal):
        logger.debug("%s already committed; clearing its marker", op_state.op_id)
        return executor.resume(op_state, journal)
    if not op_state.is_paused:
        raise OperationNotPaused(op_state.command, op_state.phase)
    if op_state.plan_schema_version != PLAN_SCHEMA_VERSION:
        raise SchemaVersionMismatch(PLAN_SCHEMA_VERSION, op_state.plan_schema_version)

    reason = op_state.awaiting_reason
    if reason is not None and reason.kind == "rollback_incomplete":
        raise RollbackIncomplete(list(reason.failed_refs))

    git_state = ctx.git.get_state(ctx.cwd)
    if git_state.is_in_progress:
        still_paused = _complete_git_operation(ctx, git_state, stage_all=stage_all)
        if still_paused is not None:
            pause = journal.last_pause()
            return Paused(
                op_id=op_state.op_id,
                reason=reason
                if reason is not None
                else AwaitingReason(kind="conflict", detail=still_paused.description),
                branch=pause.branch if pause is not None else None,
                git_state=still_paused,
                remaining_steps=tuple(journal.remaining_steps()),
            )
    else:
        logger.debug("no git operation in progress; resuming %s directly", op_state.op_id)

    return executor.resume(op_state, journal)


def abort_operation(ctx: LatticeContext) -> Aborted | Committed:
    """Abort any interrupted git command and roll back the whole journal.

    Returns Committed, without touching any ref, when the operation had already
    committed and only its marker was left behind.

    Raises:
        RollbackIncomplete: If some refs could not be restored; the operation
            stays paused naming them
    """
    op_state, journal = load_operation(ctx)
    executor = ctx.executor()
    if executor.is_committed(op_state.op_id, journal):
        logger.debug("%s already committed; nothing to abort", op_state.op_id)
        return executor.finish_committed(op_state, journal)

    git_state = ctx.git.get_state(ctx.cwd)
    if git_state.is_in_progress:
        args = git_state.abort_args()
        if args is not None:
            result = ctx.git.run_git(ctx.cwd, args)
            if not result.success:
                raise GitCommandError(
                    f"Failed to abort {git_state.description}\nCommand: git {' '.join(args)}"
                    f"\nExit code: {result.returncode}\nstderr: {result.stderr.strip()}"
                )

    outcome = executor.abort(op_state, journal, reason="aborted by user")
    if isinstance(outcome, Paused):
        raise RollbackIncomplete(list(outcome.failed_refs))
    return outcome


def _complete_git_operation(
    ctx: LatticeContext, git_state: GitState, *, stage_all: bool
) -> GitState | None:
    """Run '<op> --continue'. Returns the git state if it is still in progress."""
    if stage_all:
        added = ctx.git.run_git(ctx.cwd, ["add", "-A"])
        if not added.success:
            raise GitCommandError(f"Failed to stage changes\nstderr: {added.stderr.strip()}")

    args = git_state.continue_args()
    if args is None:
        raise GitCommandError(
            f"A {git_state.description} cannot be continued; finish it manually or run "
            "'lattice abort'"
        )
    result = ctx.git.run_git(ctx.cwd, args)
    after = ctx.git.get_state(ctx.cwd)
    if after.is_in_progress:
        logger.debug("%s still in progress after continue", after.description)
        return after
    if not result.success:
        raise GitCommandError(
            f"Failed to continue {git_state.description}\nCommand: git {' '.join(args)}"
            f"\nExit code: {result.returncode}\nstderr: {result.stderr.strip()}"
        )
    return None


def undo_last_operation(ctx: LatticeContext) -> Undone | NeedsRepair:
    """Reverse the most recent committed operation.

    Walks the ledger newest first, skipping operations already undone, so
    repeated undo steps back through history one operation at a time.

    Raises:
        OperationInProgressError: If an operation is in flight
        NothingToUndo: If no committed operation with a journal remains
        UndoBlocked: If a ref the operation wrote has since moved
    """
    snapshot = scan_repository(ctx)
    outcome = gate(snapshot, "undo", RECOVERY)
    if isinstance(outcome, RepairBundle):
        return NeedsRepair(bundle=outcome)
    if snapshot.op_state is not None:
        raise OperationInProgressError(snapshot.op_state.op_id, snapshot.op_state.command)

    journal = _last_undoable_journal(ctx)
    return ctx.executor().undo(journal)


def _last_undoable_journal(ctx: LatticeContext) -> Journal:
    for event in ctx.ledger().events():
        if not isinstance(event, CommittedEvent):
            continue
        journal = Journal.read(ctx.paths.journal_path(event.op_id))
        if journal is None:
            raise NothingToUndo(f"The journal of operation {event.op_id} is gone; cannot undo it")
        if journal.phase == "undone":
            continue
        return journal
    raise NothingToUndo()
