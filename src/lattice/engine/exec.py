"""Executor: apply a plan under the repository lock.

Algorithm for a fresh plan:

1. Acquire the repository lock (shared by all worktrees, bounded wait).
2. Re-check worktree occupancy for touched branches, under the lock.
3. Re-check every local step's CAS precondition against current reality.
4. Record IntentRecorded, then create the op-state marker and the journal.
5. Apply steps in order, journaling (and fsyncing) each one before moving on.
   A git command that stops mid-operation pauses the plan, embedding the
   unexecuted steps in the journal.
6. Re-scan and verify structure. Failure (or any step failure) rolls back.
7. Record Committed with the fresh fingerprint and remove the marker.
8. Run deferred remote steps; their failures never undo local work.

resume() re-enters the same loop from a paused journal. undo() reverses a
committed journal once every ref it wrote is confirmed unchanged.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from lattice.core.config import RepoConfig
from lattice.core.errors import (
    CasFailed,
    ForgeError,
    GitCommandError,
    LatticeError,
    MetadataError,
    OccupancyViolation,
    OperationInProgressError,
    RepositoryChangedError,
    RollbackIncomplete,
    UndoBlocked,
    VerificationFailed,
)
from lattice.core.git.abc import Git, GitState, RepoInfo, find_worktree_for_branch
from lattice.core.metadata.schema import BranchMetadata
from lattice.core.metadata.store import MetadataStore
from lattice.core.ops.journal import (
    CheckpointEntry,
    ConflictPausedEntry,
    GitProcessEntry,
    Journal,
    MetadataDeleteEntry,
    MetadataWriteEntry,
    PendingEffect,
    RefEffect,
    RefUpdateEntry,
)
from lattice.core.ops.lock import RepoLock
from lattice.core.ops.op_state import AwaitingReason, OpState, TouchedRef
from lattice.core.paths import LatticePaths
from lattice.core.time.abc import Time
from lattice.core.types import BranchName, Oid, RefName
from lattice.engine.gate import ReadyContext
from lattice.engine.ledger import Aborted as AbortedEvent
from lattice.engine.ledger import Committed as CommittedEvent
from lattice.engine.ledger import EventLedger, IntentRecorded, UndoApplied
from lattice.engine.plan import (
    PLAN_SCHEMA_VERSION,
    Checkpoint,
    CreateReview,
    DeleteMetadataCas,
    DeleteRefCas,
    FetchRemote,
    MergeReview,
    Plan,
    PlanStep,
    PotentialConflictPause,
    PushBranch,
    RunGit,
    SetBaseCas,
    UpdateRefCas,
    UpdateReview,
    WriteMetadataCas,
)
from lattice.engine.rollback import RollbackReport, rollback
from lattice.engine.scan import RepoSnapshot, scan
from lattice.engine.verify import verify_snapshot
from lattice.forge.abc import Forge

logger = logging.getLogger(__name__)


# ============================================================================
# Outcomes
# ============================================================================


@dataclass(frozen=True)
class RemoteStepFailure:
    step: PlanStep
    error: str


@dataclass(frozen=True)
class Committed:
    op_id: str
    fingerprint: str
    remote_failures: tuple[RemoteStepFailure, ...] = ()


@dataclass(frozen=True)
class Paused:
    """Designed suspend state; resumed with continue or undone with abort."""

    op_id: str
    reason: AwaitingReason
    branch: BranchName | None = None
    git_state: GitState | None = None
    remaining_steps: tuple[PlanStep, ...] = ()
    failed_refs: tuple[RefName, ...] = field(default=())


@dataclass(frozen=True)
class Aborted:
    op_id: str
    error: LatticeError
    rollback: RollbackReport


@dataclass(frozen=True)
class Undone:
    op_id: str
    command: str
    rollback: RollbackReport


ExecuteResult = Committed | Paused | Aborted


@dataclass(frozen=True)
class _PendingPause:
    state: GitState
    effects: tuple[PendingEffect, ...]


# ============================================================================
# Precondition and occupancy checks
# ============================================================================


def check_preconditions(
    git: Git,
    cwd: Path,
    steps: Sequence[PlanStep],
    error_cls: type[CasFailed] = CasFailed,
    git_expectations: Mapping[RefName, Oid | None] | None = None,
) -> None:
    """Verify every step's expected old value, simulating earlier steps' writes.

    Refs that an earlier RunGit or metadata write will move are not checked,
    since their value at that point cannot be known in advance. A RunGit step
    has no old value of its own; when git_expectations is given, the refs it
    will move are checked against it.

    Raises:
        CasFailed (or error_cls): On the first ref whose value has drifted
    """
    known: dict[RefName, Oid | None] = {}
    unknown: set[RefName] = set()

    def check(ref: RefName, expected: Oid | None) -> None:
        if ref in unknown:
            return
        if ref not in known:
            known[ref] = git.resolve_ref(cwd, ref)
        if known[ref] != expected:
            raise error_cls(ref, expected, known[ref])

    for step in steps:
        if isinstance(step, UpdateRefCas):
            check(step.refname, step.old_oid)
            known[step.refname] = step.new_oid
        elif isinstance(step, DeleteRefCas):
            check(step.refname, step.old_oid)
            known[step.refname] = None
        elif isinstance(step, WriteMetadataCas | SetBaseCas):
            ref = RefName.for_metadata(step.branch)
            check(ref, step.old_ref_oid)
            unknown.add(ref)
        elif isinstance(step, DeleteMetadataCas):
            ref = RefName.for_metadata(step.branch)
            check(ref, step.old_ref_oid)
            known[ref] = None
        elif isinstance(step, RunGit):
            if git_expectations is not None:
                for ref in step.expected_effects:
                    if ref in git_expectations:
                        check(ref, git_expectations[ref])
            unknown.update(step.expected_effects)


def check_occupancy(
    git: Git, cwd: Path, worktree_root: Path, branches: Sequence[BranchName]
) -> None:
    """Fail if any branch is checked out in a worktree other than worktree_root.

    Raises:
        OccupancyViolation: Naming the first occupied branch and its worktree
    """
    if not branches:
        return
    worktrees = git.list_worktrees(cwd)
    here = worktree_root.resolve()
    for branch in branches:
        path = find_worktree_for_branch(worktrees, branch)
        if path is not None and path.resolve() != here:
            raise OccupancyViolation(branch, path)


def touched_refs_with_expectations(
    git: Git, cwd: Path, steps: Sequence[PlanStep]
) -> list[TouchedRef]:
    touched: dict[RefName, Oid | None] = {}
    for step in steps:
        if isinstance(step, UpdateRefCas | DeleteRefCas):
            touched.setdefault(step.refname, step.old_oid)
        elif isinstance(step, WriteMetadataCas | DeleteMetadataCas | SetBaseCas):
            touched.setdefault(RefName.for_metadata(step.branch), step.old_ref_oid)
        elif isinstance(step, RunGit):
            for ref in step.expected_effects:
                if ref not in touched:
                    touched[ref] = git.resolve_ref(cwd, ref)
    return [TouchedRef(refname=ref, expected_old=oid) for ref, oid in touched.items()]


def _produces_record(step: PlanStep) -> bool:
    return not step.is_remote and not isinstance(step, PotentialConflictPause)


def unapplied_steps(steps: Sequence[PlanStep], applied_records: int) -> list[PlanStep]:
    """Drop the prefix of steps already represented by applied_records journal entries."""
    consumed = 0
    index = 0
    while index < len(steps) and consumed < applied_records:
        if _produces_record(steps[index]):
            consumed += 1
        index += 1
    return list(steps[index:])


# ============================================================================
# Executor
# ============================================================================


class Executor:
    """Applies plans for one repository, as seen from one worktree."""

    def __init__(
        self,
        *,
        git: Git,
        time: Time,
        cwd: Path,
        repo_info: RepoInfo,
        config: RepoConfig,
        ledger: EventLedger,
        forge: Forge | None = None,
        auth_available: bool = False,
    ) -> None:
        self._git = git
        self._time = time
        self._cwd = cwd
        self._repo_info = repo_info
        self._config = config
        self._ledger = ledger
        self._forge = forge
        self._auth_available = auth_available
        self._paths = LatticePaths(git_dir=repo_info.git_dir, common_dir=repo_info.common_dir)
        self._store = MetadataStore(git, cwd)

    @property
    def paths(self) -> LatticePaths:
        return self._paths

    @property
    def worktree_root(self) -> Path:
        if self._repo_info.work_dir is not None:
            return self._repo_info.work_dir
        return self._repo_info.git_dir

    def lock(self, purpose: str) -> RepoLock:
        return RepoLock.for_paths(
            self._paths,
            time=self._time,
            timeout=self._config.lock_timeout_seconds,
            purpose=purpose,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def execute(self, plan: Plan, ready: ReadyContext) -> ExecuteResult:
        """Apply a freshly built plan.

        Raises:
            LockContention: If another process holds the repository lock
            OccupancyViolation: If a touched branch is checked out elsewhere
            CasFailed: If a precondition drifted since planning (nothing applied)
            OperationInProgressError: If another operation's marker exists
        """
        local = plan.local_steps()
        with self.lock(f"{plan.command} ({plan.op_id})"):
            check_occupancy(self._git, self._cwd, self.worktree_root, plan.touched_branches())
            existing = OpState.read(self._paths.op_state_path)
            if existing is not None:
                raise OperationInProgressError(existing.op_id, existing.command)
            check_preconditions(self._git, self._cwd, local)

            baseline = verify_snapshot(self._git, ready.snapshot)
            now = self._time.now()
            self._ledger.append_retrying(
                IntentRecorded(
                    timestamp=now,
                    op_id=plan.op_id,
                    command=plan.command,
                    plan_digest=plan.digest(),
                    fingerprint_before=ready.snapshot.fingerprint.value,
                )
            )
            op_state = OpState(
                op_id=plan.op_id,
                command=plan.command,
                phase="executing",
                plan_digest=plan.digest(),
                plan_schema_version=plan.schema_version,
                touched_refs=tuple(touched_refs_with_expectations(self._git, self._cwd, local)),
                origin_worktree=self.worktree_root,
                updated_at=now,
            )
            self._paths.ensure_dirs()
            op_state.create(self._paths.op_state_path)
            journal = Journal(
                op_id=plan.op_id,
                command=plan.command,
                plan_digest=plan.digest(),
                started_at=now,
                baseline_problems=baseline,
            )
            journal.write(self._paths.journal_path(plan.op_id))
            logger.debug("executing %s (%s): %d local steps", plan.command, plan.op_id, len(local))
            return self._run(op_state, journal, local, plan.remote_steps())

    def resume(self, op_state: OpState, journal: Journal) -> ExecuteResult:
        """Continue a paused operation whose external git command has finished.

        Raises:
            LockContention: If another process holds the repository lock
            RepositoryChangedError: If a remaining step's precondition drifted
        """
        with self.lock(f"continue {op_state.command} ({op_state.op_id})"):
            if self.is_committed(op_state.op_id, journal):
                return self._finalize_commit(op_state, journal)

            pause = journal.last_pause()
            if pause is not None and not journal.pause_is_resolved():
                effects = tuple(
                    RefEffect(
                        refname=p.refname,
                        old_oid=p.old_oid,
                        new_oid=self._git.resolve_ref(self._cwd, p.refname),
                    )
                    for p in pause.pending_effects
                )
                journal.append(
                    GitProcessEntry(
                        timestamp=self._time.now(),
                        args=("continue",),
                        description=f"completed {pause.git_state}",
                        ref_effects=effects,
                        completes_pause=True,
                    )
                )
                journal.write(self._paths.journal_path(journal.op_id))

            steps = unapplied_steps(journal.remaining_steps(), self._records_since_pause(journal))
            local = [s for s in steps if not s.is_remote]
            remote = [s for s in steps if s.is_remote]
            moved = journal.touched_refnames()
            untouched = {
                t.refname: t.expected_old for t in op_state.touched_refs if t.refname not in moved
            }
            check_preconditions(
                self._git,
                self._cwd,
                local,
                error_cls=RepositoryChangedError,
                git_expectations=untouched,
            )

            op_state = op_state.executing(self._time.now())
            op_state.update(self._paths.op_state_path)
            journal.phase = "in_progress"
            journal.write(self._paths.journal_path(journal.op_id))
            logger.debug("resuming %s: %d local steps remain", op_state.op_id, len(local))
            return self._run(op_state, journal, local, remote)

    def abort(
        self, op_state: OpState, journal: Journal, reason: str
    ) -> Aborted | Paused | Committed:
        """Roll back everything the journal recorded.

        An operation whose Committed event is already in the ledger is never
        rolled back; its leftover marker is cleared and Committed is returned.
        """
        with self.lock(f"abort {op_state.command} ({op_state.op_id})"):
            if self.is_committed(op_state.op_id, journal):
                return self._finalize_commit(op_state, journal)
            report = rollback(self._git, self._cwd, journal)
            return self._after_rollback(op_state, journal, _AbortRequested(reason), report)

    def finish_committed(self, op_state: OpState, journal: Journal) -> Committed:
        """Clear the marker of an operation that committed before the process died."""
        with self.lock(f"finish {op_state.command} ({op_state.op_id})"):
            return self._finalize_commit(op_state, journal)

    def is_committed(self, op_id: str, journal: Journal) -> bool:
        return journal.phase == "committed" or self._ledger.has_committed(op_id)

    def undo(self, journal: Journal) -> Undone:
        """Reverse a committed operation from its journal.

        Every ref the operation wrote must still hold the value it was left at;
        otherwise nothing is touched.

        Raises:
            LockContention: If another process holds the repository lock
            OperationInProgressError: If an op-state marker exists
            OccupancyViolation: If a moved branch is checked out in another worktree
            UndoBlocked: If a written ref has moved since the operation committed
            RollbackIncomplete: If a restore failed after the checks passed
        """
        with self.lock(f"undo {journal.command} ({journal.op_id})"):
            existing = OpState.read(self._paths.op_state_path)
            if existing is not None:
                raise OperationInProgressError(existing.op_id, existing.command)

            final = journal.final_ref_values()
            branches: list[BranchName] = []
            for ref in final:
                branch = ref.branch_name()
                if branch is not None:
                    branches.append(branch)
            check_occupancy(self._git, self._cwd, self.worktree_root, branches)
            for ref, expected in final.items():
                actual = self._git.resolve_ref(self._cwd, ref)
                if actual != expected:
                    raise UndoBlocked(ref, expected, actual)

            report = rollback(self._git, self._cwd, journal)
            if not report.complete:
                raise RollbackIncomplete(report.failed_refs)

            snapshot = self._rescan()
            self._ledger.append_retrying(
                UndoApplied(
                    timestamp=self._time.now(),
                    undone_op_id=journal.op_id,
                    refs_restored=len(report.restored),
                    fingerprint_after=snapshot.fingerprint.value,
                    refs=snapshot.fingerprint.as_dict(),
                )
            )
            journal.phase = "undone"
            journal.write(self._paths.journal_path(journal.op_id))
            logger.debug("undid %s: %d refs restored", journal.op_id, len(report.restored))
            return Undone(op_id=journal.op_id, command=journal.command, rollback=report)

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    def _run(
        self,
        op_state: OpState,
        journal: Journal,
        local: list[PlanStep],
        remote: list[PlanStep],
    ) -> ExecuteResult:
        for index, step in enumerate(local):
            try:
                pending = self._apply(step, journal)
            except (CasFailed, GitCommandError, MetadataError) as e:
                logger.debug("step %d failed: %s", index, e)
                return self._fail(op_state, journal, e)
            if pending is not None:
                remaining = tuple(local[index + 1 :] + remote)
                return self._pause(op_state, journal, step, local[index + 1 :], pending, remaining)
        return self._complete(op_state, journal, remote)

    def _apply(self, step: PlanStep, journal: Journal) -> _PendingPause | None:
        now = self._time.now()
        if isinstance(step, UpdateRefCas):
            self._git.update_ref_cas(
                self._cwd, step.refname, step.new_oid, step.old_oid, message=step.reason
            )
            entry = RefUpdateEntry(
                timestamp=now, refname=step.refname, old_oid=step.old_oid, new_oid=step.new_oid
            )
        elif isinstance(step, DeleteRefCas):
            self._git.delete_ref_cas(self._cwd, step.refname, step.old_oid)
            entry = RefUpdateEntry(
                timestamp=now, refname=step.refname, old_oid=step.old_oid, new_oid=None
            )
        elif isinstance(step, WriteMetadataCas):
            old_content = None
            if step.old_ref_oid is not None:
                old_content = self._store.read_raw(step.old_ref_oid)
            new_oid = self._store.write_cas(step.branch, step.old_ref_oid, step.metadata)
            entry = MetadataWriteEntry(
                timestamp=now,
                branch=step.branch,
                old_ref_oid=step.old_ref_oid,
                new_ref_oid=new_oid,
                old_content=old_content,
            )
        elif isinstance(step, SetBaseCas):
            old_content = self._store.read_raw(step.old_ref_oid)
            base = self._git.resolve_ref(self._cwd, step.base_ref)
            if base is None:
                raise MetadataError(f"Cannot set base of {step.branch}: {step.base_ref} is absent")
            metadata = BranchMetadata.parse(old_content).with_base(base, now)
            new_oid = self._store.write_cas(step.branch, step.old_ref_oid, metadata)
            entry = MetadataWriteEntry(
                timestamp=now,
                branch=step.branch,
                old_ref_oid=step.old_ref_oid,
                new_ref_oid=new_oid,
                old_content=old_content,
            )
        elif isinstance(step, DeleteMetadataCas):
            old_content = self._store.read_raw(step.old_ref_oid)
            self._store.delete_cas(step.branch, step.old_ref_oid)
            entry = MetadataDeleteEntry(
                timestamp=now,
                branch=step.branch,
                old_ref_oid=step.old_ref_oid,
                old_content=old_content,
            )
        elif isinstance(step, Checkpoint):
            entry = CheckpointEntry(timestamp=now, name=step.name)
        elif isinstance(step, RunGit):
            return self._apply_git(step, journal)
        else:
            return None

        journal.append(entry)
        journal.write(self._paths.journal_path(journal.op_id))
        return None

    def _apply_git(self, step: RunGit, journal: Journal) -> _PendingPause | None:
        before = {ref: self._git.resolve_ref(self._cwd, ref) for ref in step.expected_effects}
        result = self._git.run_git(self._cwd, step.args)
        state = self._git.get_state(self._cwd)
        if state.is_in_progress:
            return _PendingPause(
                state=state,
                effects=tuple(
                    PendingEffect(refname=ref, old_oid=oid) for ref, oid in before.items()
                ),
            )

        effects = tuple(
            RefEffect(refname=ref, old_oid=old, new_oid=self._git.resolve_ref(self._cwd, ref))
            for ref, old in before.items()
        )
        journal.append(
            GitProcessEntry(
                timestamp=self._time.now(),
                args=step.args,
                description=step.description,
                ref_effects=effects,
            )
        )
        journal.write(self._paths.journal_path(journal.op_id))
        if not result.success:
            raise GitCommandError(
                f"Failed to {step.description}\nCommand: git {' '.join(step.args)}"
                f"\nExit code: {result.returncode}\nstderr: {result.stderr.strip()}"
            )
        return None

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _pause(
        self,
        op_state: OpState,
        journal: Journal,
        step: PlanStep,
        following: list[PlanStep],
        pending: _PendingPause,
        remaining: tuple[PlanStep, ...],
    ) -> Paused:
        branch = _pause_branch(step, following)
        journal.append(
            ConflictPausedEntry(
                timestamp=self._time.now(),
                branch=branch,
                git_state=pending.state.value,
                pending_effects=pending.effects,
                remaining_steps=remaining,
            )
        )
        journal.phase = "paused"
        journal.write(self._paths.journal_path(journal.op_id))

        where = f" on '{branch}'" if branch is not None else ""
        reason = AwaitingReason(
            kind="conflict", detail=f"{pending.state.description} stopped{where}"
        )
        op_state.paused(reason, self._time.now()).update(self._paths.op_state_path)
        logger.debug("paused %s%s with %d steps remaining", op_state.op_id, where, len(remaining))
        return Paused(
            op_id=op_state.op_id,
            reason=reason,
            branch=branch,
            git_state=pending.state,
            remaining_steps=remaining,
        )

    def _complete(
        self, op_state: OpState, journal: Journal, remote: list[PlanStep]
    ) -> ExecuteResult:
        snapshot = self._rescan()
        problems = [
            p for p in verify_snapshot(self._git, snapshot) if p not in journal.baseline_problems
        ]
        if problems:
            return self._fail(op_state, journal, VerificationFailed(problems))

        self._ledger.append_retrying(
            CommittedEvent(
                timestamp=self._time.now(),
                op_id=op_state.op_id,
                fingerprint_after=snapshot.fingerprint.value,
                refs=snapshot.fingerprint.as_dict(),
            )
        )
        committed = self._finalize_commit(op_state, journal, snapshot.fingerprint.value)
        if not remote:
            return committed
        return Committed(
            op_id=committed.op_id,
            fingerprint=committed.fingerprint,
            remote_failures=tuple(self._run_remote(remote)),
        )

    def _finalize_commit(
        self, op_state: OpState, journal: Journal, fingerprint: str | None = None
    ) -> Committed:
        if fingerprint is None:
            last = self._ledger.last_committed()
            fingerprint = last.fingerprint_after if last is not None else ""
        journal.phase = "committed"
        journal.finished_at = self._time.now()
        journal.write(self._paths.journal_path(journal.op_id))
        OpState.remove(self._paths.op_state_path)
        logger.debug("committed %s", op_state.op_id)
        return Committed(op_id=op_state.op_id, fingerprint=fingerprint)

    def _fail(self, op_state: OpState, journal: Journal, error: LatticeError) -> ExecuteResult:
        report = rollback(self._git, self._cwd, journal)
        return self._after_rollback(op_state, journal, error, report)

    def _after_rollback(
        self,
        op_state: OpState,
        journal: Journal,
        error: LatticeError,
        report: RollbackReport,
    ) -> Aborted | Paused:
        now = self._time.now()
        if report.complete:
            evidence = error.problems if isinstance(error, VerificationFailed) else [str(error)]
            self._ledger.append_retrying(
                AbortedEvent(
                    timestamp=now, op_id=op_state.op_id, reason=str(error), evidence=evidence
                )
            )
            journal.phase = "rolled_back"
            journal.finished_at = now
            journal.write(self._paths.journal_path(journal.op_id))
            OpState.remove(self._paths.op_state_path)
            logger.debug("rolled back %s: %s", op_state.op_id, error)
            return Aborted(op_id=op_state.op_id, error=error, rollback=report)

        failed = tuple(report.failed_refs)
        reason = AwaitingReason(
            kind="rollback_incomplete",
            detail=f"{error}; could not restore: {', '.join(str(r) for r in failed)}",
            failed_refs=failed,
        )
        journal.phase = "paused"
        journal.write(self._paths.journal_path(journal.op_id))
        op_state.paused(reason, now).update(self._paths.op_state_path)
        logger.debug("rollback incomplete for %s: %s", op_state.op_id, failed)
        return Paused(op_id=op_state.op_id, reason=reason, failed_refs=failed)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _rescan(self) -> RepoSnapshot:
        return scan(self._git, self._cwd, self._config, auth_available=self._auth_available)

    def _records_since_pause(self, journal: Journal) -> int:
        count = 0
        for entry in reversed(journal.steps):
            if isinstance(entry, ConflictPausedEntry):
                break
            if isinstance(entry, GitProcessEntry) and entry.completes_pause:
                continue
            count += 1
        return count

    def _run_remote(self, steps: list[PlanStep]) -> list[RemoteStepFailure]:
        failures: list[RemoteStepFailure] = []
        for index, step in enumerate(steps):
            try:
                self._apply_remote(step)
            except (ForgeError, GitCommandError) as e:
                logger.warning("Remote step failed after local commit: %s", e)
                failures.append(RemoteStepFailure(step=step, error=str(e)))
                failures.extend(
                    RemoteStepFailure(step=s, error="skipped after earlier remote failure")
                    for s in steps[index + 1 :]
                )
                break
        return failures

    def _apply_remote(self, step: PlanStep) -> None:
        if self._forge is None:
            raise ForgeError("No forge is configured for remote steps")
        if isinstance(step, PushBranch):
            self._forge.push(self._cwd, step.branch, step.remote, force=step.force)
        elif isinstance(step, FetchRemote):
            self._forge.fetch(self._cwd, step.remote)
        elif isinstance(step, CreateReview):
            self._forge.create_review(self._cwd, step.branch, step.base, step.title)
        elif isinstance(step, UpdateReview):
            self._forge.update_review(self._cwd, step.number, step.base)
        elif isinstance(step, MergeReview):
            self._forge.merge_review(self._cwd, step.number, step.method)


class _AbortRequested(LatticeError):
    """Reason recorded when the user asks to abort."""


def _pause_branch(step: PlanStep, following: list[PlanStep]) -> BranchName | None:
    if following and isinstance(following[0], PotentialConflictPause):
        return following[0].branch
    if isinstance(step, RunGit):
        for ref in step.expected_effects:
            branch = ref.branch_name()
            if branch is not None:
                return branch
    return None
