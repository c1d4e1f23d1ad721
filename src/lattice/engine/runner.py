"""Command lifecycle: scan, gate, plan, execute.

Every mutating command goes through run_command(). A command only declares
what it needs and how to turn a ReadyContext into a Plan; it never touches
refs itself. preview_command() stops once the plan is built.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from lattice.core.context import LatticeContext
from lattice.core.types import BranchName
from lattice.engine.capabilities import RequirementSet
from lattice.engine.exec import ExecuteResult, check_occupancy
from lattice.engine.gate import ReadyContext, RepairBundle, gate
from lattice.engine.plan import Plan
from lattice.engine.scan import RepoSnapshot, record_divergence, scan

logger = logging.getLogger(__name__)


class Command(ABC):
    name: str
    requirements: RequirementSet

    def target_branches(self, snapshot: RepoSnapshot) -> list[BranchName]:
        """Branches the command will modify, checked against freeze policy."""
        return []

    @abstractmethod
    def build_plan(self, ready: ReadyContext) -> Plan:
        """Build the plan purely from the gated snapshot."""


@dataclass(frozen=True)
class NeedsRepair:
    bundle: RepairBundle


@dataclass(frozen=True)
class NoChanges:
    command: str


RunResult = ExecuteResult | NeedsRepair | NoChanges


def scan_repository(ctx: LatticeContext) -> RepoSnapshot:
    """Scan and record any out-of-band divergence in the event ledger.

    The ledger head is a ref, so divergence is only recorded while holding the
    repository lock. When another process holds it, recording is skipped; the
    next scan sees the same divergence.
    """
    snapshot = scan(
        ctx.git, ctx.cwd, ctx.config, ledger=ctx.ledger(), auth_available=ctx.auth_available
    )
    if snapshot.divergence is None or snapshot.op_state is not None:
        return snapshot

    lock = ctx.executor().lock("record divergence")
    if not lock.try_acquire():
        logger.debug("repository lock is held; divergence not recorded")
        return snapshot
    try:
        record_divergence(ctx.ledger(), snapshot, ctx.time.now())
    finally:
        lock.release()
    return snapshot


def _prepare(ctx: LatticeContext, command: Command) -> tuple[ReadyContext, Plan] | NeedsRepair:
    snapshot = scan_repository(ctx)
    outcome = gate(snapshot, command.name, command.requirements, command.target_branches(snapshot))
    if isinstance(outcome, RepairBundle):
        return NeedsRepair(bundle=outcome)
    return outcome, command.build_plan(outcome)


def preview_command(ctx: LatticeContext, command: Command) -> Plan | NeedsRepair:
    """Scan, gate and plan without executing anything."""
    prepared = _prepare(ctx, command)
    if isinstance(prepared, NeedsRepair):
        return prepared
    return prepared[1]


def run_command(ctx: LatticeContext, command: Command) -> RunResult:
    prepared = _prepare(ctx, command)
    if isinstance(prepared, NeedsRepair):
        return prepared
    ready, plan = prepared
    if not plan.is_mutating() and not plan.remote_steps():
        return NoChanges(command=command.name)

    # Early, friendlier failure; the executor re-checks under the lock.
    check_occupancy(ctx.git, ctx.cwd, ctx.worktree_root, plan.touched_branches())
    logger.debug("running %s with %d steps", command.name, len(plan.steps))
    return ctx.executor().execute(plan, ready)
