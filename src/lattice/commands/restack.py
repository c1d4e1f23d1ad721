"""restack: rebase tracked branches onto their parents' current tips.

A branch needs restacking when its recorded base no longer matches its
parent's tip, or when its parent is restacked earlier in the same plan. For
each such branch (parents before children) the plan is:

1. Checkpoint
2. RunGit rebase --onto <parent ref> <old base> <branch>
3. PotentialConflictPause (the rebase may stop)
4. SetBaseCas recording the parent's tip as the new base

The parent is named by ref rather than by oid, so a child rebases onto its
parent's rewritten tip. Frozen branches are left alone. The original branch
is checked out again at the end.
"""

from lattice.core.errors import PlanError
from lattice.core.metadata.store import ScannedMetadata
from lattice.core.types import BranchName, RefName
from lattice.engine.capabilities import MUTATING
from lattice.engine.gate import ReadyContext
from lattice.engine.plan import (
    Checkpoint,
    Plan,
    PlanStep,
    PotentialConflictPause,
    RunGit,
    SetBaseCas,
)
from lattice.engine.runner import Command
from lattice.engine.scan import RepoSnapshot


class RestackCommand(Command):
    name = "restack"
    requirements = MUTATING

    def __init__(self, target: BranchName | None = None, *, only: bool = False) -> None:
        self._target = target
        self._only = only

    def target_branches(self, snapshot: RepoSnapshot) -> list[BranchName]:
        if self._target is None:
            return []
        return [self._target]

    def build_plan(self, ready: ReadyContext) -> Plan:
        snapshot = ready.snapshot
        steps: list[PlanStep] = []
        restacked: set[BranchName] = set()
        for branch in self._scope(snapshot):
            scanned = snapshot.metadata[branch]
            if scanned.metadata.freeze.is_frozen or snapshot.tip(branch) is None:
                continue
            parent = scanned.metadata.parent.name
            parent_tip = snapshot.tip(parent)
            if parent_tip is None:
                raise PlanError(f"Parent '{parent}' of '{branch}' does not resolve")
            if parent_tip == scanned.metadata.base.oid and parent not in restacked:
                continue
            steps.extend(_restack_steps(branch, parent, scanned))
            restacked.add(branch)

        current = snapshot.current_branch
        if steps and current is not None:
            steps.append(
                RunGit(args=("checkout", str(current)), description=f"Return to {current}")
            )
        return Plan.build(self.name, steps)

    def _scope(self, snapshot: RepoSnapshot) -> list[BranchName]:
        order = snapshot.graph.topological_order()
        if self._target is None:
            return order
        if self._target not in snapshot.metadata:
            raise PlanError(f"Branch '{self._target}' is not tracked")
        if self._only:
            return [self._target]
        wanted = {self._target, *snapshot.graph.descendants(self._target)}
        return [b for b in order if b in wanted]


def _restack_steps(
    branch: BranchName, parent: BranchName, scanned: ScannedMetadata
) -> list[PlanStep]:
    parent_ref = RefName.for_branch(parent)
    old_base = scanned.metadata.base.oid
    return [
        Checkpoint(name=f"before-restack-{branch}"),
        RunGit(
            args=("rebase", "--onto", str(parent_ref), str(old_base), str(branch)),
            description=f"Rebase {branch} onto {parent} (from {old_base.short()})",
            expected_effects=(RefName.for_branch(branch),),
        ),
        PotentialConflictPause(branch=branch, git_operation="rebase"),
        SetBaseCas(branch=branch, old_ref_oid=scanned.ref_oid, base_ref=parent_ref),
    ]
