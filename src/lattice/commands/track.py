"""track: start tracking an existing branch on top of a parent."""

from datetime import datetime
from pathlib import Path

from lattice.core.errors import PlanError
from lattice.core.git.abc import Git
from lattice.core.metadata.schema import BranchMetadata
from lattice.core.types import BranchName
from lattice.engine.capabilities import MUTATING_METADATA_ONLY
from lattice.engine.gate import ReadyContext
from lattice.engine.plan import Plan, WriteMetadataCas
from lattice.engine.runner import Command
from lattice.engine.scan import RepoSnapshot


class TrackCommand(Command):
    name = "track"
    requirements = MUTATING_METADATA_ONLY

    def __init__(
        self,
        git: Git,
        cwd: Path,
        branch: BranchName,
        parent: BranchName | None,
        *,
        now: datetime,
    ) -> None:
        self._git = git
        self._cwd = cwd
        self._branch = branch
        self._parent = parent
        self._now = now

    def target_branches(self, snapshot: RepoSnapshot) -> list[BranchName]:
        return [self._branch]

    def build_plan(self, ready: ReadyContext) -> Plan:
        """Plan a single metadata create; the base is the merge-base with the parent.

        Raises:
            PlanError: If the branch is trunk, already tracked, or missing, or the
                parent is neither trunk nor tracked
        """
        snapshot = ready.snapshot
        branch = self._branch
        parent = self._parent if self._parent is not None else snapshot.trunk
        if parent is None:
            raise PlanError("No parent given and no trunk configured")

        tip = snapshot.tip(branch)
        if tip is None:
            raise PlanError(f"Branch '{branch}' does not exist")
        if snapshot.is_trunk(branch):
            raise PlanError("Cannot track the trunk branch")
        if branch in snapshot.metadata:
            raise PlanError(f"Branch '{branch}' is already tracked")

        parent_is_trunk = snapshot.is_trunk(parent)
        if not parent_is_trunk and parent not in snapshot.metadata:
            raise PlanError(f"Parent '{parent}' is neither trunk nor a tracked branch")
        parent_tip = snapshot.tip(parent)
        if parent_tip is None:
            raise PlanError(f"Parent '{parent}' does not exist")

        base = self._git.merge_base(self._cwd, tip, parent_tip)
        if base is None:
            raise PlanError(f"'{branch}' and '{parent}' share no history")

        metadata = BranchMetadata.new(
            branch, parent, parent_is_trunk=parent_is_trunk, base=base, now=self._now
        )
        return Plan.build(
            self.name, [WriteMetadataCas(branch=branch, old_ref_oid=None, metadata=metadata)]
        )
