"""Immutable plan model.

A Plan is an ordered tuple of typed steps built purely (no I/O) from a
ReadyContext by a command's planner. Each local step declares the refs it
touches and the value it expects to find there; the Executor enforces those
expectations with compare-and-swap.

Remote steps (push, fetch, review operations) are deferred: the Executor runs
them only after every local step has committed.
"""

import hashlib
import json
import uuid
from typing import Annotated, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from lattice.core.metadata.schema import BranchMetadata
from lattice.core.types import BranchName, Oid, RefName

PLAN_SCHEMA_VERSION = 1


class _Step(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    is_remote: ClassVar[bool] = False

    def touched_refs(self) -> list[RefName]:
        return []

    def describe(self) -> str:
        raise NotImplementedError


# ----------------------------------------------------------------------------
# Local steps
# ----------------------------------------------------------------------------


class UpdateRefCas(_Step):
    type: Literal["update_ref_cas"] = "update_ref_cas"
    refname: RefName
    old_oid: Oid | None
    new_oid: Oid
    reason: str

    def touched_refs(self) -> list[RefName]:
        return [self.refname]

    def describe(self) -> str:
        old = self.old_oid.short() if self.old_oid else "(new)"
        return f"Update {self.refname} {old} -> {self.new_oid.short()} ({self.reason})"


class DeleteRefCas(_Step):
    type: Literal["delete_ref_cas"] = "delete_ref_cas"
    refname: RefName
    old_oid: Oid
    reason: str

    def touched_refs(self) -> list[RefName]:
        return [self.refname]

    def describe(self) -> str:
        return f"Delete {self.refname} at {self.old_oid.short()} ({self.reason})"


class WriteMetadataCas(_Step):
    type: Literal["write_metadata_cas"] = "write_metadata_cas"
    branch: BranchName
    old_ref_oid: Oid | None
    metadata: BranchMetadata

    def touched_refs(self) -> list[RefName]:
        return [RefName.for_metadata(self.branch)]

    def describe(self) -> str:
        return f"Write metadata for {self.branch}"


class DeleteMetadataCas(_Step):
    type: Literal["delete_metadata_cas"] = "delete_metadata_cas"
    branch: BranchName
    old_ref_oid: Oid

    def touched_refs(self) -> list[RefName]:
        return [RefName.for_metadata(self.branch)]

    def describe(self) -> str:
        return f"Delete metadata for {self.branch}"


class SetBaseCas(_Step):
    """Record the value base_ref has at execution time as the branch's base.

    Used when the parent is itself rewritten earlier in the same plan, so its
    new tip cannot be known while planning.
    """

    type: Literal["set_base_cas"] = "set_base_cas"
    branch: BranchName
    old_ref_oid: Oid
    base_ref: RefName

    def touched_refs(self) -> list[RefName]:
        return [RefName.for_metadata(self.branch)]

    def describe(self) -> str:
        return f"Set base of {self.branch} to {self.base_ref}"


class RunGit(_Step):
    """Run a git subcommand whose only ref effects are expected_effects.

    A RunGit that leaves the worktree mid-operation (rebase, merge, ...) pauses
    the plan; the remaining steps are resumed by 'lattice continue'.
    """

    type: Literal["run_git"] = "run_git"
    args: tuple[str, ...]
    description: str
    expected_effects: tuple[RefName, ...] = ()

    def touched_refs(self) -> list[RefName]:
        return list(self.expected_effects)

    def describe(self) -> str:
        return self.description


class Checkpoint(_Step):
    type: Literal["checkpoint"] = "checkpoint"
    name: str

    def describe(self) -> str:
        return f"Checkpoint: {self.name}"


class PotentialConflictPause(_Step):
    """Marker naming the branch a preceding RunGit may stop on."""

    type: Literal["potential_conflict_pause"] = "potential_conflict_pause"
    branch: BranchName
    git_operation: str

    def describe(self) -> str:
        return f"Possible {self.git_operation} conflict on {self.branch}"


# ----------------------------------------------------------------------------
# Remote (deferred) steps
# ----------------------------------------------------------------------------


class PushBranch(_Step):
    type: Literal["push_branch"] = "push_branch"
    is_remote: ClassVar[bool] = True
    branch: BranchName
    remote: str
    force: bool = False

    def describe(self) -> str:
        mode = "Force-push" if self.force else "Push"
        return f"{mode} {self.branch} to {self.remote}"


class FetchRemote(_Step):
    type: Literal["fetch_remote"] = "fetch_remote"
    is_remote: ClassVar[bool] = True
    remote: str

    def describe(self) -> str:
        return f"Fetch {self.remote}"


class CreateReview(_Step):
    type: Literal["create_review"] = "create_review"
    is_remote: ClassVar[bool] = True
    branch: BranchName
    base: BranchName
    title: str

    def describe(self) -> str:
        return f"Open review for {self.branch} against {self.base}"


class UpdateReview(_Step):
    type: Literal["update_review"] = "update_review"
    is_remote: ClassVar[bool] = True
    number: int = Field(gt=0)
    base: BranchName

    def describe(self) -> str:
        return f"Retarget review #{self.number} to {self.base}"


class MergeReview(_Step):
    type: Literal["merge_review"] = "merge_review"
    is_remote: ClassVar[bool] = True
    number: int = Field(gt=0)
    method: Literal["merge", "squash", "rebase"] = "squash"

    def describe(self) -> str:
        return f"Merge review #{self.number} ({self.method})"


LocalStep = (
    UpdateRefCas
    | DeleteRefCas
    | WriteMetadataCas
    | DeleteMetadataCas
    | SetBaseCas
    | RunGit
    | Checkpoint
    | PotentialConflictPause
)
RemoteStep = PushBranch | FetchRemote | CreateReview | UpdateReview | MergeReview

PlanStep = Annotated[LocalStep | RemoteStep, Field(discriminator="type")]

_STEPS_ADAPTER: TypeAdapter[list[PlanStep]] = TypeAdapter(list[PlanStep])


def steps_to_json(steps: "list[PlanStep] | tuple[PlanStep, ...]") -> list[dict]:
    return _STEPS_ADAPTER.dump_python(list(steps), mode="json")


def steps_from_json(data: list[dict]) -> list[PlanStep]:
    return _STEPS_ADAPTER.validate_python(data)


class Plan(BaseModel):
    """An immutable, ordered set of steps for one operation."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    op_id: str
    command: str
    steps: tuple[PlanStep, ...] = ()
    schema_version: int = PLAN_SCHEMA_VERSION

    @classmethod
    def build(cls, command: str, steps: "list[PlanStep]") -> "Plan":
        return cls(op_id=str(uuid.uuid4()), command=command, steps=tuple(steps))

    def digest(self) -> str:
        """Stable content hash; excludes op_id so equal plans hash equally."""
        payload = {
            "command": self.command,
            "schema_version": self.schema_version,
            "steps": steps_to_json(self.steps),
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def local_steps(self) -> list[PlanStep]:
        return [s for s in self.steps if not s.is_remote]

    def remote_steps(self) -> list[PlanStep]:
        return [s for s in self.steps if s.is_remote]

    def touched_refs(self) -> list[RefName]:
        seen: dict[RefName, None] = {}
        for step in self.steps:
            for ref in step.touched_refs():
                seen.setdefault(ref, None)
        return list(seen)

    def touched_branches(self) -> list[BranchName]:
        """Branches whose refs/heads ref the plan touches (metadata refs excluded)."""
        branches: list[BranchName] = []
        for ref in self.touched_refs():
            branch = ref.branch_name()
            if branch is not None and branch not in branches:
                branches.append(branch)
        return branches

    def is_mutating(self) -> bool:
        return any(s.touched_refs() or isinstance(s, RunGit) for s in self.local_steps())

    def preview(self) -> str:
        if not self.steps:
            return "No changes needed"
        lines = [f"{self.command}:"]
        lines.extend(f"  {i}. {step.describe()}" for i, step in enumerate(self.steps, start=1))
        return "\n".join(lines)
