"""Health issues attached to a snapshot.

Structural problems found while scanning are recorded as Issues rather than
raised, so a snapshot always exists and downstream code can explain why a
command cannot proceed. Each blocking issue removes the capabilities it
blocks.

Issue ids are derived from the evidence, so the same problem has the same id
on every run and repairs can be selected by id.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum

from lattice.core.types import BranchName, Oid, RefName
from lattice.engine.capabilities import Capability


class Severity(Enum):
    BLOCKING = "blocking"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Evidence:
    """Structured detail backing an issue. kind names the variant."""

    kind: str
    detail: tuple[tuple[str, str], ...]

    def key(self) -> str:
        return self.kind + "|" + "|".join(f"{k}={v}" for k, v in self.detail)

    def as_dict(self) -> dict[str, str]:
        return dict(self.detail)


def ref_evidence(ref: RefName, oid: Oid | None) -> Evidence:
    return Evidence("ref", (("ref", str(ref)), ("oid", str(oid) if oid else "")))


def parse_error_evidence(ref: RefName, message: str) -> Evidence:
    return Evidence("parse_error", (("ref", str(ref)), ("message", message)))


def cycle_evidence(branches: list[BranchName]) -> Evidence:
    return Evidence("cycle", (("branches", " -> ".join(str(b) for b in branches)),))


def missing_branch_evidence(branch: BranchName) -> Evidence:
    return Evidence("missing_branch", (("branch", str(branch)),))


def git_state_evidence(state: str) -> Evidence:
    return Evidence("git_state", (("state", state),))


def config_evidence(key: str, problem: str) -> Evidence:
    return Evidence("config", (("key", key), ("problem", problem)))


def base_ancestry_evidence(branch: BranchName, base: Oid, tip: Oid) -> Evidence:
    return Evidence(
        "base_ancestry", (("branch", str(branch)), ("base", str(base)), ("tip", str(tip)))
    )


def frozen_violation_evidence(branch: BranchName) -> Evidence:
    return Evidence("frozen_violation", (("branch", str(branch)),))


def op_state_evidence(op_id: str, command: str, phase: str) -> Evidence:
    return Evidence("op_state", (("op_id", op_id), ("command", command), ("phase", phase)))


@dataclass(frozen=True)
class Issue:
    id: str
    issue_type: str
    severity: Severity
    message: str
    evidence: tuple[Evidence, ...]
    blocks: frozenset[Capability]
    hint: str | None = None

    @classmethod
    def create(
        cls,
        issue_type: str,
        severity: Severity,
        message: str,
        evidence: list[Evidence],
        blocks: frozenset[Capability] = frozenset(),
        hint: str | None = None,
    ) -> "Issue":
        key = "\n".join(e.key() for e in evidence)
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]
        return cls(
            id=f"{issue_type}:{digest}",
            issue_type=issue_type,
            severity=severity,
            message=message,
            evidence=tuple(evidence),
            blocks=blocks,
            hint=hint,
        )

    @property
    def is_blocking(self) -> bool:
        return self.severity is Severity.BLOCKING


@dataclass
class RepoHealthReport:
    """Capabilities plus the issues that removed some of them."""

    capabilities: set[Capability] = field(default_factory=lambda: set(Capability))
    issues: list[Issue] = field(default_factory=list)

    def add_issue(self, issue: Issue) -> None:
        if any(existing.id == issue.id for existing in self.issues):
            return
        self.issues.append(issue)
        self.capabilities -= issue.blocks

    def blocking_issues(self) -> list[Issue]:
        return [i for i in self.issues if i.is_blocking]

    def issues_blocking(self, missing: frozenset[Capability]) -> list[Issue]:
        return [i for i in self.issues if i.blocks & missing]

    def frozen_capabilities(self) -> frozenset[Capability]:
        return frozenset(self.capabilities)


# ----------------------------------------------------------------------------
# Issue catalog
# ----------------------------------------------------------------------------


def trunk_not_configured() -> Issue:
    return Issue.create(
        "trunk_not_configured",
        Severity.BLOCKING,
        "No trunk branch is configured",
        [config_evidence("trunk", "missing")],
        frozenset({Capability.TRUNK_KNOWN}),
        hint="Set [lattice] trunk in the repository config",
    )


def trunk_missing(trunk: BranchName) -> Issue:
    return Issue.create(
        "trunk_not_configured",
        Severity.BLOCKING,
        f"Configured trunk '{trunk}' does not exist",
        [config_evidence("trunk", f"branch {trunk} not found")],
        frozenset({Capability.TRUNK_KNOWN}),
    )


def metadata_parse_error(branch: BranchName, message: str) -> Issue:
    return Issue.create(
        "metadata_parse_error",
        Severity.BLOCKING,
        f"Metadata for '{branch}' cannot be parsed",
        [parse_error_evidence(RefName.for_metadata(branch), message)],
        frozenset({Capability.METADATA_READABLE}),
    )


def graph_cycle(branches: list[BranchName]) -> Issue:
    names = " -> ".join(str(b) for b in branches)
    return Issue.create(
        "graph_cycle",
        Severity.BLOCKING,
        f"Parent cycle detected: {names}",
        [cycle_evidence(branches)],
        frozenset({Capability.GRAPH_VALID}),
    )


def missing_branch(branch: BranchName) -> Issue:
    return Issue.create(
        "missing_branch",
        Severity.BLOCKING,
        f"Tracked branch '{branch}' has metadata but no branch ref",
        [missing_branch_evidence(branch)],
        frozenset({Capability.GRAPH_VALID}),
    )


def parent_missing(branch: BranchName, parent: BranchName) -> Issue:
    return Issue.create(
        "parent_missing",
        Severity.BLOCKING,
        f"Parent '{parent}' of '{branch}' is neither tracked nor trunk",
        [missing_branch_evidence(parent), ref_evidence(RefName.for_metadata(branch), None)],
        frozenset({Capability.GRAPH_VALID}),
    )


def base_not_ancestor(branch: BranchName, base: Oid, tip: Oid) -> Issue:
    return Issue.create(
        "base_not_ancestor",
        Severity.WARNING,
        f"Recorded base {base.short()} of '{branch}' is not an ancestor of its tip",
        [base_ancestry_evidence(branch, base, tip)],
        hint="The branch may have been rebased outside lattice",
    )


def orphaned_metadata(branch: BranchName, ref_oid: Oid) -> Issue:
    return Issue.create(
        "orphaned_metadata",
        Severity.WARNING,
        f"Metadata ref for '{branch}' exists but the branch was deleted",
        [ref_evidence(RefName.for_metadata(branch), ref_oid)],
    )


def git_operation_in_progress(state: str) -> Issue:
    return Issue.create(
        "git_operation_in_progress",
        Severity.BLOCKING,
        f"A git {state} is in progress",
        [git_state_evidence(state)],
        frozenset({Capability.NO_EXTERNAL_GIT_OP_IN_PROGRESS}),
        hint=f"Finish or abort the {state} before running lattice commands",
    )


def lattice_operation_in_progress(op_id: str, command: str, phase: str) -> Issue:
    return Issue.create(
        "lattice_operation_in_progress",
        Severity.BLOCKING,
        f"Operation '{command}' is {phase}",
        [op_state_evidence(op_id, command, phase)],
        frozenset({Capability.NO_LATTICE_OP_IN_PROGRESS}),
        hint="Run 'lattice continue' or 'lattice abort'",
    )


def frozen_branch_violation(branch: BranchName) -> Issue:
    return Issue.create(
        "frozen_branch_violation",
        Severity.BLOCKING,
        f"Branch '{branch}' is frozen",
        [frozen_violation_evidence(branch)],
        frozenset({Capability.FROZEN_POLICY_SATISFIED}),
    )


def no_remote_configured() -> Issue:
    return Issue.create(
        "no_remote_configured",
        Severity.BLOCKING,
        "No remote is configured",
        [config_evidence("remote", "missing")],
        frozenset({Capability.REMOTE_RESOLVED}),
        hint="Set [lattice] remote in the repository config",
    )


def auth_not_available(forge: str | None) -> Issue:
    return Issue.create(
        "auth_not_available",
        Severity.BLOCKING,
        f"No credentials available for forge '{forge or 'unconfigured'}'",
        [config_evidence("forge", forge or "missing")],
        frozenset({Capability.AUTH_AVAILABLE, Capability.REPO_AUTHORIZED}),
    )


def no_working_directory() -> Issue:
    return Issue.create(
        "no_working_directory",
        Severity.BLOCKING,
        "Repository has no working directory (bare repository)",
        [config_evidence("work_dir", "missing")],
        frozenset({Capability.WORKING_DIRECTORY_AVAILABLE}),
    )
