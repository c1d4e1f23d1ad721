"""Capability gate: the only way from a snapshot to a planner.

gate() either proves that a snapshot satisfies a command's requirements
(ReadyContext) or explains what is missing (RepairBundle). A ReadyContext
cannot be constructed anywhere else, so a planner cannot be handed un-gated
data.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from lattice.core.types import BranchName
from lattice.engine import health
from lattice.engine.capabilities import Capability, RequirementSet
from lattice.engine.health import Issue, RepoHealthReport
from lattice.engine.scan import RepoSnapshot

_GATE_TOKEN = object()


@dataclass(frozen=True)
class ReadyContext:
    snapshot: RepoSnapshot
    requirements: RequirementSet
    _token: object = field(repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._token is not _GATE_TOKEN:
            raise TypeError("ReadyContext can only be created by gate()")


@dataclass(frozen=True)
class RepairBundle:
    """What a command is missing, for a repair UI to offer (never apply) fixes."""

    command: str
    missing: frozenset[Capability]
    issues: tuple[Issue, ...]

    def render(self) -> str:
        lines = [f"Cannot run '{self.command}':"]
        for issue in self.issues:
            lines.append(f"  - [{issue.id}] {issue.message}")
            if issue.hint:
                lines.append(f"      hint: {issue.hint}")
        explained = {cap for issue in self.issues for cap in issue.blocks}
        for cap in sorted(self.missing - explained, key=lambda c: c.value):
            lines.append(f"  - missing capability: {cap.label}")
        return "\n".join(lines)


def gate(
    snapshot: RepoSnapshot,
    command: str,
    requirements: RequirementSet,
    target_branches: Sequence[BranchName] = (),
) -> ReadyContext | RepairBundle:
    report = snapshot.health
    frozen_issues = _frozen_issues(snapshot, target_branches)
    if frozen_issues:
        report = RepoHealthReport(
            capabilities=set(snapshot.health.capabilities), issues=list(snapshot.health.issues)
        )
        for issue in frozen_issues:
            report.add_issue(issue)

    missing = requirements.missing_from(report.frozen_capabilities())
    if missing:
        return RepairBundle(
            command=command,
            missing=missing,
            issues=tuple(report.issues_blocking(missing)),
        )
    return ReadyContext(snapshot=snapshot, requirements=requirements, _token=_GATE_TOKEN)


def _frozen_issues(snapshot: RepoSnapshot, targets: Sequence[BranchName]) -> list[Issue]:
    issues: list[Issue] = []
    for branch in targets:
        scanned = snapshot.metadata.get(branch)
        if scanned is not None and scanned.metadata.freeze.is_frozen:
            issues.append(health.frozen_branch_violation(branch))
    return issues
