"""Repository snapshot scanner.

scan() reads refs, metadata, configuration, and in-flight operation state and
returns an immutable RepoSnapshot. It never mutates the repository: problems
become Issues on the snapshot's health report, and divergence from the last
committed fingerprint is reported on the snapshot for the caller to record.
"""

import hashlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from lattice.core.config import RepoConfig
from lattice.core.errors import CorruptStateError, MetadataError, NotARepositoryError
from lattice.core.git.abc import Git, GitState, RepoInfo, WorktreeInfo
from lattice.core.graph import StackGraph
from lattice.core.metadata.schema import BranchMetadata
from lattice.core.metadata.store import MetadataStore, ScannedMetadata
from lattice.core.ops.op_state import OpState
from lattice.core.paths import LatticePaths
from lattice.core.types import BRANCH_PREFIX, BranchName, Oid, RefName
from lattice.engine import health
from lattice.engine.capabilities import Capability
from lattice.engine.health import RepoHealthReport
from lattice.engine.ledger import DivergenceObserved, EventLedger

logger = logging.getLogger(__name__)

CONFIG_VERSION_KEY = "config:version"


@dataclass(frozen=True)
class Fingerprint:
    value: str
    entries: tuple[tuple[str, str], ...]

    def as_dict(self) -> dict[str, str]:
        return dict(self.entries)


def compute_fingerprint(
    trunk: BranchName | None,
    trunk_oid: Oid | None,
    tips: Mapping[BranchName, Oid],
    metadata_oids: Mapping[BranchName, Oid],
    config_version: int,
) -> Fingerprint:
    """Hash trunk, tracked tips, metadata refs, and config version.

    Entries are sorted before hashing, so the result does not depend on the
    iteration order of the inputs.
    """
    entries: dict[str, str] = {CONFIG_VERSION_KEY: str(config_version)}
    if trunk is not None and trunk_oid is not None:
        entries[str(RefName.for_branch(trunk))] = str(trunk_oid)
    for branch, oid in tips.items():
        entries[str(RefName.for_branch(branch))] = str(oid)
    for branch, oid in metadata_oids.items():
        entries[str(RefName.for_metadata(branch))] = str(oid)

    ordered = tuple(sorted(entries.items()))
    hasher = hashlib.sha256()
    for name, value in ordered:
        hasher.update(f"{name}\0{value}\n".encode())
    return Fingerprint(value=hasher.hexdigest(), entries=ordered)


@dataclass(frozen=True)
class Divergence:
    prior_fingerprint: str
    current_fingerprint: str
    changed_refs: tuple[str, ...]


def diff_fingerprint_entries(prior: Mapping[str, str], current: Mapping[str, str]) -> list[str]:
    names = set(prior) | set(current)
    return sorted(n for n in names if prior.get(n) != current.get(n))


@dataclass(frozen=True)
class RepoSnapshot:
    """Everything one command may know about the repository. Never cached."""

    cwd: Path
    repo_info: RepoInfo
    paths: LatticePaths
    config: RepoConfig
    trunk: BranchName | None
    branches: dict[BranchName, Oid]
    metadata: dict[BranchName, ScannedMetadata]
    graph: StackGraph
    op_state: OpState | None
    git_state: GitState
    worktrees: list[WorktreeInfo]
    health: RepoHealthReport
    fingerprint: Fingerprint
    divergence: Divergence | None

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self.health.frozen_capabilities()

    @property
    def tracked_branches(self) -> list[BranchName]:
        return sorted(self.metadata)

    def tip(self, branch: BranchName) -> Oid | None:
        return self.branches.get(branch)

    def is_trunk(self, branch: BranchName) -> bool:
        return self.trunk is not None and branch == self.trunk

    @property
    def current_branch(self) -> BranchName | None:
        """Branch checked out in the scanned worktree, None when detached or bare."""
        here = self.repo_info.work_dir
        if here is None:
            return None
        for worktree in self.worktrees:
            if worktree.path.resolve() == here.resolve():
                return worktree.branch
        return None


def scan(
    git: Git,
    cwd: Path,
    config: RepoConfig,
    *,
    ledger: EventLedger | None = None,
    auth_available: bool = False,
) -> RepoSnapshot:
    """Produce a fresh snapshot of the repository at cwd.

    Raises:
        NotARepositoryError: If cwd is not inside a git repository
    """
    repo_info = git.get_repo_info(cwd)
    if repo_info is None:
        raise NotARepositoryError(cwd)
    paths = LatticePaths(git_dir=repo_info.git_dir, common_dir=repo_info.common_dir)
    report = RepoHealthReport()

    branches: dict[BranchName, Oid] = {}
    for ref, oid in git.list_refs(cwd, BRANCH_PREFIX).items():
        branch = ref.branch_name()
        if branch is not None:
            branches[branch] = oid

    trunk = config.trunk
    if trunk is None:
        report.add_issue(health.trunk_not_configured())
    elif trunk not in branches:
        report.add_issue(health.trunk_missing(trunk))

    store = MetadataStore(git, cwd)
    metadata_oids = store.list_with_oids()
    metadata: dict[BranchName, ScannedMetadata] = {}
    for branch, ref_oid in sorted(metadata_oids.items()):
        try:
            parsed = BranchMetadata.parse(store.read_raw(ref_oid))
            metadata[branch] = ScannedMetadata(ref_oid=ref_oid, metadata=parsed)
        except MetadataError as e:
            report.add_issue(health.metadata_parse_error(branch, str(e)))

    graph = _build_graph(metadata)
    _check_structure(git, cwd, trunk, branches, metadata, graph, report)

    git_state = git.get_state(cwd)
    if git_state.is_in_progress:
        report.add_issue(health.git_operation_in_progress(git_state.description))

    op_state: OpState | None = None
    try:
        op_state = OpState.read(paths.op_state_path)
    except CorruptStateError as e:
        logger.warning("Ignoring unreadable op-state: %s", e)
        report.add_issue(health.lattice_operation_in_progress("unknown", "unknown", "corrupt"))
    if op_state is not None:
        report.add_issue(
            health.lattice_operation_in_progress(op_state.op_id, op_state.command, op_state.phase)
        )

    if repo_info.work_dir is None:
        report.add_issue(health.no_working_directory())
    if config.remote is None:
        report.add_issue(health.no_remote_configured())
    if not auth_available:
        report.add_issue(health.auth_not_available(config.forge))

    tracked_tips = {b: oid for b, oid in branches.items() if b in metadata_oids}
    fingerprint = compute_fingerprint(
        trunk,
        branches.get(trunk) if trunk is not None else None,
        tracked_tips,
        metadata_oids,
        config.config_version,
    )

    divergence = _detect_divergence(ledger, fingerprint) if ledger is not None else None

    worktrees = git.list_worktrees(cwd)
    logger.debug(
        "scan: %d branches, %d tracked, %d issues, fingerprint=%s",
        len(branches),
        len(metadata),
        len(report.issues),
        fingerprint.value[:12],
    )
    return RepoSnapshot(
        cwd=cwd,
        repo_info=repo_info,
        paths=paths,
        config=config,
        trunk=trunk,
        branches=branches,
        metadata=metadata,
        graph=graph,
        op_state=op_state,
        git_state=git_state,
        worktrees=worktrees,
        health=report,
        fingerprint=fingerprint,
        divergence=divergence,
    )


def _build_graph(metadata: Mapping[BranchName, ScannedMetadata]) -> StackGraph:
    parents: dict[BranchName, BranchName | None] = {}
    for branch, scanned in metadata.items():
        parent = scanned.metadata.parent
        parents[branch] = None if parent.kind == "trunk" else parent.name
    return StackGraph(parents=parents)


def _check_structure(
    git: Git,
    cwd: Path,
    trunk: BranchName | None,
    branches: Mapping[BranchName, Oid],
    metadata: Mapping[BranchName, ScannedMetadata],
    graph: StackGraph,
    report: RepoHealthReport,
) -> None:
    cycle = graph.find_cycle()
    if cycle is not None:
        report.add_issue(health.graph_cycle(cycle))

    for branch, scanned in sorted(metadata.items()):
        tip = branches.get(branch)
        if tip is None:
            if graph.children(branch):
                report.add_issue(health.missing_branch(branch))
            else:
                report.add_issue(health.orphaned_metadata(branch, scanned.ref_oid))
            continue

        parent = scanned.metadata.parent
        if parent.kind == "branch" and parent.name not in metadata and parent.name != trunk:
            report.add_issue(health.parent_missing(branch, parent.name))

        base = scanned.metadata.base.oid
        if not git.is_ancestor(cwd, base, tip):
            report.add_issue(health.base_not_ancestor(branch, base, tip))


def _detect_divergence(ledger: EventLedger, fingerprint: Fingerprint) -> Divergence | None:
    last = ledger.last_committed()
    if last is None or last.fingerprint_after == fingerprint.value:
        return None
    return Divergence(
        prior_fingerprint=last.fingerprint_after,
        current_fingerprint=fingerprint.value,
        changed_refs=tuple(diff_fingerprint_entries(last.refs, fingerprint.as_dict())),
    )


def record_divergence(
    ledger: EventLedger, snapshot: RepoSnapshot, now: datetime
) -> DivergenceObserved | None:
    """Append DivergenceObserved unless this exact divergence is already recorded.

    Call under the repository lock. Nothing is recorded while an operation is in
    flight (its own partial writes are not divergence), or when a commit landed
    after the snapshot was taken.
    """
    divergence = snapshot.divergence
    if divergence is None or snapshot.op_state is not None:
        return None
    last = ledger.last_committed()
    if last is None or last.fingerprint_after != divergence.prior_fingerprint:
        return None
    previous = ledger.last_divergence_since_commit()
    if previous is not None and previous.current_fingerprint == divergence.current_fingerprint:
        return None
    event = DivergenceObserved(
        timestamp=now,
        prior_fingerprint=divergence.prior_fingerprint,
        current_fingerprint=divergence.current_fingerprint,
        changed_refs=list(divergence.changed_refs),
    )
    ledger.append(event)
    logger.debug("divergence recorded: %s", ", ".join(divergence.changed_refs))
    return event
