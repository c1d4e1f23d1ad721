"""Structural post-verification of a freshly scanned snapshot.

Run by the executor after every fully-applied plan. Any problem returned here
makes the operation roll back.
"""

from lattice.core.git.abc import Git
from lattice.engine.scan import RepoSnapshot


def verify_snapshot(git: Git, snapshot: RepoSnapshot) -> list[str]:
    """Return human-readable problems; an empty list means the graph is sound."""
    problems: list[str] = []

    cycle = snapshot.graph.find_cycle()
    if cycle is not None:
        problems.append("parent cycle: " + " -> ".join(str(b) for b in cycle))

    for branch, scanned in sorted(snapshot.metadata.items()):
        tip = snapshot.tip(branch)
        if tip is None:
            problems.append(f"tracked branch '{branch}' does not resolve")
            continue

        parent = scanned.metadata.parent
        if parent.kind == "trunk" or snapshot.is_trunk(parent.name):
            parent_tip = snapshot.tip(parent.name)
        elif parent.name in snapshot.metadata:
            parent_tip = snapshot.tip(parent.name)
        else:
            problems.append(f"parent '{parent.name}' of '{branch}' is neither tracked nor trunk")
            continue

        base = scanned.metadata.base.oid
        if not git.is_ancestor(snapshot.cwd, base, tip):
            problems.append(f"base {base.short()} of '{branch}' is not an ancestor of its tip")
        if parent_tip is None:
            problems.append(f"parent '{parent.name}' of '{branch}' does not resolve")
        elif not git.is_ancestor(snapshot.cwd, base, parent_tip):
            problems.append(
                f"base {base.short()} of '{branch}' is not reachable from parent '{parent.name}'"
            )

    return problems
