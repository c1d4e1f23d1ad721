"""Stack graph built from branch metadata.

The graph is an explicit adjacency map (child -> parent) keyed by BranchName.
Trunk-parented branches have no branch parent. Cycle detection is an explicit
pass; no traversal here relies on the graph being acyclic to terminate.
"""

from dataclasses import dataclass, field

from lattice.core.types import BranchName


@dataclass(frozen=True)
class StackGraph:
    parents: dict[BranchName, BranchName | None] = field(default_factory=dict)

    @property
    def branches(self) -> list[BranchName]:
        return sorted(self.parents)

    def parent(self, branch: BranchName) -> BranchName | None:
        return self.parents.get(branch)

    def children(self, branch: BranchName) -> list[BranchName]:
        return sorted(child for child, parent in self.parents.items() if parent == branch)

    def ancestors(self, branch: BranchName) -> list[BranchName]:
        """Tracked ancestors, nearest first. Stops at trunk, untracked parents, or a cycle."""
        result: list[BranchName] = []
        seen = {branch}
        current = self.parents.get(branch)
        while current is not None and current not in seen:
            result.append(current)
            seen.add(current)
            current = self.parents.get(current)
        return result

    def find_cycle(self) -> list[BranchName] | None:
        """Return the members of one cycle (in parent order), or None if acyclic."""
        done: set[BranchName] = set()
        for start in self.branches:
            if start in done:
                continue
            path: list[BranchName] = []
            on_path: set[BranchName] = set()
            current: BranchName | None = start
            while current is not None and current not in done:
                if current in on_path:
                    return path[path.index(current) :]
                path.append(current)
                on_path.add(current)
                current = self.parents.get(current)
            done.update(path)
        return None

    def topological_order(self) -> list[BranchName]:
        """Parents before children. Branches on a cycle are omitted."""
        order: list[BranchName] = []
        placed: set[BranchName] = set()
        roots = [b for b in self.branches if self.parents[b] not in self.parents]
        queue = list(roots)
        while queue:
            branch = queue.pop(0)
            if branch in placed:
                continue
            placed.add(branch)
            order.append(branch)
            queue.extend(self.children(branch))
        return order

    def descendants(self, branch: BranchName) -> list[BranchName]:
        """Tracked descendants, breadth first, excluding branch itself."""
        result: list[BranchName] = []
        seen = {branch}
        queue = self.children(branch)
        while queue:
            current = queue.pop(0)
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            queue.extend(self.children(current))
        return result
