"""Repository interface consumed by the scanner, executor, and ledger.

Architecture:
- Git: Abstract base class defining the interface
- RealGit: Production implementation using subprocess
- FakeGit (tests/fakes): In-memory implementation with real CAS semantics

The engine depends only on this interface, never on a concrete invocation.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from lattice.core.types import BranchName, Oid, RefName


@dataclass(frozen=True)
class WorktreeInfo:
    """Information about a single git worktree."""

    path: Path
    branch: BranchName | None
    is_root: bool = False


@dataclass(frozen=True)
class RepoInfo:
    """Location of a repository as seen from one worktree."""

    git_dir: Path
    common_dir: Path
    work_dir: Path | None  # None for bare repositories


@dataclass(frozen=True)
class GitResult:
    """Structured result of an arbitrary git subcommand."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class GitState(Enum):
    """External multi-step operation currently in progress in a worktree."""

    CLEAN = "clean"
    REBASE = "rebase"
    MERGE = "merge"
    CHERRY_PICK = "cherry_pick"
    REVERT = "revert"
    BISECT = "bisect"
    APPLY_MAILBOX = "apply_mailbox"

    @property
    def is_in_progress(self) -> bool:
        return self is not GitState.CLEAN

    @property
    def description(self) -> str:
        return self.value.replace("_", "-")

    def continue_args(self) -> list[str] | None:
        """Arguments that resume this operation, None if it cannot be continued."""
        args = _CONTINUE_ARGS.get(self)
        return list(args) if args is not None else None

    def abort_args(self) -> list[str] | None:
        args = _ABORT_ARGS.get(self)
        return list(args) if args is not None else None


_CONTINUE_ARGS: dict[GitState, tuple[str, ...]] = {
    GitState.REBASE: ("rebase", "--continue"),
    GitState.MERGE: ("merge", "--continue"),
    GitState.CHERRY_PICK: ("cherry-pick", "--continue"),
    GitState.REVERT: ("revert", "--continue"),
    GitState.APPLY_MAILBOX: ("am", "--continue"),
}


_ABORT_ARGS: dict[GitState, tuple[str, ...]] = {
    GitState.REBASE: ("rebase", "--abort"),
    GitState.MERGE: ("merge", "--abort"),
    GitState.CHERRY_PICK: ("cherry-pick", "--abort"),
    GitState.REVERT: ("revert", "--abort"),
    GitState.BISECT: ("bisect", "reset"),
    GitState.APPLY_MAILBOX: ("am", "--abort"),
}


def find_worktree_for_branch(worktrees: list[WorktreeInfo], branch: BranchName) -> Path | None:
    """Find the path of the worktree that has the given branch checked out.

    Args:
        worktrees: List of worktrees to search
        branch: Branch name to find

    Returns:
        Path to the worktree with the branch checked out, or None if not found
    """
    for wt in worktrees:
        if wt.branch == branch:
            return wt.path
    return None


# ============================================================================
# Abstract Interface
# ============================================================================


class Git(ABC):
    """Abstract interface for repository operations.

    All implementations (real and fake) must implement this interface.
    This interface contains ONLY runtime operations - no test setup methods.
    """

    @abstractmethod
    def get_repo_info(self, cwd: Path) -> RepoInfo | None:
        """Locate git dir, common dir, and work tree; None outside a repository."""
        ...

    @abstractmethod
    def resolve_ref(self, cwd: Path, ref: RefName) -> Oid | None:
        """Return the Oid a ref points at, or None if it does not exist."""
        ...

    @abstractmethod
    def list_refs(self, cwd: Path, prefix: str) -> dict[RefName, Oid]:
        """List all refs under a namespace prefix (e.g. 'refs/heads/')."""
        ...

    @abstractmethod
    def update_ref_cas(
        self, cwd: Path, ref: RefName, new: Oid, expected_old: Oid | None, message: str
    ) -> None:
        """Atomically point ref at new if it currently equals expected_old.

        expected_old=None requires that the ref does not exist yet.

        Raises:
            CasFailed: If the current value does not match expected_old
        """
        ...

    @abstractmethod
    def delete_ref_cas(self, cwd: Path, ref: RefName, expected_old: Oid) -> None:
        """Atomically delete ref if it currently equals expected_old.

        Raises:
            CasFailed: If the current value does not match expected_old
        """
        ...

    @abstractmethod
    def write_blob(self, cwd: Path, content: bytes) -> Oid:
        """Store content in the object database and return its Oid."""
        ...

    @abstractmethod
    def read_blob(self, cwd: Path, oid: Oid) -> bytes:
        ...

    @abstractmethod
    def make_tree(self, cwd: Path, entries: dict[str, Oid]) -> Oid:
        """Create a flat tree object mapping file names to blob Oids."""
        ...

    @abstractmethod
    def commit_tree(self, cwd: Path, tree: Oid, parents: Sequence[Oid], message: str) -> Oid:
        ...

    @abstractmethod
    def read_commit_parents(self, cwd: Path, commit: Oid) -> list[Oid]:
        ...

    @abstractmethod
    def read_file_at(self, cwd: Path, commit: Oid, path: str) -> bytes | None:
        """Read a file from a commit's tree, None if absent."""
        ...

    @abstractmethod
    def list_worktrees(self, cwd: Path) -> list[WorktreeInfo]:
        """List all worktrees in the repository."""
        ...

    @abstractmethod
    def get_state(self, cwd: Path) -> GitState:
        """Detect an in-progress rebase/merge/etc. in the worktree at cwd."""
        ...

    @abstractmethod
    def is_ancestor(self, cwd: Path, ancestor: Oid, descendant: Oid) -> bool:
        ...

    @abstractmethod
    def merge_base(self, cwd: Path, a: Oid, b: Oid) -> Oid | None:
        ...

    @abstractmethod
    def run_git(self, cwd: Path, args: Sequence[str]) -> GitResult:
        """Run an arbitrary git subcommand; never raises on non-zero exit."""
        ...
