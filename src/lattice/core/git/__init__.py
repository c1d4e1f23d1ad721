"""Git operations subpackage.

This subpackage provides abstractions over repository operations with support
for testing via fakes.
"""

from lattice.core.git.abc import (
    Git,
    GitResult,
    GitState,
    RepoInfo,
    WorktreeInfo,
    find_worktree_for_branch,
)
from lattice.core.git.real import RealGit

__all__ = [
    "Git",
    "GitResult",
    "GitState",
    "RealGit",
    "RepoInfo",
    "WorktreeInfo",
    "find_worktree_for_branch",
]
