"""Abstract interface for remote forge operations.

The executor only ever touches a forge during the deferred remote phase, after
local work has committed. Failures surface as ForgeError (or GitCommandError
for git transport) and are reported, never rolled back.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from lattice.core.types import BranchName


@dataclass(frozen=True)
class ReviewRef:
    number: int
    url: str


class Forge(ABC):
    """Abstract interface for a code-review host."""

    provider: str

    @abstractmethod
    def has_credentials(self) -> bool:
        """Whether usable credentials are available without prompting."""

    @abstractmethod
    def push(self, cwd: Path, branch: BranchName, remote: str, *, force: bool) -> None:
        """Push a branch, with --force-with-lease when force is set."""

    @abstractmethod
    def fetch(self, cwd: Path, remote: str) -> None: ...

    @abstractmethod
    def create_review(
        self, cwd: Path, branch: BranchName, base: BranchName, title: str
    ) -> ReviewRef:
        """Open a review for branch targeting base."""

    @abstractmethod
    def update_review(self, cwd: Path, number: int, base: BranchName) -> None:
        """Retarget an existing review to a new base branch."""

    @abstractmethod
    def merge_review(self, cwd: Path, number: int, method: str) -> None: ...
