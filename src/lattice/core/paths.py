"""Centralized routing for lattice storage locations.

All repo-scoped state lives under ``<common_dir>/lattice/`` so that every
worktree of one repository shares the same lock, op-state, and journals.
Never assume ``.git`` is a directory or that git_dir == common_dir.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class LatticePaths:
    """Storage layout for one repository."""

    git_dir: Path  # per-worktree git dir
    common_dir: Path  # shared across worktrees

    @property
    def lattice_dir(self) -> Path:
        return self.common_dir / "lattice"

    @property
    def config_path(self) -> Path:
        return self.lattice_dir / "config.toml"

    @property
    def lock_path(self) -> Path:
        return self.lattice_dir / "lock"

    @property
    def op_state_path(self) -> Path:
        return self.lattice_dir / "op-state.json"

    @property
    def ops_dir(self) -> Path:
        return self.lattice_dir / "ops"

    def journal_path(self, op_id: str) -> Path:
        return self.ops_dir / f"{op_id}.json"

    @property
    def is_worktree(self) -> bool:
        return self.git_dir != self.common_dir

    def ensure_dirs(self) -> None:
        self.ops_dir.mkdir(parents=True, exist_ok=True)
