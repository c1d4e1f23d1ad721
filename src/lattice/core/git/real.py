"""Production Git implementation using subprocess.

This module provides the real Git implementation that executes actual git
commands via subprocess.
"""

import os
import subprocess
from collections.abc import Sequence
from pathlib import Path

from lattice.core.errors import CasFailed, GitCommandError
from lattice.core.git.abc import Git, GitResult, GitState, RepoInfo, WorktreeInfo
from lattice.core.subprocess import run_subprocess_with_context
from lattice.core.types import BRANCH_PREFIX, BranchName, Oid, RefName

# ============================================================================
# Production Implementation
# ============================================================================


class RealGit(Git):
    """Production implementation using subprocess.

    All git operations execute actual git commands via subprocess.
    """

    def get_repo_info(self, cwd: Path) -> RepoInfo | None:
        result = subprocess.run(
            [
                "git",
                "rev-parse",
                "--path-format=absolute",
                "--git-dir",
                "--git-common-dir",
                "--is-bare-repository",
            ],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            return None

        lines = result.stdout.strip().splitlines()
        if len(lines) != 3:
            return None
        git_dir = Path(lines[0]).resolve()
        common_dir = Path(lines[1]).resolve()
        if lines[2] == "true":
            return RepoInfo(git_dir=git_dir, common_dir=common_dir, work_dir=None)

        toplevel = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        work_dir = Path(toplevel.stdout.strip()).resolve() if toplevel.returncode == 0 else None
        return RepoInfo(git_dir=git_dir, common_dir=common_dir, work_dir=work_dir)

    def resolve_ref(self, cwd: Path, ref: RefName) -> Oid | None:
        result = subprocess.run(
            ["git", "rev-parse", "--verify", "--quiet", f"{ref}^{{object}}"],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            return None
        return Oid(result.stdout.strip())

    def list_refs(self, cwd: Path, prefix: str) -> dict[RefName, Oid]:
        result = run_subprocess_with_context(
            ["git", "for-each-ref", "--format=%(objectname) %(refname)", prefix],
            operation_context=f"list refs under {prefix}",
            cwd=cwd,
        )
        refs: dict[RefName, Oid] = {}
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            oid, name = line.split(" ", 1)
            refs[RefName(name)] = Oid(oid)
        return refs

    def update_ref_cas(
        self, cwd: Path, ref: RefName, new: Oid, expected_old: Oid | None, message: str
    ) -> None:
        old_arg = str(expected_old) if expected_old is not None else "0" * len(str(new))
        result = subprocess.run(
            ["git", "update-ref", "-m", message, str(ref), str(new), old_arg],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise CasFailed(ref, expected_old, self.resolve_ref(cwd, ref))

    def delete_ref_cas(self, cwd: Path, ref: RefName, expected_old: Oid) -> None:
        result = subprocess.run(
            ["git", "update-ref", "-d", str(ref), str(expected_old)],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise CasFailed(ref, expected_old, self.resolve_ref(cwd, ref))

    def write_blob(self, cwd: Path, content: bytes) -> Oid:
        result = run_subprocess_with_context(
            ["git", "hash-object", "-w", "--stdin"],
            operation_context="write blob",
            cwd=cwd,
            input_bytes=content,
        )
        return Oid(result.stdout.strip())

    def read_blob(self, cwd: Path, oid: Oid) -> bytes:
        result = subprocess.run(
            ["git", "cat-file", "blob", str(oid)],
            cwd=cwd,
            capture_output=True,
            check=False,
        )
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise GitCommandError(f"Failed to read blob {oid}: {stderr}")
        return result.stdout

    def make_tree(self, cwd: Path, entries: dict[str, Oid]) -> Oid:
        listing = "".join(f"100644 blob {oid}\t{name}\n" for name, oid in sorted(entries.items()))
        result = run_subprocess_with_context(
            ["git", "mktree"],
            operation_context="create tree",
            cwd=cwd,
            input_bytes=listing.encode("utf-8"),
        )
        return Oid(result.stdout.strip())

    def commit_tree(self, cwd: Path, tree: Oid, parents: Sequence[Oid], message: str) -> Oid:
        cmd = ["git", "commit-tree", str(tree), "-m", message]
        for parent in parents:
            cmd.extend(["-p", str(parent)])
        result = run_subprocess_with_context(cmd, operation_context="create commit", cwd=cwd)
        return Oid(result.stdout.strip())

    def read_commit_parents(self, cwd: Path, commit: Oid) -> list[Oid]:
        result = run_subprocess_with_context(
            ["git", "rev-list", "--parents", "-n", "1", str(commit)],
            operation_context=f"read parents of {commit.short()}",
            cwd=cwd,
        )
        parts = result.stdout.strip().split()
        return [Oid(p) for p in parts[1:]]

    def read_file_at(self, cwd: Path, commit: Oid, path: str) -> bytes | None:
        result = subprocess.run(
            ["git", "cat-file", "blob", f"{commit}:{path}"],
            cwd=cwd,
            capture_output=True,
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout

    def list_worktrees(self, cwd: Path) -> list[WorktreeInfo]:
        """List all worktrees in the repository."""
        result = run_subprocess_with_context(
            ["git", "worktree", "list", "--porcelain"],
            operation_context="list worktrees",
            cwd=cwd,
        )

        worktrees: list[WorktreeInfo] = []
        current_path: Path | None = None
        current_branch: BranchName | None = None

        for line in result.stdout.splitlines():
            line = line.strip()
            if line.startswith("worktree "):
                current_path = Path(line.split(maxsplit=1)[1])
                current_branch = None
            elif line.startswith("branch "):
                if current_path is None:
                    continue
                branch_ref = line.split(maxsplit=1)[1]
                current_branch = BranchName(branch_ref.removeprefix(BRANCH_PREFIX))
            elif line == "" and current_path is not None:
                worktrees.append(WorktreeInfo(path=current_path, branch=current_branch))
                current_path = None
                current_branch = None

        if current_path is not None:
            worktrees.append(WorktreeInfo(path=current_path, branch=current_branch))

        # Mark first worktree as root (git guarantees this ordering)
        if worktrees:
            first = worktrees[0]
            worktrees[0] = WorktreeInfo(path=first.path, branch=first.branch, is_root=True)

        return worktrees

    def get_state(self, cwd: Path) -> GitState:
        info = self.get_repo_info(cwd)
        if info is None:
            return GitState.CLEAN
        git_dir = info.git_dir

        if (git_dir / "rebase-merge").is_dir():
            return GitState.REBASE
        if (git_dir / "rebase-apply").is_dir():
            if (git_dir / "rebase-apply" / "applying").exists():
                return GitState.APPLY_MAILBOX
            return GitState.REBASE
        if (git_dir / "MERGE_HEAD").exists():
            return GitState.MERGE
        if (git_dir / "CHERRY_PICK_HEAD").exists():
            return GitState.CHERRY_PICK
        if (git_dir / "REVERT_HEAD").exists():
            return GitState.REVERT
        if (git_dir / "BISECT_LOG").exists():
            return GitState.BISECT
        return GitState.CLEAN

    def is_ancestor(self, cwd: Path, ancestor: Oid, descendant: Oid) -> bool:
        result = subprocess.run(
            ["git", "merge-base", "--is-ancestor", str(ancestor), str(descendant)],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        return result.returncode == 0

    def merge_base(self, cwd: Path, a: Oid, b: Oid) -> Oid | None:
        result = subprocess.run(
            ["git", "merge-base", str(a), str(b)],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            return None
        return Oid(result.stdout.strip())

    def run_git(self, cwd: Path, args: Sequence[str]) -> GitResult:
        # Never open an editor; continue steps reuse the prepared message.
        env = {**os.environ, "GIT_EDITOR": "true"}
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
            env=env,
        )
        return GitResult(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)
