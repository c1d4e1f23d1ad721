from pathlib import Path

import pytest

from tests.test_utils.git_repo import commit_file, git


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A real repository on 'main' with one commit."""
    root = (tmp_path / "repo").resolve()
    root.mkdir()
    git(root, "init", "-q", "-b", "main")
    git(root, "config", "user.email", "test@example.com")
    git(root, "config", "user.name", "Test User")
    git(root, "config", "commit.gpgsign", "false")
    commit_file(root, "file.txt", "base\n", "initial")
    return root
