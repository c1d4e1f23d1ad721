"""Tests for the flock-based repository and credential locks."""

from pathlib import Path

import pytest

from lattice.core.errors import LockContention
from lattice.core.ops.lock import CredentialLock, FileLock, RepoLock
from lattice.core.paths import LatticePaths
from tests.fakes.time import FakeTime


def test_acquire_and_release_records_holder(tmp_path: Path) -> None:
    lock = FileLock(tmp_path / "lock", time=FakeTime(), timeout=1.0, purpose="restack")

    with lock:
        assert lock.is_held
        holder = lock.read_holder()
        assert holder is not None
        assert holder.endswith(": restack")

    assert not lock.is_held
    assert lock.read_holder() is None


def test_contention_times_out_with_holder(tmp_path: Path) -> None:
    path = tmp_path / "lock"
    time = FakeTime()
    holder = FileLock(path, time=FakeTime(), timeout=1.0, purpose="sync")
    waiter = FileLock(path, time=time, timeout=0.5, purpose="restack", poll_interval=0.1)

    with holder:
        with pytest.raises(LockContention) as exc_info:
            waiter.acquire()

    assert exc_info.value.timeout == 0.5
    assert exc_info.value.holder is not None
    assert "sync" in exc_info.value.holder
    assert sum(time.sleep_calls) == pytest.approx(0.5)
    assert not waiter.is_held


def test_lock_can_be_taken_after_release(tmp_path: Path) -> None:
    path = tmp_path / "lock"
    first = FileLock(path, time=FakeTime(), timeout=1.0, purpose="first")
    second = FileLock(path, time=FakeTime(), timeout=1.0, purpose="second")

    with first:
        assert not second.try_acquire()
    assert second.try_acquire()
    second.release()


def test_repo_lock_is_shared_by_worktrees(tmp_path: Path) -> None:
    common = tmp_path / ".git"
    main = LatticePaths(git_dir=common, common_dir=common)
    linked = LatticePaths(git_dir=common / "worktrees" / "wt", common_dir=common)

    a = RepoLock.for_paths(main, time=FakeTime(), timeout=1.0, purpose="a")
    b = RepoLock.for_paths(linked, time=FakeTime(), timeout=1.0, purpose="b")

    assert a.path == b.path == common / "lattice" / "lock"


def test_credential_lock_is_per_host(tmp_path: Path) -> None:
    github = CredentialLock.for_host(tmp_path, "github.com", time=FakeTime(), timeout=1.0)
    other = CredentialLock.for_host(tmp_path, "git.example.com", time=FakeTime(), timeout=1.0)

    with github:
        assert other.try_acquire()
        other.release()
        assert github.read_holder() is not None
        assert "github.com" in (github.read_holder() or "")
