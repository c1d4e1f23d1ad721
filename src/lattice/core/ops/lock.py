"""Advisory file locks with bounded waiting.

RepoLock is the single mutual-exclusion primitive for ref-mutating work. It is
keyed to the repository's common dir, so all worktrees of one repository
contend on the same file. CredentialLock is a narrower, per-host lock that
serializes refreshing a rotating forge token.

Locks are fcntl.flock locks on an open file description: they are released by
the kernel if the holding process dies, so there is no stale-lock cleanup.
"""

import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType

from lattice.core.errors import LockContention
from lattice.core.paths import LatticePaths
from lattice.core.time.abc import Time

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1


class FileLock:
    """Exclusive flock with a timeout, usable as a context manager."""

    def __init__(
        self,
        path: Path,
        *,
        time: Time,
        timeout: float,
        purpose: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.path = path
        self._time = time
        self._timeout = timeout
        self._purpose = purpose
        self._poll_interval = poll_interval
        self._fd: int | None = None

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def try_acquire(self) -> bool:
        """Attempt to take the lock once without waiting."""
        if self._fd is not None:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False
        except OSError:
            os.close(fd)
            raise
        self._fd = fd
        self._write_holder(fd)
        return True

    def acquire(self) -> None:
        """Block until the lock is taken or the timeout elapses.

        Raises:
            LockContention: If the lock is still held by someone else at the deadline
        """
        deadline = self._time.monotonic() + self._timeout
        while not self.try_acquire():
            if self._time.monotonic() >= deadline:
                raise LockContention(self.path, self._timeout, self.read_holder())
            self._time.sleep(self._poll_interval)
        logger.debug("Acquired lock %s for %s", self.path, self._purpose)

    def release(self) -> None:
        if self._fd is None:
            return
        fd = self._fd
        self._fd = None
        os.ftruncate(fd, 0)
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
        logger.debug("Released lock %s", self.path)

    def read_holder(self) -> str | None:
        if not self.path.exists():
            return None
        text = self.path.read_text(encoding="utf-8").strip()
        return text or None

    def _write_holder(self, fd: int) -> None:
        info = f"pid {os.getpid()}: {self._purpose}"
        os.ftruncate(fd, 0)
        os.lseek(fd, 0, os.SEEK_SET)
        os.write(fd, info.encode("utf-8"))

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class RepoLock(FileLock):
    """The repository-scoped lock shared by every worktree."""

    @classmethod
    def for_paths(
        cls, paths: LatticePaths, *, time: Time, timeout: float, purpose: str
    ) -> "RepoLock":
        return cls(paths.lock_path, time=time, timeout=timeout, purpose=purpose)


class CredentialLock(FileLock):
    """Per-host lock guarding credential refresh."""

    @classmethod
    def for_host(
        cls, auth_dir: Path, host: str, *, time: Time, timeout: float
    ) -> "CredentialLock":
        return cls(
            auth_dir / f"lock.{host}",
            time=time,
            timeout=timeout,
            purpose=f"refresh credentials for {host}",
        )
