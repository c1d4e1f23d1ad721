"""Per-host forge token cache.

Tokens are cached in <auth_dir>/<host>.toml. Reading is lock-free; refreshing
happens under the host's CredentialLock, and the cache is re-read after the
lock is acquired so that when two processes race only one of them calls the
refresher.
"""

import logging
import os
import tomllib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import tomlkit

from lattice.core.ops.lock import CredentialLock
from lattice.core.time.abc import Time

logger = logging.getLogger(__name__)

# Treat tokens this close to expiry as already expired.
EXPIRY_MARGIN = timedelta(seconds=60)


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now + EXPIRY_MARGIN < self.expires_at


Refresher = Callable[[], CachedToken]


class TokenCache:
    def __init__(self, auth_dir: Path, host: str, *, time: Time, lock_timeout: float) -> None:
        self._auth_dir = auth_dir
        self._host = host
        self._time = time
        self._lock_timeout = lock_timeout

    @property
    def path(self) -> Path:
        return self._auth_dir / f"{self._host}.toml"

    def read(self) -> CachedToken | None:
        if not self.path.exists():
            return None
        with self.path.open("rb") as f:
            data = tomllib.load(f)
        token = data.get("token")
        expires_at = data.get("expires_at")
        if not isinstance(token, str) or not isinstance(expires_at, datetime):
            logger.warning("Ignoring malformed token cache %s", self.path)
            return None
        return CachedToken(token=token, expires_at=expires_at)

    def get_token(self, refresher: Refresher) -> str:
        """Return a valid token, refreshing it under the credential lock if needed.

        Raises:
            LockContention: If another process holds the refresh lock past the timeout
        """
        cached = self.read()
        if cached is not None and cached.is_valid(self._time.now()):
            return cached.token

        lock = CredentialLock.for_host(
            self._auth_dir, self._host, time=self._time, timeout=self._lock_timeout
        )
        with lock:
            # Another process may have refreshed while we waited.
            cached = self.read()
            if cached is not None and cached.is_valid(self._time.now()):
                return cached.token
            fresh = refresher()
            self._write(fresh)
            logger.debug("Refreshed token for %s", self._host)
            return fresh.token

    def _write(self, cached: CachedToken) -> None:
        self._auth_dir.mkdir(parents=True, exist_ok=True)
        doc = tomlkit.document()
        doc["token"] = cached.token
        doc["expires_at"] = cached.expires_at
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.unlink(missing_ok=True)
        # The token must never sit in a file readable by other users.
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            tomlkit.dump(doc, f)
        tmp.replace(self.path)
