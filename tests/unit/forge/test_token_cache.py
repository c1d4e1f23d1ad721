"""Tests for the per-host token cache and its refresh lock."""

import os
from datetime import timedelta
from pathlib import Path

import pytest
import tomlkit

from lattice.forge.auth import CachedToken, TokenCache
from tests.fakes.time import DEFAULT_NOW, FakeTime


class _CountingRefresher:
    def __init__(self, token: str, ttl: timedelta = timedelta(hours=1)) -> None:
        self.token = token
        self.ttl = ttl
        self.calls = 0

    def __call__(self) -> CachedToken:
        self.calls += 1
        return CachedToken(token=self.token, expires_at=DEFAULT_NOW + self.ttl)


def _cache(tmp_path: Path) -> TokenCache:
    return TokenCache(tmp_path / "auth", "github.com", time=FakeTime(), lock_timeout=1.0)


def test_refreshes_once_then_serves_from_cache(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    refresher = _CountingRefresher("tok-1")

    assert cache.get_token(refresher) == "tok-1"
    assert cache.get_token(refresher) == "tok-1"

    assert refresher.calls == 1
    cached = cache.read()
    assert cached is not None
    assert cached.expires_at == DEFAULT_NOW + timedelta(hours=1)


def test_token_near_expiry_is_refreshed(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    cache.get_token(_CountingRefresher("stale", ttl=timedelta(seconds=30)))
    refresher = _CountingRefresher("fresh")

    assert cache.get_token(refresher) == "fresh"
    assert refresher.calls == 1


def test_malformed_cache_is_ignored(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    cache.path.parent.mkdir(parents=True)
    cache.path.write_text('token = 42\n', encoding="utf-8")

    assert cache.read() is None
    assert cache.get_token(_CountingRefresher("tok")) == "tok"


def test_cache_file_is_private(tmp_path: Path) -> None:
    cache = _cache(tmp_path)
    cache.get_token(_CountingRefresher("secret"))

    assert cache.path.stat().st_mode & 0o777 == 0o600


def test_token_is_private_while_being_written(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    cache = _cache(tmp_path)
    modes: list[int] = []
    dump = tomlkit.dump

    def recording_dump(data, fp, **kwargs):
        modes.append(os.fstat(fp.fileno()).st_mode & 0o777)
        return dump(data, fp, **kwargs)

    monkeypatch.setattr(tomlkit, "dump", recording_dump)
    cache.get_token(_CountingRefresher("secret"))

    assert modes == [0o600]
