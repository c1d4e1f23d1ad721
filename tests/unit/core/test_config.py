"""Tests for global and repository configuration loading."""

from pathlib import Path

import pytest

from lattice.core.config import (
    DEFAULT_CONFIG_VERSION,
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    GlobalConfig,
    load_global_config,
    load_repo_config,
    write_repo_config_value,
)
from lattice.core.types import BranchName


def _global(tmp_path: Path, timeout: float = 5.0) -> GlobalConfig:
    return GlobalConfig(lock_timeout_seconds=timeout, auth_dir=tmp_path / "auth")


def test_missing_global_config_uses_defaults(tmp_path: Path) -> None:
    config = load_global_config(tmp_path / "absent.toml")

    assert config.lock_timeout_seconds == DEFAULT_LOCK_TIMEOUT_SECONDS


def test_global_config_reads_values(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('lock_timeout_seconds = 3\nauth_dir = "/tmp/auth"\n', encoding="utf-8")

    config = load_global_config(path)

    assert config.lock_timeout_seconds == 3.0
    assert config.auth_dir == Path("/tmp/auth")


def test_missing_repo_config_falls_back_to_global(tmp_path: Path) -> None:
    config = load_repo_config(tmp_path / "config.toml", _global(tmp_path, timeout=7.5))

    assert config.trunk is None
    assert config.forge is None
    assert config.lock_timeout_seconds == 7.5
    assert config.config_version == DEFAULT_CONFIG_VERSION


def test_repo_config_reads_lattice_table(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        '[lattice]\ntrunk = "develop"\nremote = "origin"\nforge = "github"\n',
        encoding="utf-8",
    )

    config = load_repo_config(path, _global(tmp_path))

    assert config.trunk == BranchName("develop")
    assert config.remote == "origin"
    assert config.forge == "github"


@pytest.mark.parametrize(
    "body",
    [
        '[lattice]\nforge = "gitlab"\n',
        "[lattice]\nlock_timeout_seconds = 0\n",
        '[lattice]\nconfig_version = "one"\n',
    ],
)
def test_invalid_repo_config_raises(tmp_path: Path, body: str) -> None:
    path = tmp_path / "config.toml"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(ValueError):
        load_repo_config(path, _global(tmp_path))


def test_write_value_preserves_comments(tmp_path: Path) -> None:
    path = tmp_path / "lattice" / "config.toml"
    path.parent.mkdir()
    path.write_text('# repository settings\n[lattice]\nremote = "origin"\n', encoding="utf-8")

    write_repo_config_value(path, "trunk", "main")

    text = path.read_text(encoding="utf-8")
    assert "# repository settings" in text
    config = load_repo_config(path, _global(tmp_path))
    assert config.trunk == BranchName("main")
    assert config.remote == "origin"


def test_write_value_creates_file(tmp_path: Path) -> None:
    path = tmp_path / "new" / "config.toml"

    write_repo_config_value(path, "trunk", "main")

    assert load_repo_config(path, _global(tmp_path)).trunk == BranchName("main")
