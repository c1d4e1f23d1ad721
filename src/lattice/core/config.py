"""Repository and global configuration.

Global config lives in ~/.lattice/config.toml; repository config lives in
<common_dir>/lattice/config.toml under a [lattice] table. Repository values
override global ones. Both are loaded eagerly at the CLI entry point and
passed around as immutable dataclasses.
"""

import tomllib
from dataclasses import dataclass
from pathlib import Path

import tomlkit

from lattice.core.types import BranchName

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0
DEFAULT_CONFIG_VERSION = 1
SUPPORTED_FORGES = ("github",)


@dataclass(frozen=True)
class GlobalConfig:
    """Immutable per-user configuration."""

    lock_timeout_seconds: float
    auth_dir: Path


@dataclass(frozen=True)
class RepoConfig:
    """Immutable per-repository configuration."""

    trunk: BranchName | None
    remote: str | None
    forge: str | None
    lock_timeout_seconds: float
    config_version: int


def global_config_path() -> Path:
    return Path.home() / ".lattice" / "config.toml"


def default_global_config() -> GlobalConfig:
    return GlobalConfig(
        lock_timeout_seconds=DEFAULT_LOCK_TIMEOUT_SECONDS,
        auth_dir=Path.home() / ".lattice" / "auth",
    )


def load_global_config(path: Path | None = None) -> GlobalConfig:
    """Load global config, falling back to defaults when the file is absent.

    Raises:
        ValueError: If the file is malformed
    """
    config_path = path if path is not None else global_config_path()
    defaults = default_global_config()
    if not config_path.exists():
        return defaults

    data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    timeout = data.get("lock_timeout_seconds", defaults.lock_timeout_seconds)
    if not isinstance(timeout, int | float) or timeout <= 0:
        raise ValueError(f"'lock_timeout_seconds' must be a positive number in {config_path}")
    auth_dir = data.get("auth_dir")
    return GlobalConfig(
        lock_timeout_seconds=float(timeout),
        auth_dir=Path(auth_dir).expanduser() if auth_dir else defaults.auth_dir,
    )


def load_repo_config(config_path: Path, global_config: GlobalConfig) -> RepoConfig:
    """Load the [lattice] table from a repository config file.

    Missing file or missing keys fall back to global settings.

    Raises:
        ValueError: If a value is malformed or the forge is not supported
    """
    section: dict = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            data = tomllib.load(f)
        section = data.get("lattice", {})
        if not isinstance(section, dict):
            raise ValueError(f"[lattice] must be a table in {config_path}")

    trunk = section.get("trunk")
    forge = section.get("forge")
    if forge is not None and forge not in SUPPORTED_FORGES:
        raise ValueError(
            f"Unsupported forge {forge!r} in {config_path}; "
            f"expected one of: {', '.join(SUPPORTED_FORGES)}"
        )
    timeout = section.get("lock_timeout_seconds", global_config.lock_timeout_seconds)
    if not isinstance(timeout, int | float) or timeout <= 0:
        raise ValueError(f"'lock_timeout_seconds' must be a positive number in {config_path}")
    version = section.get("config_version", DEFAULT_CONFIG_VERSION)
    if not isinstance(version, int):
        raise ValueError(f"'config_version' must be an integer in {config_path}")

    return RepoConfig(
        trunk=BranchName(trunk) if trunk else None,
        remote=section.get("remote"),
        forge=forge,
        lock_timeout_seconds=float(timeout),
        config_version=version,
    )


def write_repo_config_value(config_path: Path, key: str, value: str | int | float) -> None:
    """Set one key in the [lattice] table.

    Preserves existing formatting and comments using tomlkit.
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as f:
            doc = tomlkit.load(f)
    else:
        doc = tomlkit.document()

    if "lattice" not in doc:
        doc["lattice"] = tomlkit.table()

    doc["lattice"][key] = value  # type: ignore[index]

    with config_path.open("w", encoding="utf-8") as f:
        tomlkit.dump(doc, f)
