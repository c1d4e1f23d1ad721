from pathlib import Path

from lattice.core.config import SUPPORTED_FORGES
from lattice.core.errors import ForgeError
from lattice.core.time.abc import Time
from lattice.forge.abc import Forge, ReviewRef
from lattice.forge.auth import TokenCache
from lattice.forge.github import DEFAULT_HOST, GitHubForge

__all__ = ["Forge", "ReviewRef", "create_forge"]


def create_forge(
    provider: str | None, *, auth_dir: Path, time: Time, lock_timeout: float
) -> Forge | None:
    """Build the configured forge, or None when no forge is configured."""
    if provider is None:
        return None
    if provider == "github":
        cache = TokenCache(auth_dir, DEFAULT_HOST, time=time, lock_timeout=lock_timeout)
        return GitHubForge(cache, time)
    raise ForgeError(
        f"Unsupported forge {provider!r}; expected one of: {', '.join(SUPPORTED_FORGES)}"
    )
