"""Application context with dependency injection."""

from dataclasses import dataclass
from pathlib import Path

from lattice.core.config import (
    DEFAULT_CONFIG_VERSION,
    GlobalConfig,
    RepoConfig,
    load_global_config,
    load_repo_config,
)
from lattice.core.errors import NotARepositoryError
from lattice.core.git.abc import Git, RepoInfo
from lattice.core.git.real import RealGit
from lattice.core.paths import LatticePaths
from lattice.core.time.abc import Time
from lattice.core.time.real import RealTime
from lattice.engine.exec import Executor
from lattice.engine.ledger import EventLedger
from lattice.forge import Forge, create_forge


@dataclass(frozen=True)
class NoRepoSentinel:
    """Sentinel value indicating the command runs outside any repository."""

    message: str = "Not inside a git repository"


@dataclass(frozen=True)
class LatticeContext:
    """Immutable context holding all dependencies for lattice operations.

    Created at CLI entry point and threaded through the application.
    Frozen to prevent accidental modification at runtime.
    """

    git: Git
    time: Time
    forge: Forge | None
    cwd: Path  # Current working directory at CLI invocation
    global_config: GlobalConfig
    repo: RepoInfo | NoRepoSentinel
    config: RepoConfig
    auth_available: bool

    def require_repo(self) -> RepoInfo:
        if isinstance(self.repo, NoRepoSentinel):
            raise NotARepositoryError(self.cwd)
        return self.repo

    @property
    def paths(self) -> LatticePaths:
        repo = self.require_repo()
        return LatticePaths(git_dir=repo.git_dir, common_dir=repo.common_dir)

    @property
    def worktree_root(self) -> Path:
        repo = self.require_repo()
        return repo.work_dir if repo.work_dir is not None else repo.git_dir

    def ledger(self) -> EventLedger:
        return EventLedger(self.git, self.cwd)

    def executor(self) -> Executor:
        return Executor(
            git=self.git,
            time=self.time,
            cwd=self.cwd,
            repo_info=self.require_repo(),
            config=self.config,
            ledger=self.ledger(),
            forge=self.forge,
            auth_available=self.auth_available,
        )

    @staticmethod
    def for_test(
        git: Git | None = None,
        time: Time | None = None,
        forge: Forge | None = None,
        cwd: Path | None = None,
        global_config: GlobalConfig | None = None,
        config: RepoConfig | None = None,
        repo: RepoInfo | NoRepoSentinel | None = None,
        auth_available: bool = False,
    ) -> "LatticeContext":
        """Create test context with optional pre-configured integration classes.

        Unspecified integrations default to empty fakes. When repo is None it is
        discovered through git, so a FakeGit configured with a repository at cwd
        yields a usable context.

        Example:
            >>> builder = StackBuilder(tmp_path / "repo").branch("feat")
            >>> ctx = LatticeContext.for_test(git=builder.build(), cwd=builder.root)
        """
        from tests.fakes.git import FakeGit
        from tests.fakes.time import FakeTime

        if git is None:
            git = FakeGit()

        if time is None:
            time = FakeTime()

        if cwd is None:
            cwd = Path("/test/default/cwd")

        if global_config is None:
            global_config = GlobalConfig(
                lock_timeout_seconds=1.0, auth_dir=Path("/test/lattice/auth")
            )

        if repo is None:
            info = git.get_repo_info(cwd)
            repo = info if info is not None else NoRepoSentinel()

        if config is None:
            config = _default_repo_config(global_config)

        return LatticeContext(
            git=git,
            time=time,
            forge=forge,
            cwd=cwd,
            global_config=global_config,
            repo=repo,
            config=config,
            auth_available=auth_available,
        )


def _default_repo_config(global_config: GlobalConfig) -> RepoConfig:
    return RepoConfig(
        trunk=None,
        remote=None,
        forge=None,
        lock_timeout_seconds=global_config.lock_timeout_seconds,
        config_version=DEFAULT_CONFIG_VERSION,
    )


def create_context(*, cwd: Path | None = None) -> LatticeContext:
    """Create production context with real implementations.

    Called at CLI entry point to create the context for the entire
    command execution.
    """
    # 1. Capture cwd (no deps)
    if cwd is None:
        cwd = Path.cwd()

    # 2. Load global config; a missing file means defaults
    global_config = load_global_config()

    # 3. Create integrations
    git: Git = RealGit()
    time: Time = RealTime()

    # 4. Discover repo and load its config
    info = git.get_repo_info(cwd)
    repo: RepoInfo | NoRepoSentinel
    if info is None:
        repo = NoRepoSentinel(message=f"Not inside a git repository: {cwd}")
        config = _default_repo_config(global_config)
    else:
        repo = info
        paths = LatticePaths(git_dir=info.git_dir, common_dir=info.common_dir)
        config = load_repo_config(paths.config_path, global_config)

    # 5. Forge (only when configured)
    forge = create_forge(
        config.forge,
        auth_dir=global_config.auth_dir,
        time=time,
        lock_timeout=config.lock_timeout_seconds,
    )
    auth_available = forge is not None and forge.has_credentials()

    return LatticeContext(
        git=git,
        time=time,
        forge=forge,
        cwd=cwd,
        global_config=global_config,
        repo=repo,
        config=config,
        auth_available=auth_available,
    )
