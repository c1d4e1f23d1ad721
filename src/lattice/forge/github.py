"""GitHub forge using git for transport and the gh CLI for reviews."""

import logging
import os
import re
import subprocess
from datetime import timedelta
from pathlib import Path

from lattice.core.errors import ForgeError, GitCommandError
from lattice.core.subprocess import run_subprocess_with_context
from lattice.core.time.abc import Time
from lattice.core.types import BranchName
from lattice.forge.abc import Forge, ReviewRef
from lattice.forge.auth import CachedToken, TokenCache

logger = logging.getLogger(__name__)

DEFAULT_HOST = "github.com"
# gh tokens do not report an expiry; re-validate them this often.
TOKEN_TTL = timedelta(hours=1)

_PR_URL_PATTERN = re.compile(r"/pull/(\d+)\s*$")


def parse_pr_number(url: str) -> int:
    """Extract the PR number from a URL like https://github.com/owner/repo/pull/123."""
    match = _PR_URL_PATTERN.search(url.strip())
    if match is None:
        raise ForgeError(f"Could not parse pull request number from gh output: {url!r}")
    return int(match.group(1))


class GitHubForge(Forge):
    provider = "github"

    def __init__(self, token_cache: TokenCache, time: Time, host: str = DEFAULT_HOST) -> None:
        self._token_cache = token_cache
        self._time = time
        self._host = host

    def has_credentials(self) -> bool:
        """Check gh authentication for the host.

        Note: A missing gh binary is treated as "no credentials" rather than an
        error; callers turn this into an auth_not_available issue.
        """
        try:
            result = subprocess.run(
                ["gh", "auth", "status", "--hostname", self._host],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            return False
        return result.returncode == 0

    def push(self, cwd: Path, branch: BranchName, remote: str, *, force: bool) -> None:
        cmd = ["git", "push"]
        if force:
            cmd.append("--force-with-lease")
        cmd.extend([remote, f"{branch}:{branch}"])
        run_subprocess_with_context(cmd, f"push {branch} to {remote}", cwd=cwd)
        logger.debug("pushed %s to %s", branch, remote)

    def fetch(self, cwd: Path, remote: str) -> None:
        run_subprocess_with_context(["git", "fetch", remote], f"fetch {remote}", cwd=cwd)

    def create_review(
        self, cwd: Path, branch: BranchName, base: BranchName, title: str
    ) -> ReviewRef:
        cmd = ["pr", "create", "--head", str(branch), "--base", str(base)]
        cmd.extend(["--title", title, "--body", ""])
        stdout = self._gh(cwd, cmd, f"create pull request for {branch}")
        url = stdout.strip().splitlines()[-1] if stdout.strip() else ""
        return ReviewRef(number=parse_pr_number(url), url=url)

    def update_review(self, cwd: Path, number: int, base: BranchName) -> None:
        cmd = ["pr", "edit", str(number), "--base", str(base)]
        self._gh(cwd, cmd, f"retarget pull request #{number}")

    def merge_review(self, cwd: Path, number: int, method: str) -> None:
        self._gh(cwd, ["pr", "merge", str(number), f"--{method}"], f"merge pull request #{number}")

    def _refresh_token(self) -> CachedToken:
        result = run_subprocess_with_context(
            ["gh", "auth", "token", "--hostname", self._host], f"read {self._host} token"
        )
        token = result.stdout.strip()
        if not token:
            raise ForgeError(f"gh returned an empty token for {self._host}")
        return CachedToken(token=token, expires_at=self._time.now() + TOKEN_TTL)

    def _gh(self, cwd: Path, args: list[str], operation_context: str) -> str:
        try:
            token = self._token_cache.get_token(self._refresh_token)
            env = {**os.environ, "GH_TOKEN": token}
            result = run_subprocess_with_context(
                ["gh", *args], operation_context, cwd=cwd, env=env
            )
        except GitCommandError as e:
            raise ForgeError(str(e)) from e
        return result.stdout
