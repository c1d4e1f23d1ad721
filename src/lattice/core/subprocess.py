"""Subprocess helpers for the repository and forge integration layers."""

import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from lattice.core.errors import GitCommandError


def run_subprocess_with_context(
    cmd: Sequence[str],
    operation_context: str,
    cwd: Path | None = None,
    input_bytes: bytes | None = None,
    **kwargs: Any,
) -> subprocess.CompletedProcess[str]:
    """Execute subprocess with enriched error reporting.

    Wraps subprocess.run() to catch CalledProcessError and re-raise as
    GitCommandError with operation context, stderr output, and command details.

    Args:
        cmd: Command and arguments to execute
        operation_context: Human-readable description of operation
        cwd: Working directory for command execution
        input_bytes: Optional bytes fed to stdin (output is still decoded as text)
        **kwargs: Additional arguments passed to subprocess.run()

    Returns:
        CompletedProcess instance from subprocess.run()

    Raises:
        GitCommandError: If command fails or its binary is missing
    """
    try:
        if input_bytes is not None:
            raw = subprocess.run(
                cmd, cwd=cwd, input=input_bytes, capture_output=True, check=True, **kwargs
            )
            return subprocess.CompletedProcess(
                raw.args,
                raw.returncode,
                raw.stdout.decode("utf-8"),
                raw.stderr.decode("utf-8"),
            )
        return subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            check=True,
            **kwargs,
        )

    except subprocess.CalledProcessError as e:
        cmd_str = " ".join(str(arg) for arg in cmd)
        error_msg = f"Failed to {operation_context}"
        error_msg += f"\nCommand: {cmd_str}"
        error_msg += f"\nExit code: {e.returncode}"

        if e.stderr:
            stderr_text = e.stderr if isinstance(e.stderr, str) else e.stderr.decode("utf-8")
            stderr_stripped = stderr_text.strip()
            if stderr_stripped:
                error_msg += f"\nstderr: {stderr_stripped}"

        raise GitCommandError(error_msg) from e

    except FileNotFoundError as e:
        cmd_str = " ".join(str(arg) for arg in cmd)
        error_msg = f"Command not found while trying to {operation_context}: {cmd[0]}"
        error_msg += f"\nFull command: {cmd_str}"
        raise GitCommandError(error_msg) from e
