"""CLI error handling utilities with styled output.

Ensure asserts invariants inside commands; handle_lattice_errors turns the
engine's LatticeError taxonomy into the same red "Error:" message and exit
code 1. Engine code never exits the process itself.
"""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

import click

from lattice.cli.output import user_output
from lattice.core.errors import (
    LatticeError,
    LockContention,
    OperationNotPaused,
    RepositoryChangedError,
    RollbackIncomplete,
    UndoBlocked,
)


class Ensure:
    """Helper class for asserting invariants with consistent error handling."""

    @staticmethod
    def invariant(condition: bool, error_message: str) -> None:
        """Ensure condition is true, otherwise output styled error and exit.

        Raises:
            SystemExit: If condition is false (with exit code 1)
        """
        if not condition:
            user_output(click.style("Error: ", fg="red") + error_message)
            raise SystemExit(1)


def _hint_for(error: LatticeError) -> str | None:
    if isinstance(error, RepositoryChangedError):
        return "The operation is still paused. Run 'lattice abort' to undo it."
    if isinstance(error, RollbackIncomplete):
        return "Restore these refs manually, then run 'lattice abort' again."
    if isinstance(error, LockContention):
        return "Another lattice command is running in this repository; try again shortly."
    if isinstance(error, OperationNotPaused) and error.phase == "executing":
        return "It stopped before committing. Run 'lattice abort' to roll it back."
    if isinstance(error, UndoBlocked):
        return "Undo only applies while everything the operation wrote is unchanged."
    return None


F = TypeVar("F", bound=Callable[..., Any])


def handle_lattice_errors(func: F) -> F:
    """Decorator converting LatticeError into a styled message and exit code 1."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except LatticeError as e:
            user_output(click.style("Error: ", fg="red") + str(e))
            hint = _hint_for(e)
            if hint is not None:
                user_output(hint)
            raise SystemExit(1) from e

    return wrapper  # type: ignore[return-value]
