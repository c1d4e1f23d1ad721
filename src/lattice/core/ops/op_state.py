"""The single authoritative "operation in flight" marker.

At most one op-state file exists per repository. It is created with an
exclusive create, so two processes can never both believe they own the
repository, and it is re-read fresh by every command.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from lattice.core.errors import CorruptStateError, OperationInProgressError
from lattice.core.ops.journal import write_json_atomic
from lattice.core.types import Oid, RefName

logger = logging.getLogger(__name__)

OpPhase = Literal["executing", "paused"]


class TouchedRef(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    refname: RefName
    expected_old: Oid | None


class AwaitingReason(BaseModel):
    """Why a paused operation is waiting on the user."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["conflict", "rollback_incomplete"]
    detail: str
    failed_refs: tuple[RefName, ...] = ()


class OpState(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    op_id: str
    command: str
    phase: OpPhase
    plan_digest: str
    plan_schema_version: int
    touched_refs: tuple[TouchedRef, ...]
    awaiting_reason: AwaitingReason | None = None
    origin_worktree: Path
    updated_at: datetime

    @property
    def is_paused(self) -> bool:
        return self.phase == "paused"

    def paused(self, reason: AwaitingReason, now: datetime) -> "OpState":
        return self.model_copy(
            update={"phase": "paused", "awaiting_reason": reason, "updated_at": now}
        )

    def executing(self, now: datetime) -> "OpState":
        return self.model_copy(
            update={"phase": "executing", "awaiting_reason": None, "updated_at": now}
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def create(self, path: Path) -> None:
        """Write the marker, failing if any marker already exists.

        Raises:
            OperationInProgressError: If another operation holds the marker
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            existing = OpState.read(path)
            if existing is None:
                raise OperationInProgressError("unknown", "unknown") from None
            raise OperationInProgressError(existing.op_id, existing.command) from None
        payload = json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        logger.debug("op-state created for %s (%s)", self.command, self.op_id)

    def update(self, path: Path) -> None:
        """Replace the existing marker atomically."""
        write_json_atomic(path, self.model_dump(mode="json"))
        logger.debug("op-state %s -> %s", self.op_id, self.phase)

    @classmethod
    def read(cls, path: Path) -> "OpState | None":
        if not path.exists():
            return None
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise CorruptStateError(f"Unreadable op-state marker {path}: {e}") from e

    @staticmethod
    def remove(path: Path) -> None:
        if path.exists():
            path.unlink()
            logger.debug("op-state removed")
