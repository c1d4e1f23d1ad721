"""Pydantic models for per-branch metadata blobs.

Metadata is parsed strictly: unknown fields, a foreign kind, or an unsupported
schema version are hard errors rather than silently ignored.

The record splits into a structural view (parent, base, freeze) that affects
graph validity, and a cached view (pr) that never justifies structural
decisions.
"""

import json
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from lattice.core.errors import MetadataError
from lattice.core.types import BranchName, Oid

METADATA_KIND = "lattice.branch-metadata"
METADATA_SCHEMA_VERSION = 1


class _Strict(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class BranchInfo(_Strict):
    name: BranchName


class ParentInfo(_Strict):
    kind: Literal["branch", "trunk"]
    name: BranchName


class BaseInfo(_Strict):
    oid: Oid


class FreezeInfo(_Strict):
    state: Literal["unfrozen", "frozen"] = "unfrozen"
    scope: Literal["single", "downstack_inclusive"] | None = None
    reason: str | None = None
    frozen_at: datetime | None = None

    @model_validator(mode="after")
    def _frozen_fields_only_when_frozen(self) -> "FreezeInfo":
        if self.state == "unfrozen" and self.scope is not None:
            raise ValueError("scope is only valid for frozen branches")
        if self.state == "frozen" and self.scope is None:
            raise ValueError("frozen branches require a scope")
        return self

    @property
    def is_frozen(self) -> bool:
        return self.state == "frozen"


class PrStatus(_Strict):
    state: Literal["open", "closed", "merged"]
    is_draft: bool = False


class PrInfo(_Strict):
    state: Literal["none", "linked"] = "none"
    forge: str | None = None
    number: int | None = Field(default=None, gt=0)
    url: str | None = None
    last_known: PrStatus | None = None

    @model_validator(mode="after")
    def _linked_requires_number(self) -> "PrInfo":
        if self.state == "linked" and (self.forge is None or self.number is None):
            raise ValueError("linked PRs require forge and number")
        return self


class Timestamps(_Strict):
    created_at: datetime
    updated_at: datetime


class StructuralView(_Strict):
    parent: ParentInfo
    base: BaseInfo
    freeze: FreezeInfo


class BranchMetadata(_Strict):
    """Versioned metadata record for one tracked branch."""

    kind: Literal["lattice.branch-metadata"] = METADATA_KIND
    schema_version: Literal[1] = METADATA_SCHEMA_VERSION
    branch: BranchInfo
    parent: ParentInfo
    base: BaseInfo
    freeze: FreezeInfo = FreezeInfo()
    pr: PrInfo = PrInfo()
    timestamps: Timestamps

    @classmethod
    def new(
        cls,
        branch: BranchName,
        parent: BranchName,
        *,
        parent_is_trunk: bool,
        base: Oid,
        now: datetime,
    ) -> "BranchMetadata":
        return cls(
            branch=BranchInfo(name=branch),
            parent=ParentInfo(kind="trunk" if parent_is_trunk else "branch", name=parent),
            base=BaseInfo(oid=base),
            timestamps=Timestamps(created_at=now, updated_at=now),
        )

    def structural(self) -> StructuralView:
        return StructuralView(parent=self.parent, base=self.base, freeze=self.freeze)

    def cached(self) -> PrInfo:
        return self.pr

    def with_base(self, base: Oid, now: datetime) -> "BranchMetadata":
        return self.model_copy(
            update={
                "base": BaseInfo(oid=base),
                "timestamps": Timestamps(created_at=self.timestamps.created_at, updated_at=now),
            }
        )

    def to_json(self) -> str:
        """Canonical serialization: sorted keys, so equal records hash equally."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, indent=2) + "\n"

    @classmethod
    def parse(cls, content: str | bytes) -> "BranchMetadata":
        """Parse a metadata blob.

        Raises:
            MetadataError: If the content is not valid JSON or violates the schema
        """
        try:
            return cls.model_validate_json(content)
        except ValidationError as e:
            raise MetadataError(f"Invalid branch metadata: {e}") from e
