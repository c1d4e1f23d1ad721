"""Validated name types shared by every component.

Raw strings never represent refs inside the engine; they are parsed into
BranchName, RefName, or Oid at the boundary (git output, JSON, CLI args).
"""

import re
from dataclasses import dataclass
from typing import Any, Self

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

from lattice.core.errors import InvalidNameError

_FORBIDDEN_CHARS = set(" ~^:\\?*[")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

BRANCH_PREFIX = "refs/heads/"
METADATA_PREFIX = "refs/branch-metadata/"


def _check_ref_format(kind: str, value: str) -> None:
    """Apply git's check-ref-format rules shared by branch and ref names."""
    if not value:
        raise InvalidNameError(kind, value, "must not be empty")
    if value == "@":
        raise InvalidNameError(kind, value, "must not be '@'")
    if value.startswith((".", "-")):
        raise InvalidNameError(kind, value, "must not start with '.' or '-'")
    if value.endswith(".lock") or value.endswith("/"):
        raise InvalidNameError(kind, value, "must not end with '.lock' or '/'")
    for seq in ("..", "@{", "//"):
        if seq in value:
            raise InvalidNameError(kind, value, f"must not contain '{seq}'")
    for ch in value:
        if ch in _FORBIDDEN_CHARS:
            raise InvalidNameError(kind, value, f"must not contain {ch!r}")
        if ord(ch) < 0x20 or ord(ch) == 0x7F:
            raise InvalidNameError(kind, value, "must not contain control characters")
    for component in value.split("/"):
        if component.startswith(".") or component.endswith(".lock"):
            raise InvalidNameError(kind, value, f"invalid path component {component!r}")


class _StringWrapper:
    """Pydantic integration: validate from str, serialize back to str."""

    value: str

    @classmethod
    def _coerce(cls, raw: Any) -> Self:
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            raise ValueError(f"expected string, got {type(raw).__name__}")
        return cls(raw)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._coerce,
            serialization=core_schema.to_string_ser_schema(),
        )

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class BranchName(_StringWrapper):
    """A validated local branch name (without the refs/heads/ prefix)."""

    value: str

    def __post_init__(self) -> None:
        _check_ref_format("branch name", self.value)


@dataclass(frozen=True, order=True)
class RefName(_StringWrapper):
    """A validated fully-qualified ref name."""

    value: str

    def __post_init__(self) -> None:
        if self.value.startswith("/"):
            raise InvalidNameError("ref name", self.value, "must not start with '/'")
        _check_ref_format("ref name", self.value)

    @classmethod
    def for_branch(cls, branch: BranchName) -> "RefName":
        return cls(f"{BRANCH_PREFIX}{branch}")

    @classmethod
    def for_metadata(cls, branch: BranchName) -> "RefName":
        return cls(f"{METADATA_PREFIX}{branch}")

    def is_branch(self) -> bool:
        return self.value.startswith(BRANCH_PREFIX)

    def is_metadata(self) -> bool:
        return self.value.startswith(METADATA_PREFIX)

    def branch_name(self) -> BranchName | None:
        """Return the branch for refs/heads/* refs, None otherwise."""
        if not self.is_branch():
            return None
        return BranchName(self.value[len(BRANCH_PREFIX) :])

    def metadata_branch(self) -> BranchName | None:
        if not self.is_metadata():
            return None
        return BranchName(self.value[len(METADATA_PREFIX) :])


@dataclass(frozen=True, order=True)
class Oid(_StringWrapper):
    """A git object id (SHA-1 or SHA-256), normalized to lowercase."""

    value: str

    def __post_init__(self) -> None:
        if len(self.value) not in (40, 64):
            raise InvalidNameError("object id", self.value, "must be 40 or 64 hex characters")
        if not _HEX_RE.match(self.value):
            raise InvalidNameError("object id", self.value, "must be hexadecimal")
        object.__setattr__(self, "value", self.value.lower())

    @classmethod
    def zero(cls) -> "Oid":
        return cls("0" * 40)

    def is_zero(self) -> bool:
        return set(self.value) == {"0"}

    def short(self) -> str:
        return self.value[:7]
