"""Ref-addressed metadata storage.

Each tracked branch has one ref, refs/branch-metadata/<branch>, pointing at a
JSON blob. The ref's current Oid is the CAS identity of that branch's metadata.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from lattice.core.git.abc import Git
from lattice.core.metadata.schema import BranchMetadata
from lattice.core.types import METADATA_PREFIX, BranchName, Oid, RefName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScannedMetadata:
    """Metadata together with the ref Oid it was read from."""

    ref_oid: Oid
    metadata: BranchMetadata


class MetadataStore:
    """Read and CAS-write branch metadata refs."""

    def __init__(self, git: Git, cwd: Path) -> None:
        self._git = git
        self._cwd = cwd

    def list_with_oids(self) -> dict[BranchName, Oid]:
        refs = self._git.list_refs(self._cwd, METADATA_PREFIX)
        result: dict[BranchName, Oid] = {}
        for ref, oid in refs.items():
            branch = ref.metadata_branch()
            if branch is not None:
                result[branch] = oid
        return result

    def read(self, branch: BranchName) -> ScannedMetadata | None:
        """Read and strictly parse a branch's metadata.

        Raises:
            MetadataError: If the blob exists but does not parse
        """
        oid = self._git.resolve_ref(self._cwd, RefName.for_metadata(branch))
        if oid is None:
            return None
        return ScannedMetadata(ref_oid=oid, metadata=BranchMetadata.parse(self.read_raw(oid)))

    def read_raw(self, ref_oid: Oid) -> str:
        return self._git.read_blob(self._cwd, ref_oid).decode("utf-8")

    def write_cas(
        self, branch: BranchName, expected_old: Oid | None, metadata: BranchMetadata
    ) -> Oid:
        return self.write_raw_cas(branch, expected_old, metadata.to_json())

    def write_raw_cas(self, branch: BranchName, expected_old: Oid | None, content: str) -> Oid:
        """Store content as a blob and CAS the metadata ref to it.

        Raises:
            CasFailed: If the metadata ref moved since expected_old was read
        """
        new_oid = self._git.write_blob(self._cwd, content.encode("utf-8"))
        ref = RefName.for_metadata(branch)
        self._git.update_ref_cas(
            self._cwd, ref, new_oid, expected_old, message=f"lattice: metadata {branch}"
        )
        logger.debug("metadata %s: %s -> %s", branch, expected_old, new_oid.short())
        return new_oid

    def delete_cas(self, branch: BranchName, expected_old: Oid) -> None:
        self._git.delete_ref_cas(self._cwd, RefName.for_metadata(branch), expected_old)
        logger.debug("metadata %s deleted (was %s)", branch, expected_old.short())
