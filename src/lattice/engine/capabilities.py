"""Capabilities derived from a repository snapshot, and command requirement sets."""

from dataclasses import dataclass
from enum import Enum


class Capability(Enum):
    REPO_OPEN = "repo_open"
    TRUNK_KNOWN = "trunk_known"
    NO_LATTICE_OP_IN_PROGRESS = "no_lattice_op_in_progress"
    NO_EXTERNAL_GIT_OP_IN_PROGRESS = "no_external_git_op_in_progress"
    METADATA_READABLE = "metadata_readable"
    GRAPH_VALID = "graph_valid"
    AUTH_AVAILABLE = "auth_available"
    REMOTE_RESOLVED = "remote_resolved"
    REPO_AUTHORIZED = "repo_authorized"
    FROZEN_POLICY_SATISFIED = "frozen_policy_satisfied"
    WORKING_DIRECTORY_AVAILABLE = "working_directory_available"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


@dataclass(frozen=True)
class RequirementSet:
    """A named, static set of capabilities a command needs."""

    name: str
    capabilities: frozenset[Capability]

    def missing_from(self, available: frozenset[Capability]) -> frozenset[Capability]:
        return self.capabilities - available


_MUTATING_CAPS = frozenset(
    {
        Capability.REPO_OPEN,
        Capability.TRUNK_KNOWN,
        Capability.NO_LATTICE_OP_IN_PROGRESS,
        Capability.NO_EXTERNAL_GIT_OP_IN_PROGRESS,
        Capability.METADATA_READABLE,
        Capability.GRAPH_VALID,
        Capability.FROZEN_POLICY_SATISFIED,
        Capability.WORKING_DIRECTORY_AVAILABLE,
    }
)

READ_ONLY = RequirementSet("read_only", frozenset({Capability.REPO_OPEN}))

MUTATING = RequirementSet("mutating", _MUTATING_CAPS)

MUTATING_METADATA_ONLY = RequirementSet(
    "mutating_metadata_only", _MUTATING_CAPS - {Capability.WORKING_DIRECTORY_AVAILABLE}
)

REMOTE = RequirementSet(
    "remote",
    _MUTATING_CAPS
    | {Capability.REMOTE_RESOLVED, Capability.AUTH_AVAILABLE, Capability.REPO_AUTHORIZED},
)

# continue and abort read their own op-state; undo gates on this.
RECOVERY = RequirementSet("recovery", frozenset({Capability.REPO_OPEN}))
