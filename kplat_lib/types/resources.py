"""Resource type definitions for the provisioned platform."""

from dataclasses import dataclass
from enum import Enum


class ResourceKind(str, Enum):
    """Kinds of platform resources tracked by the registry."""

    PHYSICAL_CLUSTER = "PhysicalCluster"
    VIRTUAL_CLUSTER = "VirtualCluster"
    NAMESPACE = "Namespace"


class ObservedState(str, Enum):
    """
    Lifecycle state of a resource as observed on the platform.

    The state is always computed from a live query; it is never stored.
    """

    ABSENT = "Absent"
    CREATING = "Creating"
    PRESENT = "Present"
    FAILED = "Failed"
    DELETING = "Deleting"

    @property
    def exists(self) -> bool:
        """Whether the resource occupies its name on the platform."""
        return self is not ObservedState.ABSENT


@dataclass(frozen=True)
class Resource:
    """A named platform resource and the state it was observed in."""

    name: str
    kind: ResourceKind
    provider: str
    observed_state: ObservedState
