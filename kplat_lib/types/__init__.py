"""KPlat type definitions (enums and value classes)."""

from kplat_lib.types.clouds import KPlatCloud
from kplat_lib.types.resources import ObservedState, Resource, ResourceKind
from kplat_lib.types.stages import Criticality, Direction, RunState, StageStatus

__all__ = [
    "KPlatCloud",
    "ObservedState",
    "Resource",
    "ResourceKind",
    "Criticality",
    "Direction",
    "RunState",
    "StageStatus",
]
