"""Provisioning pipeline: stages, the resource registry and the orchestrator."""

from kplat_lib.pipeline.orchestrator import Orchestrator
from kplat_lib.pipeline.registry import ResourceRegistry
from kplat_lib.pipeline.report import FailureReport, RunReport
from kplat_lib.pipeline.stage import Stage, StageEvent
from kplat_lib.pipeline.stages import PlatformStageBuilder, PlatformStages

__all__ = [
    "Orchestrator",
    "Stage",
    "StageEvent",
    "RunReport",
    "FailureReport",
    "ResourceRegistry",
    "PlatformStages",
    "PlatformStageBuilder",
]
