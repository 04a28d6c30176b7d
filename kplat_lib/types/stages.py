"""Stage and run type definitions for the provisioning pipeline."""

from enum import Enum


class Criticality(str, Enum):
    """How a stage failure affects a forward run."""

    FATAL = "fatal"
    """Failure aborts the run and triggers the failure report."""

    BEST_EFFORT = "best-effort"
    """Failure is logged and the run continues."""


class Direction(str, Enum):
    """Direction a pipeline is driven in."""

    FORWARD = "forward"
    REVERSE = "reverse"


class RunState(str, Enum):
    """Macro state of an orchestrator run."""

    IDLE = "idle"
    RUNNING_FORWARD = "running-forward"
    RUNNING_REVERSE = "running-reverse"
    DONE = "done"


class StageStatus(str, Enum):
    """Status line emitted for every stage."""

    START = "start"
    SKIP = "skip"
    SUCCESS = "success"
    FAILURE = "failure"
