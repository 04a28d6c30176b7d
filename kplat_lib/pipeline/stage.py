"""Pipeline stage and status event types."""

from collections.abc import Callable
from dataclasses import dataclass, field

from kplat_lib.any.utils import utc_timestamp
from kplat_lib.types import Criticality, Direction, StageStatus


@dataclass
class Stage:
    """
    One idempotent, reversible provisioning step.

    Attributes:
    ----------
        name: Stage name shown in status lines (``cluster``, ``vcluster:modernengg-dev``)
        ordinal: Position in the dependency order; forward runs ascend, reverse runs descend
        probe: Returns True when the forward action's result is already in place
        forward: Creates the stage's resources
        reverse: Removes them; returns False when there was nothing to remove
        criticality: Whether a forward failure aborts the run

    """

    name: str
    ordinal: int
    probe: Callable[[], bool]
    forward: Callable[[], None]
    reverse: Callable[[], bool]
    criticality: Criticality = Criticality.FATAL
    description: str = ""


@dataclass(frozen=True)
class StageEvent:
    """Timestamped status line for one stage."""

    stage: str
    status: StageStatus
    direction: Direction
    message: str = ""
    timestamp: str = field(default_factory=utc_timestamp)

    def render(self) -> str:
        """Single-line form used by the CLI."""
        markers = {
            StageStatus.START: "→",
            StageStatus.SKIP: "-",
            StageStatus.SUCCESS: "✓",
            StageStatus.FAILURE: "✗",
        }
        line = f"[{self.timestamp}] {markers[self.status]} {self.status.value:<7} {self.stage}"
        return f"{line}: {self.message}" if self.message else line
