"""Run and failure reports produced by the orchestrator."""

from dataclasses import dataclass, field

from kplat_lib.any.exceptions import TeardownPartialError
from kplat_lib.pipeline.stage import StageEvent
from kplat_lib.types import Direction


@dataclass
class RunReport:
    """What a forward or reverse run did, stage by stage."""

    direction: Direction
    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    events: list[StageEvent] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_error(self) -> TeardownPartialError | None:
        """Aggregate of the failures, or None when every stage succeeded."""
        return TeardownPartialError(self.failures) if self.failures else None

    def summary(self) -> str:
        verb = "Provisioning" if self.direction is Direction.FORWARD else "Teardown"
        line = (
            f"{verb} finished: {len(self.completed)} completed, {len(self.skipped)} skipped, "
            f"{len(self.failures)} failed"
        )
        if not self.failures:
            return line
        details = "\n".join(f"  ✗ {stage}: {reason}" for stage, reason in self.failures.items())
        return f"{line}\n{details}"


@dataclass
class FailureReport:
    """
    Cleanup report for a forward run that stopped on a Fatal failure.

    Nothing is rolled back; the report tells the operator where the run
    stopped and how to investigate.
    """

    failed_stage: str
    cause: str
    completed: list[str]
    hints: list[str]

    def render(self) -> str:
        lines = [
            f"✗ Provisioning failed at stage '{self.failed_stage}': {self.cause}",
            f"Completed stages: {', '.join(self.completed) if self.completed else '(none)'}",
            "Nothing was rolled back. Re-run to resume, or run with --delete to tear down.",
        ]
        if self.hints:
            lines.append("Troubleshooting:")
            lines.extend(f"  {hint}" for hint in self.hints)
        return "\n".join(lines)
