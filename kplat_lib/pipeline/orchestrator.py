"""
Provisioning orchestrator.

Drives the stage pipeline forward (create) or backward (delete):

- Preconditions (tools on PATH, cloud credentials) run before any mutation.
- The failure handler fires exactly once for every forward run that fails,
  precondition failures included.
- Forward: ascending ordinal; satisfied probes skip the stage; a Fatal failure
  stops the run, fires the failure handler once and raises ProvisionFailedError.
- Reverse: descending ordinal; every reverse action runs; failures are
  collected into the report and never stop the run.
"""

from collections.abc import Callable

import structlog

from kplat_lib.any.exceptions import PreconditionFailedError, ProvisionFailedError
from kplat_lib.any.utils import missing_tools
from kplat_lib.cal.protocols import ProviderAdapter
from kplat_lib.pipeline.report import FailureReport, RunReport
from kplat_lib.pipeline.stage import Stage, StageEvent
from kplat_lib.types import Criticality, Direction, RunState, StageStatus

LOGGER = structlog.get_logger("kplat_lib.pipeline.orchestrator")

StageBuilder = Callable[[str], list[Stage]]


def _log_failure_report(report: FailureReport) -> None:
    LOGGER.error(report.render())


class Orchestrator:
    """
    Sole entry point for provisioning and teardown.

    Example:
    -------
        ```python
        orchestrator = Orchestrator(provider, PlatformStageBuilder(...))
        orchestrator.create()   # raises ProvisionFailedError on a Fatal failure
        report = orchestrator.delete()
        if not report.ok:
            print(report.summary())
        ```

    """

    def __init__(
        self,
        provider: ProviderAdapter,
        stage_builder: StageBuilder,
        on_failure: Callable[[FailureReport], None] | None = None,
        on_event: Callable[[StageEvent], None] | None = None,
        cluster_name: str = "",
        region: str = "",
    ):
        """
        Initialize the orchestrator.

        Args:
        ----
            provider: Cloud adapter (preconditions and troubleshooting hints)
            stage_builder: Returns the stage list for a verified account id
            on_failure: Cleanup handler for failed forward runs (logs the report by default)
            on_event: Receives every stage status event as it happens
            cluster_name: Cluster name passed to the provider's troubleshooting hints
            region: Region passed to the provider's troubleshooting hints

        """
        self._provider = provider
        self._stage_builder = stage_builder
        self._on_failure = on_failure or _log_failure_report
        self._on_event = on_event
        self._cluster_name = cluster_name
        self._region = region
        self.state = RunState.IDLE

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def preconditions(self) -> str:
        """
        Check required tools and credentials.

        Returns
        -------
            Verified account/subscription id

        Raises
        ------
            PreconditionFailedError: If a tool is missing or credentials are invalid

        """
        missing = missing_tools(self._provider.required_tools)
        if missing:
            raise PreconditionFailedError(f"Required tool(s) not installed: {', '.join(missing)}")
        return self._provider.verify_credentials()

    def _emit(self, report: RunReport, stage: Stage, status: StageStatus, message: str = "") -> None:
        event = StageEvent(stage=stage.name, status=status, direction=report.direction, message=message)
        report.events.append(event)
        log = LOGGER.error if status is StageStatus.FAILURE else LOGGER.info
        log(event.render())
        if self._on_event is not None:
            self._on_event(event)

    def _stages(self, account_id: str, reverse: bool = False) -> list[Stage]:
        return sorted(self._stage_builder(account_id), key=lambda stage: stage.ordinal, reverse=reverse)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def plan(self) -> list[tuple[Stage, bool | None]]:
        """
        Ordered stages with their probe results, without mutating anything.

        A probe that cannot be evaluated is reported as None.
        """
        account_id = self.preconditions()
        planned: list[tuple[Stage, bool | None]] = []
        for stage in self._stages(account_id):
            try:
                satisfied: bool | None = bool(stage.probe())
            except Exception as e:
                LOGGER.debug(f"Probe for {stage.name} failed: {e}")
                satisfied = None
            planned.append((stage, satisfied))
        return planned

    def create(self) -> RunReport:
        """
        Run the pipeline forward.

        Raises
        ------
            PreconditionFailedError: Before any mutation (after the failure handler ran)
            ProvisionFailedError: When a Fatal stage fails (after the failure handler ran)

        """
        self.state = RunState.RUNNING_FORWARD
        try:
            account_id = self.preconditions()
        except PreconditionFailedError as e:
            self.state = RunState.DONE
            self._on_failure(FailureReport(failed_stage="preconditions", cause=str(e), completed=[], hints=[]))
            raise

        report = RunReport(direction=Direction.FORWARD)
        current: Stage | None = None
        try:
            for current in self._stages(account_id):
                self._run_forward(report, current)
        except Exception as e:
            failed = current.name if current is not None else "pipeline"
            cause = e.cause if isinstance(e, ProvisionFailedError) else e
            self._on_failure(
                FailureReport(
                    failed_stage=failed,
                    cause=str(cause),
                    completed=list(report.completed),
                    hints=self._provider.troubleshooting_hints(self._cluster_name, self._region),
                )
            )
            if isinstance(e, ProvisionFailedError):
                raise
            raise ProvisionFailedError(failed, e) from e
        finally:
            self.state = RunState.DONE

        LOGGER.info(report.summary())
        return report

    def _run_forward(self, report: RunReport, stage: Stage) -> None:
        try:
            satisfied = stage.probe()
            if satisfied:
                report.skipped.append(stage.name)
                self._emit(report, stage, StageStatus.SKIP, "already in place")
                return

            self._emit(report, stage, StageStatus.START, stage.description)
            stage.forward()
        except Exception as e:
            self._emit(report, stage, StageStatus.FAILURE, str(e))
            if stage.criticality is Criticality.FATAL:
                raise ProvisionFailedError(stage.name, e) from e
            report.failures[stage.name] = str(e)
            return

        report.completed.append(stage.name)
        self._emit(report, stage, StageStatus.SUCCESS)

    def delete(self) -> RunReport:
        """
        Run the pipeline in reverse. Every failure is best-effort.

        Raises
        ------
            PreconditionFailedError: Before any mutation

        """
        self.state = RunState.RUNNING_REVERSE
        try:
            account_id = self.preconditions()
            report = RunReport(direction=Direction.REVERSE)
            for stage in self._stages(account_id, reverse=True):
                self._run_reverse(report, stage)
        finally:
            self.state = RunState.DONE

        error = report.as_error()
        if error is not None:
            LOGGER.warning(f"✗ {error}")
        LOGGER.info(report.summary())
        return report

    def _run_reverse(self, report: RunReport, stage: Stage) -> None:
        self._emit(report, stage, StageStatus.START, stage.description)
        try:
            removed = stage.reverse()
        except Exception as e:
            report.failures[stage.name] = str(e)
            self._emit(report, stage, StageStatus.FAILURE, str(e))
            return

        if removed:
            report.completed.append(stage.name)
            self._emit(report, stage, StageStatus.SUCCESS)
        else:
            report.skipped.append(stage.name)
            self._emit(report, stage, StageStatus.SKIP, "not found")
