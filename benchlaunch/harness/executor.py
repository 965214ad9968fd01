"""Run one benchmark process and turn its output into an ExecutionResult.

The executor never raises for failures of the benchmarked process: a missing
artifact, a non-zero exit, a timeout or an architecture mismatch all end up as
fields of the result. Only configuration errors from the launch planner and
spawn failures propagate.
"""

from __future__ import annotations

from typing import Optional

from benchlaunch.benchmark.defaults import ExecutionDefaults, get_defaults
from benchlaunch.benchmark.exceptions import MissingArtifactError
from benchlaunch.benchmark.models import ArtifactLocation, ExecutionRequest, ExecutionResult
from benchlaunch.diagnostics.hooks import DiagnoserActionParameters, HostSignal
from benchlaunch.harness import launch_planner
from benchlaunch.harness.output_sync import OutputSynchronizer
from benchlaunch.harness.process_guard import ProcessHandle, ProcessLifecycleGuard
from benchlaunch.utils.logger import (
    get_logger,
    log_execute_complete,
    log_execute_start,
    log_execute_timeout,
)

logger = get_logger(__name__)


def check_artifact(artifact: ArtifactLocation) -> None:
    """Raise MissingArtifactError unless the artifact executable is on disk."""
    if not artifact.exists():
        raise MissingArtifactError(artifact.executable_path)


class Executor:
    """Execution orchestrator for benchmark artifacts."""

    def __init__(self, defaults: Optional[ExecutionDefaults] = None) -> None:
        self._defaults = defaults

    @property
    def defaults(self) -> ExecutionDefaults:
        # resolved lazily so set_defaults() applies to existing executors
        return self._defaults or get_defaults()

    def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Run ``request`` to completion, timeout or spawn failure.

        Raises:
            ConfigurationError: the target variant cannot be planned
            SpawnError: the OS refused to start the process
        """
        try:
            check_artifact(request.artifact)
        except MissingArtifactError as exc:
            logger.error("%s", exc)
            return ExecutionResult.failed(request.launch_index)

        plan = launch_planner.plan(
            request.variant,
            request.artifact,
            request.arguments,
            request.environment,
        )
        redirect_input = request.acknowledgments and plan.accepts_acknowledgments
        diagnoser = request.diagnoser
        handle: Optional[ProcessHandle] = None

        try:
            if diagnoser is not None:
                diagnoser.handle(
                    HostSignal.BEFORE_PROCESS_START,
                    DiagnoserActionParameters(process=None, benchmark=request.benchmark),
                )
            with ProcessLifecycleGuard(plan, redirect_input, self.defaults) as guard:
                log_execute_start(logger, plan.command_line, plan.working_directory)
                handle = guard.start()
                return self._run(request, guard, handle, redirect_input)
        finally:
            if diagnoser is not None:
                diagnoser.handle(
                    HostSignal.AFTER_PROCESS_EXIT,
                    DiagnoserActionParameters(process=handle, benchmark=request.benchmark),
                )

    def _run(
        self,
        request: ExecutionRequest,
        guard: ProcessLifecycleGuard,
        handle: ProcessHandle,
        redirect_input: bool,
    ) -> ExecutionResult:
        defaults = self.defaults

        guard.ensure_high_priority()
        if request.affinity_mask is not None:
            guard.try_set_affinity(request.affinity_mask)

        synchronizer = OutputSynchronizer(
            handle.stdout,
            handle.stdin,
            DiagnoserActionParameters(process=handle, benchmark=request.benchmark),
            diagnoser=request.diagnoser,
            acknowledgments=redirect_input,
            acknowledgment_token=defaults.acknowledgment_token,
        )
        synchronizer.start()

        timed_out = not guard.wait_until_exit_or_timeout(defaults.process_exit_timeout_seconds)
        if timed_out:
            log_execute_timeout(logger, handle.pid, defaults.process_exit_timeout_seconds)
            guard.force_kill_tree()
        else:
            # leftovers holding stdout would keep the drain from reaching EOF
            guard.reclaim_group()

        if not synchronizer.join(defaults.output_drain_timeout_seconds):
            logger.warning(
                "Output of process %d was still being drained after %.1fs; result may be incomplete",
                handle.pid,
                defaults.output_drain_timeout_seconds,
            )
            synchronizer.close()

        exit_code = None if timed_out else handle.exit_code
        result = ExecutionResult(
            success=True,
            exit_code=exit_code,
            process_id=handle.pid,
            lines_with_results=synchronizer.lines_with_results,
            lines_with_extra_output=synchronizer.lines_with_extra_output,
            launch_index=request.launch_index,
            timed_out=timed_out,
            diagnostic_hints=synchronizer.hints,
            timeline=synchronizer.timeline,
        )
        log_execute_complete(logger, handle.pid, exit_code, len(result.lines_with_results))
        return result


def execute(request: ExecutionRequest, defaults: Optional[ExecutionDefaults] = None) -> ExecutionResult:
    """Convenience wrapper around Executor().execute()."""
    return Executor(defaults).execute(request)
