"""Plan execution on a single background worker.

execute_plan() is the synchronous core: it runs the steps in order, turns
every step outcome into events, and never lets a step exception escape.
InstallRun puts it on a thread with an unbounded queue that the caller
drains without blocking. Cancellation is checked between steps only.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, List, Optional

from .errors import (
    ExecutorBusyError,
    ExternalCommandError,
    FilesystemError,
    LoadstarError,
    PrerequisiteError,
    UnsupportedPlatformError,
)
from .events import (
    InstallEvent,
    LogLine,
    PhaseStarted,
    PlanFinished,
    PlanSummary,
    Severity,
    StepFailed,
    StepSkipped,
    StepStarted,
    StepSucceeded,
)
from .lib.command import CommandRunner
from .lib.env import HostPaths
from .pipeline import StepContext
from .plan import InstallPlan

logger = logging.getLogger(__name__)

Emit = Callable[[InstallEvent], None]


def failure_kind(exc: BaseException) -> str:
    if isinstance(exc, UnsupportedPlatformError):
        return "unsupported"
    if isinstance(exc, PrerequisiteError):
        return "prerequisite"
    if isinstance(exc, ExternalCommandError):
        return "command"
    if isinstance(exc, FilesystemError):
        return "filesystem"
    return "internal"


def _log_event(event: InstallEvent) -> None:
    if isinstance(event, LogLine):
        logger.log(event.severity.level, "| %s", event.text)
    elif isinstance(event, PhaseStarted):
        logger.info("Phase %s", event.name)
    elif isinstance(event, StepStarted):
        logger.info("Step %s started (%s)", event.step_id, event.detail or event.label)
    elif isinstance(event, StepSucceeded):
        logger.info("Step %s succeeded in %.1fs", event.step_id, event.duration)
    elif isinstance(event, StepSkipped):
        logger.info("Step %s skipped: %s", event.step_id, event.reason)
    elif isinstance(event, StepFailed):
        logger.error("Step %s failed [%s]: %s", event.step_id, event.kind, event.error)
    elif isinstance(event, PlanFinished):
        s = event.summary
        logger.info(
            "Plan finished: succeeded=%d skipped=%d failed=%d not_attempted=%d cancelled=%s",
            s.succeeded,
            s.skipped,
            s.failed,
            s.not_attempted,
            s.cancelled,
        )


def execute_plan(
    plan: InstallPlan,
    *,
    runner: CommandRunner,
    paths: HostPaths,
    emit: Emit,
    cancelled: Optional[threading.Event] = None,
) -> PlanSummary:
    """Run every step of plan in order, emitting events. Returns the summary."""

    def publish(event: InstallEvent) -> None:
        _log_event(event)
        emit(event)

    cancelled = cancelled or threading.Event()
    ctx = StepContext(
        runner=runner,
        paths=paths,
        platform=plan.platform,
        log=lambda text, severity=Severity.INFO: publish(LogLine(text, severity)),
    )

    succeeded = skipped = failed = 0
    failures = []
    not_attempted = 0
    was_cancelled = False
    phase: Optional[str] = None

    for index, step in enumerate(plan.steps):
        if cancelled.is_set():
            was_cancelled = True
            not_attempted = len(plan.steps) - index
            logger.warning("Cancelled before %s; %d step(s) not attempted", step.step_id, not_attempted)
            break

        if step.phase != phase:
            phase = step.phase
            publish(PhaseStarted(phase))

        publish(StepStarted(step.step_id, step.label, step.detail))
        t0 = time.monotonic()
        try:
            reason = step.run(ctx)
        except LoadstarError as e:
            failed += 1
            failures.append((step.step_id, str(e)))
            publish(StepFailed(step.step_id, str(e), failure_kind(e), time.monotonic() - t0))
            continue
        except Exception as e:
            logger.exception("Unexpected error in step %s", step.step_id)
            failed += 1
            error = f"{type(e).__name__}: {e}"
            failures.append((step.step_id, error))
            publish(StepFailed(step.step_id, error, "internal", time.monotonic() - t0))
            continue

        if reason is None:
            succeeded += 1
            publish(StepSucceeded(step.step_id, time.monotonic() - t0))
        else:
            skipped += 1
            publish(StepSkipped(step.step_id, reason, time.monotonic() - t0))

    summary = PlanSummary(
        succeeded=succeeded,
        skipped=skipped,
        failed=failed,
        not_attempted=not_attempted,
        cancelled=was_cancelled,
        failures=tuple(failures),
    )
    publish(PlanFinished(summary))
    return summary


class InstallRun:
    """One plan executing on its own worker thread."""

    def __init__(self, plan: InstallPlan, runner: CommandRunner, paths: HostPaths) -> None:
        self.plan = plan
        self.runner = runner
        self.paths = paths
        self.summary: Optional[PlanSummary] = None
        self._events: "queue.Queue[InstallEvent]" = queue.Queue()
        self._cancel = threading.Event()
        self._thread = threading.Thread(target=self._work, name="loadstar-install", daemon=True)

    def start(self) -> "InstallRun":
        self._thread.start()
        return self

    def _work(self) -> None:
        try:
            self.summary = execute_plan(
                self.plan,
                runner=self.runner,
                paths=self.paths,
                emit=self._events.put,
                cancelled=self._cancel,
            )
        except Exception:
            # execute_plan contains step errors; this only fires on a broken emit/log path.
            logger.exception("Install worker crashed")
            self.summary = PlanSummary(
                not_attempted=len(self.plan.steps),
                cancelled=True,
                failures=(("worker", "install worker crashed; see log"),),
            )
            self._events.put(PlanFinished(self.summary))

    def poll_events(self) -> List[InstallEvent]:
        """Everything emitted since the last poll. Never blocks."""

        out: List[InstallEvent] = []
        while True:
            try:
                out.append(self._events.get_nowait())
            except queue.Empty:
                return out

    def cancel(self, *, terminate: bool = False) -> None:
        """Stop before the next step. With terminate, also kill the in-flight command."""

        logger.warning("Cancellation requested (terminate=%s)", terminate)
        self._cancel.set()
        if terminate:
            self.runner.terminate()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    @property
    def finished(self) -> bool:
        return self.summary is not None and not self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)


class Executor:
    """Starts install runs, at most one alive at a time."""

    def __init__(self, runner: CommandRunner, paths: HostPaths) -> None:
        self.runner = runner
        self.paths = paths
        self._lock = threading.Lock()
        self._current: Optional[InstallRun] = None

    def start(self, plan: InstallPlan) -> InstallRun:
        with self._lock:
            if self._current is not None and self._current.is_alive():
                raise ExecutorBusyError("An install run is already in progress")
            run = InstallRun(plan, self.runner, self.paths)
            self._current = run.start()
        logger.info("Install run started (%d steps)", len(plan))
        return run
