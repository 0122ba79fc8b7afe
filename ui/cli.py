from __future__ import annotations

import sys
from typing import Optional

from loadstar_installer.events import (
    InstallEvent,
    LogLine,
    PhaseStarted,
    PlanFinished,
    Severity,
    StepFailed,
    StepSkipped,
    StepStarted,
    StepSucceeded,
)
from loadstar_installer.main import main as core_main


def format_event(event: InstallEvent) -> str:
    if isinstance(event, PhaseStarted):
        return f"[PHASE] {event.name}"
    if isinstance(event, StepStarted):
        detail = f" ({event.detail})" if event.detail else ""
        return f"[INSTALL] {event.label or event.step_id}{detail}"
    if isinstance(event, StepSucceeded):
        return f"[OK] {event.step_id} ({event.duration:.1f}s)"
    if isinstance(event, StepSkipped):
        return f"[SKIP] {event.step_id}: {event.reason}"
    if isinstance(event, StepFailed):
        return f"[FAIL] {event.step_id} [{event.kind}]: {event.error}"
    if isinstance(event, LogLine):
        marker = {Severity.INFO: "|", Severity.WARNING: "!", Severity.ERROR: "x"}[event.severity]
        return f"    {marker} {event.text}"
    if isinstance(event, PlanFinished):
        s = event.summary
        line = f"[DONE] succeeded={s.succeeded} skipped={s.skipped} failed={s.failed}"
        if s.cancelled:
            line += f" cancelled (not attempted={s.not_attempted})"
        return line
    return str(event)


def _print_event(event: InstallEvent) -> None:
    print(format_event(event), flush=True)
    if isinstance(event, PlanFinished):
        for step_id, error in event.summary.failures:
            print(f"    - {step_id}: {error}", file=sys.stderr, flush=True)


def main(argv: Optional[list[str]] = None) -> int:
    # Rendering only; every decision stays in the core entrypoint.
    return core_main(argv, on_event=_print_event)


if __name__ == "__main__":
    raise SystemExit(main())
