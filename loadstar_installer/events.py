"""Install events streamed from the worker to whoever renders progress."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple, Union


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def level(self) -> int:
        return {Severity.INFO: logging.INFO, Severity.WARNING: logging.WARNING, Severity.ERROR: logging.ERROR}[self]


_ERROR_MARKERS = re.compile(r"\b(error|fatal)\b", re.IGNORECASE)
_WARNING_MARKERS = re.compile(r"\b(warning|warn|deprecated)\b", re.IGNORECASE)


def classify_line(line: str) -> Severity:
    """Severity for one line of installer output, from markers in the text."""

    if _ERROR_MARKERS.search(line):
        return Severity.ERROR
    if _WARNING_MARKERS.search(line):
        return Severity.WARNING
    return Severity.INFO


@dataclass(frozen=True)
class PlanSummary:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    not_attempted: int = 0
    cancelled: bool = False
    # (step_id, error) for every failed step, in plan order.
    failures: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def resolved(self) -> int:
        return self.succeeded + self.skipped + self.failed

    @property
    def total(self) -> int:
        return self.resolved + self.not_attempted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "not_attempted": self.not_attempted,
            "cancelled": self.cancelled,
            "failures": [{"step": s, "error": e} for s, e in self.failures],
        }


@dataclass(frozen=True)
class PhaseStarted:
    name: str


@dataclass(frozen=True)
class StepStarted:
    step_id: str
    label: str = ""
    detail: str = ""


@dataclass(frozen=True)
class StepSucceeded:
    step_id: str
    duration: float = 0.0


@dataclass(frozen=True)
class StepSkipped:
    step_id: str
    reason: str
    duration: float = 0.0


@dataclass(frozen=True)
class StepFailed:
    step_id: str
    error: str
    kind: str = "internal"
    duration: float = 0.0


@dataclass(frozen=True)
class LogLine:
    text: str
    severity: Severity = Severity.INFO


@dataclass(frozen=True)
class PlanFinished:
    summary: PlanSummary


InstallEvent = Union[PhaseStarted, StepStarted, StepSucceeded, StepSkipped, StepFailed, LogLine, PlanFinished]

TERMINAL_EVENTS = (StepSucceeded, StepSkipped, StepFailed)
