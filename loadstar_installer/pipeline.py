from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Set

from .events import Severity, classify_line
from .lib.command import CommandRunner
from .lib.env import HostPaths
from .lib.system import Platform

logger = logging.getLogger(__name__)


@dataclass
class StepContext:
    """What a running step may touch: the host boundary plus a log sink."""

    runner: CommandRunner
    paths: HostPaths
    platform: Platform
    log: Callable[[str, Severity], None]
    # Package managers whose bootstrap failed earlier in this run.
    failed_managers: Set[str] = field(default_factory=set)

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    def info(self, text: str) -> None:
        self.log(text, Severity.INFO)

    def warn(self, text: str) -> None:
        self.log(text, Severity.WARNING)

    def output_line(self, line: str) -> None:
        self.log(line, classify_line(line))


class Step(Protocol):
    """One unit of plan execution.

    run() returns None on success or a skip reason; any exception is a failure.
    Steps must be safe to rerun.
    """

    step_id: str
    phase: str
    label: str
    detail: str

    def run(self, ctx: StepContext) -> Optional[str]:
        ...
