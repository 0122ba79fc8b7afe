from __future__ import annotations

import logging
from typing import Optional

from ..catalog import CatalogEntry, InstallMethod, ManualMethod
from ..errors import ExternalCommandError, PrerequisiteError, UnsupportedPlatformError
from ..events import Severity
from ..pipeline import StepContext

logger = logging.getLogger(__name__)

ALREADY_INSTALLED = "already installed"


class PackageStep:
    phase = "packages"

    def __init__(self, entry: CatalogEntry, method: Optional[InstallMethod]) -> None:
        self.entry = entry
        self.method = method
        self.step_id = f"pkg:{entry.id}"
        self.label = entry.name
        self.detail = method.describe() if method is not None else "no install method"

    def is_installed(self, ctx: StepContext) -> bool:
        if self.entry.command and ctx.runner.which(self.entry.command):
            return True
        probe = self.method.probe_argv() if self.method is not None else None
        return bool(probe) and ctx.runner.probe(probe)

    def run(self, ctx: StepContext) -> Optional[str]:
        if self.method is None:
            raise UnsupportedPlatformError(f"{self.entry.name} has no install method for {ctx.platform.os}")

        manager = self.method.requires
        if manager and manager in ctx.failed_managers:
            raise PrerequisiteError(f"{manager} is not available (bootstrap failed)")

        if self.is_installed(ctx):
            return ALREADY_INSTALLED

        if isinstance(self.method, ManualMethod):
            ctx.warn(f"{self.entry.name}: {self.method.instructions}")
            return "manual install required"

        argv = self.method.install_argv()
        rc = ctx.runner.stream(argv, ctx.output_line)
        if rc != 0:
            ctx.log(f"{argv[0]} exited with code {rc}", Severity.ERROR)
            raise ExternalCommandError(argv, rc)
        return None
