from __future__ import annotations

import logging
from typing import List, Optional

from ..catalog import ScriptMethod
from ..errors import ExternalCommandError, PrerequisiteError
from ..lib.system import MANAGER_BINARIES
from ..pipeline import StepContext

logger = logging.getLogger(__name__)

HOMEBREW_INSTALL_URL = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
RUSTUP_URL = "https://sh.rustup.rs"


def bootstrap_argv(manager: str) -> List[str]:
    if manager == "brew":
        return ["/bin/bash", "-c", f'NONINTERACTIVE=1 /bin/bash -c "$(curl -fsSL {HOMEBREW_INSTALL_URL})"']
    if manager == "cargo":
        return ScriptMethod(url=RUSTUP_URL, args="-y --no-modify-path").install_argv()
    raise PrerequisiteError(f"Don't know how to install package manager {manager}")


class BootstrapStep:
    """Install a missing package manager ahead of the first step that needs it."""

    phase = "packages"

    def __init__(self, manager: str) -> None:
        self.manager = manager
        self.step_id = f"bootstrap:{manager}"
        self.label = {"brew": "Homebrew", "cargo": "Rust toolchain (cargo)"}.get(manager, manager)
        self.argv = bootstrap_argv(manager)
        self.detail = " ".join(self.argv[2:]) if self.argv[:2] == ["/bin/bash", "-c"] else " ".join(self.argv)

    def run(self, ctx: StepContext) -> Optional[str]:
        binary = MANAGER_BINARIES.get(self.manager, self.manager)
        if ctx.runner.which(binary):
            return "already installed"

        try:
            rc = ctx.runner.stream(self.argv, ctx.output_line)
            if rc != 0:
                raise ExternalCommandError(self.argv, rc)
            if not ctx.dry_run and not ctx.runner.which(binary):
                raise PrerequisiteError(f"{binary} not found on PATH after installing {self.label}")
        except Exception:
            ctx.failed_managers.add(self.manager)
            raise

        logger.info("Bootstrapped %s", self.manager)
        return None
