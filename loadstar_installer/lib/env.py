from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


@dataclass(frozen=True)
class HostPaths:
    home: Path
    config_dir: Path
    state_dir: Path

    @classmethod
    def detect(cls, environ: Optional[Mapping[str, str]] = None) -> "HostPaths":
        env = os.environ if environ is None else environ
        home = Path(env.get("HOME") or Path.home())
        config_dir = Path(env["XDG_CONFIG_HOME"]) if env.get("XDG_CONFIG_HOME") else home / ".config"
        state_dir = Path(env["XDG_STATE_HOME"]) if env.get("XDG_STATE_HOME") else home / ".local" / "state"
        return cls(home=home, config_dir=config_dir, state_dir=state_dir / "loadstar")

    @classmethod
    def under(cls, home: Path) -> "HostPaths":
        return cls(home=home, config_dir=home / ".config", state_dir=home / ".local" / "state" / "loadstar")

    @property
    def ssh_dir(self) -> Path:
        return self.home / ".ssh"

    @property
    def state_file(self) -> Path:
        return self.state_dir / "state.json"

    @property
    def log_file(self) -> Path:
        return self.state_dir / "install.log"

    @property
    def git_local_config(self) -> Path:
        return self.home / ".gitconfig.local"

    def tool_bin_dirs(self, brew_prefix: Optional[str] = None) -> list[str]:
        dirs = [str(self.home / ".local" / "bin"), str(self.home / ".cargo" / "bin"), str(self.home / "go" / "bin")]
        if brew_prefix:
            dirs.insert(0, f"{brew_prefix}/bin")
        return dirs
