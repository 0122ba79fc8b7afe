from __future__ import annotations

import logging
import platform
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, FrozenSet, Optional

from ..errors import UnsupportedPlatformError

logger = logging.getLogger(__name__)

SUPPORTED_OS = ("macos", "linux")

# Package-manager name -> binary that proves it is available.
MANAGER_BINARIES = {
    "brew": "brew",
    "apt": "apt-get",
    "cargo": "cargo",
    "npm": "npm",
    "pip": "pip3",
    "go": "go",
}


def normalize_os(system: str) -> str:
    s = system.lower()
    return {"darwin": "macos", "macos": "macos", "linux": "linux"}.get(s, s)


def normalize_arch(machine: str) -> str:
    m = machine.lower()
    return {
        "x86_64": "x86_64",
        "amd64": "x86_64",
        "aarch64": "arm64",
        "arm64": "arm64",
    }.get(m, m)


@dataclass(frozen=True)
class Platform:
    os: str
    arch: str = "x86_64"
    managers: FrozenSet[str] = field(default_factory=frozenset)
    distro: Optional[str] = None

    @property
    def has_credential_store(self) -> bool:
        # macOS Keychain; elsewhere keys go to a plain ssh-agent.
        return self.os == "macos"

    @property
    def brew_prefix(self) -> str:
        if self.os == "macos":
            return "/opt/homebrew" if self.arch == "arm64" else "/usr/local"
        return "/home/linuxbrew/.linuxbrew"

    def has_manager(self, name: str) -> bool:
        return name in self.managers


def _read_os_release(path: Path = Path("/etc/os-release")) -> Optional[str]:
    try:
        text = path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return None
    for line in text.splitlines():
        if line.startswith("ID="):
            value = line[3:].strip().strip('"')
            return value or None
    return None


def detect_managers(which: Callable[[str], Optional[str]] = shutil.which) -> FrozenSet[str]:
    found = set()
    for name, binary in MANAGER_BINARIES.items():
        if which(binary) or (name == "pip" and which("pip")):
            found.add(name)
    return frozenset(found)


def detect_platform(which: Callable[[str], Optional[str]] = shutil.which) -> Platform:
    """Detect the running host. Raises UnsupportedPlatformError off macOS/Linux."""

    os_name = normalize_os(platform.system())
    if os_name not in SUPPORTED_OS:
        raise UnsupportedPlatformError(f"Unsupported operating system: {platform.system()}")

    p = Platform(
        os=os_name,
        arch=normalize_arch(platform.machine()),
        managers=detect_managers(which),
        distro=_read_os_release() if os_name == "linux" else None,
    )
    logger.info(
        "Platform: os=%s arch=%s distro=%s managers=%s",
        p.os,
        p.arch,
        p.distro,
        ",".join(sorted(p.managers)) or "-",
    )
    return p
