"""Operator answers as immutable values.

The wizard owns the mutable session; everything downstream (plan builder,
config generator, credential steps) only ever sees a SessionSnapshot.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional

from .errors import ValidationError
from .lib.system import Platform

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
GITHUB_USER_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


class ShellName(str, Enum):
    ZSH = "zsh"
    BASH = "bash"
    FISH = "fish"
    NUSHELL = "nushell"


class Prompt(str, Enum):
    STARSHIP = "starship"
    POWERLEVEL10K = "powerlevel10k"
    PURE = "pure"
    MINIMAL = "minimal"
    NONE = "none"


class Terminal(str, Enum):
    DEFAULT = "default"
    WEZTERM = "wezterm"
    ALACRITTY = "alacritty"
    KITTY = "kitty"
    ITERM2 = "iterm2"
    GHOSTTY = "ghostty"


class Multiplexer(str, Enum):
    TMUX = "tmux"
    ZELLIJ = "zellij"
    NONE = "none"


# Prompts that are zsh themes.
ZSH_ONLY_PROMPTS = frozenset({Prompt.POWERLEVEL10K, Prompt.PURE})


@dataclass(frozen=True)
class Identity:
    name: str = ""
    email: str = ""
    github_username: str = ""
    work: bool = False
    work_email: str = ""
    work_dir: str = "~/work/"

    def validate(self) -> None:
        for attr in ("name", "email", "github_username", "work_email", "work_dir"):
            if CONTROL_RE.search(getattr(self, attr)):
                raise ValidationError(attr, "must not contain newlines or control characters")
        if not self.name.strip():
            raise ValidationError("name", "must not be empty")
        if not EMAIL_RE.match(self.email.strip()):
            raise ValidationError("email", f"not a valid email address: {self.email!r}")
        if self.github_username and not GITHUB_USER_RE.match(self.github_username):
            raise ValidationError("github_username", f"not a valid GitHub username: {self.github_username!r}")
        if self.work:
            if not EMAIL_RE.match(self.work_email.strip()):
                raise ValidationError("work_email", f"not a valid email address: {self.work_email!r}")
            if not self.work_dir.strip():
                raise ValidationError("work_dir", "must not be empty for a work setup")


@dataclass(frozen=True)
class ShellChoices:
    shell: ShellName = ShellName.ZSH
    prompt: Prompt = Prompt.STARSHIP
    terminal: Terminal = Terminal.DEFAULT
    multiplexer: Multiplexer = Multiplexer.TMUX

    def validate(self) -> None:
        if self.prompt in ZSH_ONLY_PROMPTS and self.shell is not ShellName.ZSH:
            raise ValidationError("prompt", f"{self.prompt.value} requires zsh, not {self.shell.value}")

    def implied_entries(self) -> List[str]:
        """Catalog ids the choices depend on (bash and 'none'/'default' imply nothing)."""

        ids = []
        if self.shell is not ShellName.BASH:
            ids.append(self.shell.value)
        if self.prompt not in (Prompt.MINIMAL, Prompt.NONE):
            ids.append(self.prompt.value)
        if self.terminal is not Terminal.DEFAULT:
            ids.append(self.terminal.value)
        if self.multiplexer is not Multiplexer.NONE:
            ids.append(self.multiplexer.value)
        return ids


@dataclass(frozen=True)
class SessionSnapshot:
    identity: Identity
    shell: ShellChoices
    selection: FrozenSet[str]
    platform: Platform
    generate_ssh_key: bool = True
    setup_git_signing: bool = False
    implied: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def effective_selection(self) -> FrozenSet[str]:
        return self.selection | self.implied

    def has(self, entry_id: str) -> bool:
        return entry_id in self.effective_selection

    def first_of(self, *entry_ids: str) -> Optional[str]:
        for entry_id in entry_ids:
            if self.has(entry_id):
                return entry_id
        return None
