"""Dotfile generation.

generate_artifacts() is a pure function of a SessionSnapshot and the host
paths: same snapshot in, byte-identical artifacts out. Writing is separate
(write_artifact) and follows the backup policy: an existing file with
different content is copied to <path>.loadstar.bak first, identical content
is left alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .lib.env import HostPaths
from .lib.files import BACKUP_SUFFIX, atomic_write_text, copy_backup, read_text_or_none
from .session import Multiplexer, Prompt, SessionSnapshot, ShellName, Terminal

logger = logging.getLogger(__name__)

HEADER = "Generated by loadstar. Local changes are backed up and replaced on the next run."

# Written by the git identity credential step rather than a config step.
GIT_ARTIFACTS = frozenset({"gitconfig", "gitconfig-work"})


@dataclass(frozen=True)
class ConfigArtifact:
    name: str
    path: Path
    content: str
    label: str = ""
    mode: Optional[int] = None
    backup_suffix: str = BACKUP_SUFFIX


class WriteOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def write_artifact(artifact: ConfigArtifact, *, dry_run: bool = False) -> WriteOutcome:
    current = read_text_or_none(artifact.path)
    if current == artifact.content:
        logger.info("Unchanged: %s", str(artifact.path))
        return WriteOutcome.UNCHANGED

    outcome = WriteOutcome.CREATED if current is None else WriteOutcome.UPDATED
    if dry_run:
        logger.info("DRY-RUN would write %s (%s)", str(artifact.path), outcome.value)
        return outcome

    if current is not None:
        copy_backup(artifact.path, artifact.backup_suffix)
    atomic_write_text(artifact.path, artifact.content, mode=artifact.mode)
    logger.info("Wrote %s (%s)", str(artifact.path), outcome.value)
    return outcome


def tilde(path: Path, home: Path) -> str:
    try:
        return "~/" + str(path.relative_to(home))
    except ValueError:
        return str(path)


def _text(lines: List[str]) -> str:
    return "\n".join(lines).rstrip("\n") + "\n"


# Editor entry id -> command, in preference order.
EDITORS: Tuple[Tuple[str, str], ...] = (
    ("neovim", "nvim"),
    ("helix", "hx"),
    ("micro", "micro"),
    ("vscode", "code --wait"),
)


def editor_command(snap: SessionSnapshot) -> Optional[str]:
    for entry_id, cmd in EDITORS:
        if snap.has(entry_id):
            return cmd
    return None


# ---------------------------------------------------------------------------
# git


def git_quote(value: str) -> str:
    """Double-quote a git config value so "#", ";" and backslashes survive."""

    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def render_gitconfig(snap: SessionSnapshot) -> str:
    ident = snap.identity
    lines = [
        f"# {HEADER}",
        "# Machine-specific settings (signing key, credentials) go in ~/.gitconfig.local.",
        "[user]",
        f"\tname = {git_quote(ident.name.strip())}",
        f"\temail = {git_quote(ident.email.strip())}",
        "[init]",
        "\tdefaultBranch = main",
        "[core]",
        "\texcludesFile = ~/.gitignore_global",
    ]
    editor = editor_command(snap)
    if editor:
        lines.append(f"\teditor = {editor}")
    if snap.has("delta"):
        lines += [
            "\tpager = delta",
            "[interactive]",
            "\tdiffFilter = delta --color-only",
            "[delta]",
            "\tnavigate = true",
            "\tline-numbers = true",
            "[merge]",
            "\tconflictstyle = zdiff3",
        ]
    lines += [
        "[push]",
        "\tautoSetupRemote = true",
        "[pull]",
        "\trebase = true",
        "[fetch]",
        "\tprune = true",
        "[rebase]",
        "\tautoStash = true",
    ]
    if ident.github_username:
        lines += ["[github]", f"\tuser = {git_quote(ident.github_username)}"]
    if snap.generate_ssh_key:
        lines += ['[url "git@github.com:"]', "\tinsteadOf = https://github.com/"]
    if ident.work:
        work_dir = ident.work_dir.strip().rstrip("/") + "/"
        lines += [f"[includeIf {git_quote('gitdir:' + work_dir)}]", "\tpath = ~/.gitconfig-work"]
    # Last, so local settings win.
    lines += ["[include]", "\tpath = ~/.gitconfig.local"]
    return _text(lines)


def render_gitconfig_work(snap: SessionSnapshot) -> str:
    return _text([f"# {HEADER}", "[user]", f"\temail = {git_quote(snap.identity.work_email.strip())}"])


def render_gitignore_global(snap: SessionSnapshot) -> str:
    lines = [f"# {HEADER}", "", "# Editors", ".idea/", ".vscode/", "*.swp", "*~", "", "# Environment", ".env", ".env.local"]
    if snap.has("direnv"):
        lines.append(".direnv/")
    if snap.has("mise"):
        lines.append(".mise.local.toml")
    if snap.platform.os == "macos":
        lines += ["", "# macOS", ".DS_Store", ".AppleDouble", "._*"]
    return _text(lines)


# ---------------------------------------------------------------------------
# shell rc


# entry id -> [(alias, command)]
ALIASES: Tuple[Tuple[str, Tuple[Tuple[str, str], ...]], ...] = (
    ("eza", (("ls", "eza --group-directories-first"), ("ll", "eza -l --git --group-directories-first"),
             ("la", "eza -la --git --group-directories-first"), ("tree", "eza --tree"))),
    ("bat", (("cat", "bat --paging=never"),)),
    ("neovim", (("vim", "nvim"), ("vi", "nvim"))),
    ("lazygit", (("lg", "lazygit"),)),
    ("lazydocker", (("lzd", "lazydocker"),)),
    ("kubectl", (("k", "kubectl"),)),
    ("dust", (("du", "dust"),)),
    ("btop", (("top", "btop"),)),
    ("trash-cli", (("rm", "trash-put"),)),
)

# Tools with a shell hook, in the order their init lines are emitted.
INIT_TOOLS = ("mise", "direnv", "zoxide", "fzf", "atuin")


class _PosixDialect:
    def __init__(self, shell: str) -> None:
        self.shell = shell

    def path_prepend(self, directory: str) -> str:
        return f'export PATH="{directory}:$PATH"'

    def brew_env(self, prefix: str) -> str:
        return f'[ -x {prefix}/bin/brew ] && eval "$({prefix}/bin/brew shellenv)"'

    def env(self, key: str, value: str) -> str:
        return f'export {key}="{value}"'

    def alias(self, name: str, cmd: str) -> str:
        return f'alias {name}="{cmd}"'

    def init(self, tool: str) -> Optional[str]:
        if tool == "fzf":
            return "source <(fzf --zsh)" if self.shell == "zsh" else 'eval "$(fzf --bash)"'
        if tool == "direnv":
            return f'eval "$(direnv hook {self.shell})"'
        if tool == "mise":
            return f'eval "$(mise activate {self.shell})"'
        return f'eval "$({tool} init {self.shell})"'

    def source_if_exists(self, path: str) -> str:
        return f"[ -f {path} ] && source {path}"


class _FishDialect:
    shell = "fish"

    def path_prepend(self, directory: str) -> str:
        return f"fish_add_path {directory}"

    def brew_env(self, prefix: str) -> str:
        return f"test -x {prefix}/bin/brew; and {prefix}/bin/brew shellenv | source"

    def env(self, key: str, value: str) -> str:
        return f'set -gx {key} "{value}"'

    def alias(self, name: str, cmd: str) -> str:
        return f'alias {name} "{cmd}"'

    def init(self, tool: str) -> Optional[str]:
        if tool == "fzf":
            return "fzf --fish | source"
        if tool == "direnv":
            return "direnv hook fish | source"
        if tool == "mise":
            return "mise activate fish | source"
        return f"{tool} init fish | source"

    def source_if_exists(self, path: str) -> str:
        return f"test -f {path}; and source {path}"


class _NuDialect:
    shell = "nu"

    def path_prepend(self, directory: str) -> str:
        if directory.startswith("$HOME/"):
            target = f'($nu.home-path | path join "{directory[len("$HOME/"):]}")'
        else:
            target = f'"{directory}"'
        return f"$env.PATH = ($env.PATH | prepend {target})"

    def brew_env(self, prefix: str) -> str:
        return self.path_prepend(f"{prefix}/bin")

    def env(self, key: str, value: str) -> str:
        return f'$env.{key} = "{value}"'

    def alias(self, name: str, cmd: str) -> str:
        return f"alias {name} = {cmd}"

    def init(self, tool: str) -> Optional[str]:
        # Nushell hooks need generated init files; see each tool's docs.
        return None

    def source_if_exists(self, path: str) -> str:
        # `source` is resolved at parse time, so it cannot be conditional.
        return f"# Machine-local settings: create {path} and add `source {path}` here."


def _dialect(shell: ShellName):
    if shell is ShellName.FISH:
        return _FishDialect()
    if shell is ShellName.NUSHELL:
        return _NuDialect()
    return _PosixDialect(shell.value)


def shell_rc_path(shell: ShellName, paths: HostPaths) -> Path:
    if shell is ShellName.ZSH:
        return paths.home / ".zshrc"
    if shell is ShellName.BASH:
        return paths.home / ".bashrc"
    if shell is ShellName.FISH:
        return paths.config_dir / "fish" / "config.fish"
    return paths.config_dir / "nushell" / "config.nu"


def _prompt_lines(snap: SessionSnapshot, d) -> List[str]:
    prompt = snap.shell.prompt
    prefix = snap.platform.brew_prefix
    if prompt is Prompt.STARSHIP:
        if isinstance(d, _NuDialect):
            return ["# starship: add `use ~/.cache/starship/init.nu` after running `starship init nu`"]
        return [d.init("starship")]
    if prompt is Prompt.POWERLEVEL10K:
        return [f"source {prefix}/share/powerlevel10k/powerlevel10k.zsh-theme", "[[ -f ~/.p10k.zsh ]] && source ~/.p10k.zsh"]
    if prompt is Prompt.PURE:
        return [f'fpath+=("{prefix}/share/zsh/site-functions")', "autoload -U promptinit; promptinit", "prompt pure"]
    if prompt is Prompt.MINIMAL:
        if isinstance(d, _FishDialect):
            return ["function fish_prompt", "    echo -n (prompt_pwd) '> '", "end"]
        if isinstance(d, _NuDialect):
            return ["$env.PROMPT_COMMAND = {|| $env.PWD | path basename }"]
        return ["PROMPT='%F{cyan}%~%f %# '"] if snap.shell.shell is ShellName.ZSH else ["PS1='\\w \\$ '"]
    return []


def render_shell_rc(snap: SessionSnapshot, paths: HostPaths) -> str:
    shell = snap.shell.shell
    d = _dialect(shell)
    rc = shell_rc_path(shell, paths)
    local_rc = tilde(rc.with_name(rc.name + ".local"), paths.home)

    lines = [f"# {HEADER}", f"# Put machine-specific settings in {local_rc}.", "", "# PATH"]
    lines.append(d.brew_env(snap.platform.brew_prefix))
    lines.append(d.path_prepend("$HOME/.local/bin"))
    if snap.has("rustup"):
        lines.append(d.path_prepend("$HOME/.cargo/bin"))
    if snap.has("go"):
        lines.append(d.path_prepend("$HOME/go/bin"))

    editor = editor_command(snap)
    if editor:
        lines += ["", "# Editor", d.env("EDITOR", editor), d.env("VISUAL", editor)]

    if shell is ShellName.ZSH:
        lines += [
            "",
            "# History",
            "HISTFILE=~/.zsh_history",
            "HISTSIZE=50000",
            "SAVEHIST=50000",
            "setopt SHARE_HISTORY HIST_IGNORE_DUPS HIST_IGNORE_SPACE",
        ]

    aliases = [d.alias(name, cmd) for entry_id, pairs in ALIASES if snap.has(entry_id) for name, cmd in pairs]
    if aliases:
        lines += ["", "# Aliases"] + aliases

    inits = [d.init(tool) for tool in INIT_TOOLS if snap.has(tool)]
    inits = [line for line in inits if line]
    if inits:
        lines += ["", "# Tool initialization"] + inits

    prompt = _prompt_lines(snap, d)
    if prompt:
        lines += ["", "# Prompt"] + prompt

    lines += ["", d.source_if_exists(local_rc)]
    return _text(lines)


# ---------------------------------------------------------------------------
# prompt, multiplexer, terminal, editorconfig


def render_starship(snap: SessionSnapshot) -> str:
    lines = [
        f"# {HEADER}",
        '"$schema" = "https://starship.rs/config-schema.json"',
        "",
        "add_newline = false",
        "command_timeout = 1000",
        "",
        "[character]",
        'success_symbol = "[>](bold green)"',
        'error_symbol = "[>](bold red)"',
        "",
        "[directory]",
        "truncation_length = 3",
        "truncate_to_repo = true",
        "",
        "[git_branch]",
        'symbol = " "',
        "",
        "[cmd_duration]",
        "min_time = 2000",
    ]
    if snap.has("kubectl"):
        lines += ["", "[kubernetes]", "disabled = false"]
    return _text(lines)


def _login_shell(snap: SessionSnapshot) -> str:
    return {ShellName.NUSHELL: "nu"}.get(snap.shell.shell, snap.shell.shell.value)


def render_tmux(snap: SessionSnapshot) -> str:
    return _text([
        f"# {HEADER}",
        "set -g prefix C-a",
        "unbind C-b",
        "bind C-a send-prefix",
        "",
        "set -g mouse on",
        "set -g base-index 1",
        "setw -g pane-base-index 1",
        "set -g renumber-windows on",
        "set -g history-limit 50000",
        "set -sg escape-time 10",
        'set -g default-terminal "tmux-256color"',
        f'set -g default-command "{_login_shell(snap)}"',
        "setw -g mode-keys vi",
        "",
        'bind | split-window -h -c "#{pane_current_path}"',
        'bind - split-window -v -c "#{pane_current_path}"',
        "bind r source-file ~/.tmux.conf \\; display 'reloaded'",
        "",
        "if-shell '[ -f ~/.tmux.conf.local ]' 'source-file ~/.tmux.conf.local'",
    ])


def render_zellij(snap: SessionSnapshot) -> str:
    return _text([
        f"// {HEADER}",
        f'default_shell "{_login_shell(snap)}"',
        "pane_frames false",
        "simplified_ui true",
        'default_layout "compact"',
        "mouse_mode true",
        "copy_on_select true",
    ])


def render_wezterm(snap: SessionSnapshot) -> str:
    lines = [
        f"-- {HEADER}",
        "local wezterm = require 'wezterm'",
        "local config = wezterm.config_builder()",
        "",
        "config.font = wezterm.font 'JetBrains Mono'",
        "config.font_size = 13.0",
        "config.hide_tab_bar_if_only_one_tab = true",
        "config.window_padding = { left = 8, right = 8, top = 8, bottom = 8 }",
        "config.scrollback_lines = 50000",
    ]
    if snap.shell.multiplexer is Multiplexer.NONE:
        lines.append("config.enable_tab_bar = true")
    lines += ["", "return config"]
    return _text(lines)


def render_alacritty(snap: SessionSnapshot) -> str:
    return _text([
        f"# {HEADER}",
        "[window]",
        "padding = { x = 8, y = 8 }",
        'decorations = "Full"',
        "",
        "[scrolling]",
        "history = 50000",
        "",
        "[font]",
        "size = 13.0",
        'normal = { family = "JetBrains Mono" }',
        "",
        "[terminal.shell]",
        f'program = "{_login_shell(snap)}"',
        'args = ["-l"]',
    ])


def render_kitty(snap: SessionSnapshot) -> str:
    return _text([
        f"# {HEADER}",
        "font_family JetBrains Mono",
        "font_size 13.0",
        "scrollback_lines 50000",
        "window_padding_width 8",
        "enable_audio_bell no",
        f"shell {_login_shell(snap)} -l",
    ])


def render_ghostty(snap: SessionSnapshot) -> str:
    return _text([
        f"# {HEADER}",
        "font-family = JetBrains Mono",
        "font-size = 13",
        "scrollback-limit = 50000000",
        "window-padding-x = 8",
        "window-padding-y = 8",
        f"command = {_login_shell(snap)} -l",
    ])


def render_editorconfig(snap: SessionSnapshot) -> str:
    return _text([
        f"# {HEADER}",
        "root = true",
        "",
        "[*]",
        "charset = utf-8",
        "end_of_line = lf",
        "insert_final_newline = true",
        "trim_trailing_whitespace = true",
        "indent_style = space",
        "indent_size = 4",
        "",
        "[*.{js,jsx,ts,tsx,json,yml,yaml,toml,lua,nix}]",
        "indent_size = 2",
        "",
        "[Makefile]",
        "indent_style = tab",
        "",
        "[*.md]",
        "trim_trailing_whitespace = false",
    ])


_TERMINALS: Dict[Terminal, Tuple[str, Callable[[HostPaths], Path], Callable[[SessionSnapshot], str]]] = {
    Terminal.WEZTERM: ("wezterm", lambda p: p.home / ".wezterm.lua", render_wezterm),
    Terminal.ALACRITTY: ("alacritty", lambda p: p.config_dir / "alacritty" / "alacritty.toml", render_alacritty),
    Terminal.KITTY: ("kitty", lambda p: p.config_dir / "kitty" / "kitty.conf", render_kitty),
    Terminal.GHOSTTY: ("ghostty", lambda p: p.config_dir / "ghostty" / "config", render_ghostty),
}


def generate_artifacts(snap: SessionSnapshot, paths: HostPaths) -> List[ConfigArtifact]:
    """All artifacts for a snapshot, in a fixed order."""

    out: List[ConfigArtifact] = []

    def add(name: str, path: Path, content: str) -> None:
        out.append(ConfigArtifact(name=name, path=path, content=content, label=tilde(path, paths.home)))

    add("gitconfig", paths.home / ".gitconfig", render_gitconfig(snap))
    if snap.identity.work:
        add("gitconfig-work", paths.home / ".gitconfig-work", render_gitconfig_work(snap))
    add("gitignore-global", paths.home / ".gitignore_global", render_gitignore_global(snap))

    add("shell-rc", shell_rc_path(snap.shell.shell, paths), render_shell_rc(snap, paths))
    if snap.shell.prompt is Prompt.STARSHIP:
        add("starship", paths.config_dir / "starship.toml", render_starship(snap))

    if snap.shell.multiplexer is Multiplexer.TMUX:
        add("tmux", paths.home / ".tmux.conf", render_tmux(snap))
    elif snap.shell.multiplexer is Multiplexer.ZELLIJ:
        add("zellij", paths.config_dir / "zellij" / "config.kdl", render_zellij(snap))

    terminal = _TERMINALS.get(snap.shell.terminal)
    if terminal is not None:
        name, path_for, render = terminal
        add(name, path_for(paths), render(snap))

    add("editorconfig", paths.home / ".editorconfig", render_editorconfig(snap))
    return out
