from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional, Sequence

from ..errors import ExternalCommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr.
    - dry_run logs but does not execute.
    - A missing executable is reported as returncode 127.
    """

    argv_list = list(argv)
    logger.info("CMD %s", fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=None if input_text is not None else subprocess.DEVNULL,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except FileNotFoundError as e:
        if check:
            raise ExternalCommandError(argv_list, 127, str(e)) from e
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        last = p.stderr.strip().splitlines()[-1] if p.stderr.strip() else ""
        raise ExternalCommandError(argv_list, p.returncode, last)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


def stream_cmd(
    argv: Sequence[str],
    *,
    on_line: Callable[[str], None],
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    on_start: Optional[Callable[[subprocess.Popen], None]] = None,
    dry_run: bool = False,
) -> int:
    """Run a command, feeding each non-empty line of combined stdout/stderr to on_line.

    Returns the exit code. Installers write progress to stderr, so both
    streams are merged to keep their relative order.
    """

    argv_list = list(argv)
    logger.info("CMD %s", fmt_argv(argv_list))

    if dry_run:
        return 0

    try:
        proc = subprocess.Popen(
            argv_list,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            bufsize=1,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except FileNotFoundError as e:
        raise ExternalCommandError(argv_list, 127, str(e)) from e

    if on_start is not None:
        on_start(proc)

    assert proc.stdout is not None
    with proc.stdout:
        for raw in proc.stdout:
            line = raw.rstrip()
            if line:
                on_line(line)
    return proc.wait()


class CommandRunner:
    """Host boundary for every external process the installer starts.

    Extra bin directories (Homebrew prefix, ~/.cargo/bin, ...) are prepended to
    PATH so tools bootstrapped earlier in a run are visible to later steps.
    Probes are read-only and run even in dry-run mode.
    """

    def __init__(self, *, dry_run: bool = False, extra_path: Iterable[str] = ()) -> None:
        self.dry_run = dry_run
        self.extra_path = [str(p) for p in extra_path]
        self._lock = threading.Lock()
        self._current: Optional[subprocess.Popen] = None

    def env(self) -> dict[str, str]:
        path = os.environ.get("PATH", "")
        parts = [p for p in self.extra_path if p] + ([path] if path else [])
        return {"PATH": os.pathsep.join(parts)}

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name, path=self.env()["PATH"])

    def query(self, argv: Sequence[str]) -> CmdResult:
        """Read-only command; executes even in dry-run mode."""
        return run_cmd(argv, check=False, env=self.env())

    def probe(self, argv: Sequence[str]) -> bool:
        return self.query(argv).returncode == 0

    def run(self, argv: Sequence[str], *, check: bool = True, input_text: str | None = None) -> CmdResult:
        return run_cmd(argv, check=check, env=self.env(), input_text=input_text, dry_run=self.dry_run)

    def stream(self, argv: Sequence[str], on_line: Callable[[str], None]) -> int:
        try:
            return stream_cmd(
                argv,
                on_line=on_line,
                env=self.env(),
                on_start=self._track,
                dry_run=self.dry_run,
            )
        finally:
            self._track(None)

    def terminate(self) -> bool:
        """Terminate the in-flight child process, if any."""
        with self._lock:
            proc = self._current
        if proc is None or proc.poll() is not None:
            return False
        logger.warning("Terminating in-flight command (pid=%s)", proc.pid)
        proc.terminate()
        return True

    def _track(self, proc: Optional[subprocess.Popen]) -> None:
        with self._lock:
            self._current = proc
