from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Iterator, Optional

FALLBACK_LOG_NAME = "loadstar-install.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

_CONFIGURED_ATTR = "_loadstar_configured"
_PATH_ATTR = "_loadstar_log_path"


def _candidate_paths(log_path: str) -> Iterator[Path]:
    yield Path(log_path)
    yield Path(tempfile.gettempdir()) / FALLBACK_LOG_NAME
    yield Path.cwd() / FALLBACK_LOG_NAME


def _open_file_handler(log_path: str) -> tuple[logging.FileHandler, str]:
    last_error: Optional[OSError] = None
    for candidate in _candidate_paths(log_path):
        try:
            candidate.parent.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(candidate, encoding="utf-8"), str(candidate)
        except OSError as e:
            last_error = e
    assert last_error is not None
    raise last_error


def configure_logging(
    log_path: str,
    level: int = logging.INFO,
    also_console: bool = False,
) -> str:
    """Configure the root logger once per process.

    Notes:
    - The log normally lives in the XDG state dir next to state.json. When
      that is not writable the temp dir is tried, then the working directory.
    - The thread name is part of every record: the wizard and the install
      worker write to the same file.
    - Console output is off by default because progress is rendered from
      events. --verbose mirrors the log to stderr.

    Returns the actual file path being used.
    """

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(root, _CONFIGURED_ATTR, False):
        return getattr(root, _PATH_ATTR, log_path)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    file_handler, chosen_path = _open_file_handler(log_path)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        root.addHandler(console)

    setattr(root, _CONFIGURED_ATTR, True)
    setattr(root, _PATH_ATTR, chosen_path)

    log = logging.getLogger(__name__)
    if chosen_path != log_path:
        log.warning("Cannot write log at %s; using %s", log_path, chosen_path)
    log.info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path
