from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Optional

from ..errors import FilesystemError

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".loadstar.bak"
DEFAULT_MODE = 0o644


def read_text_or_none(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise FilesystemError(str(path), f"cannot read: {e}") from e


def atomic_write_text(path: Path, content: str, *, mode: Optional[int] = None) -> None:
    """Write content via a temp file in the same directory, then rename over path.

    Readers see either the old file or the complete new one. A symlinked path
    is written through to its target. Without an explicit mode the existing
    file's permissions are kept (DEFAULT_MODE for new files).
    """

    if path.is_symlink():
        path = path.resolve()
    if mode is None:
        try:
            mode = stat.S_IMODE(path.stat().st_mode)
        except FileNotFoundError:
            mode = DEFAULT_MODE
        except OSError as e:
            raise FilesystemError(str(path), f"cannot stat: {e}") from e

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp, mode)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
    except OSError as e:
        raise FilesystemError(str(path), f"cannot write: {e}") from e


def backup_path(path: Path, suffix: str = BACKUP_SUFFIX) -> Path:
    return path.with_name(path.name + suffix)


def copy_backup(path: Path, suffix: str = BACKUP_SUFFIX) -> Path:
    """Copy path to its backup location, replacing any earlier backup."""

    dst = backup_path(path, suffix)
    try:
        shutil.copy2(path, dst)
    except OSError as e:
        raise FilesystemError(str(path), f"cannot back up: {e}") from e
    logger.info("Backed up %s -> %s", str(path), str(dst))
    return dst


def set_mode(path: Path, mode: int) -> None:
    try:
        os.chmod(path, mode)
    except OSError as e:
        raise FilesystemError(str(path), f"cannot chmod {oct(mode)}: {e}") from e
