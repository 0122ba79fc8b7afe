from __future__ import annotations

from typing import Optional, Sequence


class LoadstarError(Exception):
    """Base class for installer errors."""


class ValidationError(LoadstarError, ValueError):
    """Operator input is malformed; blocks the phase transition."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class TransitionError(LoadstarError):
    pass


class CatalogError(LoadstarError):
    pass


class UnknownEntryError(CatalogError, KeyError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(entry_id)
        self.entry_id = entry_id

    def __str__(self) -> str:
        return f"Unknown catalog entry: {self.entry_id}"


class UnsupportedPlatformError(LoadstarError):
    pass


class PrerequisiteError(LoadstarError):
    pass


class ExternalCommandError(LoadstarError):
    def __init__(self, argv: Sequence[str], returncode: int, detail: Optional[str] = None) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.detail = detail or ""
        msg = f"exited with code {returncode}"
        if self.detail:
            msg += f": {self.detail}"
        super().__init__(msg)


class FilesystemError(LoadstarError):
    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class ExecutorBusyError(LoadstarError):
    pass
