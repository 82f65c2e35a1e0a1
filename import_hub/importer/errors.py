"""Exception types raised by the import pipeline."""

from __future__ import annotations

from typing import Iterable


class ImporterError(RuntimeError):
    """Base class for importer failures surfaced to callers."""

    def __init__(self, message: str, *, details: Iterable[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: list[str] = list(details or ())


class MappingValidationError(ImporterError):
    """Raised when a mapping set fails validation before staging."""

    def __init__(self, errors: Iterable[str]) -> None:
        errors = list(errors)
        super().__init__("Field mapping validation failed.", details=errors)
        self.errors = errors


class FileLookupError(ImporterError):
    """Raised when an uploaded source file cannot be located."""


class FileParseError(ImporterError):
    """Raised when a source file cannot be read as tabular data."""


class StagingError(ImporterError):
    """Raised when staging population fails and the session was marked failed."""


class InvalidTransitionError(ImporterError):
    """Raised when a session status change violates the lifecycle."""

    def __init__(self, session_id: int, current: str, target: str) -> None:
        super().__init__(f"Import session {session_id} cannot move from '{current}' to '{target}'.")
        self.session_id = session_id
        self.current = current
        self.target = target


class DispatchError(ImporterError):
    """Raised when the workflow engine could not be triggered after all attempts."""

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class CallbackValidationError(ImporterError):
    """Raised when a workflow callback payload is structurally invalid."""


class TransformError(ValueError):
    """Raised by a value transformation; the validator reports it as a field error."""
