"""Exception hierarchy and operation tagging for the snapshot manager.

Every failure the core raises is an ``AgsError``. Callers distinguish the
categories by type:

    InvalidArgumentError   bad tool, label, provider selector or path
    ProfileNotFoundError   no saved entry for tool/label
    SourceNotFoundError    no source auth file found
    HomeDirectoryError     home directory could not be resolved
    FileOperationError     I/O failure, tagged with the failing step
    PayloadError           malformed JSON or non-object top level
    SerializationError     state document could not be encoded
    RollbackError          state persistence failed after ``use`` wrote the target

Operation tagging:

    ``OperationBoundary`` marks which high-level operation a failure belongs to
    ("reading source auth file", "writing snapshot", ...). It is the call-site
    translation layer, like ``LibraryBoundary`` at a third-party call: raw
    ``OSError``s become ``FileOperationError`` (chained with ``raise X from Y``)
    and ``AgsError``s already raised below get the operation attached::

        with OperationBoundary('reading snapshot file'):
            raw = store.read_file(path)
"""

from __future__ import annotations

__all__ = [
    'AgsError',
    'FileOperationError',
    'HomeDirectoryError',
    'InvalidArgumentError',
    'OperationBoundary',
    'PayloadError',
    'ProfileNotFoundError',
    'RollbackError',
    'SerializationError',
    'SourceNotFoundError',
]

from pathlib import Path
from types import TracebackType
from typing import Self


class AgsError(Exception):
    """Base class for all snapshot manager failures.

    ``operation`` names the high-level step that failed. It is set once, by the
    innermost ``OperationBoundary``, and prefixed to the message.
    """

    operation: str | None = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.operation:
            return f'{self.operation}: {message}'
        return message


class InvalidArgumentError(AgsError):
    """Input rejected before any I/O."""


class ProfileNotFoundError(AgsError):
    """No saved state entry for the requested tool and label."""


class SourceNotFoundError(AgsError):
    """None of the candidate source auth files exist."""

    def __init__(self, message: str, attempted: tuple[Path, ...]) -> None:
        super().__init__(message)
        self.attempted = attempted


class HomeDirectoryError(AgsError):
    """Home directory resolution failed."""


class FileOperationError(AgsError):
    """I/O failure attributable to a specific step."""

    def __init__(self, message: str, *, step: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.step = step
        self.path = path


class PayloadError(AgsError):
    """Payload is not valid JSON, or its top-level value is not an object."""


class SerializationError(AgsError):
    """State document could not be serialized."""


class RollbackError(AgsError):
    """State persistence failed after the runtime target was written.

    ``original`` is the persistence failure. ``rollback_error`` is None when the
    target was restored (or removed), otherwise the failure of the rollback.
    """

    def __init__(
        self,
        message: str,
        *,
        original: BaseException,
        target: Path,
        rollback_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.original = original
        self.target = target
        self.rollback_error = rollback_error

    @property
    def rolled_back(self) -> bool:
        return self.rollback_error is None


class OperationBoundary:
    """Tag failures raised inside the block with an operation name.

    - ``AgsError`` without an operation: operation attached, re-raised as is.
    - ``OSError``: translated to ``FileOperationError`` (step = operation),
      original preserved as ``__cause__``.
    - Anything else passes through untouched.
    """

    def __init__(self, operation: str) -> None:
        self._operation = operation

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is None:
            return
        if isinstance(exc_val, AgsError):
            if exc_val.operation is None:
                exc_val.operation = self._operation
            return  # propagate the original object
        if isinstance(exc_val, OSError):
            path = Path(exc_val.filename) if exc_val.filename else None
            translated = FileOperationError(_describe_os_error(exc_val), step=self._operation, path=path)
            translated.operation = self._operation
            raise translated.with_traceback(exc_tb) from exc_val


def _describe_os_error(exc: OSError) -> str:
    if exc.strerror and exc.filename:
        return f'{exc.strerror}: {exc.filename}'
    return str(exc)
