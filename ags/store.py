"""Crash-safe file primitives.

Writes go to a sibling temp file that is fsynced, chmodded, closed and then
renamed over the destination, so a reader sees either the old content or the
new content, never a partial file. Each failure is a ``FileOperationError``
naming the step that failed.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

from ags.errors import FileOperationError, HomeDirectoryError, InvalidArgumentError, PayloadError

__all__ = [
    'FILE_MODE',
    'HomeResolver',
    'atomic_write',
    'expand_path',
    'read_file',
    'read_optional',
    'resolve_home',
    'sha256_hex',
    'validate_json_object',
]

logger = logging.getLogger(__name__)

type HomeResolver = Callable[[], Path]

FILE_MODE = 0o600
DIR_MODE = 0o700
TEMP_PREFIX = '.ags-'


@contextlib.contextmanager
def _step(step: str, path: Path) -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        reason = exc.strerror or str(exc)
        raise FileOperationError(f'{step} {path}: {reason}', step=step, path=path) from exc


def atomic_write(path: Path, raw: bytes, mode: int = FILE_MODE) -> None:
    """Replace ``path`` with ``raw`` atomically, creating parent directories."""
    directory = path.parent
    with _step('creating parent directory', directory):
        directory.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)

    with _step('creating temp file', directory):
        fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=directory)
    tmp = Path(tmp_name)

    fd_open = True
    try:
        with _step('writing temp file', tmp):
            view = memoryview(raw)
            while view:
                written = os.write(fd, view)
                view = view[written:]
            os.fsync(fd)
        with _step('setting file mode', tmp):
            os.fchmod(fd, mode)
        fd_open = False
        with _step('closing temp file', tmp):
            os.close(fd)
        with _step('replacing file atomically', path):
            os.replace(tmp, path)
    except BaseException as exc:
        if fd_open:
            try:
                os.close(fd)
            except OSError as close_error:
                exc.add_note(f'closing temp file after failure also failed: {close_error}')
        try:
            tmp.unlink(missing_ok=True)
        except OSError as cleanup_error:
            exc.add_note(f'temp file left behind at {tmp}: {cleanup_error}')
        raise

    logger.debug('wrote %d bytes to %s (mode %o)', len(raw), path, mode)


def read_optional(path: Path) -> bytes | None:
    """Read ``path``; None when it does not exist. Other errors are fatal."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        reason = exc.strerror or str(exc)
        raise FileOperationError(f'reading file {path}: {reason}', step='reading file', path=path) from exc


def read_file(path: Path) -> bytes:
    """Read ``path``; a missing file is an error like any other."""
    raw = read_optional(path)
    if raw is None:
        raise FileOperationError(f'reading file {path}: No such file or directory', step='reading file', path=path)
    return raw


def _reject_constant(name: str) -> Any:
    raise ValueError(f'invalid JSON constant {name}')


def validate_json_object(raw: bytes) -> dict[str, Any]:
    """Parse ``raw`` and return it if the top-level value is a JSON object."""
    try:
        payload = json.loads(raw, parse_constant=_reject_constant)
    except ValueError as exc:  # JSONDecodeError and UnicodeDecodeError included
        raise PayloadError(str(exc)) from exc
    if not isinstance(payload, dict):
        raise PayloadError('expected JSON object at top level')
    return payload


def sha256_hex(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def expand_path(value: str | Path, home_dir: HomeResolver) -> Path:
    """Expand a leading ``~`` or ``~/`` using ``home_dir``. Other paths are returned as is."""
    text = str(value)
    if not text.strip():
        raise InvalidArgumentError('path cannot be empty')
    if text == '~' or text.startswith('~/'):
        home = resolve_home(home_dir)
        if text == '~':
            return home
        return home / text[2:]
    return Path(text)


def resolve_home(home_dir: HomeResolver) -> Path:
    """Call the home resolver, reporting any failure as HomeDirectoryError."""
    try:
        return home_dir()
    except (RuntimeError, KeyError, OSError) as exc:
        raise HomeDirectoryError(f'resolving home directory: {exc}') from exc
