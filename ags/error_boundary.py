"""Process error boundary for the ags commands.

Domain failures (``AgsError``) are expected at the command edge: they are
reported as one ``Error: <message>`` line on stderr. Anything else is a bug
and is reported with its traceback. Either way the process exits non-zero.

System exceptions (KeyboardInterrupt, SystemExit, GeneratorExit) always pass
through; ``issubclass(exc_type, Exception)`` is the positive check.

Handlers are dispatched by type with ``functools.singledispatch`` (MRO
matching), so registering for ``Exception`` acts as a catch-all::

    boundary = ErrorBoundary()

    @boundary.handler(AgsError)
    def handle_domain_error(exc: AgsError) -> None:
        err_console.print(f'Error: {exc}', markup=False)

    @app.command('save')
    @boundary
    def cli_save(...) -> None:
        ...

Typer reads the wrapped command's signature through ``functools.wraps``.
"""

from __future__ import annotations

__all__ = [
    'ErrorBoundary',
]

import functools
import sys
import traceback
from collections.abc import Callable
from functools import singledispatch
from types import TracebackType
from typing import Any, Self, TypeVar, cast

_F = TypeVar('_F', bound=Callable[..., object])


class ErrorBoundary:
    """Catch application exceptions, dispatch to a handler, then exit 1.

    Types with no registered handler get their traceback printed to stderr.
    """

    def __init__(self) -> None:
        self._dispatch = singledispatch(_default_handler)

    def handler(self, exc_type: type[Exception]) -> Callable[[Callable[..., None]], Callable[..., None]]:
        """Register a handler for ``exc_type`` and its subclasses."""
        return self._dispatch.register(exc_type)

    def __call__(self, func: _F) -> _F:
        """Decorate a command function. Parens are not used: ``@boundary``."""

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with self:
                return func(*args, **kwargs)

        return cast(_F, wrapper)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if not isinstance(exc_value, Exception):
            return  # No exception, or system exception

        try:
            self._dispatch(exc_value)
        except Exception:
            # Handler failed; fall back to the traceback of the original
            _default_handler(exc_value)
        sys.exit(1)


def _default_handler(exc: Exception) -> None:
    """Print exception with traceback to stderr."""
    traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
