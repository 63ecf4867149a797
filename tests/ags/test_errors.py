"""Tests for OperationBoundary (tagging and OSError translation) and the CLI ErrorBoundary."""

from __future__ import annotations

from pathlib import Path

import pytest

from ags.error_boundary import ErrorBoundary
from ags.errors import (
    AgsError,
    FileOperationError,
    OperationBoundary,
    PayloadError,
    RollbackError,
    SerializationError,
)


class TestOperationBoundary:
    def test_no_exception_passes_through(self) -> None:
        with OperationBoundary('writing snapshot'):
            result = 1 + 1
        assert result == 2

    def test_tags_domain_error(self) -> None:
        original = PayloadError('expected JSON object at top level')
        with pytest.raises(PayloadError) as exc_info, OperationBoundary('snapshot JSON invalid'):
            raise original

        assert exc_info.value is original
        assert exc_info.value.operation == 'snapshot JSON invalid'
        assert str(exc_info.value) == 'snapshot JSON invalid: expected JSON object at top level'

    def test_innermost_operation_wins(self) -> None:
        with (
            pytest.raises(PayloadError) as exc_info,
            OperationBoundary('outer'),
            OperationBoundary('inner'),
        ):
            raise PayloadError('bad')
        assert exc_info.value.operation == 'inner'

    def test_translates_os_error(self) -> None:
        with pytest.raises(FileOperationError) as exc_info, OperationBoundary('deleting snapshot file'):
            raise PermissionError(13, 'Permission denied', '/data/snapshots/codex/work.json')

        error = exc_info.value
        assert error.step == 'deleting snapshot file'
        assert error.path == Path('/data/snapshots/codex/work.json')
        assert isinstance(error.__cause__, PermissionError)
        assert str(error) == 'deleting snapshot file: Permission denied: /data/snapshots/codex/work.json'

    def test_preserves_traceback(self) -> None:
        def unlink() -> None:
            raise OSError(5, 'Input/output error')

        with pytest.raises(FileOperationError) as exc_info, OperationBoundary('reading state'):
            unlink()

        tb = exc_info.value.__traceback__
        assert tb is not None
        while tb.tb_next:
            tb = tb.tb_next
        assert tb.tb_frame.f_code.co_name == 'unlink'

    @pytest.mark.parametrize('exception', [ValueError, KeyError, RuntimeError])
    def test_other_exceptions_pass_through(self, exception: type[Exception]) -> None:
        with pytest.raises(exception), OperationBoundary('reading state'):
            raise exception('untouched')

    @pytest.mark.parametrize('exception', [KeyboardInterrupt, SystemExit])
    def test_system_exception_passes_through(self, exception: type[BaseException]) -> None:
        with pytest.raises(exception), OperationBoundary('reading state'):
            raise exception


class TestAgsError:
    def test_message_without_operation(self) -> None:
        assert str(AgsError('plain')) == 'plain'

    def test_rollback_outcome(self) -> None:
        original = SerializationError('boom')
        restored = RollbackError('x', original=original, target=Path('/t'))
        failed = RollbackError('x', original=original, target=Path('/t'), rollback_error=OSError('disk'))

        assert restored.rolled_back
        assert not failed.rolled_back
        assert failed.original is original


class TestErrorBoundary:
    def _boundary(self, seen: list[Exception]) -> ErrorBoundary:
        boundary = ErrorBoundary()

        @boundary.handler(AgsError)
        def _record(exc: AgsError) -> None:
            seen.append(exc)

        return boundary

    def test_returns_value_without_exception(self) -> None:
        @self._boundary([])
        def command() -> str:
            return 'ok'

        assert command() == 'ok'
        assert command.__name__ == 'command'

    def test_registered_handler_then_exit(self) -> None:
        seen: list[Exception] = []

        @self._boundary(seen)
        def command() -> None:
            raise PayloadError('bad payload')

        with pytest.raises(SystemExit) as exc_info:
            command()
        assert exc_info.value.code == 1
        assert [str(exc) for exc in seen] == ['bad payload']

    def test_unregistered_prints_traceback(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info, self._boundary([]):
            raise RuntimeError('bug')

        assert exc_info.value.code == 1
        stderr = capsys.readouterr().err
        assert 'Traceback' in stderr
        assert 'RuntimeError: bug' in stderr

    def test_failing_handler_falls_back_to_traceback(self, capsys: pytest.CaptureFixture[str]) -> None:
        boundary = ErrorBoundary()

        @boundary.handler(AgsError)
        def _broken(exc: AgsError) -> None:
            raise ValueError('handler bug')

        with pytest.raises(SystemExit), boundary:
            raise PayloadError('bad payload')
        assert 'PayloadError: bad payload' in capsys.readouterr().err

    def test_system_exception_passes_through(self) -> None:
        with pytest.raises(KeyboardInterrupt), self._boundary([]):
            raise KeyboardInterrupt
