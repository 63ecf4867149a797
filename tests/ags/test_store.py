"""Tests for the crash-safe file primitives."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from ags.errors import FileOperationError, HomeDirectoryError, InvalidArgumentError, PayloadError
from ags.store import (
    atomic_write,
    expand_path,
    read_file,
    read_optional,
    resolve_home,
    sha256_hex,
    validate_json_object,
)


def _mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


class TestAtomicWrite:
    def test_creates_parents_and_writes_with_private_mode(self, tmp_path: Path) -> None:
        path = tmp_path / 'a' / 'b' / 'auth.json'
        atomic_write(path, b'{"x": 1}\n')

        assert path.read_bytes() == b'{"x": 1}\n'
        assert _mode(path) == 0o600
        assert _mode(path.parent) == 0o700

    def test_replaces_existing_content(self, tmp_path: Path) -> None:
        path = tmp_path / 'auth.json'
        path.write_bytes(b'old')
        atomic_write(path, b'new')
        assert path.read_bytes() == b'new'

    def test_respects_explicit_mode(self, tmp_path: Path) -> None:
        path = tmp_path / 'auth.json'
        atomic_write(path, b'{}', mode=0o640)
        assert _mode(path) == 0o640

    def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        atomic_write(tmp_path / 'one.json', b'1')
        atomic_write(tmp_path / 'one.json', b'2')
        assert sorted(p.name for p in tmp_path.iterdir()) == ['one.json']

    def test_parent_is_a_file(self, tmp_path: Path) -> None:
        blocker = tmp_path / 'blocker'
        blocker.write_bytes(b'')

        with pytest.raises(FileOperationError) as exc_info:
            atomic_write(blocker / 'auth.json', b'{}')

        assert exc_info.value.step == 'creating parent directory'
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_replace_failure_removes_temp_and_keeps_original(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / 'auth.json'
        path.write_bytes(b'original')

        def failing_replace(src: str | Path, dst: str | Path) -> None:
            raise PermissionError(13, 'Permission denied', str(dst))

        monkeypatch.setattr(os, 'replace', failing_replace)

        with pytest.raises(FileOperationError) as exc_info:
            atomic_write(path, b'new')

        assert exc_info.value.step == 'replacing file atomically'
        assert exc_info.value.path == path
        assert 'Permission denied' in str(exc_info.value)
        assert path.read_bytes() == b'original'
        assert sorted(p.name for p in tmp_path.iterdir()) == ['auth.json']


class TestRead:
    def test_read_optional_missing_is_none(self, tmp_path: Path) -> None:
        assert read_optional(tmp_path / 'missing.json') is None

    def test_read_file_missing_is_error(self, tmp_path: Path) -> None:
        with pytest.raises(FileOperationError) as exc_info:
            read_file(tmp_path / 'missing.json')
        assert exc_info.value.step == 'reading file'

    def test_read_optional_other_errors_are_fatal(self, tmp_path: Path) -> None:
        with pytest.raises(FileOperationError) as exc_info:
            read_optional(tmp_path)  # a directory
        assert exc_info.value.step == 'reading file'
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_read_returns_bytes(self, tmp_path: Path) -> None:
        path = tmp_path / 'auth.json'
        path.write_bytes(b'{}')
        assert read_file(path) == b'{}'


class TestValidateJsonObject:
    def test_returns_object(self) -> None:
        assert validate_json_object(b'{"a": [1, 2.5, true, null]}') == {'a': [1, 2.5, True, None]}

    @pytest.mark.parametrize(
        'raw',
        [
            b'',
            b'{',
            b'[1, 2]',
            b'"text"',
            b'42',
            b'null',
            b'{"a": NaN}',
            b'\xff\xfe{}',
        ],
    )
    def test_rejects(self, raw: bytes) -> None:
        with pytest.raises(PayloadError):
            validate_json_object(raw)

    def test_top_level_message(self) -> None:
        with pytest.raises(PayloadError, match='expected JSON object at top level'):
            validate_json_object(b'[]')


class TestPaths:
    @pytest.mark.parametrize(
        'value, expected',
        [
            ('~', '/home/user'),
            ('~/', '/home/user'),
            ('~/.codex/auth.json', '/home/user/.codex/auth.json'),
            ('/etc/auth.json', '/etc/auth.json'),
            ('relative/auth.json', 'relative/auth.json'),
            ('~other/auth.json', '~other/auth.json'),
        ],
    )
    def test_expand_path(self, value: str, expected: str) -> None:
        assert expand_path(value, lambda: Path('/home/user')) == Path(expected)

    @pytest.mark.parametrize('value', ['', '   '])
    def test_expand_empty_path(self, value: str) -> None:
        with pytest.raises(InvalidArgumentError, match='path cannot be empty'):
            expand_path(value, lambda: Path('/home/user'))

    def test_home_not_consulted_without_tilde(self) -> None:
        def broken_home() -> Path:
            raise RuntimeError('no home')

        assert expand_path('/abs', broken_home) == Path('/abs')

    def test_resolve_home_failure(self) -> None:
        def broken_home() -> Path:
            raise RuntimeError('Could not determine home directory.')

        with pytest.raises(HomeDirectoryError, match='resolving home directory'):
            resolve_home(broken_home)


def test_sha256_hex() -> None:
    assert sha256_hex(b'') == 'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
