"""Keep tests independent of the invoking shell's ags configuration.

The CLI reads AGS_ROOT, XDG_CONFIG_HOME and AGS_DEBUG from the environment;
a developer's own settings must never leak into (or be written by) a test.
"""

from __future__ import annotations

import pytest

AGS_ENV_VARS = ('AGS_ROOT', 'XDG_CONFIG_HOME', 'AGS_DEBUG')


@pytest.fixture(autouse=True)
def _isolated_ags_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in AGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
