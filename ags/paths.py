"""Default data root for the ags CLI.

The core never picks a root on its own; the front end resolves it here and
passes it to ``SnapshotManager``.
"""

from __future__ import annotations

import os
from pathlib import Path

__all__ = [
    'ROOT_ENV_VAR',
    'SNAPSHOTS_DIRNAME',
    'STATE_FILENAME',
    'default_root',
]

ROOT_ENV_VAR = 'AGS_ROOT'
STATE_FILENAME = 'state.json'
SNAPSHOTS_DIRNAME = 'snapshots'


def default_root() -> str:
    """``$AGS_ROOT``, else ``$XDG_CONFIG_HOME/ags``, else ``~/.config/ags``.

    Returned unexpanded; ``~`` is resolved by the manager's home resolver.
    """
    override = os.environ.get(ROOT_ENV_VAR)
    if override:
        return override
    xdg = os.environ.get('XDG_CONFIG_HOME')
    if xdg:
        return str(Path(xdg) / 'ags')
    return '~/.config/ags'
