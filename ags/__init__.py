"""ags: labeled snapshots of coding-agent auth files.

Saves a tool's credential file under a label, writes it back on demand, and
reports each snapshot's health (expiry, refresh need, account identity) without
ever exposing token contents.
"""

from __future__ import annotations

__version__ = '0.1.0'

from ags.errors import (
    AgsError,
    FileOperationError,
    HomeDirectoryError,
    InvalidArgumentError,
    PayloadError,
    ProfileNotFoundError,
    RollbackError,
    SerializationError,
    SourceNotFoundError,
)
from ags.insight import inspect_auth, inspect_token
from ags.manager import JsonStateCodec, SnapshotManager, StateCodec
from ags.schemas import ActiveItem, AuthInsight, DeleteResult, ListItem, SaveResult, UseResult
from ags.tools import Tool

__all__ = [
    'ActiveItem',
    'AgsError',
    'AuthInsight',
    'DeleteResult',
    'FileOperationError',
    'HomeDirectoryError',
    'InvalidArgumentError',
    'JsonStateCodec',
    'ListItem',
    'PayloadError',
    'ProfileNotFoundError',
    'RollbackError',
    'SaveResult',
    'SerializationError',
    'SnapshotManager',
    'SourceNotFoundError',
    'StateCodec',
    'Tool',
    'UseResult',
    'inspect_auth',
    'inspect_token',
]
