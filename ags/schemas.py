"""Pydantic models for persisted state, derived insights and operation results."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

import pydantic

__all__ = [
    'ActiveItem',
    'ActiveStatus',
    'AuthInsight',
    'AuthStatus',
    'ChangeSignal',
    'DeleteResult',
    'IdentityRecord',
    'ListItem',
    'NeedsRefresh',
    'PermissiveModel',
    'SaveResult',
    'State',
    'StateEntry',
    'StrictModel',
    'UseResult',
    'state_key',
]

type AuthStatus = Literal['unknown', 'valid', 'expiring_soon', 'expired']
type NeedsRefresh = Literal['unknown', 'yes', 'no']
type ChangeSignal = Literal[
    'first use',
    'unchanged since last use',
    'changed since last use (likely refreshed)',
]
type ActiveStatus = Literal[
    'no saved profiles',
    'runtime auth file missing',
    'runtime auth JSON invalid',
    'no matching saved profile',
    'match',
    'ambiguous',
]

STATE_VERSION = 1


class StrictModel(pydantic.BaseModel):
    """Base for models ags builds itself: auth insight and operation results.

    These never come from disk, so any field mismatch is a bug in ags.

    Config:
    - extra='forbid': Reject unknown fields (fail-fast)
    - strict=True: No implicit type coercion
    - frozen=True: Immutable after creation
    """

    model_config = pydantic.ConfigDict(
        extra='forbid',
        strict=True,
        frozen=True,
    )


class PermissiveModel(pydantic.BaseModel):
    """For state.json: lax validation, unknown fields kept for forward compatibility."""

    model_config = pydantic.ConfigDict(extra='allow', frozen=True)


def state_key(tool: str, label: str) -> str:
    """Return the ``tool:label`` key an entry is stored under."""
    return f'{tool}:{label}'


# =============================================================================
# Persisted state
# =============================================================================


class StateEntry(PermissiveModel):
    """One saved snapshot slot."""

    tool: str  # kept as str: entries for tools this build doesn't know are skipped, not rejected
    label: str
    source_path: str
    snapshot_path: str
    sha256: str
    saved_at: datetime
    last_used_at: datetime | None = None
    last_used_sha256: str | None = None

    @property
    def key(self) -> str:
        return state_key(self.tool, self.label)


class IdentityRecord(PermissiveModel):
    """Last-known identity for an account id."""

    email: str
    plan: str | None = None
    updated_at: datetime


class State(PermissiveModel):
    """The ``state.json`` document."""

    version: int = STATE_VERSION
    entries: Mapping[str, StateEntry] = pydantic.Field(default_factory=dict)
    identities: Mapping[str, IdentityRecord] = pydantic.Field(default_factory=dict)

    @pydantic.model_validator(mode='before')
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        """Default the version, replace null maps, and re-key entries by ``tool:label``."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get('version'):
            data['version'] = STATE_VERSION
        if data.get('entries') is None:
            data['entries'] = {}
        if data.get('identities') is None:
            data['identities'] = {}
        entries = data['entries']
        if isinstance(entries, dict):
            rekeyed: dict[str, Any] = {}
            for key, entry in entries.items():
                if isinstance(entry, dict) and isinstance(entry.get('tool'), str) and isinstance(entry.get('label'), str):
                    key = state_key(entry['tool'], entry['label'])
                rekeyed[key] = entry
            data['entries'] = rekeyed
        return data


# =============================================================================
# Derived insight
# =============================================================================


class AuthInsight(StrictModel):
    """Normalized health summary of a credential payload. Never persisted."""

    status: AuthStatus = 'unknown'
    needs_refresh: NeedsRefresh = 'unknown'
    expires_at: datetime | None = None
    last_refresh: str | None = None
    account_email: str | None = None
    account_plan: str | None = None
    account_id: str | None = None
    details: tuple[str, ...] = ()

    @classmethod
    def unknown(cls, *details: str) -> AuthInsight:
        return cls(details=details)

    @property
    def identity(self) -> str | None:
        """``email (Plan)``, ``email``, or None when no email is known."""
        email = (self.account_email or '').strip()
        if not email:
            return None
        plan = (self.account_plan or '').strip()
        return f'{email} ({plan})' if plan else email


# =============================================================================
# Operation results
# =============================================================================


class SaveResult(StrictModel):
    tool: str
    label: str
    source_path: Path
    snapshot_path: Path
    changed_since_last_save: bool
    insight: AuthInsight


class UseResult(StrictModel):
    tool: str
    label: str
    target_path: Path
    change_signal: ChangeSignal
    insight: AuthInsight


class DeleteResult(StrictModel):
    tool: str
    label: str
    snapshot_path: Path
    snapshot_deleted: bool


class ListItem(StrictModel):
    tool: str
    label: str
    saved_at: datetime
    last_used_at: datetime | None
    snapshot_path: Path
    insight: AuthInsight


class ActiveItem(StrictModel):
    tool: str
    status: ActiveStatus
    runtime_path: Path
    matched_labels: tuple[str, ...] = ()
    details: tuple[str, ...] = ()

    @property
    def active_label(self) -> str | None:
        """The matching label, or the comma-joined labels when ambiguous."""
        if not self.matched_labels:
            return None
        return ','.join(self.matched_labels)
