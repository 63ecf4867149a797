"""Account identity: claim extraction and the account-id identity cache.

Identity claims live in different places depending on who minted the token.
OpenAI-issued tokens nest them under namespaced objects::

    {
      "email": "...",                                   # sometimes
      "https://api.openai.com/profile": {"email": "..."},
      "https://api.openai.com/auth": {
        "chatgpt_plan_type": "plus",
        "chatgpt_account_id": "..."
      }
    }

Each field is looked up along an ordered list of claim paths; the first
non-blank string wins.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ags.schemas import AuthInsight, IdentityRecord

__all__ = [
    'Identity',
    'backfill_identity',
    'identity_from_claims',
    'normalize_plan',
    'reconcile_identity',
]

OPENAI_PROFILE_CLAIM = 'https://api.openai.com/profile'
OPENAI_AUTH_CLAIM = 'https://api.openai.com/auth'

_AUTH_NAMESPACES = (OPENAI_AUTH_CLAIM, 'auth')
_ACCOUNT_ID_KEYS = ('chatgpt_account_id', 'account_id', 'accountId')

EMAIL_CLAIM_PATHS: tuple[tuple[str, ...], ...] = (
    ('email',),
    (OPENAI_PROFILE_CLAIM, 'email'),
    ('profile', 'email'),
)
PLAN_CLAIM_PATHS: tuple[tuple[str, ...], ...] = (
    ('chatgpt_plan_type',),
    *((namespace, 'chatgpt_plan_type') for namespace in _AUTH_NAMESPACES),
)
ACCOUNT_ID_CLAIM_PATHS: tuple[tuple[str, ...], ...] = (
    *((key,) for key in _ACCOUNT_ID_KEYS),
    *((namespace, key) for namespace in _AUTH_NAMESPACES for key in _ACCOUNT_ID_KEYS),
)

_CANONICAL_PLANS: Mapping[str, str] = {
    'free': 'Free',
    'plus': 'Plus',
    'pro': 'Pro',
    'team': 'Team',
    'enterprise': 'Enterprise',
}


@dataclass(frozen=True)
class Identity:
    email: str | None = None
    plan: str | None = None
    account_id: str | None = None

    def __bool__(self) -> bool:
        return bool(self.email or self.account_id)

    def merged(self, fallback: Identity) -> Identity:
        """Fill this identity's missing fields from ``fallback``."""
        return replace(
            self,
            email=self.email or fallback.email,
            plan=self.plan or fallback.plan,
            account_id=self.account_id or fallback.account_id,
        )


def normalize_plan(raw: str) -> str:
    """Map plan identifiers to canonical tier names; title-case anything else."""
    value = raw.strip()
    return _CANONICAL_PLANS.get(value.lower(), value.title())


def _lookup(claims: Mapping[str, Any], path: tuple[str, ...]) -> str | None:
    node: Any = claims
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    if isinstance(node, str) and node.strip():
        return node.strip()
    return None


def _first(claims: Mapping[str, Any], paths: tuple[tuple[str, ...], ...]) -> str | None:
    for path in paths:
        value = _lookup(claims, path)
        if value is not None:
            return value
    return None


def identity_from_claims(claims: Mapping[str, Any]) -> Identity:
    plan = _first(claims, PLAN_CLAIM_PATHS)
    return Identity(
        email=_first(claims, EMAIL_CLAIM_PATHS),
        plan=normalize_plan(plan) if plan else None,
        account_id=_first(claims, ACCOUNT_ID_CLAIM_PATHS),
    )


# =============================================================================
# Identity cache
# =============================================================================


def backfill_identity(insight: AuthInsight, identities: Mapping[str, IdentityRecord]) -> AuthInsight:
    """Fill a missing email/plan from the cache entry for the insight's account id."""
    if not insight.account_id:
        return insight
    cached = identities.get(insight.account_id)
    if cached is None:
        return insight
    updates: dict[str, str] = {}
    if not insight.account_email:
        updates['account_email'] = cached.email
    if not insight.account_plan and cached.plan:
        updates['account_plan'] = cached.plan
    return insight.model_copy(update=updates) if updates else insight


def reconcile_identity(
    insight: AuthInsight,
    identities: Mapping[str, IdentityRecord],
    now: datetime,
) -> tuple[AuthInsight, Mapping[str, IdentityRecord]]:
    """Backfill ``insight`` from the cache, then record what it now knows.

    The cache entry for an account id is written whenever the (backfilled)
    insight carries both an account id and an email.
    """
    insight = backfill_identity(insight, identities)
    if not insight.account_id or not insight.account_email:
        return insight, identities

    updated = dict(identities)
    updated[insight.account_id] = IdentityRecord(
        email=insight.account_email,
        plan=insight.account_plan,
        updated_at=now,
    )
    return insight, updated
