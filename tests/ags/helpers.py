"""Builders for realistic auth payloads used across the ags tests.

Tokens are real three-segment base64url JWTs with an unverifiable signature,
which is all the insight engine ever looks at.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)

OPENAI_AUTH = 'https://api.openai.com/auth'
OPENAI_PROFILE = 'https://api.openai.com/profile'


def fixed_clock() -> datetime:
    return NOW


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b'=').decode()


def make_jwt(claims: Mapping[str, Any], header: Mapping[str, Any] | None = None) -> str:
    header = {'alg': 'RS256', 'typ': 'JWT'} if header is None else header
    return '.'.join([b64url(json.dumps(header).encode()), b64url(json.dumps(claims).encode()), 'c2lnbmF0dXJl'])


def dump(payload: Mapping[str, Any]) -> bytes:
    return (json.dumps(payload, indent=2) + '\n').encode()


def codex_auth(
    expires_at: datetime,
    *,
    email: str | None = None,
    plan: str | None = None,
    account_id: str | None = None,
    refresh_token: str = 'rt-1',
) -> bytes:
    """A codex auth.json whose access token expires at ``expires_at``."""
    access_claims: dict[str, Any] = {'exp': int(expires_at.timestamp())}
    tokens: dict[str, Any] = {'refresh_token': refresh_token}
    if account_id:
        access_claims[OPENAI_AUTH] = {'chatgpt_account_id': account_id}
    if email:
        id_claims: dict[str, Any] = {'email': email}
        if plan:
            id_claims[OPENAI_AUTH] = {'chatgpt_plan_type': plan}
        tokens['id_token'] = make_jwt(id_claims)
    tokens['access_token'] = make_jwt(access_claims)
    return dump({'last_refresh': '2026-01-01T00:00:00Z', 'tokens': tokens})


def pi_provider(expires_at: datetime, *, access: str = 'opaque-access', refresh: str = 'r') -> dict[str, Any]:
    return {
        'type': 'oauth',
        'access': access,
        'refresh': refresh,
        'expires': int(expires_at.timestamp() * 1000),
    }
