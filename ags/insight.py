"""Auth insight engine: credential payload bytes → normalized health signal.

Pure functions: no I/O, no mutation, never raises for bad input. Each tool has
its own decoder; ``inspect_auth`` dispatches on the tool identifier.

Token handling is diagnostic only. Details name the token format, header
algorithm and claim names, never token contents.
"""

from __future__ import annotations

import base64
import binascii
import json
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from ags.errors import PayloadError
from ags.identity import Identity, identity_from_claims, normalize_plan
from ags.schemas import AuthInsight, AuthStatus, NeedsRefresh
from ags.store import validate_json_object
from ags.tools import Tool, parse_tool

__all__ = [
    'EXPIRING_SOON_WINDOW',
    'TokenInfo',
    'classify_expiry',
    'format_timestamp',
    'inspect_auth',
    'inspect_token',
    'needs_refresh_for',
    'number_value',
    'status_rank',
]

EXPIRING_SOON_WINDOW = timedelta(minutes=15)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

type Decoder = Callable[[Mapping[str, Any], datetime], AuthInsight]


# =============================================================================
# Expiry classification
# =============================================================================


def classify_expiry(expires_at: datetime, now: datetime) -> AuthStatus:
    remaining = expires_at - now
    if remaining <= timedelta(0):
        return 'expired'
    if remaining <= EXPIRING_SOON_WINDOW:
        return 'expiring_soon'
    return 'valid'


def needs_refresh_for(status: AuthStatus) -> NeedsRefresh:
    if status in ('expired', 'expiring_soon'):
        return 'yes'
    if status == 'valid':
        return 'no'
    return 'unknown'


def status_rank(status: AuthStatus) -> int:
    """Severity order used to pick the worst provider: expired > expiring_soon > valid > unknown."""
    return {'expired': 3, 'expiring_soon': 2, 'valid': 1}.get(status, 0)


def format_timestamp(value: datetime) -> str:
    """RFC 3339, UTC, second precision."""
    return value.astimezone(UTC).strftime('%Y-%m-%dT%H:%M:%SZ')


def number_value(value: object) -> float | None:
    """Numeric JSON value (or decimal string) as float. Booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _from_epoch(amount: float, unit: timedelta) -> datetime | None:
    try:
        return _EPOCH + int(amount) * unit
    except OverflowError:
        return None


# =============================================================================
# Self-describing tokens
# =============================================================================


@dataclass(frozen=True)
class TokenInfo:
    """What a bearer token reveals about itself. Opaque tokens carry nothing."""

    is_jwt: bool = False
    alg: str | None = None
    claims: Mapping[str, Any] = field(default_factory=dict)
    expires_at: datetime | None = None

    @property
    def claim_names(self) -> tuple[str, ...]:
        return tuple(sorted(self.claims))

    def describe(self, name: str) -> str:
        if not self.is_jwt:
            return f'{name} format=opaque (not JWT)'
        claims = ','.join(self.claim_names) or '-'
        if self.alg:
            return f'{name} format=jwt alg={self.alg} claims={claims}'
        return f'{name} format=jwt claims={claims}'


def _decode_segment(segment: str) -> dict[str, Any] | None:
    padded = segment + '=' * (-len(segment) % 4)
    try:
        decoded = base64.b64decode(padded, altchars=b'-_', validate=True)
        payload = json.loads(decoded)
    except (binascii.Error, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def inspect_token(token: str) -> TokenInfo:
    """Decode a three-segment token's header and claims; anything undecodable is opaque."""
    parts = token.split('.')
    if len(parts) != 3:
        return TokenInfo()
    header = _decode_segment(parts[0])
    claims = _decode_segment(parts[1])
    if header is None or claims is None:
        return TokenInfo()

    alg = header.get('alg')
    exp = number_value(claims.get('exp'))
    return TokenInfo(
        is_jwt=True,
        alg=alg.strip() if isinstance(alg, str) and alg.strip() else None,
        claims=claims,
        expires_at=_from_epoch(exp, timedelta(seconds=1)) if exp is not None else None,
    )


def _identity_fields(identity: Identity) -> dict[str, Any]:
    return {
        'account_email': identity.email,
        'account_plan': identity.plan,
        'account_id': identity.account_id,
    }


# =============================================================================
# Per-tool decoders
# =============================================================================


def _inspect_codex(payload: Mapping[str, Any], now: datetime) -> AuthInsight:
    """Single-token layout: ``tokens.access_token`` drives expiry, ``tokens.id_token`` carries identity."""
    last_refresh = payload.get('last_refresh')
    base: dict[str, Any] = {
        'last_refresh': last_refresh if isinstance(last_refresh, str) and last_refresh.strip() else None,
    }

    tokens = payload.get('tokens')
    if not isinstance(tokens, Mapping):
        return AuthInsight(**base, details=('tokens object missing',))

    identity = Identity()
    for name in ('id_token', 'access_token'):
        token = tokens.get(name)
        if isinstance(token, str) and token:
            info = inspect_token(token)
            if info.is_jwt:
                identity = identity.merged(identity_from_claims(info.claims))
    account_id = tokens.get('account_id')
    if isinstance(account_id, str) and account_id.strip():
        identity = identity.merged(Identity(account_id=account_id.strip()))
    base |= _identity_fields(identity)

    access_token = tokens.get('access_token')
    if not isinstance(access_token, str) or not access_token:
        return AuthInsight(**base, details=('access_token missing',))

    info = inspect_token(access_token)
    details = [info.describe('access_token')]
    if info.expires_at is None:
        details.append('could not parse access_token exp')
        return AuthInsight(**base, details=tuple(details))

    status = classify_expiry(info.expires_at, now)
    return AuthInsight(
        **base,
        status=status,
        needs_refresh=needs_refresh_for(status),
        expires_at=info.expires_at,
        details=tuple(details),
    )


def _provider_identity(entry: Mapping[str, Any], token: TokenInfo | None) -> Identity:
    identity = identity_from_claims(token.claims) if token is not None and token.is_jwt else Identity()
    return identity.merged(identity_from_claims(entry))


def _inspect_pi(payload: Mapping[str, Any], now: datetime) -> AuthInsight:
    """Multi-provider layout: every top-level object is a provider with ``expires`` (ms) and ``access``."""
    statuses: list[tuple[str, AuthStatus, datetime]] = []
    token_details: list[str] = []
    identity = Identity()

    for name in sorted(payload):
        entry = payload[name]
        if not isinstance(entry, Mapping):
            continue

        token: TokenInfo | None = None
        access = entry.get('access')
        if isinstance(access, str) and access.strip():
            token = inspect_token(access)
            token_details.append(token.describe(f'{name}.access'))
        if not identity:
            identity = _provider_identity(entry, token)

        expires_ms = number_value(entry.get('expires'))
        if expires_ms is None:
            continue
        expires_at = _from_epoch(expires_ms, timedelta(milliseconds=1))
        if expires_at is None:
            continue
        statuses.append((name, classify_expiry(expires_at, now), expires_at))

    token_details.sort()
    if not statuses:
        return AuthInsight(
            **_identity_fields(identity),
            details=('no provider expires fields found', *token_details),
        )

    statuses.sort(key=lambda item: (-status_rank(item[1]), item[0]))
    _, worst_status, worst_expiry = statuses[0]
    details = [f'{name}={status} ({format_timestamp(expiry)})' for name, status, expiry in statuses]
    return AuthInsight(
        **_identity_fields(identity),
        status=worst_status,
        needs_refresh=needs_refresh_for(worst_status),
        expires_at=worst_expiry,
        details=(*details, *token_details),
    )


def _inspect_claude(payload: Mapping[str, Any], now: datetime) -> AuthInsight:
    """``oauthAccount`` carries identity; ``claudeAiOauth`` (credentials file layout) carries expiry."""
    identity = Identity()
    account = payload.get('oauthAccount')
    if isinstance(account, Mapping):
        email = account.get('emailAddress')
        account_uuid = account.get('accountUuid')
        identity = Identity(
            email=email.strip() if isinstance(email, str) and email.strip() else None,
            account_id=account_uuid.strip() if isinstance(account_uuid, str) and account_uuid.strip() else None,
        )

    oauth = payload.get('claudeAiOauth')
    if isinstance(oauth, Mapping):
        subscription = oauth.get('subscriptionType')
        if isinstance(subscription, str) and subscription.strip():
            identity = identity.merged(Identity(plan=normalize_plan(subscription)))
        details: list[str] = []
        access = oauth.get('accessToken')
        if isinstance(access, str) and access:
            details.append(inspect_token(access).describe('claudeAiOauth.accessToken'))
        expires_ms = number_value(oauth.get('expiresAt'))
        expires_at = _from_epoch(expires_ms, timedelta(milliseconds=1)) if expires_ms is not None else None
        if expires_at is None:
            details.append('claudeAiOauth.expiresAt missing')
            return AuthInsight(**_identity_fields(identity), details=tuple(details))
        status = classify_expiry(expires_at, now)
        return AuthInsight(
            **_identity_fields(identity),
            status=status,
            needs_refresh=needs_refresh_for(status),
            expires_at=expires_at,
            details=tuple(details),
        )

    if 'oauthAccount' in payload:
        detail = 'oauthAccount present, but token expiry is not available in this file format'
    else:
        detail = 'no known expiry fields found'
    return AuthInsight(**_identity_fields(identity), details=(detail,))


_DECODERS: Mapping[Tool, Decoder] = {
    Tool.CODEX: _inspect_codex,
    Tool.PI: _inspect_pi,
    Tool.CLAUDE: _inspect_claude,
}


def inspect_auth(tool: Tool | str, raw: bytes, now: datetime | None = None) -> AuthInsight:
    """Compute the insight for ``raw`` as written by ``tool``. Never raises."""
    parsed = tool if isinstance(tool, Tool) else parse_tool(tool)
    decoder = _DECODERS.get(parsed) if parsed is not None else None
    if decoder is None:
        return AuthInsight()
    try:
        payload = validate_json_object(raw)
    except PayloadError:
        return AuthInsight.unknown('invalid JSON')
    return decoder(payload, now or datetime.now(UTC))
