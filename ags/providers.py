"""Provider-keyed auth documents: selection, merging and structural matching.

The multi-provider tool stores one object per provider at the top level of
its auth file. ``use`` merges saved providers into the live file and
``active`` decides whether a saved snapshot is contained in it.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from ags.errors import InvalidArgumentError
from ags.tools import PROVIDER_ALIASES

__all__ = [
    'dump_json_object',
    'json_equal',
    'merge_providers',
    'providers_subset_match',
    'resolve_provider_key',
    'select_provider',
]


def dump_json_object(payload: Mapping[str, Any]) -> bytes:
    """Serialize the way runtime auth files are written: 2-space indent, trailing newline."""
    return (json.dumps(payload, indent=2) + '\n').encode()


def resolve_provider_key(payload: Mapping[str, Any], selector: str) -> str:
    """Find the provider key ``selector`` names.

    Case-insensitive exact match first, then the alias table
    (``codex`` → ``openai-codex``, ``claude`` → ``anthropic``).
    """
    wanted = selector.strip().lower()
    by_lower = {key.lower(): key for key in payload}
    if wanted in by_lower:
        return by_lower[wanted]
    alias = PROVIDER_ALIASES.get(wanted)
    if alias is not None and alias.lower() in by_lower:
        return by_lower[alias.lower()]
    available = ', '.join(sorted(payload)) or '(none)'
    raise InvalidArgumentError(f'provider {selector!r} not found. available providers: {available}')


def select_provider(payload: Mapping[str, Any], selector: str) -> dict[str, Any]:
    """Return a single-provider document holding only the selected provider."""
    key = resolve_provider_key(payload, selector)
    return {key: payload[key]}


def merge_providers(target: Mapping[str, Any], snapshot: Mapping[str, Any]) -> dict[str, Any]:
    """Overlay the snapshot's providers on the target, keeping providers it omits."""
    merged = dict(target)
    merged.update(snapshot)
    return merged


def json_equal(left: object, right: object) -> bool:
    """Structural equality over decoded JSON values.

    Booleans never equal numbers (``True != 1`` here, unlike ``==``); integers
    and floats compare by value (``1 == 1.0``). Objects compare key sets and
    values, arrays compare element-wise in order.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, int | float) and isinstance(right, int | float):
        return left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if left.keys() != right.keys():
            return False
        return all(json_equal(value, right[key]) for key, value in left.items())
    if isinstance(left, list) and isinstance(right, list):
        if len(left) != len(right):
            return False
        return all(json_equal(a, b) for a, b in zip(left, right, strict=True))
    return False


def providers_subset_match(snapshot: Mapping[str, Any], runtime: Mapping[str, Any]) -> bool:
    """True if every provider in a non-empty snapshot is present in runtime with an equal value."""
    if not snapshot:
        return False
    return all(key in runtime and json_equal(value, runtime[key]) for key, value in snapshot.items())
