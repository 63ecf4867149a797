"""Supported tools, their auth file locations, and input validation."""

from __future__ import annotations

import enum
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ags.errors import InvalidArgumentError

__all__ = [
    'LABEL_PATTERN',
    'PROVIDER_ALIASES',
    'TOOL_SPECS',
    'Tool',
    'ToolPaths',
    'ToolSpec',
    'parse_tool',
    'require_tool',
    'resolve_tool_paths',
    'validate_label',
    'validate_provider_selector',
]

LABEL_PATTERN = re.compile(r'[A-Za-z0-9._-]+')


class Tool(enum.StrEnum):
    """External programs whose credentials can be snapshotted."""

    CODEX = 'codex'
    CLAUDE = 'claude'
    PI = 'pi'


@dataclass(frozen=True)
class ToolSpec:
    """Home-relative auth file locations for one tool.

    ``merges_providers`` marks the multi-provider tool: ``use`` merges snapshot
    providers into the runtime file and ``active`` matches by provider subset.
    """

    runtime: tuple[str, ...]
    candidates: tuple[tuple[str, ...], ...]
    merges_providers: bool = False


TOOL_SPECS: Mapping[Tool, ToolSpec] = {
    Tool.CODEX: ToolSpec(
        runtime=('.codex', 'auth.json'),
        candidates=(('.codex', 'auth.json'),),
    ),
    Tool.CLAUDE: ToolSpec(
        runtime=('.claude.json',),
        candidates=(
            ('.claude.json',),
            ('.claude', 'auth.json'),
            ('.config', 'claude', 'auth.json'),
            ('.claude.json.backup',),
        ),
    ),
    Tool.PI: ToolSpec(
        runtime=('.pi', 'agent', 'auth.json'),
        candidates=(('.pi', 'agent', 'auth.json'),),
        merges_providers=True,
    ),
}

# Selector shorthand → pi provider key
PROVIDER_ALIASES: Mapping[str, str] = {
    'codex': 'openai-codex',
    'claude': 'anthropic',
}


@dataclass(frozen=True)
class ToolPaths:
    """Absolute auth file locations for one tool under a resolved home."""

    runtime: Path
    candidates: Sequence[Path]


def resolve_tool_paths(home: Path) -> Mapping[Tool, ToolPaths]:
    """Anchor every tool's relative locations at ``home``."""
    return {
        tool: ToolPaths(
            runtime=home.joinpath(*spec.runtime),
            candidates=tuple(home.joinpath(*parts) for parts in spec.candidates),
        )
        for tool, spec in TOOL_SPECS.items()
    }


def parse_tool(value: str) -> Tool | None:
    """Exact match against the enumeration. Used for state entries."""
    try:
        return Tool(value)
    except ValueError:
        return None


def require_tool(value: str | Tool) -> Tool:
    """Parse user input (case-insensitive) or raise InvalidArgumentError."""
    if isinstance(value, Tool):
        return value
    tool = parse_tool(value.strip().lower())
    if tool is None:
        expected = ', '.join(t.value for t in Tool)
        raise InvalidArgumentError(f'invalid tool {value!r}. expected one of: {expected}')
    return tool


def validate_label(label: str) -> str:
    """Return the label unchanged if it is non-empty and matches LABEL_PATTERN."""
    if not label or not label.strip():
        raise InvalidArgumentError('label is required')
    if not LABEL_PATTERN.fullmatch(label):
        raise InvalidArgumentError('label must match [A-Za-z0-9._-]+')
    return label


def validate_provider_selector(tool: Tool, provider: str | None) -> str | None:
    """Normalize an optional provider selector; only the multi-provider tool accepts one."""
    if provider is None or not provider.strip():
        return None
    if not TOOL_SPECS[tool].merges_providers:
        raise InvalidArgumentError(f'provider selector is only supported for tool={Tool.PI.value}')
    return provider.strip()
