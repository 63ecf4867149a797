"""Snapshot/state manager: save, use, delete, list and active.

Every operation loads ``state.json`` fresh, works, and (if it mutates)
rewrites it atomically before returning. There is no lock and no cross-file
transaction: each file moves wholly from old to new content, and ``use`` is
the one place that undoes a runtime write when the state write after it fails.

Layout under the data root::

    state.json                        version, entries, identities
    snapshots/<tool>/<label>.json     saved auth payloads (mode 0600)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import pydantic

from ags.errors import (
    AgsError,
    FileOperationError,
    OperationBoundary,
    PayloadError,
    ProfileNotFoundError,
    RollbackError,
    SerializationError,
    SourceNotFoundError,
)
from ags.identity import backfill_identity, reconcile_identity
from ags.insight import inspect_auth
from ags.paths import SNAPSHOTS_DIRNAME, STATE_FILENAME
from ags.providers import dump_json_object, merge_providers, providers_subset_match, select_provider
from ags.schemas import (
    ActiveItem,
    AuthInsight,
    ChangeSignal,
    DeleteResult,
    IdentityRecord,
    ListItem,
    SaveResult,
    State,
    StateEntry,
    UseResult,
    state_key,
)
from ags.store import (
    HomeResolver,
    atomic_write,
    expand_path,
    read_file,
    read_optional,
    resolve_home,
    sha256_hex,
    validate_json_object,
)
from ags.tools import (
    TOOL_SPECS,
    Tool,
    ToolPaths,
    parse_tool,
    require_tool,
    resolve_tool_paths,
    validate_label,
    validate_provider_selector,
)

__all__ = [
    'Clock',
    'JsonStateCodec',
    'SnapshotManager',
    'StateCodec',
]

logger = logging.getLogger(__name__)

type Clock = Callable[[], datetime]

SNAPSHOT_UNREADABLE = 'snapshot missing or unreadable'
AMBIGUOUS_DETAIL = 'multiple saved labels match current runtime auth'


class StateCodec(Protocol):
    """Converts the state document to and from bytes."""

    def encode(self, state: State) -> bytes: ...

    def decode(self, raw: bytes) -> State: ...


class JsonStateCodec:
    """Pretty-printed JSON with a trailing newline; unset optional fields omitted."""

    def encode(self, state: State) -> bytes:
        return (state.model_dump_json(indent=2, exclude_none=True) + '\n').encode()

    def decode(self, raw: bytes) -> State:
        payload = validate_json_object(raw)
        try:
            return State.model_validate(payload)
        except pydantic.ValidationError as exc:
            raise PayloadError(f'invalid state document: {exc.error_count()} error(s) in {exc.title}') from exc


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _stamp(now: datetime) -> datetime:
    """Persisted timestamps are second precision."""
    return now.replace(microsecond=0)


def _change_signal(last_used_sha256: str | None, digest: str) -> ChangeSignal:
    if not last_used_sha256:
        return 'first use'
    if last_used_sha256 == digest:
        return 'unchanged since last use'
    return 'changed since last use (likely refreshed)'


def _updated_state(
    state: State,
    *,
    entries: Mapping[str, StateEntry] | None = None,
    identities: Mapping[str, IdentityRecord] | None = None,
) -> State:
    update: dict[str, object] = {}
    if entries is not None:
        update['entries'] = entries
    if identities is not None:
        update['identities'] = identities
    return state.model_copy(update=update)


class SnapshotManager:
    """Saves and restores labeled auth snapshots under a data root.

    Args:
        root: Data root. ``~`` and ``~/...`` are expanded with ``home_dir``.
        home_dir: Home directory resolver, used for ``~`` and for every tool's
            default runtime and candidate source paths.
        codec: State document codec.
        clock: Source of "now" for insight classification and timestamps.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        home_dir: HomeResolver = Path.home,
        codec: StateCodec | None = None,
        clock: Clock = _utc_now,
    ) -> None:
        self._home_dir = home_dir
        self._root = expand_path(root, home_dir)
        self._tool_paths = resolve_tool_paths(resolve_home(home_dir))
        self._codec: StateCodec = codec or JsonStateCodec()
        self._clock = clock

    # --- Paths ---

    @property
    def root(self) -> Path:
        return self._root

    @property
    def state_path(self) -> Path:
        return self._root / STATE_FILENAME

    def snapshot_path(self, tool: Tool, label: str) -> Path:
        return self._root / SNAPSHOTS_DIRNAME / tool.value / f'{label}.json'

    def tool_paths(self, tool: Tool) -> ToolPaths:
        return self._tool_paths[tool]

    # --- State document ---

    def load_state(self) -> State:
        """Load state.json; a missing file is an empty state."""
        with OperationBoundary('reading state'):
            raw = read_optional(self.state_path)
        if raw is None:
            return State()
        with OperationBoundary('parsing state'):
            state = self._codec.decode(raw)
        logger.debug('loaded state: %d entries, %d identities', len(state.entries), len(state.identities))
        return state

    def save_state(self, state: State) -> None:
        with OperationBoundary('serializing state'):
            try:
                raw = self._codec.encode(state)
            except (TypeError, ValueError) as exc:
                raise SerializationError(str(exc)) from exc
        with OperationBoundary('writing state'):
            atomic_write(self.state_path, raw)

    # --- Operations ---

    def save(
        self,
        tool: Tool | str,
        label: str,
        source: str | Path | None = None,
        provider: str | None = None,
    ) -> SaveResult:
        """Copy the tool's current auth file into the snapshot slot for ``label``."""
        tool = require_tool(tool)
        validate_label(label)
        selector = validate_provider_selector(tool, provider)

        source_path = self._resolve_source(tool, source)
        with OperationBoundary('reading source auth file'):
            raw = read_file(source_path)
        with OperationBoundary('source is not a valid JSON object'):
            payload = validate_json_object(raw)
        if selector is not None:
            raw = dump_json_object(select_provider(payload, selector))

        snapshot_path = self.snapshot_path(tool, label)
        with OperationBoundary('writing snapshot'):
            atomic_write(snapshot_path, raw)
        digest = sha256_hex(raw)

        state = self.load_state()
        key = state_key(tool.value, label)
        previous = state.entries.get(key)
        changed = previous is None or previous.sha256 != digest

        now = self._clock()
        insight, identities = reconcile_identity(inspect_auth(tool, raw, now), state.identities, _stamp(now))
        entry = StateEntry(
            tool=tool.value,
            label=label,
            source_path=str(source_path),
            snapshot_path=str(snapshot_path),
            sha256=digest,
            saved_at=_stamp(now),
            last_used_at=previous.last_used_at if previous else None,
            last_used_sha256=previous.last_used_sha256 if previous else None,
        )
        self.save_state(_updated_state(state, entries={**state.entries, key: entry}, identities=identities))
        logger.debug('saved %s from %s (changed=%s)', key, source_path, changed)

        return SaveResult(
            tool=tool.value,
            label=label,
            source_path=source_path,
            snapshot_path=snapshot_path,
            changed_since_last_save=changed,
            insight=insight,
        )

    def use(
        self,
        tool: Tool | str,
        label: str,
        target: str | Path | None = None,
        provider: str | None = None,
    ) -> UseResult:
        """Write the saved snapshot for ``label`` into the tool's runtime auth file."""
        tool = require_tool(tool)
        validate_label(label)
        selector = validate_provider_selector(tool, provider)

        state = self.load_state()
        key = state_key(tool.value, label)
        entry = state.entries.get(key)
        if entry is None:
            raise ProfileNotFoundError(
                f'no saved profile for {tool} label="{label}"; run `ags save {tool} {label}` first'
            )

        with OperationBoundary('reading snapshot file'):
            snapshot_raw = read_file(Path(entry.snapshot_path))
        with OperationBoundary('snapshot JSON invalid'):
            snapshot = validate_json_object(snapshot_raw)
        applied_raw = snapshot_raw
        applied = snapshot
        if selector is not None:
            applied = select_provider(snapshot, selector)
            applied_raw = dump_json_object(applied)

        target_path = self._resolve_target(tool, target)
        with OperationBoundary('reading target auth file'):
            prior = read_optional(target_path)
        if TOOL_SPECS[tool].merges_providers and prior is not None:
            with OperationBoundary('target auth JSON invalid'):
                current = validate_json_object(prior)
            rendered = dump_json_object(merge_providers(current, applied))
        else:
            rendered = applied_raw
        with OperationBoundary('writing target auth file'):
            atomic_write(target_path, rendered)

        # Digest of the whole snapshot, before provider filtering
        digest = sha256_hex(snapshot_raw)
        change_signal = _change_signal(entry.last_used_sha256, digest)

        now = self._clock()
        insight, identities = reconcile_identity(inspect_auth(tool, rendered, now), state.identities, _stamp(now))
        used = entry.model_copy(update={'last_used_at': _stamp(now), 'last_used_sha256': digest})
        try:
            self.save_state(_updated_state(state, entries={**state.entries, key: used}, identities=identities))
        except Exception as exc:
            raise self._rollback_target(target_path, prior, exc) from exc
        logger.debug('applied %s to %s (%s)', key, target_path, change_signal)

        return UseResult(
            tool=tool.value,
            label=label,
            target_path=target_path,
            change_signal=change_signal,
            insight=insight,
        )

    def delete(self, tool: Tool | str, label: str) -> DeleteResult:
        """Remove the snapshot file and state entry for ``label``. Runtime files are untouched."""
        tool = require_tool(tool)
        validate_label(label)

        state = self.load_state()
        key = state_key(tool.value, label)
        entry = state.entries.get(key)
        if entry is None:
            raise ProfileNotFoundError(f'no saved snapshot for {tool} label="{label}"')

        snapshot_path = Path(entry.snapshot_path)
        with OperationBoundary('deleting snapshot file'):
            try:
                snapshot_path.unlink()
                deleted = True
            except FileNotFoundError:
                deleted = False

        remaining = {k: v for k, v in state.entries.items() if k != key}
        self.save_state(_updated_state(state, entries=remaining))
        logger.debug('deleted %s (snapshot file removed=%s)', key, deleted)

        return DeleteResult(tool=tool.value, label=label, snapshot_path=snapshot_path, snapshot_deleted=deleted)

    def list_profiles(self, tool: Tool | str | None = None) -> Sequence[ListItem]:
        """Saved entries with their current insight, sorted by (tool, label)."""
        tool_filter = require_tool(tool) if tool is not None else None
        state = self.load_state()
        now = self._clock()

        items: list[ListItem] = []
        for entry in state.entries.values():
            parsed = parse_tool(entry.tool)
            if parsed is None:
                continue
            if tool_filter is not None and parsed is not tool_filter:
                continue
            snapshot_path = Path(entry.snapshot_path)
            insight = backfill_identity(self._snapshot_insight(parsed, snapshot_path, now), state.identities)
            items.append(
                ListItem(
                    tool=parsed.value,
                    label=entry.label,
                    saved_at=entry.saved_at,
                    last_used_at=entry.last_used_at,
                    snapshot_path=snapshot_path,
                    insight=insight,
                )
            )

        items.sort(key=lambda item: (item.tool, item.label))
        return items

    def active(self, tool: Tool | str | None = None) -> Sequence[ActiveItem]:
        """Report which saved label, if any, matches each tool's runtime auth file."""
        tools = (require_tool(tool),) if tool is not None else tuple(Tool)
        state = self.load_state()

        items: list[ActiveItem] = []
        for current in tools:
            runtime_path = self._tool_paths[current].runtime
            entries = [entry for entry in state.entries.values() if parse_tool(entry.tool) is current]
            if not entries:
                items.append(ActiveItem(tool=current.value, status='no saved profiles', runtime_path=runtime_path))
                continue

            with OperationBoundary(f'reading runtime auth file for {current}'):
                runtime_raw = read_optional(runtime_path)
            if runtime_raw is None:
                items.append(
                    ActiveItem(tool=current.value, status='runtime auth file missing', runtime_path=runtime_path)
                )
                continue
            try:
                runtime = validate_json_object(runtime_raw)
            except PayloadError:
                items.append(
                    ActiveItem(tool=current.value, status='runtime auth JSON invalid', runtime_path=runtime_path)
                )
                continue

            if TOOL_SPECS[current].merges_providers:
                labels = [entry.label for entry in entries if self._snapshot_contained_in(entry, runtime)]
            else:
                runtime_digest = sha256_hex(runtime_raw)
                labels = [entry.label for entry in entries if entry.sha256 == runtime_digest]
            items.append(_active_item(current, runtime_path, sorted(labels)))

        return items

    def inspect(self, tool: Tool | str, raw: bytes) -> AuthInsight:
        """Insight for arbitrary auth bytes, backfilled from the identity cache."""
        tool = require_tool(tool)
        insight = inspect_auth(tool, raw, self._clock())
        return backfill_identity(insight, self.load_state().identities)

    # --- Private ---

    def _resolve_source(self, tool: Tool, source: str | Path | None) -> Path:
        if source is not None and str(source).strip():
            path = expand_path(source, self._home_dir)
            if not path.exists():
                raise SourceNotFoundError(f'source path does not exist: {path}', attempted=(path,))
            return path

        candidates = tuple(self._tool_paths[tool].candidates)
        for candidate in candidates:
            if candidate.exists():
                return candidate
        tried = ', '.join(str(candidate) for candidate in candidates)
        raise SourceNotFoundError(
            f'could not find {tool} auth file. tried: {tried}. pass --source <path>',
            attempted=candidates,
        )

    def _resolve_target(self, tool: Tool, target: str | Path | None) -> Path:
        if target is None or not str(target).strip():
            return self._tool_paths[tool].runtime
        return expand_path(target, self._home_dir)

    def _rollback_target(self, target: Path, prior: bytes | None, original: Exception) -> RollbackError:
        """Put the runtime target back the way ``use`` found it."""
        try:
            with OperationBoundary('rolling back target auth file'):
                if prior is None:
                    target.unlink(missing_ok=True)
                else:
                    atomic_write(target, prior)
        except AgsError as rollback_error:
            logger.error('rollback of %s failed after state write error: %s', target, rollback_error)
            return RollbackError(
                f'{original}; rollback of {target} failed: {rollback_error}',
                original=original,
                target=target,
                rollback_error=rollback_error,
            )

        outcome = 'restored previous content' if prior is not None else 'removed newly written file'
        logger.warning('state write failed; rolled back %s (%s)', target, outcome)
        return RollbackError(f'{original}; rolled back {target} ({outcome})', original=original, target=target)

    def _snapshot_insight(self, tool: Tool, snapshot_path: Path, now: datetime) -> AuthInsight:
        try:
            raw = read_optional(snapshot_path)
        except FileOperationError:
            raw = None
        if raw is None:
            return AuthInsight.unknown(SNAPSHOT_UNREADABLE)
        return inspect_auth(tool, raw, now)

    def _snapshot_contained_in(self, entry: StateEntry, runtime: Mapping[str, object]) -> bool:
        """Unreadable or invalid snapshots never match."""
        try:
            raw = read_optional(Path(entry.snapshot_path))
            if raw is None:
                return False
            snapshot = validate_json_object(raw)
        except (FileOperationError, PayloadError) as exc:
            logger.debug('skipping %s in active match: %s', entry.key, exc)
            return False
        return providers_subset_match(snapshot, runtime)


def _active_item(tool: Tool, runtime_path: Path, labels: Sequence[str]) -> ActiveItem:
    if not labels:
        return ActiveItem(tool=tool.value, status='no matching saved profile', runtime_path=runtime_path)
    if len(labels) == 1:
        return ActiveItem(tool=tool.value, status='match', runtime_path=runtime_path, matched_labels=(labels[0],))
    return ActiveItem(
        tool=tool.value,
        status='ambiguous',
        runtime_path=runtime_path,
        matched_labels=tuple(labels),
        details=(AMBIGUOUS_DETAIL,),
    )
