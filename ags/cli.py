"""ags: save, switch and inspect coding-agent auth snapshots.

Commands:
    save <tool> [label]     Save the tool's current auth file under a label
    use <tool> [label]      Write a saved snapshot into the tool's runtime auth file
    delete <tool> [label]   Remove a saved snapshot and its state entry
    list [tool]             Saved snapshots with status and expiry
    active [tool]           Which saved label matches each runtime auth file
    inspect <tool> <path>   Insight for an arbitrary auth file
    version                 Show the CLI version

Tools: codex, claude, pi. Labels must match [A-Za-z0-9._-]+.

The data root defaults to $AGS_ROOT, else $XDG_CONFIG_HOME/ags, else
~/.config/ags; --root overrides it per command. Set AGS_DEBUG=1 (or pass
--debug) for debug logging on stderr.

Quick start:
    ags save codex work
    ags use codex work
    ags active codex
    ags list --verbose
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

import rich.console
import typer

from ags import __version__
from ags.error_boundary import ErrorBoundary
from ags.errors import AgsError, InvalidArgumentError, OperationBoundary
from ags.insight import format_timestamp
from ags.manager import SnapshotManager
from ags.paths import default_root
from ags.schemas import AuthInsight
from ags.store import expand_path, read_file

__all__ = [
    'app',
    'format_human_time',
    'humanize_delta',
    'main',
    'resolve_label',
]

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

console = rich.console.Console(highlight=False, soft_wrap=True)
err_console = rich.console.Console(stderr=True, highlight=False, soft_wrap=True)

boundary = ErrorBoundary()


@boundary.handler(AgsError)
def _handle_ags_error(exc: AgsError) -> None:
    logger.debug('command failed', exc_info=exc)
    err_console.print(f'Error: {exc}', markup=False)


# =============================================================================
# Label resolution
# =============================================================================


def resolve_label(label_option: str | None, label_short: str | None, positionals: Sequence[str]) -> str:
    """Reconcile the positional label with ``--label`` and ``-l``; all given values must agree."""
    if len(positionals) > 1:
        raise InvalidArgumentError('too many arguments; provide exactly one label')
    candidates = [value.strip() for value in (label_option, label_short, *positionals) if value and value.strip()]
    if not candidates:
        raise InvalidArgumentError('label is required')
    label = candidates[0]
    if any(candidate != label for candidate in candidates[1:]):
        raise InvalidArgumentError('conflicting labels provided via positional and flag values')
    return label


# =============================================================================
# Display helpers
# =============================================================================


def _plural(count: int, unit: str) -> str:
    return f'{count} {unit}' if count == 1 else f'{count} {unit}s'


def humanize_delta(delta: timedelta) -> str:
    """``in 2 hours 5 minutes`` / ``3 days 4 hours ago``; at most two units, minutes dropped past a day."""
    if delta == timedelta(0):
        return 'now'
    future = delta > timedelta(0)
    remaining = abs(delta)

    days = remaining.days
    hours = remaining.seconds // 3600
    minutes = (remaining.seconds % 3600) // 60

    parts: list[str] = []
    if days:
        parts.append(_plural(days, 'day'))
    if hours:
        parts.append(_plural(hours, 'hour'))
    if not days and minutes:
        parts.append(_plural(minutes, 'minute'))
    text = ' '.join(parts) or 'less than a minute'
    return f'in {text}' if future else f'{text} ago'


def _format_absolute(value: datetime) -> str:
    value = value.astimezone(UTC)
    hour = value.hour % 12 or 12
    return f'{value:%a, %b} {value.day}, {value.year}, {hour}:{value:%M %p} UTC'


def format_human_time(value: datetime | str, now: datetime | None = None) -> str:
    """Relative time followed by the absolute UTC time. Unparseable strings are returned as is."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    relative = humanize_delta(value - (now or datetime.now(UTC)))
    return f'{relative} ({_format_absolute(value)})'


def _summarize_expiry(expires_at: datetime | None) -> str:
    if expires_at is None:
        return '-'
    return humanize_delta(expires_at - datetime.now(UTC))


def _print_insight(insight: AuthInsight, verbose: bool) -> None:
    console.print(f'- status: {insight.status}', markup=False)
    console.print(f'- needs refresh: {insight.needs_refresh}', markup=False)
    if insight.expires_at is not None:
        console.print(f'- expires: {format_human_time(insight.expires_at)}', markup=False)
    if insight.last_refresh:
        console.print(f'- last refresh: {format_human_time(insight.last_refresh)}', markup=False)
    if not verbose:
        return
    if insight.account_id:
        console.print(f'- account id: {insight.account_id}', markup=False)
    for detail in insight.details:
        console.print(f'- detail: {detail}', markup=False)


def _manager(root: str | None) -> SnapshotManager:
    return SnapshotManager(root or default_root())


# =============================================================================
# CLI
# =============================================================================

app = typer.Typer(
    help='Coding agent account switcher: save and switch labeled auth snapshots.',
    add_completion=False,
    no_args_is_help=True,
)

ROOT_HELP = 'AGS data root (default: $AGS_ROOT, $XDG_CONFIG_HOME/ags or ~/.config/ags)'


@app.callback()
def _app_main(
    debug: bool = typer.Option(False, '--debug', envvar='AGS_DEBUG', help='Log debug records to stderr'),
) -> None:
    """Coding agent account switcher."""
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING, format=LOG_FORMAT)


@app.command('save')
@boundary
def cli_save(
    tool: str = typer.Argument(..., help='codex, claude or pi'),
    labels: list[str] | None = typer.Argument(None, metavar='[LABEL]', help='Profile label, e.g. work'),
    label_option: str | None = typer.Option(None, '--label', help='Profile label, e.g. work'),
    label_short: str | None = typer.Option(None, '-l', help='Profile label, e.g. work'),
    source: str | None = typer.Option(None, '--source', help='Override source auth file path'),
    provider: str | None = typer.Option(
        None, '--provider', help='For pi only: save just one provider (codex, anthropic, or provider key)'
    ),
    root: str | None = typer.Option(None, '--root', help=ROOT_HELP),
    verbose: bool = typer.Option(False, '--verbose', help='Print additional detail lines'),
) -> None:
    """Save current tool auth JSON as a labeled snapshot."""
    label = resolve_label(label_option, label_short, labels or [])
    result = _manager(root).save(tool, label, source=source, provider=provider)

    console.print(f'Saved {result.insight.identity or result.tool} for {result.label}', markup=False)
    if verbose:
        console.print(f'- source: {result.source_path}', markup=False)
        console.print(f'- snapshot: {result.snapshot_path}', markup=False)
        if result.changed_since_last_save:
            console.print('- change: changed since last save (new auth snapshot)')
        else:
            console.print('- change: unchanged since last save')
        _print_insight(result.insight, verbose=True)


@app.command('use')
@boundary
def cli_use(
    tool: str = typer.Argument(..., help='codex, claude or pi'),
    labels: list[str] | None = typer.Argument(None, metavar='[LABEL]', help='Profile label to activate'),
    label_option: str | None = typer.Option(None, '--label', help='Profile label to activate'),
    label_short: str | None = typer.Option(None, '-l', help='Profile label to activate'),
    target: str | None = typer.Option(None, '--target', help='Override runtime auth destination'),
    provider: str | None = typer.Option(
        None, '--provider', help='For pi only: apply just one provider (codex, anthropic, or provider key)'
    ),
    root: str | None = typer.Option(None, '--root', help=ROOT_HELP),
    verbose: bool = typer.Option(False, '--verbose', help='Print additional detail lines'),
) -> None:
    """Activate a saved labeled snapshot for a tool.

    For pi, only the providers in the saved snapshot are merged into the
    existing runtime auth file.
    """
    label = resolve_label(label_option, label_short, labels or [])
    result = _manager(root).use(tool, label, target=target, provider=provider)

    console.print(f'Using {result.insight.identity or result.tool} for {result.label}', markup=False)
    if verbose:
        console.print(f'- target: {result.target_path}', markup=False)
        console.print(f'- refresh signal: {result.change_signal}', markup=False)
        _print_insight(result.insight, verbose=True)


@app.command('delete')
@boundary
def cli_delete(
    tool: str = typer.Argument(..., help='codex, claude or pi'),
    labels: list[str] | None = typer.Argument(None, metavar='[LABEL]', help='Profile label to delete'),
    label_option: str | None = typer.Option(None, '--label', help='Profile label to delete'),
    label_short: str | None = typer.Option(None, '-l', help='Profile label to delete'),
    root: str | None = typer.Option(None, '--root', help=ROOT_HELP),
) -> None:
    """Remove a saved labeled snapshot and its metadata. The runtime auth file is untouched."""
    label = resolve_label(label_option, label_short, labels or [])
    result = _manager(root).delete(tool, label)

    console.print(f'Deleted {result.tool} label={result.label}', markup=False)
    console.print(f'- snapshot: {result.snapshot_path}', markup=False)
    console.print(f'- snapshot file: {"removed" if result.snapshot_deleted else "already missing"}')
    console.print('- state: removed')


@app.command('list')
@boundary
def cli_list(
    tool: str | None = typer.Argument(None, help='Only show this tool'),
    root: str | None = typer.Option(None, '--root', help=ROOT_HELP),
    verbose: bool = typer.Option(False, '--verbose', help='Show account, timestamps, snapshot path and details'),
) -> None:
    """List saved snapshots with status and refresh signals."""
    items = _manager(root).list_profiles(tool)
    if not items:
        console.print('No saved profiles found.')
        return

    console.print('Saved profiles:')
    current_tool: str | None = None
    for item in items:
        if item.tool != current_tool:
            if current_tool is not None:
                console.print()
            current_tool = item.tool
            console.print(f'[bold]{current_tool}[/bold]')

        insight = item.insight
        console.print(
            f'  {item.label:<18} status={insight.status:<13} refresh={insight.needs_refresh:<7} '
            f'expires={_summarize_expiry(insight.expires_at)}',
            markup=False,
        )
        if not verbose:
            continue
        if insight.identity:
            console.print(f'    account: {insight.identity}', markup=False)
        if insight.last_refresh:
            console.print(f'    last refresh: {format_human_time(insight.last_refresh)}', markup=False)
        console.print(f'    saved: {format_human_time(item.saved_at)}', markup=False)
        if item.last_used_at is not None:
            console.print(f'    last used: {format_human_time(item.last_used_at)}', markup=False)
        console.print(f'    snapshot: {item.snapshot_path}', markup=False)
        for detail in insight.details:
            console.print(f'    detail: {detail}', markup=False)


@app.command('active')
@boundary
def cli_active(
    tool: str | None = typer.Argument(None, help='Only show this tool'),
    root: str | None = typer.Option(None, '--root', help=ROOT_HELP),
    verbose: bool = typer.Option(False, '--verbose', help='Print additional detail lines'),
) -> None:
    """Show which saved profile is currently active."""
    items = _manager(root).active(tool)

    console.print('tool\tactive label\tstatus\truntime')
    for item in items:
        console.print(
            f'{item.tool}\t{item.active_label or "-"}\t{item.status}\t{item.runtime_path}',
            markup=False,
        )
        if verbose:
            for detail in item.details:
                console.print(f'  detail={detail}', markup=False)


@app.command('inspect')
@boundary
def cli_inspect(
    tool: str = typer.Argument(..., help='codex, claude or pi'),
    path: str = typer.Argument(..., help='Auth file to inspect'),
    root: str | None = typer.Option(None, '--root', help=ROOT_HELP),
) -> None:
    """Show status, expiry, identity and token diagnostics for any auth file."""
    manager = _manager(root)
    auth_path = expand_path(path, Path.home)
    with OperationBoundary('reading auth file'):
        raw = read_file(auth_path)
    insight = manager.inspect(tool, raw)

    console.print(f'{tool} {auth_path}', markup=False)
    if insight.identity:
        console.print(f'- account: {insight.identity}', markup=False)
    if insight.expires_at is not None:
        console.print(f'- expires at: {format_timestamp(insight.expires_at)}', markup=False)
    _print_insight(insight, verbose=True)


@app.command('version')
def cli_version() -> None:
    """Show CLI version."""
    console.print(f'ags version {__version__}', markup=False)


def main() -> None:
    app(prog_name='ags')


if __name__ == '__main__':
    main()
