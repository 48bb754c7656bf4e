"""archgroup CLI application entry point.

Built with `Typer <https://typer.tiangolo.com/>`_ and
`Rich <https://rich.readthedocs.io/>`_. Every command loads the graph from
the JSON file given by ``--graph``, runs one operation against it and writes
it back when the operation changed something.

Example usage::

    archgroup --graph model.json group Shop
    archgroup --graph model.json save Shop before-refactor
    archgroup --graph model.json diff Shop before-refactor
    archgroup --graph model.json rollback Shop before-refactor
    archgroup --graph model.json hide 42
    archgroup --graph model.json delete Shop module 17
    archgroup --graph model.json rename-level Shop "Old name" "New name"
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from archgroup.aggregation import AggregationEngine
from archgroup.backup import BackupManager
from archgroup.cli.errors import EXIT_NOT_FOUND, CLIError, ConfigError, error_handler
from archgroup.cli.logging_setup import setup_logging
from archgroup.config import GroupingConfig, load_config
from archgroup.events import LoggingSink
from archgroup.grouping import GroupingEngine
from archgroup.models.enums import Dimension
from archgroup.models.results import GroupingResult, VisibilityChange
from archgroup.store.memory import InMemoryGraphStore
from archgroup.visibility import VisibilityStateMachine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="archgroup",
    help="archgroup – group tagged model artifacts into containers of a property graph.",
    add_completion=False,
    no_args_is_help=True,
)

_console = Console(stderr=True)
_out_console = Console()  # stdout for data output

DEFAULT_GRAPH = Path("graph.json")


@dataclass
class _CliState:
    graph: Path
    config: GroupingConfig


def _state(ctx: typer.Context) -> _CliState:
    state = ctx.obj
    if not isinstance(state, _CliState):
        raise CLIError("CLI state missing; run through the archgroup entry point.")
    return state


def _load_store(state: _CliState) -> InMemoryGraphStore:
    if not state.graph.exists():
        raise CLIError(f"Graph file not found: {state.graph}")
    try:
        return InMemoryGraphStore.load(state.graph)
    except ValueError as exc:
        raise CLIError(f"Failed to read graph '{state.graph}': {exc}") from exc


def _save_store(state: _CliState, store: InMemoryGraphStore, writes_before: int) -> None:
    if store.write_count == writes_before:
        logger.debug("No changes; %s left untouched", state.graph)
        return
    store.dump(state.graph)
    logger.debug("Wrote %s (%d write(s))", state.graph, store.write_count - writes_before)


def _engine(store: InMemoryGraphStore, config: GroupingConfig) -> GroupingEngine:
    return GroupingEngine(store, config, LoggingSink())


# ---------------------------------------------------------------------------
# Version callback
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from archgroup import __version__

        _console.print(f"archgroup {__version__}")
        raise typer.Exit()


# ---------------------------------------------------------------------------
# Main callback (global options)
# ---------------------------------------------------------------------------


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) output.",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration TOML file.",
    ),
    graph: Path = typer.Option(
        DEFAULT_GRAPH,
        "--graph",
        "-g",
        help="Graph JSON file to operate on.",
    ),
) -> None:
    """Global options for the archgroup CLI."""
    with error_handler(_console):
        if config is not None and not config.exists():
            raise ConfigError(f"Configuration file not found: {config}")
        try:
            settings = load_config(config_path=config)
        except ValueError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
        level = "DEBUG" if verbose else settings.log_level
        setup_logging(level, settings.log_file)
        ctx.obj = _CliState(graph=graph, config=settings)


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _render_result(result: GroupingResult) -> None:
    table = Table(title=f"{result.dimension.value} in {result.scope}")
    table.add_column("Container", style="cyan")
    table.add_column("Label")
    table.add_column("Count", justify="right")
    for container in result.containers_touched:
        table.add_row(container.full_name or container.name, container.label, str(container.count))
    _out_console.print(table)
    _out_console.print(
        f"  re-wired: {len(result.rewired)}  unchanged: {len(result.unchanged)}  "
        f"created: {len(result.created)}  pruned: {len(result.pruned)}  "
        f"missing: {len(result.missing)}"
    )
    for conflict in result.conflicts:
        _console.print(
            f"  [yellow]member {conflict.member_id}: kept {'/'.join(conflict.kept)}, "
            f"discarded {'/'.join(conflict.discarded)}[/yellow]"
        )
    for tag in result.malformed_tags:
        _console.print(f"  [yellow]malformed tag skipped: {tag}[/yellow]")


def _render_change(change: VisibilityChange) -> None:
    _out_console.print(
        f"Node {change.node_id} is {change.state.value}; {len(change.changed)} node(s) changed"
    )


# ---------------------------------------------------------------------------
# group / ungroup
# ---------------------------------------------------------------------------


@app.command()
def group(
    ctx: typer.Context,
    scope: Optional[str] = typer.Argument(
        None, help="Application label to group. Defaults to every tagged scope."
    ),
    dimension: Optional[list[Dimension]] = typer.Option(
        None,
        "--dimension",
        "-d",
        help="Dimension to group (repeatable). Defaults to all.",
    ),
    clean_tags: bool = typer.Option(
        False, "--clean-tags", help="Remove grouping tags once they are applied."
    ),
    json_output: bool = typer.Option(
        False, "--json", "-j", help="Print results as JSON to stdout."
    ),
) -> None:
    """Group members into containers according to their tags."""
    with error_handler(_console):
        state = _state(ctx)
        config = state.config.model_copy(update={"clean_tags": True}) if clean_tags else state.config
        store = _load_store(state)
        before = store.write_count
        engine = _engine(store, config)

        scopes = [scope] if scope else engine.discover_scopes()
        if not scopes:
            _console.print("[yellow]No tagged members found.[/yellow]")
            return

        payload: dict[str, dict[str, object]] = {}
        try:
            for name in scopes:
                results = engine.group_from_tags(name, dimension or None)
                payload[name] = {
                    d.value: r.model_dump(mode="json") for d, r in results.items()
                }
                if not json_output:
                    for result in results.values():
                        if result.containers_touched or result.rewired or result.conflicts:
                            _render_result(result)
        finally:
            _save_store(state, store, before)

        if json_output:
            _out_console.print_json(json.dumps(payload))


@app.command()
def ungroup(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
    dimension: Dimension = typer.Argument(..., help="Dimension to detach from."),
    member_ids: list[int] = typer.Argument(..., help="Member node ids."),
) -> None:
    """Detach members from their container of one dimension."""
    with error_handler(_console):
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        try:
            result = _engine(store, state.config).ungroup(member_ids, dimension, scope)
        finally:
            _save_store(state, store, before)
        _render_result(result)


@app.command()
def delete(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
    dimension: Dimension = typer.Argument(..., help="Dimension of the container."),
    node_id: int = typer.Argument(..., help="Container node id."),
) -> None:
    """Delete a container and everything below it, detaching its members."""
    with error_handler(_console):
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        detached = _engine(store, state.config).delete_container(scope, dimension, node_id)
        _save_store(state, store, before)
        _console.print(f"[green]Deleted container {node_id}; {detached} member(s) detached[/green]")


@app.command("rename-level")
def rename_level(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
    old_name: str = typer.Argument(..., help="Current name of the level."),
    new_name: str = typer.Argument(..., help="New name of the level."),
) -> None:
    """Rename a leaf level and the Level property of its members."""
    with error_handler(_console):
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        try:
            renamed = _engine(store, state.config).rename_level(scope, old_name, new_name)
        except ValueError as exc:
            raise CLIError(str(exc)) from exc
        if not renamed:
            raise CLIError(f"No level named '{old_name}' in '{scope}'.", exit_code=EXIT_NOT_FOUND)
        _save_store(state, store, before)
        _console.print(f"[green]Renamed level '{old_name}' to '{new_name}'[/green]")


# ---------------------------------------------------------------------------
# Saves
# ---------------------------------------------------------------------------


def _backup(store: InMemoryGraphStore, config: GroupingConfig) -> BackupManager:
    return BackupManager(store, _engine(store, config), config, LoggingSink())


@app.command()
def save(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
    name: str = typer.Argument(..., help="Save name, unique in the scope."),
    description: str = typer.Option("", "--description", "-m", help="Free-text note."),
) -> None:
    """Save the current assignment of every member of a scope."""
    with error_handler(_console):
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        captured = _backup(store, state.config).save_state(scope, name, description)
        _save_store(state, store, before)
        _console.print(f"[green]Saved '{name}': {captured} member(s)[/green]")


@app.command()
def rollback(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
    name: str = typer.Argument(..., help="Save to restore."),
) -> None:
    """Restore every member of a scope to its assignment in a save."""
    with error_handler(_console):
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        try:
            result = _backup(store, state.config).rollback_to_save(scope, name)
        finally:
            _save_store(state, store, before)
        _console.print(
            f"[green]Rolled back to '{name}': {len(result.divergences)} divergence(s), "
            f"{result.restored} restored[/green]"
        )


@app.command("saves")
def list_saves(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
) -> None:
    """List the saves of a scope, oldest first."""
    with error_handler(_console):
        state = _state(ctx)
        saves = _backup(_load_store(state), state.config).list_saves(scope)
        if not saves:
            _console.print(f"[yellow]No saves in '{scope}'.[/yellow]")
            return
        table = Table(title=f"Saves in {scope}")
        table.add_column("Name", style="cyan")
        table.add_column("Timestamp")
        table.add_column("Members", justify="right")
        table.add_column("Description")
        for info in saves:
            stamp = info.timestamp.strftime("%Y-%m-%d %H:%M:%S") if info.timestamp else "-"
            table.add_row(info.name, stamp, str(info.member_count), info.description)
        _out_console.print(table)


@app.command()
def diff(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
    name: str = typer.Argument(..., help="Save to compare against."),
) -> None:
    """Show the members whose assignment differs from a save."""
    with error_handler(_console):
        state = _state(ctx)
        divergences = _backup(_load_store(state), state.config).get_differences(scope, name)
        if not divergences:
            _console.print(f"[green]No differences from '{name}'.[/green]")
            return
        table = Table(title=f"Differences from {name}")
        table.add_column("Member", justify="right")
        table.add_column("Dimension")
        table.add_column("Saved")
        table.add_column("Current")
        for d in divergences:
            table.add_row(
                str(d.member_id),
                d.dimension.value,
                "/".join(d.saved) if d.saved else "-",
                "/".join(d.current) if d.current else "-",
            )
        _out_console.print(table)


@app.command("delete-save")
def delete_save(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
    name: Optional[str] = typer.Argument(None, help="Save to delete."),
    all_saves: bool = typer.Option(False, "--all", help="Delete every save of the scope."),
) -> None:
    """Delete one save, or all saves of a scope."""
    with error_handler(_console):
        if name is None and not all_saves:
            raise CLIError("Give a save name or --all.")
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        manager = _backup(store, state.config)
        if name is None or all_saves:
            deleted = manager.delete_all_saves(scope)
            _console.print(f"[green]Deleted {deleted} save(s)[/green]")
        else:
            manager.delete_save(scope, name)
            _console.print(f"[green]Deleted save '{name}'[/green]")
        _save_store(state, store, before)


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


@app.command()
def hide(
    ctx: typer.Context,
    node_id: int = typer.Argument(..., help="Architecture, subset or module node id."),
) -> None:
    """Hide an architecture (cascading to its subsets), a subset or a module."""
    with error_handler(_console):
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        machine = VisibilityStateMachine(store, state.config, LoggingSink())
        change = machine.hide(node_id)
        _save_store(state, store, before)
        _render_change(change)


@app.command()
def show(
    ctx: typer.Context,
    node_id: int = typer.Argument(..., help="Architecture, subset or module node id."),
    only: bool = typer.Option(
        False,
        "--only",
        help="For an architecture, leave the subsets hidden by it untouched.",
    ),
) -> None:
    """Display an architecture (with its cascaded subsets), a subset or a module."""
    with error_handler(_console):
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        machine = VisibilityStateMachine(store, state.config, LoggingSink())
        change = machine.display(node_id, cascade=not only)
        _save_store(state, store, before)
        _render_change(change)


# ---------------------------------------------------------------------------
# Aggregations
# ---------------------------------------------------------------------------


@app.command()
def aggregate(
    ctx: typer.Context,
    scope: str = typer.Argument(..., help="Application label."),
    name: str = typer.Argument(..., help="Aggregation name."),
    custom: Optional[str] = typer.Option(
        None, "--custom", help="Custom container to create or extend."
    ),
    member_ids: Optional[list[int]] = typer.Option(
        None, "--member", "-m", help="Member node id to add to the custom (repeatable)."
    ),
    refresh: bool = typer.Option(
        True, "--refresh/--no-refresh", help="Refresh references between customs."
    ),
    delete: bool = typer.Option(False, "--delete", help="Delete the aggregation instead."),
) -> None:
    """Create, extend or delete an aggregation of custom containers."""
    with error_handler(_console):
        state = _state(ctx)
        store = _load_store(state)
        before = store.write_count
        engine = AggregationEngine(store, state.config, LoggingSink())

        if delete:
            deleted = engine.delete_aggregation_by_name(scope, name)
            _save_store(state, store, before)
            _console.print(f"[green]Deleted {deleted} node(s)[/green]")
            return

        aggregation = engine.find_or_create_aggregation(scope, name)
        if custom:
            engine.create_custom(scope, aggregation.id, custom, member_ids or [])
        if refresh:
            engine.refresh_aggregation(scope, aggregation.id)
        _save_store(state, store, before)

        table = Table(title=f"Aggregation {name}")
        table.add_column("Custom", style="cyan")
        table.add_column("Count", justify="right")
        for info in engine.list_customs(scope, aggregation.id):
            table.add_row(info.name, str(info.count))
        _out_console.print(table)
