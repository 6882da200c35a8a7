"""Typer-based CLI for 1C metadata cross-references and BSL call hierarchies."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import load_settings
from .config_manager import QUERY_KEYS, clear_query_config, save_query_value
from .corpus import CorpusIndex
from .errors import CorpusUnavailable, ModuleNotFound
from .metadata_types import lookup_type, parse_module_path
from .orchestrator import QueryError, QueryOrchestrator
from .report import render_call_graph, render_references
from .storage import ProjectManager, SymbolStore, snapshot_metadata

app = typer.Typer(
    help="xref: who references this 1C metadata object, who calls this BSL method.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
project_app = typer.Typer(help="Load and switch between project snapshots.", no_args_is_help=True)
config_app = typer.Typer(help="Show and change query settings.", no_args_is_help=True)
app.add_typer(project_app, name="project")
app.add_typer(config_app, name="config")

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"xref v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine diagnostics to stderr."),
):
    """xref: reference and call-graph queries over a loaded 1C project."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _fail(message: str) -> NoReturn:
    if not message.startswith("Error:"):
        message = f"Error: {message}"
    typer.echo(message.rstrip(), err=True)
    raise typer.Exit(code=1)


def _current_project(pm: ProjectManager) -> Tuple[str, Dict[str, Any]]:
    project = pm.get_current_project()
    if not project:
        _fail("No project loaded. Use 'xref project load <snapshot> --source <dir>'.")
    if not pm.project_dir(project).exists():
        _fail(f"Loaded project '{project}' does not exist.")
    return project, pm.project_metadata(project)


def _open_orchestrator(pm: ProjectManager) -> QueryOrchestrator:
    project, meta = _current_project(pm)
    source = meta.get("source_path")
    return QueryOrchestrator.for_project(
        pm.project_dir(project),
        Path(source) if source else None,
        settings=load_settings(),
    )


def _open_corpus(pm: ProjectManager) -> CorpusIndex:
    _, meta = _current_project(pm)
    source = meta.get("source_path")
    if not source:
        _fail("Current project has no BSL source directory.")
    try:
        return CorpusIndex(Path(source))
    except CorpusUnavailable as exc:
        _fail(str(exc))


def _echo_json(payload: Dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


# ===================================================================
# Project commands
# ===================================================================

@project_app.command("load")
def project_load(
    snapshot: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON export of the metadata graph."),
    source: Path = typer.Option(..., "--source", "-s", exists=True, file_okay=False, help="Project root holding src/."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Project name (defaults to the snapshot file name)."),
):
    """Import a graph snapshot and register its BSL sources as the current project."""
    try:
        payload = json.loads(snapshot.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        _fail(f"Cannot read snapshot {snapshot}: {exc}")

    pm = ProjectManager()
    project_name = name or snapshot.stem.replace(" ", "_")
    store = SymbolStore(pm.create_or_get_project(project_name), settings=load_settings(), create=True)
    try:
        counts = store.import_snapshot(payload)
    except (KeyError, ValueError) as exc:
        store.close()
        _fail(f"Invalid snapshot {snapshot}: {exc}")
    store.set_metadata(snapshot_metadata(source.resolve(), snapshot.resolve()))
    store.close()
    pm.set_current_project(project_name)

    typer.echo(f"Loaded '{snapshot.name}' as project '{project_name}'.")
    typer.echo(f"Symbols: {counts['symbols']} | Edges: {counts['edges']}")
    if not (source / "src").is_dir():
        typer.echo(f"Warning: no src/ directory under {source}; code references will be skipped.", err=True)


@project_app.command("list")
def project_list():
    """List loaded projects; the current one is starred."""
    pm = ProjectManager()
    projects = pm.list_projects()
    current = pm.get_current_project()

    if not projects:
        typer.echo("No projects loaded yet.")
        raise typer.Exit(code=0)

    for p in projects:
        marker = "*" if p == current else " "
        typer.echo(f"{marker} {p}")


@project_app.command("use")
def project_use(project_name: str = typer.Argument(..., help="Project to make current.")):
    """Switch the current project."""
    pm = ProjectManager()
    if project_name not in pm.list_projects():
        _fail(f"Project '{project_name}' not found.")
    pm.set_current_project(project_name)
    typer.echo(f"Using project '{project_name}'.")


@project_app.command("unload")
def project_unload():
    """Forget the current project without deleting it."""
    ProjectManager().unload_project()
    typer.echo("Unloaded current project.")


@project_app.command("delete")
def project_delete(project_name: str = typer.Argument(..., help="Project to delete.")):
    """Delete a project and its stored graph."""
    if not ProjectManager().delete_project(project_name):
        _fail(f"Project '{project_name}' not found.")
    typer.echo(f"Deleted project '{project_name}'.")


# ===================================================================
# Queries
# ===================================================================

@app.command("refs")
def refs(
    fqn: str = typer.Argument(..., help="Object FQN, e.g. Catalog.Products or Document.Order.Attribute.Customer."),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Items per category (1-500)."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
):
    """Find everything that references a metadata object."""
    orchestrator = _open_orchestrator(ProjectManager())
    try:
        result = orchestrator.find_references(fqn, limit)
    finally:
        orchestrator.close()

    if as_json:
        _echo_json(result.to_dict())
        if isinstance(result, QueryError):
            raise typer.Exit(code=1)
        return
    if isinstance(result, QueryError):
        _fail(result.render_markdown())
    typer.echo(render_references(result))


@app.command("callers")
def callers(
    module_path: str = typer.Argument(..., help="Module path relative to src/, e.g. CommonModules/Utils/Ext/Module.bsl."),
    method: str = typer.Argument(..., help="Procedure or function name."),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum call sites (1-1000)."),
    as_json: bool = typer.Option(False, "--json", help="Print the hierarchy as JSON."),
    markdown: bool = typer.Option(False, "--markdown", help="Print the hierarchy as Markdown."),
):
    """Find the call sites of a procedure or function."""
    orchestrator = _open_orchestrator(ProjectManager())
    try:
        result = orchestrator.find_callers(module_path, method, limit)
    finally:
        orchestrator.close()

    if as_json:
        _echo_json(result.to_dict())
        if isinstance(result, QueryError):
            raise typer.Exit(code=1)
        return
    if isinstance(result, QueryError):
        _fail(result.render_markdown())
    if markdown:
        typer.echo(render_call_graph(result))
        return

    console.print(f"[bold]{result.method_signature}[/bold]  [dim]{result.module_path}[/dim]")
    found = f"Callers found: {result.caller_count}"
    if result.limit_reached:
        found += " (limit reached)"
    console.print(found)
    if not result.groups:
        return
    table = Table(title="Call sites", title_style="bold cyan")
    table.add_column("#", justify="right")
    table.add_column("Module", style="cyan")
    table.add_column("Lines")
    for index, group in enumerate(result.groups, start=1):
        table.add_row(str(index), group.module_path, ", ".join(str(line) for line in group.lines))
    console.print(table)


# ===================================================================
# Corpus browsing
# ===================================================================

@app.command("modules")
def modules(
    metadata_type: Optional[str] = typer.Option(None, "--type", "-t", help="Only modules of this type, e.g. Catalog."),
):
    """List BSL modules of the current project with their owner and role."""
    corpus = _open_corpus(ProjectManager())
    wanted = None
    if metadata_type:
        wanted = lookup_type(metadata_type)
        if wanted is None:
            _fail(f"Unknown metadata type '{metadata_type}'.")

    table = Table(title="BSL modules", title_style="bold cyan")
    table.add_column("Module", style="cyan")
    table.add_column("Owner")
    table.add_column("Role")
    count = 0
    for path in corpus.module_files():
        rel = corpus.relative_path(path)
        info = parse_module_path(rel)
        if wanted is not None and (info is None or info.owner_type != wanted.singular):
            continue
        owner = info.owner_fqn if info else "-"
        role = info.module_role.value if info else "-"
        if info and info.form_name:
            role = f"{role} ({info.form_name})"
        table.add_row(rel, owner, role)
        count += 1

    if count == 0:
        typer.echo("No modules found.")
        return
    console.print(table)


@app.command("methods")
def methods(
    module_path: str = typer.Argument(..., help="Module path relative to src/."),
):
    """List the procedures and functions a module declares."""
    corpus = _open_corpus(ProjectManager())
    try:
        module = corpus.load_module(module_path)
    except ModuleNotFound as exc:
        _fail(str(exc))

    if not module.methods:
        typer.echo("No methods declared.")
        return
    table = Table(title=module_path, title_style="bold cyan")
    table.add_column("Signature", style="cyan")
    table.add_column("Lines")
    table.add_column("Region")
    table.add_column("Pragmas")
    for method in module.methods:
        table.add_row(
            method.signature,
            f"{method.start_line}-{method.end_line}",
            method.region or "-",
            " ".join(method.pragmas) or "-",
        )
    console.print(table)


# ===================================================================
# Settings
# ===================================================================

@config_app.command("show")
def config_show():
    """Show effective query settings."""
    settings = asdict(load_settings())
    table = Table(title="Query settings", title_style="bold cyan")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in settings.items():
        if isinstance(value, (list, tuple)):
            value = ", ".join(value)
        table.add_row(key, str(value))
    console.print(table)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name, see 'xref config show'."),
    value: str = typer.Argument(..., help="New value; lists are comma-separated."),
):
    """Persist one query setting to config.toml."""
    try:
        stored = save_query_value(key, value)
    except KeyError:
        _fail(f"Unknown setting '{key}'. Known: {', '.join(QUERY_KEYS)}")
    except ValueError as exc:
        _fail(f"Invalid value for '{key}': {exc}")
    typer.echo(f"Set {key} = {stored}")


@config_app.command("reset")
def config_reset():
    """Drop all query overrides."""
    clear_query_config()
    typer.echo("Query settings reset to defaults.")


if __name__ == "__main__":
    app()
