from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from watchfiles import DefaultFilter
from watchfiles import watch as watch_changes

from serverpages.config import GeneratorConfig, load_config
from serverpages.errors import PagesDirectoryNotFound, ServerPagesError
from serverpages.logs import setup_logging
from serverpages.orchestrator.pipeline import GenerateResult, load_project, plan_routes, run_generate, run_model_types

app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()


def _project_root(project: str) -> Path:
    root = Path(project).expanduser().resolve()
    if not root.exists():
        raise typer.BadParameter(f"Project path does not exist: {root}")
    if not root.is_dir():
        raise typer.BadParameter(f"Project path is not a directory: {root}")
    return root


def _config(root: Path, pages_dir: Optional[str], ignore: Optional[list[str]]) -> GeneratorConfig:
    return load_config(root, pages_dir=pages_dir, ignore=ignore or None)


def _fail(e: ServerPagesError) -> NoReturn:
    console.print(f"[bold red]error[/bold red] {escape(str(e))}")
    raise typer.Exit(code=1)


def _print_summary(result: GenerateResult) -> None:
    console.print(f"Pages: [bold]{len(result.pages)}[/bold]  routes: {len(result.routes)}")
    for rel in result.written:
        console.print(f"  [green]wrote[/green]   {rel}")
    if result.unchanged:
        console.print(f"  unchanged: {len(result.unchanged)} file(s)")
    for name in result.removed_stubs:
        console.print(f"  [yellow]removed[/yellow] {name}")
    if result.typed_pages:
        console.print(f"Typed pages: {len(result.typed_pages)}")
    if result.warnings:
        console.print("")
        console.print(f"[bold yellow]Warnings ({len(result.warnings)}):[/bold yellow]")
        for w in result.warnings:
            console.print(f"  {w}", markup=False)


@app.command()
def generate(
    project: str = typer.Argument(".", help="Project root (holds pyproject.toml)"),
    pages_dir: Optional[str] = typer.Option(None, help="Override [tool.serverpages].pages_dir"),
    ignore: Optional[list[str]] = typer.Option(None, "--ignore", help="Ignore glob (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Write the route table, handler stubs and TypeScript declarations."""
    setup_logging(verbose, console)
    root = _project_root(project)
    try:
        result = run_generate(root, _config(root, pages_dir, ignore))
    except ServerPagesError as e:
        _fail(e)
    console.print(f"[bold green]serverpages[/bold green] generate: {root}")
    _print_summary(result)


@app.command()
def types(
    project: str = typer.Argument(".", help="Project root (holds pyproject.toml)"),
    pages_dir: Optional[str] = typer.Option(None, help="Override [tool.serverpages].pages_dir"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Write page-props.d.ts and models.d.ts only."""
    setup_logging(verbose, console)
    root = _project_root(project)
    try:
        result = run_generate(root, _config(root, pages_dir, None), routes=False)
    except ServerPagesError as e:
        _fail(e)
    console.print(f"[bold green]serverpages[/bold green] types: {root}")
    _print_summary(result)


@app.command("model-types")
def model_types(
    project: str = typer.Argument(".", help="Project root (holds pyproject.toml)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Write models.d.ts only."""
    setup_logging(verbose, console)
    root = _project_root(project)
    try:
        result = run_model_types(root, _config(root, None, None))
    except ServerPagesError as e:
        _fail(e)
    _print_summary(result)


@app.command()
def routes(
    project: str = typer.Argument(".", help="Project root (holds pyproject.toml)"),
    pages_dir: Optional[str] = typer.Option(None, help="Override [tool.serverpages].pages_dir"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    """List the routes generation would emit, without writing anything."""
    setup_logging(False, console)
    root = _project_root(project)
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")

    try:
        page_routes = plan_routes(load_project(root, _config(root, pages_dir, None)))
    except ServerPagesError as e:
        _fail(e)
    entries = [entry for p in page_routes for entry in p.entries]

    if fmt == "json":
        console.print_json(json.dumps([e.model_dump() for e in entries]))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("URI")
    table.add_column("NAME")
    table.add_column("HANDLER")
    table.add_column("MIDDLEWARE")
    for e in entries:
        table.add_row(e.method, e.uri, e.name, e.handler, ", ".join(e.middleware))
    console.print(table)


@app.command()
def watch(
    project: str = typer.Argument(".", help="Project root (holds pyproject.toml)"),
    pages_dir: Optional[str] = typer.Option(None, help="Override [tool.serverpages].pages_dir"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Regenerate whenever a file under the pages directory changes."""
    setup_logging(verbose, console)
    root = _project_root(project)
    try:
        config = _config(root, pages_dir, None)
    except ServerPagesError as e:
        _fail(e)
    pages_path = config.pages_path(root)
    if not pages_path.is_dir():
        _fail(PagesDirectoryNotFound(pages_path))

    def regenerate() -> None:
        try:
            _print_summary(run_generate(root, config))
        except ServerPagesError as e:
            # keep watching; the next save may fix it
            console.print(f"[bold red]error[/bold red] {escape(str(e))}")

    regenerate()
    console.print(f"[bold]Watching[/bold] {pages_path} (Ctrl+C to stop)")
    for changes in watch_changes(pages_path, watch_filter=DefaultFilter(), raise_interrupt=False):
        console.print(f"{len(changes)} change(s) detected")
        regenerate()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
