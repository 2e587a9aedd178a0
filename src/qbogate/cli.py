"""qbogate CLI - mock, proxy or capture gateway for the QuickBooks Online API."""

import asyncio
import dataclasses
import logging
from collections import deque
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from qbogate.config import Mode, get_verbose, load_settings, parse_mode
from qbogate.errors import ContractLoadError
from qbogate.modules.contract import load_contract, synthesize
from qbogate.modules.gateway import create_gateway
from qbogate.modules.proxy import read_exchanges, response_bytes

app = typer.Typer(
    name="qbogate",
    help="Mock, proxy or capture gateway for the QuickBooks Online V3 API",
    no_args_is_help=True,
)
console = Console()


def configure_logging(verbose: bool) -> None:
    """Route log records through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every upstream request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.command()
def version() -> None:
    """Show the installed qbogate version."""
    from importlib.metadata import PackageNotFoundError, version as pkg_version

    try:
        current_version = pkg_version("qbogate")
    except PackageNotFoundError:
        current_version = "0.0.0+unknown"

    console.print(f"qbogate {current_version}")


@app.command()
def serve(
    mode: Optional[str] = typer.Option(None, "--mode", "-m", help="mock, proxy or capture"),
    host: Optional[str] = typer.Option(None, "--host", help="Listen address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listen port"),
    spec: Optional[Path] = typer.Option(None, "--spec", "-s", help="OpenAPI contract (JSON or YAML)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run the gateway until interrupted."""
    configure_logging(verbose or get_verbose())

    settings = load_settings()
    overrides = {}
    if mode is not None:
        overrides["mode"] = parse_mode(mode)
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if spec is not None:
        overrides["spec_path"] = spec
    settings = dataclasses.replace(settings, **overrides)

    try:
        gateway = create_gateway(settings)
    except ContractLoadError as e:
        console.print(f"[red]Failed to load contract: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    details = f"[bold]Mode:[/bold] {settings.mode.value}\n[bold]Contract:[/bold] {settings.spec_path}"
    if settings.mode.forwards:
        details += f"\n[bold]Upstream:[/bold] {settings.upstream_base}"
        details += f"\n[bold]Token:[/bold] {'configured' if settings.token else '[dim]none[/dim]'}"
    if settings.mode is Mode.CAPTURE:
        details += f"\n[bold]Capture log:[/bold] {settings.capture_path}"
    console.print(
        Panel(
            f"{details}\n[bold]Listening:[/bold] http://{settings.host}:{settings.port}{settings.routing_prefix}",
            title="qbogate",
            border_style="green",
        )
    )

    try:
        asyncio.run(gateway.serve_forever())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")
    except OSError as e:
        console.print(f"[red]Cannot listen on {settings.host}:{settings.port}: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def contract(
    spec: Optional[Path] = typer.Option(None, "--spec", "-s", help="OpenAPI contract (JSON or YAML)"),
) -> None:
    """Load the contract and list its operations."""
    spec_path = spec or load_settings().spec_path
    try:
        loaded = load_contract(spec_path)
    except ContractLoadError as e:
        console.print(f"[red]Failed to load contract: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"{loaded.title or spec_path} {loaded.version}".strip())
    table.add_column("Method", style="cyan")
    table.add_column("Path")
    table.add_column("Operation")
    table.add_column("Mock", justify="right")
    for operation in loaded.operations:
        mocked = synthesize(operation)
        table.add_row(operation.method, operation.path_template, operation.operation_id, str(mocked.status))
    console.print(table)
    console.print(f"[green]{len(loaded)} operations[/green]")


@app.command()
def captures(
    path: Optional[Path] = typer.Option(None, "--path", help="Capture log to read"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of most recent exchanges"),
) -> None:
    """Show the most recent captured exchanges."""
    log_path = path or load_settings().capture_path
    if not log_path.exists():
        console.print(f"[yellow]No capture log at {log_path}[/yellow]")
        return

    recent = deque(read_exchanges(log_path), maxlen=max(limit, 1))
    table = Table(title=str(log_path))
    table.add_column("Time", style="dim")
    table.add_column("Method", style="cyan")
    table.add_column("URL")
    table.add_column("Status", justify="right")
    table.add_column("Bytes", justify="right")
    for record in recent:
        req = record.get("req") or {}
        res = record.get("res") or {}
        table.add_row(
            str(record.get("ts", "")),
            str(req.get("method", "")),
            str(req.get("url", "")),
            str(res.get("status", "")),
            str(len(response_bytes(record))),
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
