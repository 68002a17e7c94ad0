"""Delivery chat CLI.

Usage:
    deliverychat serve                          Run the API server
    deliverychat ask "show pending deliveries"  Send a message to a running server
    deliverychat watch                          Follow live status events
    deliverychat query "SELECT ..." -p k=v      Run a guarded read-only query
    deliverychat schema                         Show the schema given to the assistant
    deliverychat init-db --seed                 Create tables (and sample data)
"""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from deliverychat import __version__
from deliverychat.cli.http_client import DEFAULT_BASE_URL, ChatClient, ChatClientError
from deliverychat.config import Settings
from deliverychat.db.connection import create_engine, init_db
from deliverychat.db.models import describe_schema
from deliverychat.db.seed import seed_sample_data

app = typer.Typer(
    name="deliverychat",
    help="Natural language chat over the delivery database",
    no_args_is_help=True,
)

console = Console()

_STATUS_STYLES = {
    "connected": "dim",
    "thinking": "cyan",
    "querying": "yellow",
    "results": "green",
    "error": "red",
    "complete": "bold green",
}


def _parse_params(raw: list[str]) -> dict[str, str]:
    params = {}
    for item in raw:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{item}'")
        params[key] = value
    return params


def _rows_table(rows: list[dict]) -> Table:
    table = Table(show_lines=False)
    columns = list(rows[0]) if rows else []
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*("" if row[c] is None else str(row[c]) for c in columns))
    return table


@app.command()
def version():
    """Show the delivery chat version."""
    console.print(f"[bold]deliverychat[/bold] v{__version__}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the API server with uvicorn."""
    import uvicorn

    uvicorn.run("deliverychat.api.main:app", host=host, port=port, reload=reload)


@app.command()
def ask(
    message: str = typer.Argument(help="Message for the assistant"),
    thread: Optional[str] = typer.Option(None, "--thread", "-t", help="Continue an existing thread"),
    url: str = typer.Option(DEFAULT_BASE_URL, "--url", help="Server base URL"),
):
    """Send a message to a running server and print the reply."""

    async def _run() -> str:
        thread_id = thread or ""
        async with ChatClient(url) as client:
            async for chunk in client.chat(message, thread):
                thread_id = chunk.thread_id or thread_id
                console.print(chunk.text, end="", markup=False, highlight=False)
        console.print()
        return thread_id

    try:
        thread_id = asyncio.run(_run())
    except ChatClientError as e:
        console.print(f"[red]Error ({e.status_code}): {e.message}[/red]")
        raise typer.Exit(1)
    if thread_id:
        console.print(f"[dim]thread: {thread_id}[/dim]")


@app.command()
def watch(
    url: str = typer.Option(DEFAULT_BASE_URL, "--url", help="Server base URL"),
    raw: bool = typer.Option(False, "--json", help="Print raw JSON events"),
):
    """Follow live status events until interrupted."""

    async def _run() -> None:
        async with ChatClient(url) as client:
            async for event in client.stream_status():
                if raw:
                    console.print_json(json.dumps(event))
                    continue
                kind = event.get("type", "?")
                style = _STATUS_STYLES.get(kind, "white")
                line = f"[{style}]{kind:<10}[/{style}] {event.get('message', '')}"
                if event.get("query"):
                    line += f"  [dim]{event['query']}[/dim]"
                if event.get("error"):
                    line += f"  [red]{event['error']}[/red]"
                console.print(line)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass
    except ChatClientError as e:
        console.print(f"[red]Error ({e.status_code}): {e.message}[/red]")
        raise typer.Exit(1)


@app.command()
def query(
    statement: str = typer.Argument(help="SQL statement with :name placeholders"),
    param: list[str] = typer.Option([], "--param", "-p", help="Parameter as key=value"),
    url: str = typer.Option(DEFAULT_BASE_URL, "--url", help="Server base URL"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Run a read-only query through the server's public query path."""
    params = _parse_params(param)

    async def _run() -> list[dict]:
        async with ChatClient(url) as client:
            return await client.query(statement, params)

    try:
        rows = asyncio.run(_run())
    except ChatClientError as e:
        console.print(f"[red]Error ({e.status_code}): {e.message}[/red]")
        raise typer.Exit(1)

    if json_output:
        console.print_json(json.dumps(rows))
    elif not rows:
        console.print("[dim]No rows[/dim]")
    else:
        console.print(_rows_table(rows))
        console.print(f"[dim]{len(rows)} row(s)[/dim]")


@app.command()
def schema(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show the schema description handed to the assistant."""
    description = describe_schema()
    if json_output:
        console.print_json(json.dumps(description))
        return
    for table_name, table_info in description["tables"].items():
        table = Table(title=table_name, title_justify="left")
        table.add_column("Column", style="bold")
        table.add_column("Type")
        table.add_column("Constraints")
        for column, info in table_info["columns"].items():
            flags = []
            if info.get("isPrimary"):
                flags.append("primary key")
            if info.get("isRequired"):
                flags.append("required")
            if info.get("isUnique"):
                flags.append("unique")
            if "references" in info:
                flags.append(f"-> {info['references']['table']}.{info['references']['column']}")
            if "enum" in info:
                flags.append("one of " + ", ".join(info["enum"]))
            table.add_row(column, info["type"], "; ".join(flags))
        console.print(table)


@app.command("init-db")
def init_db_command(
    seed: bool = typer.Option(False, "--seed", help="Insert sample data"),
):
    """Create the delivery tables in DATABASE_URL (development only)."""
    settings = Settings.from_env()

    async def _run() -> int:
        engine = create_engine(settings)
        try:
            await init_db(engine)
            return await seed_sample_data(engine) if seed else 0
        finally:
            await engine.dispose()

    inserted = asyncio.run(_run())
    console.print(f"[green]Tables ready[/green] at {settings.database_url}")
    if seed:
        console.print(f"Inserted {inserted} sample row(s)")


if __name__ == "__main__":
    app()
