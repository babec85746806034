"""Log subcommand: audit export, event stats, event listing."""

from __future__ import annotations

import json

import typer

from predsettle.storage.db import get_connection, init_schema
from predsettle.storage.event_log import list_events, log_stats
from predsettle.storage.export import EXPORTABLE, export_to_parquet

app = typer.Typer(help="Market event log export and statistics")


@app.command("export")
def export(
    ctx: typer.Context,
    what: str = typer.Option("events", "--what", "-w", help="events, transfers or positions"),
    market: str | None = typer.Option(None, "--market", "-m", help="Filter by market address"),
    output: str | None = typer.Option(None, "--output", "-o", help="Output path (default: <what>.parquet)"),
) -> None:
    """Export the event log or another audit table to Parquet."""
    if what not in EXPORTABLE:
        typer.echo(f"Unknown export: {what}. Choose from: {sorted(EXPORTABLE)}")
        raise typer.Exit(1)
    target = output or f"{what}.parquet"
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        count = export_to_parquet(conn, target, what, market=market)
        typer.echo(f"Exported {count} {what} rows to {target}")
    finally:
        conn.close()


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show event log statistics (counts, time range, by kind and market)."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = log_stats(conn)
        typer.echo(f"Total events: {s['total_events']}")
        typer.echo(f"Min event_ts: {s.get('min_event_ts')}")
        typer.echo(f"Max event_ts: {s.get('max_event_ts')}")
        for row in s["by_kind"]:
            typer.echo(f"  {row['kind']:<20} {row['count']}")
        if s.get("by_market"):
            typer.echo("By market (top 20):")
            for row in s["by_market"]:
                typer.echo(f"  {row['market']}  {row['count']}")
    finally:
        conn.close()


@app.command("show")
def show(
    ctx: typer.Context,
    market: str | None = typer.Option(None, "--market", "-m", help="Filter by market address"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max events"),
) -> None:
    """Print events as JSON lines."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        for event in list_events(conn, market=market, limit=limit):
            typer.echo(json.dumps(event))
    finally:
        conn.close()
