"""Sim subcommand: run a scripted scenario against a fresh in-memory market."""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError

from predsettle.models.market import Strategy
from predsettle.settlement.units import format_ether
from predsettle.simulation.scenario import load_scenario, run_scenario

app = typer.Typer(help="Scenario replay and strategy comparison")


@app.command("run")
def run_sim(
    file: Path = typer.Option(..., "--file", "-f", exists=True, help="Scenario file (.toml or .json)"),
    strategy: str | None = typer.Option(None, "--strategy", "-s", help="Override: accrual or bonding_curve"),
) -> None:
    """Replay a scenario and report payouts and rejections."""
    if strategy is not None and strategy not in [s.value for s in Strategy]:
        typer.echo(f"Unknown strategy: {strategy}. Choose from: {[s.value for s in Strategy]}")
        raise typer.Exit(1)
    try:
        scenario = load_scenario(file)
    except ValidationError as e:
        typer.echo(f"Invalid scenario: {e}")
        raise typer.Exit(1)
    result = run_scenario(scenario, strategy)
    typer.echo(f"Run id: {result.run_id}")
    typer.echo(f"Strategy: {result.strategy}  Market: {result.market}")
    typer.echo(f"Actions: {result.actions_processed}  Rejections: {len(result.rejections)}")
    for account, amount in result.payouts.items():
        typer.echo(f"  paid {account}  {format_ether(amount)}")
    for r in result.rejections:
        typer.echo(f"  rejected #{r['index']} {r['op']} {r['account']}: {r['reason']}")
    typer.echo(f"Left in market: {format_ether(result.value_held)}")
