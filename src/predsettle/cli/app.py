"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from predsettle.config import get_settings
from predsettle.config.settings import configure_logging

app = typer.Typer(
    name="predsettle",
    help="PredSettle - Binary prediction market settlement: staking, resolution, payouts, replay.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    try:
        settings.validate()
    except ValueError as e:
        typer.echo(f"Invalid config: {e}")
        raise typer.Exit(1)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from predsettle.cli import log, market, sim  # noqa: E402

app.add_typer(market.app, name="market")
app.add_typer(log.app, name="log")
app.add_typer(sim.app, name="sim")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
