"""Market subcommand: create, list, show, stake, resolve, claim, withdraw-expired."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

import typer

from predsettle.models.market import Outcome
from predsettle.settlement.bonding import BondingCurveMarket
from predsettle.settlement.collaborators import Clock, ManualClock, SystemClock
from predsettle.settlement.errors import SettlementError
from predsettle.settlement.market import PredictionMarket, SettlementMarket
from predsettle.settlement.registry import MarketRegistry
from predsettle.settlement.units import format_ether, parse_ether
from predsettle.storage.db import get_connection, init_schema
from predsettle.storage.event_log import EventRecorder
from predsettle.storage.markets import list_markets as storage_list_markets
from predsettle.storage.markets import load_market, save_market
from predsettle.storage.transfers import DuckDBCustody

app = typer.Typer(help="Create markets and run settlement operations")

DAY = 24 * 60 * 60

AT_OPTION = typer.Option(None, "--at", help="Pin the clock to this epoch second (default: now)")


def _clock(at: int | None) -> Clock:
    return ManualClock(at) if at is not None else SystemClock()


def _amount(value: str) -> int:
    try:
        return parse_ether(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _outcome(value: str) -> Outcome:
    try:
        return Outcome.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


@contextmanager
def _connection(ctx: typer.Context) -> Iterator:
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        yield conn
    finally:
        conn.close()


def _transact(ctx: typer.Context, address: str, at: int | None, op: Callable[[SettlementMarket], str]) -> None:
    """Load the market, run `op`, persist state and events atomically. Settlement errors exit 1."""
    with _connection(ctx) as conn:
        conn.begin()
        try:
            market = load_market(conn, address, clock=_clock(at), custody=DuckDBCustody(conn, address))
            if market is None:
                typer.echo(f"Market not found: {address}")
                raise typer.Exit(1)
            market.subscribe(EventRecorder(conn))
            message = op(market)
            save_market(conn, market)
        except SettlementError as e:
            conn.rollback()
            typer.echo(f"Rejected: {e.reason}")
            raise typer.Exit(1)
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
        typer.echo(message)


@app.command("create")
def create(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", "-n", help="Market name"),
    start: int | None = typer.Option(None, "--start", help="Stake window opens (epoch s, default now+60)"),
    end: int | None = typer.Option(None, "--end", help="Stake window closes (default start+3d)"),
    expiry: int | None = typer.Option(None, "--expiry", help="Refund deadline (default start+7d)"),
    strategy: str | None = typer.Option(None, "--strategy", "-s", help="accrual or bonding_curve"),
    caller: str | None = typer.Option(None, "--caller", help="Caller address (default: registry owner)"),
    at: int | None = AT_OPTION,
) -> None:
    """Create a market through the registry."""
    settings = ctx.obj["settings"]
    clock = _clock(at)
    start_ts = start if start is not None else clock.now() + 60
    end_ts = end if end is not None else start_ts + 3 * DAY
    expiry_ts = expiry if expiry is not None else start_ts + 7 * DAY
    with _connection(ctx) as conn:
        registry = MarketRegistry(
            settings.registry_owner,
            clock=clock,
            custody=DuckDBCustody(conn),
            default_strategy=strategy or settings.default_strategy,
            initial_reserve=settings.initial_reserve,
        )
        registry.subscribe(EventRecorder(conn))
        try:
            market = registry.create_market(caller or settings.registry_owner, name, start_ts, end_ts, expiry_ts)
        except SettlementError as e:
            typer.echo(f"Rejected: {e.reason}")
            raise typer.Exit(1)
        save_market(conn, market)
        typer.echo(f"Market: {market.address}")
        typer.echo(f"Strategy: {market.strategy.value}  Window: {start_ts} -> {end_ts}  Expiry: {expiry_ts}")


@app.command("list")
def list_markets(ctx: typer.Context) -> None:
    """List stored markets."""
    with _connection(ctx) as conn:
        rows = storage_list_markets(conn)
        for r in rows:
            typer.echo(
                f"  {r['address']}  {r['strategy']:<13}  held={format_ether(int(r['value_held']))}  {r['name'][:40]}"
            )
        typer.echo(f"Total: {len(rows)} markets")


@app.command("show")
def show(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market address"),
    at: int | None = AT_OPTION,
) -> None:
    """Show phase, pools and positions of a market."""
    with _connection(ctx) as conn:
        m = load_market(conn, market, clock=_clock(at), custody=DuckDBCustody(conn, market))
        if m is None:
            typer.echo(f"Market not found: {market}")
            raise typer.Exit(1)
        t = m.terms
        typer.echo(f"Market: {m.address}  {t.name}")
        typer.echo(f"Strategy: {m.strategy.value}  Phase: {m.phase.value}  Resolution: {t.resolution.name}")
        typer.echo(f"Window: {t.start_time} -> {t.end_time}  Expiry: {t.expiry_time}")
        typer.echo(f"Held: {format_ether(m.value_held)}")
        for outcome in Outcome:
            typer.echo(f"  pool {outcome.value:<3}  staked={format_ether(m.total_supply(outcome))}")
        for (account, outcome), pos in sorted(m.ledger.positions().items(), key=lambda kv: (kv[0][0], kv[0][1].value)):
            if isinstance(m, PredictionMarket):
                extra = f"earned={m.earned(account, outcome)}"
            elif isinstance(m, BondingCurveMarket):
                extra = f"shares={pos.shares}"
            else:
                extra = ""
            typer.echo(f"  {account}  {outcome.value:<3}  balance={format_ether(pos.balance)}  {extra}")


@app.command("stake")
def stake(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market address"),
    account: str = typer.Option(..., "--account", "-a", help="Staking account"),
    outcome: str = typer.Option(..., "--outcome", "-o", help="yes or no"),
    amount: str = typer.Option(..., "--amount", help="Amount in ether (e.g. 2.3)"),
    at: int | None = AT_OPTION,
) -> None:
    """Stake value on an outcome."""
    value = _amount(amount)
    side = _outcome(outcome)

    def op(m: SettlementMarket) -> str:
        m.stake(account, side, value)
        return f"Staked {format_ether(value)} on {side.value} for {account}"

    _transact(ctx, market, at, op)


@app.command("resolve")
def resolve(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market address"),
    outcome: str = typer.Option(..., "--outcome", "-o", help="yes or no"),
    caller: str | None = typer.Option(None, "--caller", help="Caller address (default: registry owner)"),
    at: int | None = AT_OPTION,
) -> None:
    """Resolve the market (authority only)."""
    side = _outcome(outcome)
    who = caller or ctx.obj["settings"].registry_owner

    def op(m: SettlementMarket) -> str:
        m.resolve(who, side)
        return f"Resolved {m.address} to {side.value}"

    _transact(ctx, market, at, op)


@app.command("claim")
def claim(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market address"),
    account: str = typer.Option(..., "--account", "-a", help="Claiming account"),
    at: int | None = AT_OPTION,
) -> None:
    """Claim a winning payout."""

    def op(m: SettlementMarket) -> str:
        paid = m.claim(account)
        return f"Paid {format_ether(paid)} to {account}"

    _transact(ctx, market, at, op)


@app.command("withdraw-expired")
def withdraw_expired(
    ctx: typer.Context,
    market: str = typer.Option(..., "--market", "-m", help="Market address"),
    account: str = typer.Option(..., "--account", "-a", help="Withdrawing account"),
    at: int | None = AT_OPTION,
) -> None:
    """Refund principal from an expired, unresolved market."""

    def op(m: SettlementMarket) -> str:
        paid = m.withdraw_expired(account)
        return f"Refunded {format_ether(paid)} to {account}"

    _transact(ctx, market, at, op)
