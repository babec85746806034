"""Accrual market tests - lifecycle gating, settlement scenarios, atomicity, reentrancy."""

import pytest

from conftest import ALICE, BOB, CAROL, DAY, ETHER, OWNER, T0
from predsettle.models.events import Claimed, ExpiredWithdrawal, OutcomeResolved, StakeRecorded
from predsettle.models.market import Outcome, Resolution
from predsettle.settlement.errors import (
    AlreadyResolvedError,
    MarketValidationError,
    NothingToClaimError,
    OutcomeNotSetError,
    ReentrancyError,
    TimingError,
    TransferFailed,
    UnauthorizedError,
    ZeroAmountError,
)
from predsettle.settlement.lifecycle import Phase
from predsettle.settlement.market import PredictionMarket
from predsettle.settlement.units import ZERO_ADDRESS

WINDOW = 3 * DAY


def _stake_all(market, clock, window, stakes):
    clock.set(window[0])
    for account, outcome, amount in stakes:
        market.stake(account, outcome, amount)


# ── Construction ──────────────────────────────────────────────


def test_initial_state(market, window):
    start, end, expiry = window
    data = market.prediction_data()
    assert market.owner == OWNER
    assert data.name == "Ismail Haniyeh"
    assert (data.start_time, data.end_time, data.expiry_time) == (start, end, expiry)
    assert data.resolution is Resolution.UNSET
    assert market.phase is Phase.PREDICTING
    assert market.address.startswith("0x") and len(market.address) == 42


@pytest.mark.parametrize(
    "owner, start, end, expiry, reason",
    [
        (ZERO_ADDRESS, T0 + 60, T0 + 100, T0 + 200, "zero address"),
        (OWNER, T0 - 60, T0 + 100, T0 + 200, "Start time must be in the future"),
        (OWNER, T0, T0 + 100, T0 + 200, "Start time must be in the future"),
        (OWNER, T0 + 60, T0, T0 + 200, "Start time must be before end time"),
        (OWNER, T0 + 60, T0 + 7 * DAY, T0 + DAY, "End time must be before expiry time"),
        (OWNER, -5, T0 + 100, T0 + 200, "Invalid market terms"),
    ],
)
def test_construction_validation(clock, custody, owner, start, end, expiry, reason):
    with pytest.raises(MarketValidationError, match=reason):
        PredictionMarket.create("test", owner, start, end, expiry, clock=clock, custody=custody)


# ── Stake ─────────────────────────────────────────────────────


def test_stake_within_window(market, clock, window):
    clock.set(window[0] + 10)
    market.stake(ALICE, True, ETHER)
    assert market.total_supply(True) == ETHER
    assert market.value_held == ETHER


def test_stake_before_window_rejected(market, clock, window):
    clock.set(window[0] - 10)
    with pytest.raises(TimingError, match="Prediction window is closed"):
        market.stake(ALICE, True, ETHER)


def test_stake_after_window_rejected(market, clock, window):
    clock.set(window[1] + 10)
    with pytest.raises(TimingError, match="Prediction window is closed"):
        market.stake(ALICE, True, ETHER)


def test_stake_at_end_time_rejected(market, clock, window):
    clock.set(window[1])
    with pytest.raises(TimingError):
        market.stake(ALICE, Outcome.NO, ETHER)


def test_stake_zero_rejected(market, clock, window):
    clock.set(window[0] + 10)
    with pytest.raises(ZeroAmountError, match="Must send ETH to predict"):
        market.stake(ALICE, True, 0)
    assert market.total_supply(True) == 0


def test_zero_address_cannot_stake(market, clock, window):
    clock.set(window[0])
    with pytest.raises(UnauthorizedError):
        market.stake(ZERO_ADDRESS, True, ETHER)


def test_total_supply_and_balance_of(market, clock, window):
    clock.set(window[0] + 10)
    market.stake(ALICE, True, ETHER)
    market.stake(ALICE, True, 2 * ETHER)
    market.stake(ALICE, False, 3 * ETHER)
    assert market.total_supply(True) == 3 * ETHER
    assert market.total_supply(False) == 3 * ETHER
    assert market.balance_of(ALICE, True) == 3 * ETHER
    assert market.balance_of(ALICE, "no") == 3 * ETHER
    assert market.balance_of(BOB, True) == 0


def test_stake_event(market, clock, window):
    events = []
    market.subscribe(events.append)
    clock.set(window[0])
    market.stake(ALICE, False, 1000 * ETHER)
    assert len(events) == 1
    ev = events[0]
    assert isinstance(ev, StakeRecorded)
    assert (ev.account, ev.outcome, ev.amount) == (ALICE, Outcome.NO, 1000 * ETHER)


# ── Resolve ───────────────────────────────────────────────────


def test_resolve_by_owner_after_end(market, clock, window):
    events = []
    market.subscribe(events.append)
    clock.set(window[1])
    market.resolve(OWNER, True)
    assert market.resolution is Resolution.YES
    assert market.prediction_data().resolution == 1
    assert market.correct_outcome() is Outcome.YES
    assert market.phase is Phase.RESOLVED
    assert isinstance(events[0], OutcomeResolved)


def test_resolve_no_is_stored_as_two(market, clock, window):
    clock.set(window[1])
    market.resolve(OWNER, False)
    assert int(market.prediction_data().resolution) == 2
    assert market.correct_outcome() is Outcome.NO


def test_resolve_by_non_owner_rejected(market, clock, window):
    clock.set(window[1])
    with pytest.raises(UnauthorizedError):
        market.resolve(ALICE, True)
    assert market.resolution is Resolution.UNSET


def test_resolve_before_end_rejected(market, clock, window):
    clock.set(window[1] - 1)
    with pytest.raises(TimingError, match="before end time"):
        market.resolve(OWNER, True)


def test_resolve_after_expiry_rejected(market, clock, window):
    clock.set(window[2] + 1)
    with pytest.raises(TimingError, match="Cannot set outcome after expiry time"):
        market.resolve(OWNER, True)
    assert market.phase is Phase.EXPIRED


@pytest.mark.parametrize("second", [True, False])
def test_single_resolution(market, clock, window, second):
    clock.set(window[1])
    market.resolve(OWNER, True)
    with pytest.raises(AlreadyResolvedError, match="Answer already set"):
        market.resolve(OWNER, second)
    # Still rejected as a double resolution once past expiry
    clock.set(window[2] + 5)
    with pytest.raises(AlreadyResolvedError):
        market.resolve(OWNER, second)
    assert market.resolution is Resolution.YES


def test_correct_outcome_before_resolution(market):
    with pytest.raises(OutcomeNotSetError, match="Outcome has not been set yet"):
        market.correct_outcome()


# ── Claim ─────────────────────────────────────────────────────


def test_end_to_end_scenario(market, clock, custody, window):
    """A 5 yes, B 1 no, C 2.3 no at start; resolved no at start+3d."""
    _stake_all(market, clock, window, [(ALICE, True, 5 * ETHER), (BOB, False, ETHER), (CAROL, False, 23 * ETHER // 10)])
    clock.set(window[1])
    market.resolve(OWNER, False)

    # rewardPerUnit = 259200 * 1e18 // 3.3e18 = 78545
    assert market.earned(BOB, False) == 78545
    assert market.earned(CAROL, False) == 23 * 78545 // 10
    rate = 5 * ETHER // WINDOW
    assert market.reward_rate() == rate

    with pytest.raises(NothingToClaimError, match="Nothing to claim"):
        market.claim(ALICE)

    paid_b = market.claim(BOB)
    paid_c = market.claim(CAROL)
    assert paid_b == ETHER + 78545 * rate
    assert paid_c == 23 * ETHER // 10 + (23 * 78545 // 10) * rate
    assert paid_b / paid_c == pytest.approx((1 + 5 * 1 / 3.3) / (2.3 + 5 * 2.3 / 3.3), rel=1e-4)
    assert custody.paid == {BOB: paid_b, CAROL: paid_c}
    # Rounding dust and the loser's stake never exceed what was staked
    assert custody.total_paid() <= 83 * ETHER // 10
    assert market.value_held == 83 * ETHER // 10 - paid_b - paid_c


def test_claim_pays_losing_pool_share(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, 20 * ETHER), (BOB, False, 31 * ETHER), (CAROL, False, 12 * ETHER)])
    clock.set(window[1])
    market.resolve(OWNER, False)
    events = []
    market.subscribe(events.append)
    paid = market.claim(BOB)
    assert paid == pytest.approx((31 / 43 * 20 + 31) * ETHER, rel=1e-3)
    assert isinstance(events[0], Claimed)
    assert (events[0].account, events[0].amount) == (BOB, paid)


def test_single_winner_takes_losing_pool(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, 5 * ETHER), (BOB, False, 23 * ETHER // 10), (CAROL, False, ETHER)])
    clock.set(window[1])
    market.resolve(OWNER, True)
    paid = market.claim(ALICE)
    # Sole winner from start to end accrues the full window
    assert paid == 5 * ETHER + WINDOW * (33 * ETHER // 10 // WINDOW)
    assert paid == pytest.approx(83 * ETHER // 10, rel=1e-9)


def test_claim_before_resolution_rejected(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER)])
    clock.set(window[1] + 1)
    with pytest.raises(TimingError, match="Outcome has not been set yet"):
        market.claim(ALICE)


def test_second_claim_fails_and_moves_nothing(market, clock, custody, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER), (BOB, False, ETHER)])
    clock.set(window[1])
    market.resolve(OWNER, True)
    market.claim(ALICE)
    with pytest.raises(NothingToClaimError):
        market.claim(ALICE)
    assert len(custody.transfers) == 1
    assert market.balance_of(ALICE, True) == 0
    assert market.earned(ALICE, True) == 0


def test_claim_after_expiry_when_resolved(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER), (BOB, False, ETHER)])
    clock.set(window[1] + 10)
    market.resolve(OWNER, True)
    clock.set(window[2] + 10)
    assert market.claim(ALICE) > ETHER


def test_preview_payout_matches_claim(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, 2 * ETHER), (BOB, False, 3 * ETHER)])
    clock.set(window[0] + DAY)
    market.stake(CAROL, True, ETHER)
    clock.set(window[1])
    market.resolve(OWNER, True)
    expected = market.preview_payout(CAROL)
    assert market.claim(CAROL) == expected
    assert market.preview_payout(BOB, winning=True) == 0


# ── Accrual properties ────────────────────────────────────────


def test_earlier_stake_earns_more(market, clock, window):
    start, end, _ = window
    clock.set(start)
    market.stake(ALICE, True, ETHER)
    clock.set(start + DAY)
    market.stake(BOB, True, ETHER)
    clock.set(end + 100)
    assert market.earned(ALICE, True) == 2 * DAY
    assert market.earned(BOB, True) == DAY
    assert market.earned(ALICE, True) >= market.earned(BOB, True)


def test_empty_pool_accumulator_unchanged(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER)])
    clock.set(window[1])
    assert market.reward_per_unit(Outcome.NO) == 0
    assert market.reward_per_unit(Outcome.YES) > 0


def test_accumulator_is_monotonic(market, clock, window):
    start, _, _ = window
    seen = []
    for i, (account, amount) in enumerate([(ALICE, ETHER), (BOB, 5 * ETHER), (ALICE, 1), (CAROL, 7 * ETHER)]):
        clock.set(start + i * 3600)
        market.stake(account, True, amount)
        seen.append(market.ledger.pool(Outcome.YES).reward_per_unit_stored)
        seen.append(market.reward_per_unit(True))
    clock.set(window[1] + DAY)
    seen.append(market.reward_per_unit(True))
    assert seen == sorted(seen)


def test_earned_matches_checkpoint(market, clock, window):
    start, _, _ = window
    clock.set(start)
    market.stake(ALICE, True, 3 * ETHER)
    clock.set(start + 1000)
    market.stake(BOB, True, 7 * ETHER)
    clock.set(start + 5000)
    probe = market.earned(ALICE, True)
    market.stake(ALICE, True, 1)  # any stake runs the checkpoint first
    assert market.ledger.position(ALICE, Outcome.YES).pending_reward_units == probe


def test_zero_address_probe_earns_nothing(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER)])
    clock.set(window[1])
    assert market.earned(ZERO_ADDRESS, True) == 0


def test_conservation(market, clock, window):
    _stake_all(
        market,
        clock,
        window,
        [(ALICE, True, ETHER), (BOB, True, 2 * ETHER), (CAROL, False, 4 * ETHER), (ALICE, False, ETHER)],
    )
    for outcome in Outcome:
        assert market.ledger.sum_balances(outcome) == market.total_supply(outcome)
    clock.set(window[1])
    market.resolve(OWNER, True)
    market.claim(BOB)
    for outcome in Outcome:
        assert market.ledger.sum_balances(outcome) == market.total_supply(outcome)


# ── Expired withdrawal ────────────────────────────────────────


def test_expiry_scenario(market, clock, custody, window):
    clock.set(window[0] + 10)
    market.stake(ALICE, True, ETHER)
    market.stake(ALICE, False, ETHER // 2)
    market.stake(ALICE, True, 2 * ETHER)
    events = []
    market.subscribe(events.append)
    clock.set(window[2] + 10)
    assert market.withdraw_expired(ALICE) == 35 * ETHER // 10
    assert market.balance_of(ALICE, True) == 0
    assert market.balance_of(ALICE, False) == 0
    assert isinstance(events[0], ExpiredWithdrawal)
    assert events[0].amount == 35 * ETHER // 10
    # Second call is a no-op success
    assert market.withdraw_expired(ALICE) == 0
    assert custody.transfers == [(ALICE, 35 * ETHER // 10)]
    assert len(events) == 1


def test_multiple_users_withdraw_expired(market, clock, custody, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER), (BOB, False, 2 * ETHER), (CAROL, True, 3 * ETHER)])
    clock.set(window[2] + 10)
    assert market.withdraw_expired(ALICE) == ETHER
    assert market.withdraw_expired(BOB) == 2 * ETHER
    assert market.withdraw_expired(CAROL) == 3 * ETHER
    assert market.value_held == 0


def test_withdraw_before_expiry_rejected(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER)])
    with pytest.raises(TimingError, match="Cannot withdraw before expiry time"):
        market.withdraw_expired(ALICE)


def test_withdraw_after_resolution_rejected(market, clock, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER)])
    clock.set(window[1])
    market.resolve(OWNER, True)
    clock.set(window[2] + 10)
    with pytest.raises(TimingError, match="Outcome has been set"):
        market.withdraw_expired(ALICE)


# ── Atomicity and reentrancy ──────────────────────────────────


def test_failed_transfer_rolls_back_claim(market, clock, custody, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER), (BOB, False, ETHER)])
    clock.set(window[1])
    market.resolve(OWNER, True)
    events = []
    market.subscribe(events.append)
    units = market.earned(ALICE, True)
    held = market.value_held
    custody.failing.add(ALICE)
    with pytest.raises(TransferFailed):
        market.claim(ALICE)
    assert market.balance_of(ALICE, True) == ETHER
    assert market.earned(ALICE, True) == units
    assert market.value_held == held
    assert events == []
    assert not market.busy
    custody.failing.clear()
    assert market.claim(ALICE) > ETHER


def test_failed_transfer_rolls_back_expired_withdrawal(market, clock, custody, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER)])
    clock.set(window[2])
    custody.failing.add(ALICE)
    with pytest.raises(TransferFailed):
        market.withdraw_expired(ALICE)
    assert market.balance_of(ALICE, True) == ETHER
    assert market.total_supply(True) == ETHER


def test_reentrant_claim_is_rejected(market, clock, custody, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER), (BOB, False, ETHER)])
    clock.set(window[1])
    market.resolve(OWNER, True)
    attempts = []

    def reenter(account, amount):
        for call in (lambda: market.claim(account), lambda: market.withdraw_expired(account)):
            with pytest.raises(ReentrancyError):
                call()
            attempts.append(account)

    custody.on_transfer = reenter
    paid = market.claim(ALICE)
    assert attempts == [ALICE, ALICE]
    assert custody.transfers == [(ALICE, paid)]
    assert not market.busy


def test_reentry_error_propagating_from_transfer_fails_whole_claim(market, clock, custody, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER), (BOB, False, ETHER)])
    clock.set(window[1])
    market.resolve(OWNER, True)
    custody.on_transfer = lambda account, amount: market.claim(account)
    with pytest.raises(TransferFailed):
        market.claim(ALICE)
    assert market.balance_of(ALICE, True) == ETHER
    assert custody.transfers == []
    custody.on_transfer = None
    market.claim(ALICE)
    assert len(custody.transfers) == 1


def test_guard_released_after_rejection(market, clock, window):
    clock.set(window[0] - 1)
    with pytest.raises(TimingError):
        market.stake(ALICE, True, ETHER)
    assert not market.busy
    clock.set(window[0])
    market.stake(ALICE, True, ETHER)


def test_failing_listener_does_not_undo_claim(market, clock, custody, window):
    _stake_all(market, clock, window, [(ALICE, True, ETHER), (BOB, False, ETHER)])
    clock.set(window[1])
    market.resolve(OWNER, True)

    def broken(event):
        raise RuntimeError("indexer down")

    received = []
    market.subscribe(broken)
    market.subscribe(received.append)
    paid = market.claim(ALICE)
    assert custody.paid == {ALICE: paid}
    assert market.balance_of(ALICE, True) == 0
    assert [e.kind for e in received] == ["claimed"]
    assert not market.busy
