import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from trade_engine.core.exceptions import AggregationConflict, PersistenceFailure
from trade_engine.schemas import TradeClosed
from trade_engine.services import ProfitAggregator

JUNE_1 = datetime(2025, 6, 1, tzinfo=timezone.utc)


def event(trade_id: str, profit: str, user_id: str = "u1") -> TradeClosed:
    value = Decimal(profit)
    return TradeClosed(trade_id=trade_id, user_id=user_id, profit=value, is_win=value > 0)


def assert_consistent(summary) -> None:
    assert summary.total_trades == summary.winning_trades + summary.losing_trades
    expected = summary.winning_trades / summary.total_trades if summary.total_trades else 0.0
    assert summary.win_rate == expected


async def test_first_close_creates_summary(aggregator):
    assert await aggregator.get_profit_summary("u1") is None

    summary = await aggregator.apply(event("t1", "95"))

    assert summary.total_trades == 1
    assert summary.winning_trades == 1
    assert summary.losing_trades == 0
    assert summary.win_rate == 1.0
    assert summary.total_profit == Decimal("95")


async def test_apply_is_idempotent(aggregator):
    await aggregator.apply(event("t1", "95"))
    first = await aggregator.get_profit_summary("u1")

    again = await aggregator.apply(event("t1", "95"))

    assert again.total_trades == first.total_trades == 1
    assert again.total_profit == first.total_profit == Decimal("95")


async def test_mismatched_redelivery_is_a_conflict(aggregator):
    await aggregator.apply(event("t1", "95"))

    with pytest.raises(AggregationConflict):
        await aggregator.apply(event("t1", "96"))

    summary = await aggregator.get_profit_summary("u1")
    assert summary.total_profit == Decimal("95")


async def test_losses_and_breakeven_count_as_losing(aggregator):
    await aggregator.apply(event("t1", "10"))
    await aggregator.apply(event("t2", "-3"))
    summary = await aggregator.apply(event("t3", "0"))

    assert summary.total_trades == 3
    assert summary.winning_trades == 1
    assert summary.losing_trades == 2
    assert summary.win_rate == pytest.approx(1 / 3)
    assert summary.total_profit == Decimal("7")
    assert_consistent(summary)


async def test_many_small_profits_do_not_drift(aggregator):
    for i in range(1000):
        await aggregator.apply(event(f"t{i}", "0.1"))

    summary = await aggregator.get_profit_summary("u1")
    assert summary.total_profit == Decimal("100")
    assert_consistent(summary)


async def test_concurrent_applies_for_one_user_are_serialized(aggregator):
    events = [event(f"t{i}", "1" if i % 2 else "-1") for i in range(50)]

    await asyncio.gather(*(aggregator.apply(e) for e in events))

    summary = await aggregator.get_profit_summary("u1")
    assert summary.total_trades == 50
    assert summary.winning_trades == 25
    assert summary.total_profit == Decimal("0")
    assert_consistent(summary)


async def test_concurrent_duplicate_deliveries_apply_once(aggregator):
    await asyncio.gather(*(aggregator.apply(event("t1", "5")) for _ in range(10)))

    summary = await aggregator.get_profit_summary("u1")
    assert summary.total_trades == 1
    assert summary.total_profit == Decimal("5")


async def test_users_are_independent(aggregator):
    await asyncio.gather(
        aggregator.apply(event("a1", "5", user_id="alice")),
        aggregator.apply(event("b1", "-2", user_id="bob")),
    )

    alice = await aggregator.get_profit_summary("alice")
    bob = await aggregator.get_profit_summary("bob")
    assert (alice.total_trades, alice.winning_trades) == (1, 1)
    assert (bob.total_trades, bob.losing_trades) == (1, 1)


async def test_failed_commit_is_safe_to_retry(flaky_summaries):
    store = flaky_summaries(failures=1)
    aggregator = ProfitAggregator(store)

    with pytest.raises(PersistenceFailure):
        await aggregator.apply(event("t1", "95"))
    assert await store.get("u1") is None

    summary = await aggregator.apply(event("t1", "95"))
    assert summary.total_trades == 1
    assert summary.total_profit == Decimal("95")


async def test_end_to_end_long_trade(ledger, aggregator, open_request):
    trade = await ledger.open_trade(open_request(fees=Decimal("5")))
    assert trade.total_value == Decimal("200")

    await ledger.close_trade(trade.id, close_price=Decimal("150"), close_time=JUNE_1)

    summary = await aggregator.get_profit_summary("u1")
    assert summary.total_trades == 1
    assert summary.winning_trades == 1
    assert summary.losing_trades == 0
    assert summary.win_rate == 1.0
    assert summary.total_profit == Decimal("95")


async def test_reconcile_rebuilds_from_closed_trades(
    ledger, aggregator, summary_store, open_request
):
    win = await ledger.open_trade(open_request())
    loss = await ledger.open_trade(open_request())
    await ledger.open_trade(open_request())  # stays open
    await ledger.close_trade(win.id, close_price=Decimal("110"), close_time=JUNE_1)
    await ledger.close_trade(loss.id, close_price=Decimal("95"), close_time=JUNE_1 + timedelta(days=1))

    # Simulate drift in the stored aggregate.
    drifted = await summary_store.get("u1")
    drifted.total_trades = 7
    drifted.winning_trades = 7
    await summary_store.replace(drifted, [])

    summary = await aggregator.reconcile("u1")

    assert summary.total_trades == 2
    assert summary.winning_trades == 1
    assert summary.losing_trades == 1
    assert summary.win_rate == 0.5
    assert summary.total_profit == Decimal("10")
    # Markers are restored, so redelivery stays a no-op.
    again = await aggregator.apply(event(win.id, "20"))
    assert again.total_trades == 2


async def test_reconcile_without_trades_returns_empty_summary(aggregator, summary_store):
    summary = await aggregator.reconcile("nobody")

    assert summary.total_trades == 0
    assert summary.win_rate == 0.0
    assert await summary_store.get("nobody") is None
