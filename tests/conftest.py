"""Shared fixtures: in-memory engine wiring and failure-injecting collaborators."""
import asyncio
from decimal import Decimal

import pytest

from trade_engine.core.exceptions import PersistenceFailure
from trade_engine.db import AlertCondition, Notification
from trade_engine.schemas import PriceAlertCreate, TradeOpenRequest
from trade_engine.services import (AlertEvaluator, AlertIndex, AlertService,
                                   ProfitAggregator, TradeClosedBus,
                                   TradeLedger)
from trade_engine.stores import (InMemoryAlertStore, InMemoryNotificationSink,
                                 InMemorySummaryStore, InMemoryTradeStore,
                                 InMemoryWatchlistStore)


class FlakyNotificationSink(InMemoryNotificationSink):
    """Fails the first `failures` create() calls with PersistenceFailure."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def create(self, notification: Notification) -> Notification:
        self.calls += 1
        if self.calls <= self.failures:
            raise PersistenceFailure("notification store down")
        return await super().create(notification)


class BlockingNotificationSink(InMemoryNotificationSink):
    """create() parks until released; lets tests cancel mid-trigger.

    With fail set, a released create() raises PersistenceFailure.
    """

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.fail = False

    async def create(self, notification: Notification) -> Notification:
        self.entered.set()
        await self.release.wait()
        if self.fail:
            raise PersistenceFailure("notification store down")
        return await super().create(notification)


class YieldingAlertStore(InMemoryAlertStore):
    """Suspends before every claim so concurrent evaluations interleave."""

    async def claim(self, alert_id: str) -> bool:
        await asyncio.sleep(0)
        return await super().claim(alert_id)


class FlakySummaryStore(InMemorySummaryStore):
    """Fails the first `failures` commit() calls with PersistenceFailure."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures
        self.calls = 0

    async def commit(self, summary, applied) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise PersistenceFailure("summary store down")
        await super().commit(summary, applied)


@pytest.fixture
def trade_store():
    return InMemoryTradeStore()


@pytest.fixture
def summary_store():
    return InMemorySummaryStore()


@pytest.fixture
def bus():
    return TradeClosedBus()


@pytest.fixture
def aggregator(summary_store, trade_store):
    return ProfitAggregator(summary_store, trade_store)


@pytest.fixture
def ledger(trade_store, bus, aggregator):
    bus.subscribe(aggregator.apply, name="ProfitAggregator")
    return TradeLedger(trade_store, bus)


@pytest.fixture
def alert_store():
    return InMemoryAlertStore()


@pytest.fixture
def notifications():
    return InMemoryNotificationSink()


@pytest.fixture
def index():
    return AlertIndex()


@pytest.fixture
def alert_service(index, alert_store, notifications):
    return AlertService(index, alert_store, InMemoryWatchlistStore(), notifications)


@pytest.fixture
def evaluator(index, alert_store, notifications):
    return AlertEvaluator(index, alert_store, notifications)


def _open_request(**overrides) -> TradeOpenRequest:
    fields = {
        "user_id": "u1",
        "symbol": "BTC",
        "type": "buy",
        "amount": Decimal("2"),
        "price": Decimal("100"),
    }
    fields.update(overrides)
    return TradeOpenRequest(**fields)


def _alert_request(**overrides) -> PriceAlertCreate:
    fields = {
        "user_id": "u1",
        "symbol": "BTC",
        "price": Decimal("50000"),
        "condition": AlertCondition.BELOW,
    }
    fields.update(overrides)
    return PriceAlertCreate(**fields)


@pytest.fixture
def open_request():
    """Builder for a 2 BTC buy at 100 for user u1; keyword overrides any field."""
    return _open_request


@pytest.fixture
def alert_request():
    """Builder for a BTC below-50000 alert for user u1; keyword overrides any field."""
    return _alert_request


@pytest.fixture
def flaky_notifications():
    """Factory: FlakyNotificationSink(failures=n)."""
    return FlakyNotificationSink


@pytest.fixture
def blocking_notifications():
    return BlockingNotificationSink()


@pytest.fixture
def yielding_alerts():
    return YieldingAlertStore()


@pytest.fixture
def flaky_summaries():
    """Factory: FlakySummaryStore(failures=n)."""
    return FlakySummaryStore
