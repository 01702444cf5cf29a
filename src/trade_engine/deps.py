"""FastAPI dependency injection: app.state holds singletons; Depends() resolves them.

wire_services() is the composition root. The app lifespan (main.py) calls it
once at startup; tests call it directly with the in-memory backend.
"""
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, FastAPI, Request, WebSocket
from sqlalchemy.engine import Engine

from trade_engine.db.sessions import get_engine, init_db
from trade_engine.services import (AlertEvaluator, AlertIndex, AlertService,
                                   ProfitAggregator, TradeClosedBus,
                                   TradeLedger)
from trade_engine.stores import (AlertStore, InMemoryAlertStore,
                                 InMemoryNotificationSink,
                                 InMemorySummaryStore, InMemoryTradeStore,
                                 InMemoryWatchlistStore, NotificationSink,
                                 SqlAlertStore, SqlNotificationSink,
                                 SqlSummaryStore, SqlTradeStore,
                                 SqlWatchlistStore, SummaryStore, TradeStore,
                                 WatchlistStore)


@dataclass(frozen=True)
class Stores:
    trades: TradeStore
    summaries: SummaryStore
    alerts: AlertStore
    watchlists: WatchlistStore
    notifications: NotificationSink


def build_stores(storage: str = "memory", engine: Engine | None = None) -> Stores:
    """Create the store set for a backend name ("memory" or "sql")."""
    if storage == "memory":
        return Stores(
            trades=InMemoryTradeStore(),
            summaries=InMemorySummaryStore(),
            alerts=InMemoryAlertStore(),
            watchlists=InMemoryWatchlistStore(),
            notifications=InMemoryNotificationSink(),
        )
    if storage == "sql":
        engine = engine or get_engine()
        init_db(engine)
        return Stores(
            trades=SqlTradeStore(engine),
            summaries=SqlSummaryStore(engine),
            alerts=SqlAlertStore(engine),
            watchlists=SqlWatchlistStore(engine),
            notifications=SqlNotificationSink(engine),
        )
    raise ValueError(f"Unknown storage backend: {storage!r} (expected 'memory' or 'sql')")


def wire_services(app: FastAPI, stores: Stores) -> None:
    """Create services over the given stores and attach them to app.state."""
    bus = TradeClosedBus()
    index = AlertIndex()
    aggregator = ProfitAggregator(stores.summaries, stores.trades)
    bus.subscribe(aggregator.apply, name="ProfitAggregator")

    app.state.bus = bus
    app.state.alert_index = index
    app.state.ledger = TradeLedger(stores.trades, bus)
    app.state.aggregator = aggregator
    app.state.alert_service = AlertService(
        index, stores.alerts, stores.watchlists, stores.notifications
    )
    app.state.evaluator = AlertEvaluator(index, stores.alerts, stores.notifications)


def get_ledger(request: Request) -> TradeLedger:
    """Resolve the TradeLedger from app.state (created at startup)."""
    return request.app.state.ledger


def get_aggregator(request: Request) -> ProfitAggregator:
    return request.app.state.aggregator


def get_alert_service(request: Request) -> AlertService:
    return request.app.state.alert_service


def get_evaluator(request: Request) -> AlertEvaluator:
    return request.app.state.evaluator


def get_evaluator_ws(websocket: WebSocket) -> AlertEvaluator:
    """Resolve the AlertEvaluator for WebSocket routes."""
    return websocket.scope["app"].state.evaluator


# Type aliases for route injection
LedgerDep = Annotated[TradeLedger, Depends(get_ledger)]
AggregatorDep = Annotated[ProfitAggregator, Depends(get_aggregator)]
AlertServiceDep = Annotated[AlertService, Depends(get_alert_service)]
EvaluatorDep = Annotated[AlertEvaluator, Depends(get_evaluator)]
EvaluatorWs = Annotated[AlertEvaluator, Depends(get_evaluator_ws)]
