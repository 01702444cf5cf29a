"""In-memory stores for single-process deployments and tests.

The event loop is the only writer, and no method awaits between reading and
writing a record, so each call is atomic with respect to other coroutines.
"""
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import TypeVar

from sqlmodel import SQLModel

from trade_engine.core.utils import utc_now
from trade_engine.db import (AppliedTrade, Notification, PriceAlert,
                             ProfitSummary, Trade, TradeStatus, Watchlist)

ModelT = TypeVar("ModelT", bound=SQLModel)


def _copy(obj: ModelT) -> ModelT:
    """Detached copy so callers cannot mutate stored state in place."""
    return type(obj).model_validate(obj.model_dump())


class InMemoryTradeStore:
    def __init__(self) -> None:
        self._trades: dict[str, Trade] = {}

    async def add(self, trade: Trade) -> Trade:
        self._trades[trade.id] = _copy(trade)
        return _copy(trade)

    async def get(self, trade_id: str) -> Trade | None:
        trade = self._trades.get(trade_id)
        return _copy(trade) if trade else None

    async def close(
        self,
        trade_id: str,
        *,
        close_time: datetime,
        close_price: Decimal | None,
        profit: Decimal,
    ) -> bool:
        trade = self._trades.get(trade_id)
        if trade is None or trade.status != TradeStatus.OPEN:
            return False
        trade.status = TradeStatus.CLOSED
        trade.close_time = close_time
        trade.close_price = close_price
        trade.profit = profit
        return True

    async def list_for_user(
        self, user_id: str, status: TradeStatus | None = None
    ) -> list[Trade]:
        trades = [
            _copy(t)
            for t in self._trades.values()
            if t.user_id == user_id and (status is None or t.status == status)
        ]
        trades.sort(key=lambda t: t.open_time, reverse=True)
        return trades


class InMemorySummaryStore:
    def __init__(self) -> None:
        self._summaries: dict[str, ProfitSummary] = {}
        self._applied: dict[str, AppliedTrade] = {}

    async def get(self, user_id: str) -> ProfitSummary | None:
        summary = self._summaries.get(user_id)
        return _copy(summary) if summary else None

    async def applied_profit(self, trade_id: str) -> Decimal | None:
        marker = self._applied.get(trade_id)
        return marker.profit if marker else None

    async def commit(self, summary: ProfitSummary, applied: AppliedTrade) -> None:
        self._summaries[summary.user_id] = _copy(summary)
        self._applied[applied.trade_id] = _copy(applied)

    async def replace(
        self, summary: ProfitSummary, applied: Sequence[AppliedTrade]
    ) -> None:
        self._applied = {
            trade_id: marker
            for trade_id, marker in self._applied.items()
            if marker.user_id != summary.user_id
        }
        for marker in applied:
            self._applied[marker.trade_id] = _copy(marker)
        self._summaries[summary.user_id] = _copy(summary)


class InMemoryAlertStore:
    def __init__(self) -> None:
        self._alerts: dict[str, PriceAlert] = {}

    async def add(self, alert: PriceAlert) -> PriceAlert:
        self._alerts[alert.id] = _copy(alert)
        return _copy(alert)

    async def get(self, alert_id: str) -> PriceAlert | None:
        alert = self._alerts.get(alert_id)
        return _copy(alert) if alert else None

    async def delete(self, alert_id: str) -> bool:
        return self._alerts.pop(alert_id, None) is not None

    async def list_armed(self) -> list[PriceAlert]:
        return [_copy(a) for a in self._alerts.values() if not a.triggered]

    async def list_for_user(self, user_id: str) -> list[PriceAlert]:
        return [_copy(a) for a in self._alerts.values() if a.user_id == user_id]

    async def claim(self, alert_id: str) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None or alert.triggered:
            return False
        alert.triggered = True
        alert.updated_at = utc_now()
        return True

    async def release(self, alert_id: str) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None or not alert.triggered:
            return False
        alert.triggered = False
        alert.updated_at = utc_now()
        return True


class InMemoryWatchlistStore:
    def __init__(self) -> None:
        self._watchlists: dict[str, Watchlist] = {}

    async def add(self, watchlist: Watchlist) -> Watchlist:
        self._watchlists[watchlist.id] = _copy(watchlist)
        return _copy(watchlist)

    async def get(self, watchlist_id: str) -> Watchlist | None:
        watchlist = self._watchlists.get(watchlist_id)
        return _copy(watchlist) if watchlist else None

    async def delete(self, watchlist_id: str) -> bool:
        return self._watchlists.pop(watchlist_id, None) is not None

    async def list_for_user(self, user_id: str) -> list[Watchlist]:
        return [_copy(w) for w in self._watchlists.values() if w.user_id == user_id]

    async def list_all(self) -> list[Watchlist]:
        return [_copy(w) for w in self._watchlists.values()]


class InMemoryNotificationSink:
    def __init__(self) -> None:
        self._notifications: list[Notification] = []

    async def create(self, notification: Notification) -> Notification:
        self._notifications.append(_copy(notification))
        return _copy(notification)

    async def list_for_user(self, user_id: str) -> list[Notification]:
        return [_copy(n) for n in self._notifications if n.user_id == user_id]
