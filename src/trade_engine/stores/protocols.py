"""Protocols for the persistence collaborators the engine depends on.

Every call may suspend; implementations raise PersistenceFailure when the
backing store is unavailable. Returned records are detached copies: mutating
them never changes stored state without an explicit store call.
"""
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from trade_engine.db import (AppliedTrade, Notification, PriceAlert,
                             ProfitSummary, Trade, TradeStatus, Watchlist)


class TradeStore(Protocol):
    async def add(self, trade: Trade) -> Trade: ...

    async def get(self, trade_id: str) -> Trade | None: ...

    async def close(
        self,
        trade_id: str,
        *,
        close_time: datetime,
        close_price: Decimal | None,
        profit: Decimal,
    ) -> bool:
        """Conditionally move an open trade to closed. False if it was not open."""
        ...

    async def list_for_user(
        self, user_id: str, status: TradeStatus | None = None
    ) -> list[Trade]:
        """Trades for a user, newest open_time first."""
        ...


class SummaryStore(Protocol):
    async def get(self, user_id: str) -> ProfitSummary | None: ...

    async def applied_profit(self, trade_id: str) -> Decimal | None:
        """Profit recorded when trade_id was aggregated, or None if never applied."""
        ...

    async def commit(self, summary: ProfitSummary, applied: AppliedTrade) -> None:
        """Save summary and the applied marker atomically."""
        ...

    async def replace(
        self, summary: ProfitSummary, applied: Sequence[AppliedTrade]
    ) -> None:
        """Overwrite a user's summary and every applied marker atomically."""
        ...


class AlertStore(Protocol):
    async def add(self, alert: PriceAlert) -> PriceAlert: ...

    async def get(self, alert_id: str) -> PriceAlert | None: ...

    async def delete(self, alert_id: str) -> bool: ...

    async def list_armed(self) -> list[PriceAlert]:
        """All alerts with triggered = false."""
        ...

    async def list_for_user(self, user_id: str) -> list[PriceAlert]: ...

    async def claim(self, alert_id: str) -> bool:
        """Compare-and-set triggered false -> true. True only for the single winner."""
        ...

    async def release(self, alert_id: str) -> bool:
        """Undo a claim: triggered true -> false. False if the alert no longer exists."""
        ...


class WatchlistStore(Protocol):
    async def add(self, watchlist: Watchlist) -> Watchlist: ...

    async def get(self, watchlist_id: str) -> Watchlist | None: ...

    async def delete(self, watchlist_id: str) -> bool: ...

    async def list_for_user(self, user_id: str) -> list[Watchlist]: ...

    async def list_all(self) -> list[Watchlist]: ...


class NotificationSink(Protocol):
    async def create(self, notification: Notification) -> Notification: ...

    async def list_for_user(self, user_id: str) -> list[Notification]: ...
