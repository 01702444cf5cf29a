"""SQLModel-backed stores.

Sessions are synchronous (shared engine from db.sessions); each call runs in a
worker thread so the event loop never blocks on the database. Conditional
updates (trade close, alert claim) are single UPDATE ... WHERE statements, so
the row count decides the winner across processes as well as coroutines.
"""
import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import TypeVar

from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from trade_engine.core.exceptions import PersistenceFailure
from trade_engine.core.utils import utc_now
from trade_engine.db import (AppliedTrade, Notification, PriceAlert,
                             ProfitSummary, Trade, TradeStatus, Watchlist)
from trade_engine.db.sessions import get_engine, get_session

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _SqlStore:
    """Shared engine handling and error translation."""

    def __init__(self, engine: Engine | None = None) -> None:
        self._engine = engine or get_engine()

    async def _run(self, fn: Callable[..., T], *args) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as exc:
            logger.warning("%s.%s failed: %s", type(self).__name__, fn.__name__, exc)
            raise PersistenceFailure(f"{type(self).__name__}: {exc}") from exc


class SqlTradeStore(_SqlStore):
    async def add(self, trade: Trade) -> Trade:
        return await self._run(self._add, trade)

    def _add(self, trade: Trade) -> Trade:
        with get_session(self._engine) as session:
            session.add(trade)
        return trade

    async def get(self, trade_id: str) -> Trade | None:
        return await self._run(self._get, trade_id)

    def _get(self, trade_id: str) -> Trade | None:
        with get_session(self._engine) as session:
            return session.get(Trade, trade_id)

    async def close(
        self,
        trade_id: str,
        *,
        close_time: datetime,
        close_price: Decimal | None,
        profit: Decimal,
    ) -> bool:
        return await self._run(self._close, trade_id, close_time, close_price, profit)

    def _close(
        self,
        trade_id: str,
        close_time: datetime,
        close_price: Decimal | None,
        profit: Decimal,
    ) -> bool:
        stmt = (
            update(Trade)
            .where(col(Trade.id) == trade_id, col(Trade.status) == TradeStatus.OPEN)
            .values(
                status=TradeStatus.CLOSED,
                close_time=close_time,
                close_price=close_price,
                profit=profit,
            )
        )
        with get_session(self._engine) as session:
            return session.execute(stmt).rowcount == 1

    async def list_for_user(
        self, user_id: str, status: TradeStatus | None = None
    ) -> list[Trade]:
        return await self._run(self._list_for_user, user_id, status)

    def _list_for_user(self, user_id: str, status: TradeStatus | None) -> list[Trade]:
        stmt = select(Trade).where(Trade.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Trade.status == status)
        stmt = stmt.order_by(col(Trade.open_time).desc())
        with get_session(self._engine) as session:
            return list(session.exec(stmt).all())


class SqlSummaryStore(_SqlStore):
    async def get(self, user_id: str) -> ProfitSummary | None:
        return await self._run(self._get, user_id)

    def _get(self, user_id: str) -> ProfitSummary | None:
        stmt = select(ProfitSummary).where(ProfitSummary.user_id == user_id)
        with get_session(self._engine) as session:
            return session.exec(stmt).first()

    async def applied_profit(self, trade_id: str) -> Decimal | None:
        return await self._run(self._applied_profit, trade_id)

    def _applied_profit(self, trade_id: str) -> Decimal | None:
        with get_session(self._engine) as session:
            marker = session.get(AppliedTrade, trade_id)
            return marker.profit if marker else None

    async def commit(self, summary: ProfitSummary, applied: AppliedTrade) -> None:
        await self._run(self._commit, summary, applied)

    def _commit(self, summary: ProfitSummary, applied: AppliedTrade) -> None:
        with get_session(self._engine) as session:
            session.merge(summary)
            session.add(applied)

    async def replace(
        self, summary: ProfitSummary, applied: Sequence[AppliedTrade]
    ) -> None:
        await self._run(self._replace, summary, list(applied))

    def _replace(self, summary: ProfitSummary, applied: list[AppliedTrade]) -> None:
        with get_session(self._engine) as session:
            session.execute(
                delete(AppliedTrade).where(col(AppliedTrade.user_id) == summary.user_id)
            )
            session.merge(summary)
            session.add_all(applied)


class SqlAlertStore(_SqlStore):
    async def add(self, alert: PriceAlert) -> PriceAlert:
        return await self._run(self._add, alert)

    def _add(self, alert: PriceAlert) -> PriceAlert:
        with get_session(self._engine) as session:
            session.add(alert)
        return alert

    async def get(self, alert_id: str) -> PriceAlert | None:
        return await self._run(self._get, alert_id)

    def _get(self, alert_id: str) -> PriceAlert | None:
        with get_session(self._engine) as session:
            return session.get(PriceAlert, alert_id)

    async def delete(self, alert_id: str) -> bool:
        return await self._run(self._delete, alert_id)

    def _delete(self, alert_id: str) -> bool:
        with get_session(self._engine) as session:
            stmt = delete(PriceAlert).where(col(PriceAlert.id) == alert_id)
            return session.execute(stmt).rowcount == 1

    async def list_armed(self) -> list[PriceAlert]:
        return await self._run(self._list_armed)

    def _list_armed(self) -> list[PriceAlert]:
        stmt = select(PriceAlert).where(col(PriceAlert.triggered).is_(False))
        with get_session(self._engine) as session:
            return list(session.exec(stmt).all())

    async def list_for_user(self, user_id: str) -> list[PriceAlert]:
        return await self._run(self._list_for_user, user_id)

    def _list_for_user(self, user_id: str) -> list[PriceAlert]:
        stmt = select(PriceAlert).where(PriceAlert.user_id == user_id)
        with get_session(self._engine) as session:
            return list(session.exec(stmt).all())

    async def claim(self, alert_id: str) -> bool:
        return await self._run(self._set_triggered, alert_id, True)

    async def release(self, alert_id: str) -> bool:
        return await self._run(self._set_triggered, alert_id, False)

    def _set_triggered(self, alert_id: str, triggered: bool) -> bool:
        stmt = (
            update(PriceAlert)
            .where(
                col(PriceAlert.id) == alert_id,
                col(PriceAlert.triggered).is_(not triggered),
            )
            .values(triggered=triggered, updated_at=utc_now())
        )
        with get_session(self._engine) as session:
            return session.execute(stmt).rowcount == 1


class SqlWatchlistStore(_SqlStore):
    async def add(self, watchlist: Watchlist) -> Watchlist:
        return await self._run(self._add, watchlist)

    def _add(self, watchlist: Watchlist) -> Watchlist:
        with get_session(self._engine) as session:
            session.add(watchlist)
        return watchlist

    async def get(self, watchlist_id: str) -> Watchlist | None:
        return await self._run(self._get, watchlist_id)

    def _get(self, watchlist_id: str) -> Watchlist | None:
        with get_session(self._engine) as session:
            return session.get(Watchlist, watchlist_id)

    async def delete(self, watchlist_id: str) -> bool:
        return await self._run(self._delete, watchlist_id)

    def _delete(self, watchlist_id: str) -> bool:
        with get_session(self._engine) as session:
            stmt = delete(Watchlist).where(col(Watchlist.id) == watchlist_id)
            return session.execute(stmt).rowcount == 1

    async def list_for_user(self, user_id: str) -> list[Watchlist]:
        return await self._run(self._list_for_user, user_id)

    def _list_for_user(self, user_id: str) -> list[Watchlist]:
        stmt = select(Watchlist).where(Watchlist.user_id == user_id)
        with get_session(self._engine) as session:
            return list(session.exec(stmt).all())

    async def list_all(self) -> list[Watchlist]:
        return await self._run(self._list_all)

    def _list_all(self) -> list[Watchlist]:
        with get_session(self._engine) as session:
            return list(session.exec(select(Watchlist)).all())


class SqlNotificationSink(_SqlStore):
    async def create(self, notification: Notification) -> Notification:
        return await self._run(self._create, notification)

    def _create(self, notification: Notification) -> Notification:
        with get_session(self._engine) as session:
            session.add(notification)
        return notification

    async def list_for_user(self, user_id: str) -> list[Notification]:
        return await self._run(self._list_for_user, user_id)

    def _list_for_user(self, user_id: str) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(col(Notification.created_at).desc())
        )
        with get_session(self._engine) as session:
            return list(session.exec(stmt).all())
