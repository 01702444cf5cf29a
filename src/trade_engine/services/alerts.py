"""Alert and watchlist management: keeps stores and the AlertIndex in step."""
import logging
from decimal import Decimal

from trade_engine.core.exceptions import (AlertNotFound, InvalidAlertInput,
                                          WatchlistNotFound)
from trade_engine.core.utils import to_money, utc_now
from trade_engine.db import Notification, PriceAlert, Watchlist
from trade_engine.schemas import PriceAlertCreate, WatchlistCreate
from trade_engine.services.alert_index import AlertIndex, normalize_symbol
from trade_engine.stores.protocols import (AlertStore, NotificationSink,
                                           WatchlistStore)

logger = logging.getLogger(__name__)


class AlertService:
    """CRUD surface for price alerts, watchlists and notifications."""

    def __init__(
        self,
        index: AlertIndex,
        alerts: AlertStore,
        watchlists: WatchlistStore,
        notifications: NotificationSink,
    ) -> None:
        self._index = index
        self._alerts = alerts
        self._watchlists = watchlists
        self._notifications = notifications

    async def load_index(self) -> int:
        """Full rebuild of the index from storage (startup). Returns armed alert count."""
        alerts = await self._alerts.list_armed()
        watchlists = await self._watchlists.list_all()
        self._index.rebuild(alerts, watchlists)
        logger.info(
            "Alert index built: %d armed alert(s), %d watched symbol(s)",
            len(self._index), len(self._index.watched_symbols()),
        )
        return len(self._index)

    async def create_alert(self, request: PriceAlertCreate) -> PriceAlert:
        """Store a new armed alert and index it."""
        symbol = normalize_symbol(request.symbol)
        if not symbol:
            raise InvalidAlertInput("symbol is required")
        if not request.price.is_finite() or request.price <= Decimal(0):
            raise InvalidAlertInput(f"price must be > 0, got {request.price}")
        alert = PriceAlert(
            user_id=request.user_id,
            symbol=symbol,
            price=to_money(request.price),
            condition=request.condition,
            triggered=False,
        )
        stored = await self._alerts.add(alert)
        self._index.add(stored)
        logger.info(
            "Alert %s armed for user %s: %s %s %s",
            stored.id, stored.user_id, stored.symbol, stored.condition.value, stored.price,
        )
        return stored

    async def delete_alert(self, alert_id: str) -> None:
        alert = await self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFound(alert_id)
        self._index.remove(alert_id)
        try:
            await self._alerts.delete(alert_id)
        except Exception:
            self._index.add(alert)
            raise

    async def get_alert(self, alert_id: str) -> PriceAlert:
        alert = await self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFound(alert_id)
        return alert

    async def get_active_alerts(self, user_id: str) -> list[PriceAlert]:
        """Untriggered alerts owned by user_id."""
        return [a for a in await self._alerts.list_for_user(user_id) if not a.triggered]

    async def create_watchlist(self, request: WatchlistCreate) -> Watchlist:
        name = request.name.strip()
        if not name:
            raise InvalidAlertInput("watchlist name is required")
        symbols: list[str] = []
        for raw in request.symbols:
            symbol = normalize_symbol(raw)
            if symbol and symbol not in symbols:
                symbols.append(symbol)
        now = utc_now()
        watchlist = Watchlist(
            user_id=request.user_id,
            name=name,
            symbols=symbols,
            created_at=now,
            updated_at=now,
        )
        stored = await self._watchlists.add(watchlist)
        self._index.watch(stored)
        return stored

    async def delete_watchlist(self, watchlist_id: str) -> None:
        if not await self._watchlists.delete(watchlist_id):
            raise WatchlistNotFound(watchlist_id)
        self._index.unwatch(watchlist_id)

    async def list_watchlists(self, user_id: str) -> list[Watchlist]:
        return await self._watchlists.list_for_user(user_id)

    async def list_notifications(self, user_id: str) -> list[Notification]:
        return await self._notifications.list_for_user(user_id)
