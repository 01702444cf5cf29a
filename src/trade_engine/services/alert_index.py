"""In-memory index of armed price alerts and watched symbols.

Alerts are keyed symbol -> {alert_id -> AlertEntry}, with secondary maps by
alert id and by user so add/remove are O(1). A triggered alert is removed and
never re-enters the index unless its trigger is rolled back.

All methods hold a short threading.Lock and never suspend, so the index is
safe to use from the event loop and from worker threads alike.
"""
import threading
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from trade_engine.db import AlertCondition, PriceAlert, Watchlist


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


@dataclass(frozen=True)
class AlertEntry:
    """The subset of a PriceAlert needed to evaluate a tick."""

    alert_id: str
    user_id: str
    symbol: str
    target: Decimal
    condition: AlertCondition

    @classmethod
    def from_alert(cls, alert: PriceAlert) -> "AlertEntry":
        return cls(
            alert_id=alert.id,
            user_id=alert.user_id,
            symbol=normalize_symbol(alert.symbol),
            target=Decimal(alert.price),
            condition=AlertCondition(alert.condition),
        )

    def is_met(self, price: Decimal) -> bool:
        return self.condition.is_met(price, self.target)


class AlertIndex:
    """symbol -> armed alerts, plus watchlist subscriptions per symbol."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_symbol: dict[str, dict[str, AlertEntry]] = defaultdict(dict)
        self._by_id: dict[str, AlertEntry] = {}
        self._by_user: dict[str, set[str]] = defaultdict(set)
        # watchlist_id -> (user_id, symbols); symbol -> watchlist ids
        self._watchlists: dict[str, tuple[str, frozenset[str]]] = {}
        self._watchers: dict[str, set[str]] = defaultdict(set)

    def rebuild(
        self,
        alerts: Iterable[PriceAlert],
        watchlists: Iterable[Watchlist] = (),
    ) -> None:
        """Replace the whole index. Triggered alerts are skipped."""
        entries = [AlertEntry.from_alert(a) for a in alerts if not a.triggered]
        with self._lock:
            self._by_symbol.clear()
            self._by_id.clear()
            self._by_user.clear()
            self._watchlists.clear()
            self._watchers.clear()
            for entry in entries:
                self._insert(entry)
            for watchlist in watchlists:
                self._insert_watchlist(watchlist)

    def add(self, alert: PriceAlert | AlertEntry) -> None:
        """Insert or replace an alert entry. Triggered PriceAlerts are ignored."""
        if isinstance(alert, PriceAlert):
            if alert.triggered:
                return
            alert = AlertEntry.from_alert(alert)
        with self._lock:
            self._pop(alert.alert_id)
            self._insert(alert)

    def remove(self, alert_id: str) -> AlertEntry | None:
        """Drop an alert; returns the removed entry, or None if it was absent."""
        with self._lock:
            return self._pop(alert_id)

    def candidates(self, symbol: str) -> list[AlertEntry]:
        """Snapshot of armed alerts for a symbol."""
        with self._lock:
            bucket = self._by_symbol.get(normalize_symbol(symbol))
            return list(bucket.values()) if bucket else []

    def active_for_user(self, user_id: str) -> list[AlertEntry]:
        with self._lock:
            return [self._by_id[a] for a in self._by_user.get(user_id, ())]

    def watch(self, watchlist: Watchlist) -> None:
        """Subscribe a watchlist's symbols (replaces a previous version of it)."""
        with self._lock:
            self._drop_watchlist(watchlist.id)
            self._insert_watchlist(watchlist)

    def unwatch(self, watchlist_id: str) -> None:
        with self._lock:
            self._drop_watchlist(watchlist_id)

    def watchers(self, symbol: str) -> set[str]:
        """User ids with the symbol on at least one watchlist."""
        with self._lock:
            ids = self._watchers.get(normalize_symbol(symbol), ())
            return {self._watchlists[w][0] for w in ids}

    def watched_symbols(self) -> set[str]:
        with self._lock:
            return set(self._watchers)

    def symbols(self) -> set[str]:
        """Every symbol with an armed alert or a watcher: what the tick feed must cover."""
        with self._lock:
            return set(self._by_symbol) | set(self._watchers)

    def __contains__(self, alert_id: object) -> bool:
        with self._lock:
            return alert_id in self._by_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    # Callers hold self._lock.

    def _insert(self, entry: AlertEntry) -> None:
        self._by_symbol[entry.symbol][entry.alert_id] = entry
        self._by_id[entry.alert_id] = entry
        self._by_user[entry.user_id].add(entry.alert_id)

    def _pop(self, alert_id: str) -> AlertEntry | None:
        entry = self._by_id.pop(alert_id, None)
        if entry is None:
            return None
        bucket = self._by_symbol.get(entry.symbol)
        if bucket is not None:
            bucket.pop(alert_id, None)
            if not bucket:
                del self._by_symbol[entry.symbol]
        user_alerts = self._by_user.get(entry.user_id)
        if user_alerts is not None:
            user_alerts.discard(alert_id)
            if not user_alerts:
                del self._by_user[entry.user_id]
        return entry

    def _insert_watchlist(self, watchlist: Watchlist) -> None:
        symbols = frozenset(normalize_symbol(s) for s in watchlist.symbols if s.strip())
        self._watchlists[watchlist.id] = (watchlist.user_id, symbols)
        for symbol in symbols:
            self._watchers[symbol].add(watchlist.id)

    def _drop_watchlist(self, watchlist_id: str) -> None:
        previous = self._watchlists.pop(watchlist_id, None)
        if previous is None:
            return
        for symbol in previous[1]:
            ids = self._watchers.get(symbol)
            if ids is not None:
                ids.discard(watchlist_id)
                if not ids:
                    del self._watchers[symbol]
