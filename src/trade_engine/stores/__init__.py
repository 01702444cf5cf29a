"""Persistence collaborators: protocols plus in-memory and SQLModel backends."""
from trade_engine.stores.memory import (InMemoryAlertStore,
                                        InMemoryNotificationSink,
                                        InMemorySummaryStore,
                                        InMemoryTradeStore,
                                        InMemoryWatchlistStore)
from trade_engine.stores.protocols import (AlertStore, NotificationSink,
                                           SummaryStore, TradeStore,
                                           WatchlistStore)
from trade_engine.stores.sql import (SqlAlertStore, SqlNotificationSink,
                                     SqlSummaryStore, SqlTradeStore,
                                     SqlWatchlistStore)

__all__ = [
    "AlertStore",
    "InMemoryAlertStore",
    "InMemoryNotificationSink",
    "InMemorySummaryStore",
    "InMemoryTradeStore",
    "InMemoryWatchlistStore",
    "NotificationSink",
    "SqlAlertStore",
    "SqlNotificationSink",
    "SqlSummaryStore",
    "SqlTradeStore",
    "SqlWatchlistStore",
    "SummaryStore",
    "TradeStore",
    "WatchlistStore",
]
