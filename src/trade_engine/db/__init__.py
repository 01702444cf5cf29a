"""Database package: models and session management."""
from trade_engine.db.models import (
    AlertCondition,
    AppliedTrade,
    Notification,
    PriceAlert,
    ProfitSummary,
    Trade,
    TradeSide,
    TradeStatus,
    User,
    Watchlist,
)

__all__ = [
    "AlertCondition",
    "AppliedTrade",
    "Notification",
    "PriceAlert",
    "ProfitSummary",
    "Trade",
    "TradeSide",
    "TradeStatus",
    "User",
    "Watchlist",
]
