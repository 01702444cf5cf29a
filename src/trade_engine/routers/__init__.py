"""API routers for the trade ledger and alert engine.

Includes routes for:
- /trades - open, close and list trades
- /summaries - per-user profit summaries
- /alerts, /watchlists, /notifications - alert management and fired alerts
- /ticks, /ticks/stream - price tick ingestion
"""
from trade_engine.routers.alerts import router as alerts_router
from trade_engine.routers.summaries import router as summaries_router
from trade_engine.routers.ticks import router as ticks_router
from trade_engine.routers.trades import router as trades_router

__all__ = [
    "alerts_router",
    "summaries_router",
    "ticks_router",
    "trades_router",
]
