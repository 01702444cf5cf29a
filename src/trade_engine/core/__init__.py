"""Core abstractions: domain errors, HTTP error mapping, money and time helpers."""
from trade_engine.core.error_mapper import EngineErrorMapper
from trade_engine.core.exceptions import (
    AggregationConflict,
    AlertNotFound,
    InvalidAlertInput,
    InvalidTradeInput,
    PersistenceFailure,
    TradeAlreadyClosed,
    TradeEngineError,
    TradeNotFound,
    WatchlistNotFound,
)
from trade_engine.core.utils import as_utc, parse_timestamp, to_money, utc_now

__all__ = [
    "AggregationConflict",
    "AlertNotFound",
    "EngineErrorMapper",
    "InvalidAlertInput",
    "InvalidTradeInput",
    "PersistenceFailure",
    "TradeAlreadyClosed",
    "TradeEngineError",
    "TradeNotFound",
    "WatchlistNotFound",
    "as_utc",
    "parse_timestamp",
    "to_money",
    "utc_now",
]
