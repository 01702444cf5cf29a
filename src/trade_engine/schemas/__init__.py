"""Pydantic schemas for API requests, ticks and events. Not persisted to DB."""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from trade_engine.core.utils import parse_timestamp, utc_now
from trade_engine.db import AlertCondition, TradeSide


class PriceTick(BaseModel):
    """A single price observation for a symbol, as delivered by the market-data feed."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    price: Decimal = Field(gt=0)
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, v):
        return parse_timestamp(v)


class TradeOpenRequest(BaseModel):
    """Open a position. Range checks live in TradeLedger so every caller gets them."""

    user_id: str
    symbol: str
    type: TradeSide
    amount: Decimal
    price: Decimal
    open_time: datetime | None = None
    stop_loss: Decimal | None = None
    take_profit: Decimal | None = None
    leverage: Decimal | None = None
    fees: Decimal | None = None
    exchange: str | None = None
    order_type: str | None = None
    metadata: dict | None = None


class TradeCloseRequest(BaseModel):
    """Close a position at close_price, or with a broker-settled profit."""

    close_price: Decimal | None = None
    close_time: datetime | None = None
    settled_profit: Decimal | None = None


class TradeClosed(BaseModel):
    """Event emitted once per successful trade close."""

    model_config = ConfigDict(frozen=True)

    trade_id: str
    user_id: str
    profit: Decimal
    is_win: bool


class PriceAlertCreate(BaseModel):
    user_id: str
    symbol: str
    price: Decimal
    condition: AlertCondition


class WatchlistCreate(BaseModel):
    user_id: str
    name: str
    symbols: list[str] = Field(default_factory=list)


class EvaluationResult(BaseModel):
    """Outcome of evaluating one tick."""

    symbol: str
    price: Decimal
    triggered: list[str] = Field(default_factory=list)  # alert ids
    notifications: list[str] = Field(default_factory=list)  # notification ids


__all__ = [
    "EvaluationResult",
    "PriceAlertCreate",
    "PriceTick",
    "TradeCloseRequest",
    "TradeClosed",
    "TradeOpenRequest",
    "WatchlistCreate",
]
