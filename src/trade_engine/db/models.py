"""Database models for the trade ledger and price-alert engine.

User-owned entities only. ProfitSummary and Trade are the rows mutated after
creation by background processing; everything else changes on direct request.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, TypeDecorator
from sqlmodel import Field, SQLModel

from trade_engine.core.utils import utc_now


def _new_id() -> str:
    return str(uuid4())


class UtcDateTime(TypeDecorator):
    """Aware UTC datetimes in Python, naive UTC in the database.

    Reads come back aware on every backend, including SQLite which drops tzinfo.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class TradeSide(str, Enum):
    """Trade direction. buy/call/long profit when price rises; the rest when it falls."""

    BUY = "buy"
    SELL = "sell"
    CALL = "call"
    PUT = "put"
    LONG = "long"
    SHORT = "short"

    @property
    def is_long(self) -> bool:
        return self in (TradeSide.BUY, TradeSide.CALL, TradeSide.LONG)


class AlertCondition(str, Enum):
    """Price alert trigger condition. Ties (price == target) trigger."""

    ABOVE = "above"
    BELOW = "below"

    def is_met(self, price: Decimal, target: Decimal) -> bool:
        if self is AlertCondition.ABOVE:
            return price >= target
        return price <= target


class User(SQLModel, table=True):
    """Identity anchor; owns every other entity by user_id."""

    id: str = Field(default_factory=_new_id, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: str | None = None
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)


class Trade(SQLModel, table=True):
    """One position lifecycle: created open, closed once, then immutable."""

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    symbol: str = Field(index=True)
    type: TradeSide
    amount: Decimal = Field(max_digits=28, decimal_places=8)
    price: Decimal = Field(max_digits=28, decimal_places=8)
    total_value: Decimal = Field(max_digits=28, decimal_places=8)
    status: TradeStatus = Field(default=TradeStatus.OPEN, index=True)
    open_time: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime, index=True)
    close_time: datetime | None = Field(default=None, sa_type=UtcDateTime)
    close_price: Decimal | None = Field(default=None, max_digits=28, decimal_places=8)
    profit: Decimal | None = Field(default=None, max_digits=28, decimal_places=8)
    stop_loss: Decimal | None = Field(default=None, max_digits=28, decimal_places=8)
    take_profit: Decimal | None = Field(default=None, max_digits=28, decimal_places=8)
    leverage: Decimal | None = Field(default=None, max_digits=28, decimal_places=8)
    fees: Decimal | None = Field(default=None, max_digits=28, decimal_places=8)
    exchange: str | None = None
    order_type: str | None = None
    extra: dict | None = Field(default=None, sa_column=Column("metadata", JSON))


class ProfitSummary(SQLModel, table=True):
    """Per-user aggregate of closed trades; written only by ProfitAggregator."""

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(unique=True, index=True)
    total_profit: Decimal = Field(default=Decimal(0), max_digits=28, decimal_places=8)
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    last_updated: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)


class AppliedTrade(SQLModel, table=True):
    """Marker for a trade already folded into its owner's ProfitSummary."""

    trade_id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    profit: Decimal = Field(max_digits=28, decimal_places=8)


class Watchlist(SQLModel, table=True):
    """Named ordered set of symbols a user follows."""

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    symbols: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)


class PriceAlert(SQLModel, table=True):
    """One-shot threshold watch on a symbol's price."""

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    symbol: str = Field(index=True)
    price: Decimal = Field(max_digits=28, decimal_places=8)
    condition: AlertCondition
    triggered: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)


class Notification(SQLModel, table=True):
    """User-visible record of an event (e.g. a price alert firing)."""

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    type: str = Field(default="price_alert")
    title: str
    message: str
    alert_id: str | None = Field(default=None, index=True)
    read: bool = False
    created_at: datetime = Field(default_factory=utc_now, sa_type=UtcDateTime)
    extra: dict | None = Field(default=None, sa_column=Column("metadata", JSON))
