"""Shared money and time helpers."""
from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal

MONEY_PLACES = 8
_QUANTUM = Decimal(1).scaleb(-MONEY_PLACES)


def to_money(x: Decimal | float | int | str | None) -> Decimal | None:
    """Quantize a value to MONEY_PLACES decimals; preserve None.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary expansion.
    """
    if x is None:
        return None
    value = x if isinstance(x, Decimal) else Decimal(str(x))
    return value.quantize(_QUANTUM, rounding=ROUND_HALF_EVEN)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None = None) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC, None means now."""
    if dt is None:
        return utc_now()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(ts: float | int | str | datetime | None) -> datetime:
    """Convert a feed timestamp to aware UTC.

    Accepts Unix seconds, Unix milliseconds (values above 1e11), ISO-8601 strings
    and datetimes. Missing timestamps fall back to now.
    """
    if ts is None:
        return utc_now()
    if isinstance(ts, datetime):
        return as_utc(ts)
    if isinstance(ts, str):
        try:
            ts = float(ts)
        except ValueError:
            return as_utc(datetime.fromisoformat(ts.replace("Z", "+00:00")))
    seconds = ts / 1000 if ts > 1e11 else ts
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
