"""Domain exceptions raised by the ledger, aggregator and alert services.

Validation errors (InvalidTradeInput, TradeNotFound, TradeAlreadyClosed, ...)
are final and returned to the caller. PersistenceFailure is transient: the
caller retries the triggering event, which is safe because apply and trigger
are idempotent.
"""


class TradeEngineError(Exception):
    """Base class for all engine errors."""


class InvalidTradeInput(TradeEngineError, ValueError):
    """Trade open/close request violates a constraint (amount, price, side...)."""


class TradeNotFound(TradeEngineError, LookupError):
    """No trade with the given id."""

    def __init__(self, trade_id: str) -> None:
        super().__init__(f"Trade '{trade_id}' not found")
        self.trade_id = trade_id


class TradeAlreadyClosed(TradeEngineError):
    """Trade is closed with values that differ from the close request."""

    def __init__(self, trade_id: str, detail: str | None = None) -> None:
        super().__init__(detail or f"Trade '{trade_id}' is already closed")
        self.trade_id = trade_id


class InvalidAlertInput(TradeEngineError, ValueError):
    """Price alert or watchlist request violates a constraint."""


class AlertNotFound(TradeEngineError, LookupError):
    """No price alert with the given id."""

    def __init__(self, alert_id: str) -> None:
        super().__init__(f"Alert '{alert_id}' not found")
        self.alert_id = alert_id


class WatchlistNotFound(TradeEngineError, LookupError):
    """No watchlist with the given id."""

    def __init__(self, watchlist_id: str) -> None:
        super().__init__(f"Watchlist '{watchlist_id}' not found")
        self.watchlist_id = watchlist_id


class AggregationConflict(TradeEngineError):
    """The same trade was applied twice with different profit values.

    Never expected while trades are immutable after close; surfaced as a fatal
    inconsistency instead of being resolved silently.
    """

    def __init__(self, trade_id: str, applied_profit, event_profit) -> None:
        super().__init__(
            f"Trade '{trade_id}' already aggregated with profit {applied_profit}, "
            f"got {event_profit}"
        )
        self.trade_id = trade_id
        self.applied_profit = applied_profit
        self.event_profit = event_profit


class PersistenceFailure(TradeEngineError):
    """A store call failed; the triggering event or tick should be retried."""
