"""Domain concept for mapping engine exceptions to HTTP responses."""
from dataclasses import dataclass

from fastapi import HTTPException

from trade_engine.core.exceptions import (
    AggregationConflict,
    AlertNotFound,
    InvalidAlertInput,
    InvalidTradeInput,
    PersistenceFailure,
    TradeAlreadyClosed,
    TradeNotFound,
    WatchlistNotFound,
)


@dataclass(frozen=True)
class EngineErrorMapper:
    """Maps engine exceptions to HTTP (status_code, detail).

    Inject this into routers so every domain (trades, alerts, summaries) reports
    errors the same way, with its own resource name.
    """

    resource_name: str = "Resource"

    def to_http(
        self,
        exc: Exception,
        resource_id: str | None = None,
    ) -> tuple[int, str]:
        """Map an engine exception to (status_code, detail) for HTTP responses.

        Args:
            exc: The exception raised by a service.
            resource_id: Optional identifier to include in 404 details.

        Returns:
            (status_code, detail) suitable for HTTPException(status_code=..., detail=...).
        """
        if isinstance(exc, (TradeNotFound, AlertNotFound, WatchlistNotFound)):
            if resource_id is None:
                return (404, str(exc))
            return (404, f"{self.resource_name} '{resource_id}' not found")
        if isinstance(exc, TradeAlreadyClosed):
            return (409, str(exc))
        if isinstance(exc, (InvalidTradeInput, InvalidAlertInput)):
            return (422, str(exc))
        if isinstance(exc, PersistenceFailure):
            return (503, f"{self.resource_name} storage unavailable, retry the request")
        if isinstance(exc, AggregationConflict):
            return (500, "Aggregation conflict")
        return (500, "Internal server error")

    def raise_http(
        self,
        exc: Exception,
        resource_id: str | None = None,
    ) -> None:
        """Map engine exception to HTTP and raise HTTPException. Never returns."""
        status_code, detail = self.to_http(exc, resource_id=resource_id)
        raise HTTPException(status_code=status_code, detail=detail) from exc
