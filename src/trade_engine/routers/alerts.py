"""Price alert, watchlist and notification routes."""
from fastapi import APIRouter, Query, Response

from trade_engine.core import EngineErrorMapper, TradeEngineError
from trade_engine.db import Notification, PriceAlert, Watchlist
from trade_engine.deps import AlertServiceDep
from trade_engine.schemas import PriceAlertCreate, WatchlistCreate

router = APIRouter(tags=["alerts"])
_alert_errors = EngineErrorMapper(resource_name="Alert")
_watchlist_errors = EngineErrorMapper(resource_name="Watchlist")


@router.post("/alerts", response_model=PriceAlert, status_code=201)
async def create_alert(body: PriceAlertCreate, service: AlertServiceDep) -> PriceAlert:
    """Arm a one-shot alert: above fires at price >= target, below at price <= target."""
    try:
        return await service.create_alert(body)
    except TradeEngineError as e:
        _alert_errors.raise_http(e)


@router.get("/alerts", response_model=list[PriceAlert])
async def get_active_alerts(
    service: AlertServiceDep,
    user_id: str = Query(..., description="Owner of the alerts"),
) -> list[PriceAlert]:
    """Untriggered alerts for a user."""
    try:
        return await service.get_active_alerts(user_id)
    except TradeEngineError as e:
        _alert_errors.raise_http(e)


@router.get("/alerts/{alert_id}", response_model=PriceAlert)
async def get_alert(alert_id: str, service: AlertServiceDep) -> PriceAlert:
    try:
        return await service.get_alert(alert_id)
    except TradeEngineError as e:
        _alert_errors.raise_http(e, resource_id=alert_id)


@router.delete("/alerts/{alert_id}", status_code=204)
async def delete_alert(alert_id: str, service: AlertServiceDep) -> Response:
    try:
        await service.delete_alert(alert_id)
    except TradeEngineError as e:
        _alert_errors.raise_http(e, resource_id=alert_id)
    return Response(status_code=204)


@router.post("/watchlists", response_model=Watchlist, status_code=201)
async def create_watchlist(body: WatchlistCreate, service: AlertServiceDep) -> Watchlist:
    try:
        return await service.create_watchlist(body)
    except TradeEngineError as e:
        _watchlist_errors.raise_http(e)


@router.get("/watchlists", response_model=list[Watchlist])
async def list_watchlists(
    service: AlertServiceDep,
    user_id: str = Query(..., description="Owner of the watchlists"),
) -> list[Watchlist]:
    try:
        return await service.list_watchlists(user_id)
    except TradeEngineError as e:
        _watchlist_errors.raise_http(e)


@router.delete("/watchlists/{watchlist_id}", status_code=204)
async def delete_watchlist(watchlist_id: str, service: AlertServiceDep) -> Response:
    try:
        await service.delete_watchlist(watchlist_id)
    except TradeEngineError as e:
        _watchlist_errors.raise_http(e, resource_id=watchlist_id)
    return Response(status_code=204)


@router.get("/notifications", response_model=list[Notification])
async def list_notifications(
    service: AlertServiceDep,
    user_id: str = Query(..., description="Recipient of the notifications"),
) -> list[Notification]:
    try:
        return await service.list_notifications(user_id)
    except TradeEngineError as e:
        _alert_errors.raise_http(e)
