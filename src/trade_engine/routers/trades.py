"""Trade lifecycle routes: open, close, lookup and history."""
from fastapi import APIRouter, Query

from trade_engine.core import EngineErrorMapper, TradeEngineError
from trade_engine.db import Trade, TradeStatus
from trade_engine.deps import LedgerDep
from trade_engine.schemas import TradeCloseRequest, TradeOpenRequest

router = APIRouter(prefix="/trades", tags=["trades"])
_errors = EngineErrorMapper(resource_name="Trade")


@router.post("", response_model=Trade, status_code=201)
async def open_trade(body: TradeOpenRequest, ledger: LedgerDep) -> Trade:
    """Open a position; total_value is computed as amount * price."""
    try:
        return await ledger.open_trade(body)
    except TradeEngineError as e:
        _errors.raise_http(e)


@router.post("/{trade_id}/close", response_model=Trade)
async def close_trade(trade_id: str, body: TradeCloseRequest, ledger: LedgerDep) -> Trade:
    """Close an open trade at close_price, or with a broker-settled profit.

    Repeating a close with the same close_time and outcome returns the trade
    unchanged; a close with different values is a 409.
    """
    try:
        return await ledger.close_trade(
            trade_id,
            close_price=body.close_price,
            close_time=body.close_time,
            settled_profit=body.settled_profit,
        )
    except TradeEngineError as e:
        _errors.raise_http(e, resource_id=trade_id)


@router.get("/{trade_id}", response_model=Trade)
async def get_trade(trade_id: str, ledger: LedgerDep) -> Trade:
    try:
        return await ledger.get_trade(trade_id)
    except TradeEngineError as e:
        _errors.raise_http(e, resource_id=trade_id)


@router.get("", response_model=list[Trade])
async def list_trades(
    ledger: LedgerDep,
    user_id: str = Query(..., description="Owner of the trades"),
    status: TradeStatus | None = Query(default=None),
) -> list[Trade]:
    """Trade history for a user, newest first."""
    try:
        return await ledger.list_trades(user_id, status)
    except TradeEngineError as e:
        _errors.raise_http(e)
