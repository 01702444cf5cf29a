"""Price tick ingestion routes (REST and WebSocket)."""
from fastapi import APIRouter, WebSocket

from trade_engine.core import EngineErrorMapper, TradeEngineError
from trade_engine.deps import EvaluatorDep, EvaluatorWs
from trade_engine.schemas import EvaluationResult, PriceTick
from trade_engine.services.utils import handle_tick_websocket

router = APIRouter(prefix="/ticks", tags=["ticks"])
_errors = EngineErrorMapper(resource_name="Alert")


@router.post("", response_model=EvaluationResult)
async def post_tick(tick: PriceTick, evaluator: EvaluatorDep) -> EvaluationResult:
    """Evaluate one tick; returns the alerts it fired. 503 means retry the tick."""
    try:
        return await evaluator.evaluate(tick)
    except TradeEngineError as e:
        _errors.raise_http(e)


@router.websocket("/stream")
async def stream_ticks(websocket: WebSocket, evaluator: EvaluatorWs) -> None:
    """Ingest ticks over WebSocket.

    Send one JSON tick per message: {"symbol": "BTC", "price": 50000}.
    Each message is answered with an EvaluationResult JSON.
    """
    await handle_tick_websocket(websocket, evaluator)
