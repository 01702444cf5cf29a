"""WebSocket tick ingestion: receive PriceTicks, evaluate, reply with results."""
import logging

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from trade_engine.core.exceptions import PersistenceFailure
from trade_engine.schemas import PriceTick
from trade_engine.services.alert_evaluator import AlertEvaluator

logger = logging.getLogger(__name__)


async def handle_tick_websocket(websocket: WebSocket, evaluator: AlertEvaluator) -> None:
    """Accept WebSocket, then evaluate each JSON tick the client sends.

    Every message gets a reply: the EvaluationResult, or {"error": ...} for an
    invalid tick or a trigger that must be retried.
    """
    await websocket.accept()
    try:
        while True:
            payload = await websocket.receive_json()
            try:
                tick = PriceTick.model_validate(payload)
            except ValidationError as exc:
                await websocket.send_json({"error": "invalid tick", "detail": str(exc)})
                continue
            try:
                result = await evaluator.evaluate(tick)
            except PersistenceFailure as exc:
                await websocket.send_json({"error": "retry", "detail": str(exc)})
                continue
            await websocket.send_json(result.model_dump(mode="json"))
    except WebSocketDisconnect:
        logger.debug("Tick stream client disconnected")
    except Exception as exc:
        logger.exception("Tick stream error: %s", exc)
        try:
            await websocket.close(code=1011, reason="Stream error")
        except Exception:
            pass
