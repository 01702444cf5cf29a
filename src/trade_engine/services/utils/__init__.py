"""Service helpers."""
from trade_engine.services.utils.stream_handler import handle_tick_websocket

__all__ = ["handle_tick_websocket"]
