"""Websocket client for the upstream market-data tick feed.

The feed sends JSON messages {"symbol": ..., "price": ..., "timestamp": ...}
(timestamp in Unix seconds, milliseconds or ISO-8601). On connect, and again
whenever the set changes, we send a subscribe message with the symbols the
AlertIndex cares about.
"""
import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable, Iterable

import websockets
from pydantic import ValidationError

from trade_engine.schemas import PriceTick

logger = logging.getLogger(__name__)


def parse_tick(raw: str | bytes) -> PriceTick | None:
    """Parse one feed message; None for anything that is not a valid tick."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Ignoring non-JSON feed message")
        return None
    if not isinstance(data, dict) or "symbol" not in data or "price" not in data:
        return None
    try:
        return PriceTick.model_validate(data)
    except ValidationError as exc:
        logger.debug("Ignoring invalid tick %s: %s", data, exc)
        return None


class WebSocketTickFeed:
    """Reconnecting websocket tick source."""

    def __init__(
        self,
        url: str,
        symbols: Callable[[], Iterable[str]],
        *,
        reconnect_delay_seconds: float = 5.0,
        recv_timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize the feed.

        Args:
            url: Upstream websocket URL (TICK_FEED_URL).
            symbols: Returns the symbols to subscribe to; polled as messages arrive.
            reconnect_delay_seconds: Pause before reconnecting after a drop.
            recv_timeout_seconds: Idle time after which a ping is sent.
        """
        self._url = url
        self._symbols = symbols
        self._reconnect_delay = reconnect_delay_seconds
        self._recv_timeout = recv_timeout_seconds

    async def stream(self, stop_event: asyncio.Event) -> AsyncIterator[PriceTick]:
        """Yield ticks until stop_event is set, reconnecting on connection loss.

        The subscription follows symbols(): it is re-sent whenever the set
        changes, checked after every message and on every idle ping.
        """
        while not stop_event.is_set():
            try:
                async with websockets.connect(self._url) as ws:
                    subscribed = await self._subscribe(ws, None)
                    logger.info("Tick feed connected, %d symbol(s) subscribed", len(subscribed))
                    while not stop_event.is_set():
                        try:
                            raw = await asyncio.wait_for(ws.recv(), timeout=self._recv_timeout)
                        except asyncio.TimeoutError:
                            await ws.ping()
                            subscribed = await self._subscribe(ws, subscribed)
                            continue
                        tick = parse_tick(raw)
                        if tick is not None:
                            yield tick
                        subscribed = await self._subscribe(ws, subscribed)
            except (websockets.ConnectionClosed, OSError) as exc:
                logger.warning("Tick feed connection lost: %s", exc)
            if not stop_event.is_set():
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self._reconnect_delay)
                except asyncio.TimeoutError:
                    pass

    async def _subscribe(self, ws, current: frozenset[str] | None) -> frozenset[str]:
        """Send the subscribe message if the symbol set differs from current."""
        symbols = frozenset(self._symbols())
        if symbols == current:
            return current
        await ws.send(json.dumps({"type": "subscribe", "symbols": sorted(symbols)}))
        if current is not None:
            logger.info("Tick feed resubscribed, %d symbol(s)", len(symbols))
        return symbols
