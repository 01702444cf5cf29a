"""In-process delivery of TradeClosed events with at-least-once redelivery.

This is the event-delivery boundary: a subscriber that fails (other than with
AggregationConflict, which is final) or is cancelled mid-delivery keeps its
event in a pending queue, and retry_pending() hands it over again later. One
failing subscriber never keeps the event from the others. Subscribers must be
idempotent, which ProfitAggregator.apply is.
"""
import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable

from trade_engine.core.exceptions import AggregationConflict, PersistenceFailure
from trade_engine.schemas import TradeClosed

logger = logging.getLogger(__name__)

Subscriber = Callable[[TradeClosed], Awaitable[object]]


class TradeClosedBus:
    """Fan-out of TradeClosed events to registered subscribers."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[str, Subscriber]] = []
        self._pending: deque[tuple[str, Subscriber, TradeClosed]] = deque()

    def subscribe(self, handler: Subscriber, name: str | None = None) -> None:
        """Register a handler. Name is only used in logs."""
        self._subscribers.append((name or getattr(handler, "__qualname__", "handler"), handler))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def publish(self, event: TradeClosed) -> None:
        """Deliver event to every subscriber; failed deliveries are queued for retry."""
        subscribers = list(self._subscribers)
        for i, (name, handler) in enumerate(subscribers):
            try:
                await self._deliver(name, handler, event)
            except asyncio.CancelledError:
                self._pending.extend((n, h, event) for n, h in subscribers[i + 1 :])
                raise

    async def retry_pending(self) -> int:
        """Redeliver queued events once. Returns how many deliveries succeeded."""
        delivered = 0
        for _ in range(len(self._pending)):
            name, handler, event = self._pending.popleft()
            if await self._deliver(name, handler, event):
                delivered += 1
        return delivered

    async def run_retry_loop(self, interval_seconds: float, stop_event: asyncio.Event) -> None:
        """Call retry_pending every interval until stop_event is set."""
        while not stop_event.is_set():
            if self._pending:
                delivered = await self.retry_pending()
                if delivered:
                    logger.info("Redelivered %d TradeClosed event(s)", delivered)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def _deliver(self, name: str, handler: Subscriber, event: TradeClosed) -> bool:
        try:
            await handler(event)
        except PersistenceFailure as exc:
            logger.warning(
                "Delivery of trade %s to %s failed, queued for retry: %s",
                event.trade_id, name, exc,
            )
            self._pending.append((name, handler, event))
            return False
        except AggregationConflict as exc:
            logger.error("Trade %s not delivered to %s: %s", event.trade_id, name, exc)
            return False
        except asyncio.CancelledError:
            self._pending.append((name, handler, event))
            raise
        except Exception:  # pylint: disable=broad-except
            logger.exception(
                "Subscriber %s failed on trade %s, queued for retry", name, event.trade_id
            )
            self._pending.append((name, handler, event))
            return False
        return True
