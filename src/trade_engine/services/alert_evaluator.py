"""Price-tick evaluation against armed alerts with exactly-once triggering.

Trigger protocol for one alert:
  1. claim: compare-and-set triggered false -> true in the alert store. Only
     the single winner continues. A loser with no other trigger of this
     evaluator on the alert re-reads the row and drops the entry when the row
     is gone or was claimed by another process. A claim cut short by
     cancellation is awaited and released if it won.
  2. the winner removes the alert from the index and creates the Notification.
     If that fails or is cancelled, the claim is released and the alert goes
     back into the index so a later tick can retry, unless the alert was
     deleted in the meantime.
  3. on success the alert stays out of the index for good.

The claim on one alert is the only mutual-exclusion boundary; alerts on the
same tick are triggered concurrently.
"""
import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator

from trade_engine.core.exceptions import PersistenceFailure
from trade_engine.db import AlertCondition, Notification
from trade_engine.schemas import EvaluationResult, PriceTick
from trade_engine.services.alert_index import AlertEntry, AlertIndex
from trade_engine.stores.protocols import AlertStore, NotificationSink

logger = logging.getLogger(__name__)


def build_notification(entry: AlertEntry, tick: PriceTick) -> Notification:
    """User-facing notification for a fired alert."""
    direction = "at or above" if entry.condition is AlertCondition.ABOVE else "at or below"
    return Notification(
        user_id=entry.user_id,
        type="price_alert",
        title=f"{entry.symbol} price alert",
        message=f"{entry.symbol} is {direction} {entry.target}: last price {tick.price}",
        alert_id=entry.alert_id,
        extra={
            "symbol": entry.symbol,
            "condition": entry.condition.value,
            "target": str(entry.target),
            "price": str(tick.price),
            "tick_time": tick.timestamp.isoformat(),
        },
    )


class AlertEvaluator:
    """Evaluates ticks via the AlertIndex and hands fired alerts to the notification sink."""

    def __init__(
        self,
        index: AlertIndex,
        alerts: AlertStore,
        notifications: NotificationSink,
    ) -> None:
        self._index = index
        self._alerts = alerts
        self._notifications = notifications
        # alert id -> triggers of this evaluator currently working on it
        self._claims: Counter[str] = Counter()

    async def evaluate(self, tick: PriceTick) -> EvaluationResult:
        """Trigger every armed alert on tick.symbol whose condition holds at tick.price.

        Raises:
            PersistenceFailure: at least one trigger could not be completed; the
                other triggers are done, so retrying the same tick is safe.
        """
        result = EvaluationResult(symbol=tick.symbol, price=tick.price)
        hits = [e for e in self._index.candidates(tick.symbol) if e.is_met(tick.price)]
        if not hits:
            return result

        outcomes = await asyncio.gather(
            *(self._trigger(entry, tick) for entry in hits),
            return_exceptions=True,
        )
        failures: list[PersistenceFailure] = []
        for entry, outcome in zip(hits, outcomes):
            if isinstance(outcome, PersistenceFailure):
                failures.append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is not None:
                result.triggered.append(entry.alert_id)
                result.notifications.append(outcome.id)
        if failures:
            raise PersistenceFailure(
                f"{len(failures)} of {len(hits)} alert trigger(s) for {tick.symbol} "
                "failed; retry the tick"
            ) from failures[0]
        return result

    async def _trigger(self, entry: AlertEntry, tick: PriceTick) -> Notification | None:
        alert_id = entry.alert_id
        self._claims[alert_id] += 1
        try:
            if not await self._claim(entry):
                logger.debug("Alert %s already claimed elsewhere", alert_id)
                await self._evict_if_stale(entry)
                return None

            self._index.remove(alert_id)
            try:
                notification = await self._notifications.create(build_notification(entry, tick))
            except BaseException:
                await asyncio.shield(self._rollback(entry))
                raise
        finally:
            self._claims[alert_id] -= 1
            if not self._claims[alert_id]:
                del self._claims[alert_id]
        logger.info(
            "Alert %s fired for user %s: %s %s %s (price %s)",
            alert_id, entry.user_id, entry.symbol,
            entry.condition.value, entry.target, tick.price,
        )
        return notification

    async def _claim(self, entry: AlertEntry) -> bool:
        # A store call cannot be interrupted once issued; if we are cancelled
        # while it runs, wait for its outcome and undo a win.
        claim = asyncio.ensure_future(self._alerts.claim(entry.alert_id))
        try:
            return await asyncio.shield(claim)
        except asyncio.CancelledError:
            await asyncio.shield(self._abandon_claim(claim, entry))
            raise

    async def _abandon_claim(self, claim: asyncio.Future, entry: AlertEntry) -> None:
        try:
            won = await claim
        except PersistenceFailure as exc:
            logger.warning("Alert %s claim failed during cancellation: %s", entry.alert_id, exc)
            return
        if not won:
            return
        try:
            released = await self._alerts.release(entry.alert_id)
        except PersistenceFailure:
            logger.exception(
                "Alert %s stays claimed after a cancelled trigger; release failed",
                entry.alert_id,
            )
            raise
        if not released:
            self._index.remove(entry.alert_id)

    async def _evict_if_stale(self, entry: AlertEntry) -> None:
        """After a lost claim, drop the entry if its row is gone or was claimed by another process."""
        if self._claims[entry.alert_id] > 1:
            return
        alert = await self._alerts.get(entry.alert_id)
        if self._claims[entry.alert_id] > 1:
            return
        if alert is None or alert.triggered:
            self._index.remove(entry.alert_id)
            logger.info("Alert %s is no longer armed; dropped from the index", entry.alert_id)

    async def _rollback(self, entry: AlertEntry) -> None:
        try:
            released = await self._alerts.release(entry.alert_id)
        except PersistenceFailure:
            logger.exception(
                "Alert %s stays claimed without a notification; release failed",
                entry.alert_id,
            )
            raise
        if not released:
            logger.info("Alert %s was deleted during its trigger; not re-armed", entry.alert_id)
            return
        self._index.add(entry)
        logger.warning("Alert %s trigger rolled back; re-armed for the next tick", entry.alert_id)

    async def consume(
        self,
        ticks: AsyncIterator[PriceTick],
        *,
        max_attempts: int = 3,
        retry_delay_seconds: float = 0.5,
    ) -> int:
        """Evaluate every tick from a feed; returns the number of ticks processed.

        A tick whose triggers fail with PersistenceFailure is retried up to
        max_attempts times, then logged and skipped; its alerts stay armed.
        """
        processed = 0
        async for tick in ticks:
            for attempt in range(1, max_attempts + 1):
                try:
                    await self.evaluate(tick)
                    break
                except PersistenceFailure as exc:
                    if attempt == max_attempts:
                        logger.error(
                            "Giving up on tick %s @ %s after %d attempts: %s",
                            tick.symbol, tick.price, attempt, exc,
                        )
                    else:
                        await asyncio.sleep(retry_delay_seconds * attempt)
            processed += 1
        return processed
