import asyncio
from decimal import Decimal

import pytest

from trade_engine.core.exceptions import AlertNotFound, PersistenceFailure
from trade_engine.db import AlertCondition
from trade_engine.schemas import PriceTick
from trade_engine.services import AlertEvaluator, AlertIndex, AlertService
from trade_engine.stores import InMemoryAlertStore, InMemoryWatchlistStore


class ParkedClaimAlertStore(InMemoryAlertStore):
    """claim() parks until released, then claims."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release_claim = asyncio.Event()

    async def claim(self, alert_id: str) -> bool:
        self.entered.set()
        await self.release_claim.wait()
        return await super().claim(alert_id)


def tick(symbol: str, price: str) -> PriceTick:
    return PriceTick(symbol=symbol, price=Decimal(price))


def build(alert_store, sink):
    index = AlertIndex()
    service = AlertService(index, alert_store, InMemoryWatchlistStore(), sink)
    return index, service, AlertEvaluator(index, alert_store, sink)


async def test_below_alert_end_to_end(
    alert_service, evaluator, alert_store, index, notifications, alert_request
):
    alert = await alert_service.create_alert(alert_request())
    assert alert.id in index

    result = await evaluator.evaluate(tick("BTC", "50000"))

    assert result.triggered == [alert.id]
    assert alert.id not in index
    assert (await alert_store.get(alert.id)).triggered is True
    sent = await notifications.list_for_user("u1")
    assert len(sent) == 1
    assert sent[0].alert_id == alert.id
    assert sent[0].id == result.notifications[0]

    later = await evaluator.evaluate(tick("BTC", "49000"))

    assert later.triggered == []
    assert len(await notifications.list_for_user("u1")) == 1


@pytest.mark.parametrize(
    "price, fires",
    [("99.99", False), ("100.00", True), ("100.01", True)],
)
async def test_above_alert_threshold(
    alert_service, evaluator, notifications, alert_request, price, fires
):
    await alert_service.create_alert(
        alert_request(symbol="AAPL", price=Decimal("100"), condition=AlertCondition.ABOVE)
    )

    result = await evaluator.evaluate(tick("AAPL", price))

    assert bool(result.triggered) is fires
    assert len(await notifications.list_for_user("u1")) == int(fires)


async def test_only_matching_symbol_is_evaluated(alert_service, evaluator, alert_request):
    await alert_service.create_alert(alert_request(symbol="ETH", price=Decimal("10")))

    result = await evaluator.evaluate(tick("BTC", "1"))

    assert result.triggered == []


async def test_one_tick_fires_every_matching_alert(
    alert_service, evaluator, notifications, alert_request
):
    a = await alert_service.create_alert(alert_request(user_id="alice"))
    b = await alert_service.create_alert(alert_request(user_id="bob", price=Decimal("60000")))
    await alert_service.create_alert(alert_request(user_id="carol", price=Decimal("40000")))

    result = await evaluator.evaluate(tick("BTC", "45000"))

    assert set(result.triggered) == {a.id, b.id}
    assert len(await notifications.list_for_user("carol")) == 0


async def test_concurrent_ticks_fire_alert_exactly_once(
    yielding_alerts, blocking_notifications, alert_request
):
    blocking_notifications.release.set()
    index, service, evaluator = build(yielding_alerts, blocking_notifications)
    alert = await service.create_alert(alert_request())

    results = await asyncio.gather(*(evaluator.evaluate(tick("BTC", "49000")) for _ in range(20)))

    assert sum(len(r.triggered) for r in results) == 1
    assert len(await blocking_notifications.list_for_user("u1")) == 1
    assert (await yielding_alerts.get(alert.id)).triggered is True
    assert alert.id not in index


async def test_failed_notification_rolls_back_claim(
    yielding_alerts, flaky_notifications, alert_request
):
    sink = flaky_notifications(failures=1)
    index, service, evaluator = build(yielding_alerts, sink)
    alert = await service.create_alert(alert_request())

    with pytest.raises(PersistenceFailure):
        await evaluator.evaluate(tick("BTC", "50000"))

    assert alert.id in index
    assert (await yielding_alerts.get(alert.id)).triggered is False
    assert await sink.list_for_user("u1") == []

    result = await evaluator.evaluate(tick("BTC", "50000"))

    assert result.triggered == [alert.id]
    assert len(await sink.list_for_user("u1")) == 1


async def test_partial_failure_keeps_completed_triggers(
    yielding_alerts, flaky_notifications, alert_request
):
    sink = flaky_notifications(failures=1)
    index, service, evaluator = build(yielding_alerts, sink)
    await service.create_alert(alert_request(user_id="alice"))
    await service.create_alert(alert_request(user_id="bob"))

    with pytest.raises(PersistenceFailure):
        await evaluator.evaluate(tick("BTC", "50000"))
    assert len(index) == 1

    retry = await evaluator.evaluate(tick("BTC", "50000"))

    assert len(retry.triggered) == 1
    assert len(index) == 0
    assert len(await sink.list_for_user("alice")) == 1
    assert len(await sink.list_for_user("bob")) == 1


async def test_cancelled_trigger_leaves_alert_armed(
    yielding_alerts, blocking_notifications, alert_request
):
    index, service, evaluator = build(yielding_alerts, blocking_notifications)
    alert = await service.create_alert(alert_request())

    task = asyncio.create_task(evaluator.evaluate(tick("BTC", "50000")))
    await blocking_notifications.entered.wait()
    assert alert.id not in index
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert alert.id in index
    assert (await yielding_alerts.get(alert.id)).triggered is False
    assert await blocking_notifications.list_for_user("u1") == []


async def test_cancel_during_claim_releases_a_winning_claim(notifications, alert_request):
    alerts = ParkedClaimAlertStore()
    index, service, evaluator = build(alerts, notifications)
    alert = await service.create_alert(alert_request())

    task = asyncio.create_task(evaluator.evaluate(tick("BTC", "50000")))
    await alerts.entered.wait()
    task.cancel()
    alerts.release_claim.set()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert (await alerts.get(alert.id)).triggered is False
    assert alert.id in index
    assert await notifications.list_for_user("u1") == []

    retry = await evaluator.evaluate(tick("BTC", "50000"))

    assert retry.triggered == [alert.id]


async def test_lost_claim_on_row_claimed_elsewhere_evicts_entry(
    alert_service, evaluator, alert_store, index, notifications, alert_request
):
    alert = await alert_service.create_alert(alert_request())
    assert await alert_store.claim(alert.id)

    result = await evaluator.evaluate(tick("BTC", "50000"))

    assert result.triggered == []
    assert alert.id not in index
    assert await notifications.list_for_user("u1") == []


async def test_lost_claim_on_deleted_row_evicts_entry(
    alert_service, evaluator, alert_store, index, alert_request
):
    alert = await alert_service.create_alert(alert_request())
    await alert_store.delete(alert.id)

    result = await evaluator.evaluate(tick("BTC", "50000"))

    assert result.triggered == []
    assert alert.id not in index


async def test_alert_deleted_mid_trigger_is_not_rearmed(
    alert_store, blocking_notifications, alert_request
):
    index, service, evaluator = build(alert_store, blocking_notifications)
    alert = await service.create_alert(alert_request())

    task = asyncio.create_task(evaluator.evaluate(tick("BTC", "50000")))
    await blocking_notifications.entered.wait()
    await service.delete_alert(alert.id)
    blocking_notifications.fail = True
    blocking_notifications.release.set()
    with pytest.raises(PersistenceFailure):
        await task

    assert alert.id not in index
    assert len(index) == 0
    assert (await evaluator.evaluate(tick("BTC", "1"))).triggered == []


async def test_deleted_alert_never_fires(
    alert_service, evaluator, index, notifications, alert_request
):
    alert = await alert_service.create_alert(alert_request())

    await alert_service.delete_alert(alert.id)

    assert alert.id not in index
    result = await evaluator.evaluate(tick("BTC", "1"))
    assert result.triggered == []
    with pytest.raises(AlertNotFound):
        await alert_service.delete_alert(alert.id)


async def test_active_alerts_exclude_triggered(alert_service, evaluator, alert_request):
    fired = await alert_service.create_alert(alert_request())
    armed = await alert_service.create_alert(alert_request(price=Decimal("10")))

    await evaluator.evaluate(tick("BTC", "50000"))

    active = await alert_service.get_active_alerts("u1")
    assert [a.id for a in active] == [armed.id]
    assert fired.id != armed.id


async def test_load_index_rebuilds_from_store(alert_store, notifications, alert_request):
    index, service, evaluator = build(alert_store, notifications)
    alert = await service.create_alert(alert_request())
    await evaluator.evaluate(tick("BTC", "50000"))
    await service.create_alert(alert_request(price=Decimal("10")))

    fresh = AlertIndex()
    count = await AlertService(fresh, alert_store, InMemoryWatchlistStore(), notifications).load_index()

    assert count == 1
    assert alert.id not in fresh


async def test_consume_retries_then_processes_feed(
    yielding_alerts, flaky_notifications, alert_request
):
    sink = flaky_notifications(failures=2)
    index, service, evaluator = build(yielding_alerts, sink)
    await service.create_alert(alert_request())

    async def feed():
        yield tick("BTC", "50000")
        yield tick("ETH", "1")

    processed = await evaluator.consume(feed(), retry_delay_seconds=0)

    assert processed == 2
    assert len(await sink.list_for_user("u1")) == 1
    assert len(index) == 0
