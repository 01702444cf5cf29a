from decimal import Decimal

from trade_engine.db import AlertCondition, PriceAlert, Watchlist
from trade_engine.services import AlertIndex
from trade_engine.services.alert_index import AlertEntry


def make_alert(alert_id: str, symbol: str = "BTC", user_id: str = "u1", **kwargs) -> PriceAlert:
    return PriceAlert(
        id=alert_id,
        user_id=user_id,
        symbol=symbol,
        price=kwargs.get("price", Decimal("100")),
        condition=kwargs.get("condition", AlertCondition.ABOVE),
        triggered=kwargs.get("triggered", False),
    )


def test_rebuild_skips_triggered_alerts():
    index = AlertIndex()
    index.rebuild([make_alert("a1"), make_alert("a2", triggered=True), make_alert("a3", "ETH")])

    assert len(index) == 2
    assert "a2" not in index
    assert [e.alert_id for e in index.candidates("BTC")] == ["a1"]
    assert index.symbols() == {"BTC", "ETH"}


def test_rebuild_replaces_previous_contents():
    index = AlertIndex()
    index.add(make_alert("old"))

    index.rebuild([make_alert("new", "ETH")])

    assert "old" not in index
    assert index.candidates("BTC") == []


def test_add_and_remove_are_point_updates():
    index = AlertIndex()
    index.add(make_alert("a1"))
    index.add(make_alert("a2"))

    removed = index.remove("a1")

    assert isinstance(removed, AlertEntry)
    assert removed.alert_id == "a1"
    assert [e.alert_id for e in index.candidates("BTC")] == ["a2"]
    assert index.remove("a1") is None


def test_removing_last_alert_drops_symbol():
    index = AlertIndex()
    index.add(make_alert("a1"))
    index.remove("a1")

    assert index.symbols() == set()
    assert index.active_for_user("u1") == []


def test_symbol_lookup_is_case_insensitive():
    index = AlertIndex()
    index.add(make_alert("a1", symbol="btc"))

    assert [e.alert_id for e in index.candidates(" BTC ")] == ["a1"]


def test_readding_alert_moves_it():
    index = AlertIndex()
    index.add(make_alert("a1", symbol="BTC"))
    index.add(make_alert("a1", symbol="ETH"))

    assert index.candidates("BTC") == []
    assert len(index) == 1


def test_triggered_alert_is_not_indexed():
    index = AlertIndex()
    index.add(make_alert("a1", triggered=True))
    assert len(index) == 0


def test_active_for_user():
    index = AlertIndex()
    index.add(make_alert("a1", user_id="alice"))
    index.add(make_alert("a2", user_id="bob"))
    index.add(make_alert("a3", symbol="ETH", user_id="alice"))

    assert {e.alert_id for e in index.active_for_user("alice")} == {"a1", "a3"}


def test_candidates_is_a_snapshot():
    index = AlertIndex()
    index.add(make_alert("a1"))
    snapshot = index.candidates("BTC")

    index.remove("a1")

    assert [e.alert_id for e in snapshot] == ["a1"]


def test_watchlists_feed_symbols():
    index = AlertIndex()
    index.add(make_alert("a1", symbol="BTC"))
    index.watch(Watchlist(id="w1", user_id="alice", name="majors", symbols=["eth", "SOL"]))
    index.watch(Watchlist(id="w2", user_id="bob", name="alts", symbols=["SOL"]))

    assert index.watched_symbols() == {"ETH", "SOL"}
    assert index.symbols() == {"BTC", "ETH", "SOL"}
    assert index.watchers("sol") == {"alice", "bob"}

    index.unwatch("w1")

    assert index.watched_symbols() == {"SOL"}
    assert index.watchers("ETH") == set()


def test_conditions_are_inclusive():
    above = AlertEntry("a", "u", "BTC", Decimal("100"), AlertCondition.ABOVE)
    below = AlertEntry("b", "u", "BTC", Decimal("100"), AlertCondition.BELOW)

    assert not above.is_met(Decimal("99.99"))
    assert above.is_met(Decimal("100.00"))
    assert above.is_met(Decimal("100.01"))
    assert below.is_met(Decimal("100"))
    assert below.is_met(Decimal("99.99"))
    assert not below.is_met(Decimal("100.01"))
