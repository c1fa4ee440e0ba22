import json

import pytest

from pricewatch.alerts.evaluator import AlertEngine, evaluate_alerts, generate_id
from pricewatch.alerts.rules import Alert, Direction, parse_threshold, sanitize_threshold_input, validate_threshold
from pricewatch.alerts.state import AlertBook, TriggeredAlert
from pricewatch.storage.blob import ALERTS_KEY, MemoryBlobStore
from tests.helpers.fake_clock import FakeClock
from tests.helpers.fake_source import snap


def alert(instrument_id="bitcoin", direction=Direction.ABOVE, threshold=100_000.0, id="a1"):
    return Alert(id=id, instrument_id=instrument_id, direction=direction, threshold=threshold, created_at_ms=0)


# ---- rules ----

@pytest.mark.parametrize(
    "direction,threshold,price,fires",
    [
        (Direction.ABOVE, 100_000, 100_000, True),
        (Direction.ABOVE, 100_000, 99_999.99, False),
        (Direction.ABOVE, 100_000, 150_000, True),
        (Direction.BELOW, 50_000, 50_000, True),
        (Direction.BELOW, 50_000, 50_000.01, False),
        (Direction.BELOW, 50_000, 1, True),
    ],
)
def test_is_triggered_by_is_inclusive(direction, threshold, price, fires):
    assert alert(direction=direction, threshold=threshold).is_triggered_by(price) is fires


@pytest.mark.parametrize("bad", [0, -1, float("nan"), float("inf"), True, "abc"])
def test_validate_threshold_rejects(bad):
    with pytest.raises(ValueError):
        validate_threshold(bad)


@pytest.mark.parametrize(
    "raw,clean",
    [
        ("$1,234.56", "1234.56"),
        ("1.2.3", "1.23"),
        ("0.123456789", "0.12345678"),
        ("abc", ""),
        ("9" * 25, "9" * 20),
    ],
)
def test_sanitize_threshold_input(raw, clean):
    assert sanitize_threshold_input(raw) == clean


def test_parse_threshold():
    assert parse_threshold(" 65,000.5 ") == 65_000.5
    with pytest.raises(ValueError, match="Please enter a valid price"):
        parse_threshold("abc")
    with pytest.raises(ValueError):
        parse_threshold("0.00")


# ---- pure evaluation ----

def test_evaluate_moves_satisfied_alerts_only():
    active = [
        alert("bitcoin", Direction.ABOVE, 100_000, id="btc"),
        alert("ethereum", Direction.BELOW, 3_000, id="eth"),
        alert("solana", Direction.ABOVE, 1, id="sol"),       # no price: untouched
    ]
    prices = {"bitcoin": snap("bitcoin", 100_000), "ethereum": snap("ethereum", 3_000.01)}

    still, fired = evaluate_alerts(active, prices, now=5, new_id=lambda now: f"t{now}")

    assert [a.id for a in still] == ["eth", "sol"]
    assert len(fired) == 1
    assert fired[0].id == "t5"
    assert fired[0].alert.id == "btc"
    assert fired[0].triggered_price == 100_000
    assert fired[0].triggered_at_ms == 5
    assert fired[0].viewed is False


def test_generate_id_is_unique_and_time_prefixed():
    ids = {generate_id(123) for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("123-") for i in ids)


# ---- engine ----

@pytest.mark.asyncio
async def test_add_alert_replaces_existing_for_instrument():
    engine = AlertEngine(clock=FakeClock())
    first = await engine.add_alert("bitcoin", "above", 100_000)
    await engine.add_alert("ethereum", Direction.BELOW, 2_000)
    second = await engine.add_alert("bitcoin", Direction.BELOW, 90_000)

    assert first != second
    btc = engine.get_alert_for("bitcoin")
    assert btc.id == second
    assert btc.direction is Direction.BELOW
    assert len(engine.active_alerts) == 2
    assert engine.get_alert_for("dogecoin") is None


@pytest.mark.asyncio
async def test_add_alert_rejects_bad_input():
    engine = AlertEngine(clock=FakeClock())
    with pytest.raises(ValueError):
        await engine.add_alert("bitcoin", "sideways", 1.0)
    with pytest.raises(ValueError):
        await engine.add_alert("bitcoin", "above", 0)
    assert engine.active_alerts == []


@pytest.mark.asyncio
async def test_trigger_removes_alert_and_records_history():
    clock = FakeClock()
    engine = AlertEngine(clock=clock)
    await engine.add_alert("bitcoin", "above", 100_000)

    assert await engine.evaluate({"bitcoin": snap("bitcoin", 99_000)}) == []
    fired = await engine.evaluate({"bitcoin": snap("bitcoin", 100_000)})

    assert len(fired) == 1
    assert engine.active_alerts == []
    assert engine.triggered_alerts == fired
    assert fired[0].triggered_at_ms == clock.now
    assert engine.unviewed_count == 1

    # fires once
    assert await engine.evaluate({"bitcoin": snap("bitcoin", 200_000)}) == []


@pytest.mark.asyncio
async def test_triggered_history_is_newest_first():
    clock = FakeClock()
    engine = AlertEngine(clock=clock)
    await engine.add_alert("bitcoin", "above", 10)
    await engine.evaluate({"bitcoin": snap("bitcoin", 11)})
    clock.now += 1_000
    await engine.add_alert("ethereum", "below", 10)
    await engine.evaluate({"ethereum": snap("ethereum", 9)})

    assert [t.alert.instrument_id for t in engine.triggered_alerts] == ["ethereum", "bitcoin"]


@pytest.mark.asyncio
async def test_mark_all_viewed_and_clear():
    engine = AlertEngine(clock=FakeClock())
    for coin in ("bitcoin", "ethereum"):
        await engine.add_alert(coin, "above", 1)
    await engine.evaluate({"bitcoin": snap("bitcoin", 2), "ethereum": snap("ethereum", 2)})
    assert engine.unviewed_count == 2

    await engine.mark_all_as_viewed()
    assert engine.unviewed_count == 0
    assert all(t.viewed for t in engine.triggered_alerts)
    assert len(engine.triggered_alerts) == 2

    await engine.clear_triggered_alerts()
    assert engine.triggered_alerts == []


@pytest.mark.asyncio
async def test_remove_and_update_alert():
    engine = AlertEngine(clock=FakeClock())
    alert_id = await engine.add_alert("bitcoin", "above", 100)

    updated = await engine.update_alert(alert_id, threshold=150)
    assert updated.threshold == 150
    assert updated.direction is Direction.ABOVE
    updated = await engine.update_alert(alert_id, direction="below")
    assert engine.get_alert_for("bitcoin").direction is Direction.BELOW
    assert await engine.update_alert("missing", threshold=1) is None

    assert await engine.remove_alert("missing") is False
    assert await engine.remove_alert(alert_id) is True
    assert engine.active_alerts == []


@pytest.mark.asyncio
async def test_persist_and_hydrate_round_trip():
    store = MemoryBlobStore()
    engine = AlertEngine(store=store, clock=FakeClock())
    await engine.add_alert("bitcoin", "above", 10)
    await engine.add_alert("ethereum", "below", 5)
    await engine.evaluate({"bitcoin": snap("bitcoin", 11)})

    blob = json.loads(store.data[ALERTS_KEY])
    assert len(blob["active"]) == 1 and len(blob["triggered"]) == 1

    restored = AlertEngine(store=store)
    await restored.hydrate()
    assert restored.has_hydrated
    assert restored.active_alerts == engine.active_alerts
    assert restored.triggered_alerts == engine.triggered_alerts
    assert restored.unviewed_count == 1


@pytest.mark.asyncio
async def test_hydrate_ignores_corrupt_blob():
    store = MemoryBlobStore({ALERTS_KEY: json.dumps({"active": [{"id": "x"}]})})
    engine = AlertEngine(store=store)
    await engine.hydrate()
    assert engine.has_hydrated
    assert engine.active_alerts == []


def test_book_from_dict_tolerates_missing_lists():
    book = AlertBook.from_dict({})
    assert book.active == [] and book.triggered == []


def test_mark_viewed_returns_new_instance():
    t = TriggeredAlert(id="t", alert=alert(), triggered_price=1.0, triggered_at_ms=0)
    v = t.mark_viewed()
    assert v.viewed and not t.viewed
    assert v.mark_viewed() is v
