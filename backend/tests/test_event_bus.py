import logging

from vttengine.core.engine.events import (
    DamageDealt,
    EventBus,
    RoundStarted,
    event_from_dict,
)


def test_subscribers_get_matching_events_in_order():
    bus = EventBus()
    calls = []
    bus.subscribe("round_start", lambda e: calls.append(("first", e.round)))
    bus.subscribe("round_start", lambda e: calls.append(("second", e.round)))
    bus.subscribe("round_end", lambda e: calls.append(("wrong", e.round)))

    bus.publish(RoundStarted(encounter_id="e1", round=3))

    assert calls == [("first", 3), ("second", 3)]
    assert bus.published == 1


def test_unsubscribe_handle():
    bus = EventBus()
    calls = []
    off = bus.subscribe("round_start", calls.append)
    assert off() is True
    assert off() is False
    bus.publish(RoundStarted(round=1))
    assert calls == []


def test_failing_handler_is_isolated(caplog):
    bus = EventBus()
    calls = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe("round_start", broken)
    bus.subscribe_all(calls.append)

    with caplog.at_level(logging.ERROR, logger="vttengine"):
        bus.publish(RoundStarted(round=1))

    assert len(calls) == 1
    assert "boom" in caplog.text


def test_handler_may_unsubscribe_itself():
    bus = EventBus()
    calls = []

    def once(event):
        calls.append(event)
        bus.unsubscribe("round_start", once)

    bus.subscribe("round_start", once)
    bus.publish(RoundStarted(round=1))
    bus.publish(RoundStarted(round=2))
    assert len(calls) == 1


def test_events_round_trip_through_dicts():
    event = DamageDealt(encounter_id="e", combatant_id="g", amount=4, hp_after=6)
    again = event_from_dict(event.model_dump(mode="json"))
    assert isinstance(again, DamageDealt)
    assert again.amount == 4
