from vttengine.core.engine.conditions import ConditionManager
from vttengine.core.engine.definitions import EndsOnSave, StatChangeEffect
from vttengine.core.engine.dice import DiceResolver
from vttengine.core.engine.events import EventBus
from vttengine.core.engine.rules.resolver import ActionResolver
from vttengine.core.engine.state import CombatCondition


def _manager():
    events = EventBus()
    return ConditionManager(DiceResolver(), events), events


def test_duration_ticks_at_end_of_turn(make_combatant):
    mgr, _ = _manager()
    c = make_combatant("c")
    mgr.add(c, CombatCondition(name="Frightened", duration=2))

    assert mgr.process(c, "start_of_turn") == []
    assert mgr.process(c, "end_of_turn") == []
    assert c.conditions[0].duration == 1
    assert mgr.process(c, "end_of_turn") == ["Frightened"]
    assert c.conditions == []


def test_indefinite_conditions_stay(make_combatant):
    mgr, _ = _manager()
    c = make_combatant("c")
    mgr.add(c, CombatCondition(name="Cursed"))
    for _ in range(5):
        mgr.process(c, "end_of_turn")
    assert c.has_condition("Cursed")


def test_non_stackable_refreshes(make_combatant):
    mgr, events = _manager()
    applied = []
    events.subscribe("condition_applied", applied.append)
    c = make_combatant("c")

    mgr.add(c, CombatCondition(name="Prone", duration=1))
    mgr.add(c, CombatCondition(name="Prone", duration=3))

    assert len(c.conditions) == 1
    assert c.conditions[0].duration == 3
    assert len(applied) == 1


def test_save_ends_condition(make_combatant):
    mgr, events = _manager()
    removed = []
    events.subscribe("condition_removed", removed.append)
    c = make_combatant("c")
    mgr.add(
        c,
        CombatCondition(
            name="Paralyzed",
            duration=10,
            ends_on_save=EndsOnSave(ability="wisdom", dc=12),
        ),
    )

    mgr.dice.supply(4)
    mgr.process(c, "end_of_turn")
    assert c.has_condition("Paralyzed")
    assert c.conditions[0].duration == 9

    mgr.dice.supply(15)
    assert mgr.process(c, "end_of_turn") == ["Paralyzed"]
    assert removed[0].reason == "saved"


def test_immediate_save_on_apply(make_combatant):
    mgr, _ = _manager()
    c = make_combatant("c")
    mgr.dice.supply(20)
    mgr.add(
        c,
        CombatCondition(
            name="Charmed", ends_on_save=EndsOnSave(ability="wis", dc=15, frequency="immediate")
        ),
    )
    assert not c.has_condition("Charmed")


def test_remove_by_source(make_combatant):
    mgr, _ = _manager()
    c = make_combatant("c")
    mgr.add(c, CombatCondition(name="Blessed", source="concentration:cleric:bless"))
    mgr.add(c, CombatCondition(name="Hasted", source="wizard"))

    assert mgr.remove_by_source(c, "concentration:cleric:bless") == ["Blessed"]
    assert [x.name for x in c.conditions] == ["Hasted"]


def test_stat_change_raises_ac_then_expires(make_combatant):
    mgr, events = _manager()
    resolver = ActionResolver(mgr.dice, mgr, events)
    c = make_combatant("c", armor_class=12)

    resolver.apply_effect(c, c, StatChangeEffect(stat="armor_class", modifier=5, duration=1))
    assert c.effective_armor_class == 17

    mgr.process(c, "end_of_turn")
    assert c.effective_armor_class == 12
