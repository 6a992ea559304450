import pytest

from vttengine.core.errors import PhaseError
from vttengine.core.engine.state import CombatCondition, VictoryCondition


def test_turns_cycle_into_next_round(combat, fight, events):
    seen = []
    events.subscribe_all(lambda e: seen.append(e.type))

    combat.end_turn(fight.id)
    assert fight.current_combatant_id == "goblin"
    combat.end_turn(fight.id)

    assert fight.round == 2
    assert fight.current_combatant_id == "hero"
    assert seen == [
        "turn_end",
        "turn_start",
        "turn_end",
        "round_end",
        "round_start",
        "turn_start",
    ]


def test_victory_only_at_end_of_round(combat, fight, events):
    ended = []
    events.subscribe("combat_end", ended.append)

    combat.apply_damage(fight.id, "goblin", 100, source_id="hero")
    combat.end_turn(fight.id)
    assert fight.phase == "combat"

    combat.end_turn(fight.id)
    assert fight.phase == "ended"
    assert fight.end_time is not None
    assert fight.victory_conditions[0].completed
    assert fight.action_log[-1].action == "Combat End"
    assert len(ended) == 1
    assert ended[0].reason == "victory"


def test_no_turns_after_the_end(combat, fight):
    combat.end_combat(fight.id)
    with pytest.raises(PhaseError):
        combat.end_turn(fight.id)
    with pytest.raises(PhaseError):
        combat.execute_action(
            fight.id, fight.find("hero").weapons[0].to_action(), ["goblin"]
        )


def test_survive_rounds(combat, hero, goblin):
    enc = combat.create_encounter(
        "Hold the line",
        [hero, goblin],
        victory_conditions=[VictoryCondition(type="survive_rounds", parameters={"rounds": 2})],
    )
    combat.dice.supply(15, 12)
    combat.roll_initiative(enc.id)

    for _ in range(2):
        combat.end_turn(enc.id)
    assert enc.phase == "combat"
    for _ in range(2):
        combat.end_turn(enc.id)
    assert enc.phase == "ended"
    assert enc.round == 2


def test_defeat_specific(combat, hero, goblin, make_combatant):
    boss = make_combatant("boss", "enemy", hp=50)
    enc = combat.create_encounter(
        "Boss",
        [hero, goblin, boss],
        victory_conditions=[
            VictoryCondition(type="defeat_specific", parameters={"combatant_ids": ["boss"]})
        ],
    )
    combat.dice.supply(15, 12, 3)
    combat.roll_initiative(enc.id)
    combat.apply_damage(enc.id, "boss", 50)
    for _ in range(3):
        combat.end_turn(enc.id)
    assert enc.phase == "ended"


def test_custom_victory_evaluator(combat, hero, goblin):
    combat.register_victory_evaluator(
        "custom", lambda enc, cond: enc.damage_dealt.get("hero", 0) >= 5
    )
    enc = combat.create_encounter(
        "Spar", [hero, goblin], victory_conditions=[VictoryCondition(type="custom")]
    )
    combat.dice.supply(15, 12)
    combat.roll_initiative(enc.id)
    combat.apply_damage(enc.id, "goblin", 5, source_id="hero")
    combat.end_turn(enc.id)
    combat.end_turn(enc.id)
    assert enc.phase == "ended"


def test_removing_current_combatant_passes_turn(combat, fight):
    assert combat.remove_combatant(fight.id, "hero")
    assert fight.turn_order == ["goblin"]
    assert fight.current_combatant_id == "goblin"
    assert not combat.remove_combatant(fight.id, "hero")


def test_encounter_starts_clean(combat, hero, goblin):
    hero.conditions.append(CombatCondition(name="Prone"))
    hero.economy.action_used = True
    enc = combat.create_encounter("Fresh", [hero, goblin])

    copy = enc.find("hero")
    assert copy is not hero
    assert copy.conditions == []
    assert not copy.economy.action_used
    # caller's object untouched
    assert hero.conditions[0].name == "Prone"
