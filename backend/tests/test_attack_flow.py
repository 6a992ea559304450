import pytest

from vttengine.core.errors import (
    ActionEconomyError,
    CombatantNotFoundError,
    IllegalStateError,
    RuleValidationError,
)


def test_hero_hits_goblin(combat, fight, hero):
    combat.dice.supply(12, 5)  # d20 12 (+5 = 17 vs AC 13), d8 5 (+3)
    action = hero.weapons[0].to_action()

    results = combat.execute_action(fight.id, action, ["goblin"])

    assert len(results) == 1
    res = results[0]
    assert res.hit and not res.critical
    assert res.attack_roll.total == 17
    assert res.total_damage == 8
    assert res.damage_types == {"slashing": 8}

    goblin = fight.find("goblin")
    assert goblin.hp.current == 12
    assert fight.damage_dealt == {"hero": 8}

    entry = fight.action_log[-1]
    assert entry.actor == "hero"
    assert entry.action == "Longsword Attack"
    assert entry.targets == ["goblin"]
    assert "1/1 hit" in entry.description
    assert "8 damage" in entry.description
    assert entry.results.success
    assert entry.results.damage == 8
    assert [r.kind for r in entry.rolls] == ["attack", "damage"]


def test_miss_leaves_hp_alone(combat, fight, hero):
    combat.dice.supply(7)  # 7+5 = 12 < 13
    results = combat.execute_action(fight.id, hero.weapons[0].to_action(), ["goblin"])
    assert not results[0].hit
    assert fight.find("goblin").hp.current == 20
    assert "0/1 hit" in fight.action_log[-1].description


def test_nat1_always_misses(combat, fight, hero):
    goblin = fight.find("goblin")
    goblin.armor_class = 1
    combat.dice.supply(1)
    results = combat.execute_action(fight.id, hero.weapons[0].to_action(), ["goblin"])
    assert not results[0].hit


def test_nat20_always_hits(combat, fight, hero):
    fight.find("goblin").armor_class = 40
    combat.dice.supply(20, 4, 4)  # crit doubles the d8
    results = combat.execute_action(fight.id, hero.weapons[0].to_action(), ["goblin"])
    assert results[0].hit and results[0].critical
    assert results[0].total_damage == 4 + 4 + 3
    assert "(1 critical)" in fight.action_log[-1].description


def test_one_action_per_turn(combat, fight, hero):
    action = hero.weapons[0].to_action()
    combat.dice.supply(2)
    combat.execute_action(fight.id, action, ["goblin"])

    log_size = len(fight.action_log)
    with pytest.raises(ActionEconomyError):
        combat.execute_action(fight.id, action, ["goblin"])
    # rejected before anything was written
    assert len(fight.action_log) == log_size


def test_only_current_combatant_acts(combat, fight, goblin):
    with pytest.raises(IllegalStateError) as exc:
        combat.execute_action(
            fight.id, goblin.weapons[0].to_action(), ["hero"], actor_id="goblin"
        )
    assert exc.value.code == "NOT_YOUR_TURN"


def test_attack_needs_a_target(combat, fight, hero):
    with pytest.raises(RuleValidationError) as exc:
        combat.execute_action(fight.id, hero.weapons[0].to_action(), [])
    assert exc.value.code == "NO_TARGET"


def test_unknown_target(combat, fight, hero):
    with pytest.raises(CombatantNotFoundError):
        combat.execute_action(fight.id, hero.weapons[0].to_action(), ["ghost"])
    assert not fight.find("hero").economy.action_used


def test_available_actions_follow_economy(combat, fight):
    ids = [a.id for a in combat.get_available_actions(fight.id, "hero")]
    assert ids == ["attack_longsword"]

    combat.dice.supply(2)
    combat.execute_action(fight.id, fight.find("hero").weapons[0].to_action(), ["goblin"])
    assert combat.get_available_actions(fight.id, "hero") == []
