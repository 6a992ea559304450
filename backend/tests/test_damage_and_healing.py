from vttengine.core.engine.definitions import AttackRollSpec, CombatAction, DamageRoll
from vttengine.core.engine.rules.resolver import apply_damage_with_temp_hp
from vttengine.core.engine.state import UNCONSCIOUS


def test_temp_hp_absorbs_first(make_combatant):
    target = make_combatant("t", hp=10)
    target.hp.temporary = 5

    temp_before, hp_before, hp_after = apply_damage_with_temp_hp(target, 7)

    assert (temp_before, hp_before, hp_after) == (5, 10, 8)
    assert target.hp.temporary == 0


def test_hp_never_below_zero(make_combatant):
    target = make_combatant("t", hp=4)
    apply_damage_with_temp_hp(target, 50)
    assert target.hp.current == 0


def test_zero_hp_adds_unconscious_once(combat, fight):
    combat.apply_damage(fight.id, "goblin", 25, "fire", source_id="hero")
    goblin = fight.find("goblin")
    assert goblin.hp.current == 0
    assert not goblin.is_conscious
    assert [c.name for c in goblin.conditions] == [UNCONSCIOUS]

    combat.apply_damage(fight.id, "goblin", 5)
    assert [c.name for c in goblin.conditions] == [UNCONSCIOUS]
    assert fight.damage_dealt["hero"] == 25


def test_healing_caps_at_max_and_wakes(combat, fight):
    combat.apply_damage(fight.id, "goblin", 20)
    healed = combat.apply_healing(fight.id, "goblin", 50)

    goblin = fight.find("goblin")
    assert healed == 20
    assert goblin.hp.current == 20
    assert not goblin.has_condition(UNCONSCIOUS)


def test_temporary_hp_does_not_stack(combat, fight):
    combat.apply_healing(fight.id, "hero", 6, temporary=True)
    combat.apply_healing(fight.id, "hero", 4, temporary=True)
    assert fight.find("hero").hp.temporary == 6
    combat.apply_healing(fight.id, "hero", 9, temporary=True)
    assert fight.find("hero").hp.temporary == 9


def test_resistance_immunity_vulnerability(combat, fight):
    goblin = fight.find("goblin")
    goblin.damage_resistances = {"fire"}
    goblin.damage_immunities = {"poison"}
    goblin.damage_vulnerabilities = {"radiant"}

    assert combat.apply_damage(fight.id, "goblin", 7, "fire") == 3
    assert combat.apply_damage(fight.id, "goblin", 7, "poison") == 0
    assert combat.apply_damage(fight.id, "goblin", 4, "radiant") == 8
    assert goblin.hp.current == 20 - 3 - 8


def test_damage_event_carries_hp_after(combat, fight, events):
    seen = []
    events.subscribe("damage_dealt", seen.append)
    combat.apply_damage(fight.id, "goblin", 6, "cold", source_id="hero")

    assert len(seen) == 1
    assert seen[0].combatant_id == "goblin"
    assert seen[0].source_id == "hero"
    assert seen[0].hp_after == 14
    assert seen[0].damage_types == {"cold": 6}


def test_negative_modifier_floors_damage_at_zero(combat, fight):
    twig = CombatAction(
        id="twig",
        name="Twig",
        attack_roll=AttackRollSpec(bonus=5),
        damage_rolls=[DamageRoll(dice="1d4", damage_type="bludgeoning", bonus=-3)],
    )
    combat.dice.supply(15, 1)  # hits, 1 - 3 would be -2

    [result] = combat.execute_action(fight.id, twig, ["goblin"])

    assert result.hit
    assert result.total_damage == 0
    assert result.damage_types == {"bludgeoning": 0}
    assert fight.find("goblin").hp.current == 20
    assert fight.damage_dealt.get("hero", 0) == 0
    assert fight.action_log[-1].results.damage == 0
