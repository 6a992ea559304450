from vttengine.core.engine.definitions import (
    CombatAction,
    ConditionEffect,
    DamageEffect,
    HealingEffect,
    SavingThrowSpec,
)
from vttengine.core.engine.state import AbilityScores

POISON_SPRAY = CombatAction(
    id="poison_spray",
    name="Poison Spray",
    saving_throw=SavingThrowSpec(
        ability="constitution",
        dc=13,
        success_effects=[DamageEffect(value=2, damage_type="poison")],
        failure_effects=[
            DamageEffect(dice="1d12", damage_type="poison"),
            ConditionEffect(condition="Poisoned", duration=1),
        ],
    ),
)


def test_failed_save_applies_failure_branch_only(combat, fight):
    combat.dice.supply(5, 9)  # save 5 (+0) fails, d12 9
    combat.execute_action(fight.id, POISON_SPRAY, ["goblin"])

    goblin = fight.find("goblin")
    assert goblin.hp.current == 11
    assert goblin.has_condition("Poisoned")

    entry = fight.action_log[-1]
    assert "1/1 failed constitution save" in entry.description
    assert "9 damage" in entry.description
    assert entry.results.success
    assert "Poisoned" in entry.results.effects


def test_successful_save_applies_success_branch_only(combat, fight):
    combat.dice.supply(18)
    combat.execute_action(fight.id, POISON_SPRAY, ["goblin"])

    goblin = fight.find("goblin")
    assert goblin.hp.current == 18
    assert not goblin.has_condition("Poisoned")
    assert not fight.action_log[-1].results.success


def test_proficiency_counts_toward_save(combat, fight):
    goblin = fight.find("goblin")
    goblin.abilities = AbilityScores(constitution=14)
    goblin.saving_throw_proficiencies = {"constitution"}
    assert goblin.saving_throw_modifier("con") == 4

    combat.dice.supply(9)  # 9 + 4 = 13 meets the DC
    combat.execute_action(fight.id, POISON_SPRAY, ["goblin"])
    assert goblin.hp.current == 18


def test_effects_only_action_targets_self(combat, fight):
    second_wind = CombatAction(
        id="second_wind",
        name="Second Wind",
        action_cost="bonus_action",
        effects=[HealingEffect(dice="1d10", value=1)],
    )
    combat.apply_damage(fight.id, "hero", 10)
    combat.dice.supply(6)
    combat.execute_action(fight.id, second_wind, [])

    hero = fight.find("hero")
    assert hero.hp.current == 27
    assert hero.economy.bonus_action_used
    assert not hero.economy.action_used
    assert fight.action_log[-1].results.healing == 7
