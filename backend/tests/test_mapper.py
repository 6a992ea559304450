from vttengine.api.schemas import CombatantSpec, SpellcasterCreate
from vttengine.core.adapters.mapper import (
    CombatantOverrides,
    combatant_from_spec,
    spellcaster_from_spec,
)


def _spec(**kw):
    data = {
        "id": "orc",
        "name": "Orc",
        "team": "enemy",
        "hp": {"current": 15, "maximum": 15},
        "armor_class": 13,
        "abilities": {"strength": 16, "constitution": 16},
        "saving_throw_proficiencies": ["con", "Strength"],
        "weapons": [{"id": "greataxe", "name": "Greataxe", "attack_bonus": 5, "damage": "1d12"}],
        "damage_resistances": ["poison"],
    }
    data.update(kw)
    return CombatantSpec.model_validate(data)


def test_combatant_from_spec():
    c = combatant_from_spec(_spec())
    assert c.hp.current == 15
    assert c.saving_throw_proficiencies == {"constitution", "strength"}
    assert c.saving_throw_modifier("con") == 3 + 2
    assert c.damage_resistances == {"poison"}
    assert c.weapons[0].to_action().name == "Greataxe Attack"


def test_overrides_and_hp_clamp():
    c = combatant_from_spec(_spec(hp={"current": 30, "maximum": 15}))
    assert c.hp.current == 15

    c = combatant_from_spec(_spec(), CombatantOverrides(hp_current=4, temp_hp=3))
    assert (c.hp.current, c.hp.temporary) == (4, 3)


def test_spellcaster_from_spec():
    caster = spellcaster_from_spec(
        SpellcasterCreate(
            id="s1",
            caster_class="Warlock",
            ability="cha",
            slots=[{"level": 2, "total": 2}],
            known_spells=["hold_person"],
        )
    )
    assert caster.caster_class == "warlock"
    assert caster.ability == "charisma"
    assert caster.combatant_id == "s1"
    assert caster.slot(2).available == 2
