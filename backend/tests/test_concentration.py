import pytest

from vttengine.core.errors import NotConcentratingError


def test_new_concentration_replaces_old(spellcasting, cleric, events):
    ended = []
    events.subscribe("concentration_ended", ended.append)
    spellcasting.register_spellcaster(cleric)
    cleric.prepared_spells.append("bless")

    first = spellcasting.cast_spell("cleric", "bless", target_ids=["a", "b"])
    assert first.concentration_started
    assert cleric.concentration.spell_id == "bless"

    second = spellcasting.cast_spell("cleric", "hold_person", target_ids=["orc"])
    assert second.concentration_ended == "bless"
    assert cleric.concentration.spell_id == "hold_person"
    assert [e.reason for e in ended] == ["new_concentration"]


def test_concentration_save_dc_floor(spellcasting, wizard):
    spellcasting.register_spellcaster(wizard)
    spellcasting.cast_spell("wizard", "hold_person", target_ids=["orc"])

    spellcasting.dice.supply(9)  # 9 + 1 vs DC 10
    check = spellcasting.make_concentration_save("wizard", 6)
    assert check.dc == 10
    assert check.success
    assert wizard.concentration is not None


def test_big_hit_raises_dc_and_breaks(spellcasting, wizard):
    spellcasting.register_spellcaster(wizard)
    spellcasting.cast_spell("wizard", "hold_person", target_ids=["orc"])

    spellcasting.dice.supply(13)  # 13 + 1 vs DC 15
    check = spellcasting.make_concentration_save("wizard", 30)
    assert check.dc == 15
    assert not check.success
    assert wizard.concentration is None


def test_save_without_concentration(spellcasting, wizard):
    spellcasting.register_spellcaster(wizard)
    with pytest.raises(NotConcentratingError):
        spellcasting.make_concentration_save("wizard", 10)
    assert spellcasting.end_concentration("wizard") is None


def test_damage_in_combat_triggers_save(combat, spellcasting, arena, wizard):
    spellcasting.dice.supply(3)  # goblin fails the wisdom save
    spellcasting.cast_spell(
        "wizard", "hold_person", target_ids=["goblin"], encounter_id=arena.id
    )
    goblin = arena.find("goblin")
    paralyzed = goblin.conditions[0]
    assert paralyzed.name == "Paralyzed"
    assert paralyzed.source == "concentration:wizard:hold_person"
    # "caster's DC" resolved at cast time
    assert paralyzed.ends_on_save.dc == 14
    assert arena.find("wizard").concentrating_on == "hold_person"

    spellcasting.dice.supply(2)  # concentration save 2 + 1 vs DC 10
    combat.apply_damage(arena.id, "wizard", 10, source_id="goblin")

    assert wizard.concentration is None
    assert not goblin.has_condition("Paralyzed")
    assert arena.find("wizard").concentrating_on is None


def test_dropping_to_zero_ends_concentration(combat, spellcasting, arena, wizard):
    spellcasting.dice.supply(3)
    spellcasting.cast_spell(
        "wizard", "hold_person", target_ids=["goblin"], encounter_id=arena.id
    )
    combat.apply_damage(arena.id, "wizard", 50)
    assert wizard.concentration is None
    assert not arena.find("goblin").has_condition("Paralyzed")
