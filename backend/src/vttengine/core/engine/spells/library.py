from __future__ import annotations

from vttengine.core.engine.definitions import (
    ConditionEffect,
    EndsOnSave,
    SpecialEffect,
    StatChangeEffect,
)
from vttengine.core.engine.spells.definitions import (
    Spell,
    SpellAttack,
    SpellCastingTime,
    SpellComponents,
    SpellDamage,
    SpellDuration,
    SpellHealing,
    SpellRange,
    SpellSavingThrow,
    SpellTargets,
    UpcastScaling,
)
from vttengine.core.engine.spells.registry import SpellRepository

CORE_SPELLS = [
    # --- cantrips ---
    Spell(
        id="fire_bolt",
        name="Fire Bolt",
        level=0,
        school="evocation",
        range=SpellRange(distance=120),
        components=SpellComponents(verbal=True, somatic=True),
        description="You hurl a mote of fire at a creature or object within range.",
        targets=SpellTargets(type="single"),
        spell_attack=SpellAttack(type="ranged"),
        damage=[SpellDamage(dice="1d10", type="fire")],
        classes=["sorcerer", "wizard"],
    ),
    Spell(
        id="mage_hand",
        name="Mage Hand",
        level=0,
        school="conjuration",
        range=SpellRange(distance=30),
        duration=SpellDuration(type="timed", length="1 minute", seconds=60),
        description="A spectral, floating hand appears at a point you choose within range.",
        effects=[
            SpecialEffect(special="summon_mage_hand", parameters={"weight": 10, "range": 30})
        ],
        targets=SpellTargets(type="special"),
        classes=["bard", "sorcerer", "warlock", "wizard"],
    ),
    # --- 1st level ---
    Spell(
        id="magic_missile",
        name="Magic Missile",
        level=1,
        school="evocation",
        range=SpellRange(distance=120),
        description="You create three glowing darts of magical force.",
        targets=SpellTargets(type="multiple", count=3),
        damage=[SpellDamage(dice="1d4", type="force", modifier=1)],
        upcast_scaling=UpcastScaling(type="targets", amount="+1 dart", interval=1),
        classes=["sorcerer", "wizard"],
    ),
    Spell(
        id="healing_word",
        name="Healing Word",
        level=1,
        school="evocation",
        casting_time=SpellCastingTime(type="bonus_action"),
        range=SpellRange(distance=60),
        components=SpellComponents(verbal=True, somatic=False),
        description="A creature of your choice that you can see within range regains hit points.",
        targets=SpellTargets(type="single"),
        healing=[SpellHealing(dice="1d4", add_spellcasting_modifier=True)],
        upcast_scaling=UpcastScaling(type="healing", amount="+1d4", interval=1),
        classes=["bard", "cleric", "druid"],
    ),
    Spell(
        id="cure_wounds",
        name="Cure Wounds",
        level=1,
        school="evocation",
        range=SpellRange(type="touch"),
        description="A creature you touch regains a number of hit points.",
        targets=SpellTargets(type="single"),
        healing=[SpellHealing(dice="1d8", add_spellcasting_modifier=True)],
        upcast_scaling=UpcastScaling(type="healing", amount="+1d8", interval=1),
        classes=["bard", "cleric", "druid", "paladin", "ranger"],
    ),
    Spell(
        id="shield",
        name="Shield",
        level=1,
        school="abjuration",
        casting_time=SpellCastingTime(
            type="reaction",
            condition="when you are hit by an attack or targeted by magic missile",
        ),
        range=SpellRange(type="self"),
        duration=SpellDuration(type="timed", length="until the start of your next turn"),
        description="An invisible barrier of magical force appears and protects you.",
        effects=[StatChangeEffect(stat="armor_class", modifier=5, duration=1)],
        targets=SpellTargets(type="self"),
        classes=["sorcerer", "wizard"],
    ),
    Spell(
        id="bless",
        name="Bless",
        level=1,
        school="enchantment",
        range=SpellRange(distance=30),
        components=SpellComponents(verbal=True, somatic=True, material=True),
        duration=SpellDuration(
            type="concentration", length="1 minute", concentration=True, seconds=60
        ),
        description="Up to three creatures add a d4 to attack rolls and saving throws.",
        effects=[ConditionEffect(condition="Blessed", duration=10, stackable=False)],
        targets=SpellTargets(type="multiple", count=3),
        upcast_scaling=UpcastScaling(type="targets", amount="+1", interval=1),
        concentration=True,
        classes=["cleric", "paladin"],
    ),
    # --- 2nd level ---
    Spell(
        id="hold_person",
        name="Hold Person",
        level=2,
        school="enchantment",
        range=SpellRange(distance=60),
        components=SpellComponents(verbal=True, somatic=True, material=True),
        duration=SpellDuration(
            type="concentration", length="1 minute", concentration=True, seconds=60
        ),
        description="Choose a humanoid that you can see within range. It must succeed "
        "on a Wisdom saving throw or be paralyzed for the duration.",
        effects=[
            ConditionEffect(
                condition="Paralyzed",
                duration=10,
                ends_on_save=EndsOnSave(ability="wisdom", dc=0, frequency="end_of_turn"),
            )
        ],
        targets=SpellTargets(type="single"),
        saving_throw=SpellSavingThrow(ability="wisdom"),
        upcast_scaling=UpcastScaling(type="targets", amount="+1", interval=1),
        concentration=True,
        classes=["bard", "cleric", "druid", "sorcerer", "warlock", "wizard"],
    ),
    # --- 3rd level ---
    Spell(
        id="fireball",
        name="Fireball",
        level=3,
        school="evocation",
        range=SpellRange(distance=150),
        components=SpellComponents(
            verbal=True,
            somatic=True,
            material=True,
            material_component="a tiny ball of bat guano and sulfur",
        ),
        description="A bright flash of fire expands from a point you choose within range.",
        targets=SpellTargets(type="area"),
        saving_throw=SpellSavingThrow(ability="dexterity", half_damage_on_save=True),
        damage=[SpellDamage(dice="8d6", type="fire", scaling_dice="1d6")],
        upcast_scaling=UpcastScaling(type="damage", amount="+1d6", interval=1),
        classes=["sorcerer", "wizard"],
    ),
    Spell(
        id="lightning_bolt",
        name="Lightning Bolt",
        level=3,
        school="evocation",
        range=SpellRange(type="self"),
        components=SpellComponents(
            verbal=True,
            somatic=True,
            material=True,
            material_component="a bit of fur and a rod of amber, crystal, or glass",
        ),
        description="A stroke of lightning forming a line 100 feet long and 5 feet wide "
        "blasts out from you.",
        targets=SpellTargets(type="area"),
        saving_throw=SpellSavingThrow(ability="dexterity", half_damage_on_save=True),
        damage=[SpellDamage(dice="8d6", type="lightning", scaling_dice="1d6")],
        upcast_scaling=UpcastScaling(type="damage", amount="+1d6", interval=1),
        classes=["sorcerer", "wizard"],
    ),
    Spell(
        id="counterspell",
        name="Counterspell",
        level=3,
        school="abjuration",
        casting_time=SpellCastingTime(
            type="reaction",
            condition="when you see a creature within 60 feet casting a spell",
        ),
        range=SpellRange(distance=60),
        components=SpellComponents(verbal=False, somatic=True),
        description="You attempt to interrupt a creature in the process of casting a spell.",
        effects=[SpecialEffect(special="counterspell", parameters={"auto_success": 3})],
        targets=SpellTargets(type="single"),
        classes=["sorcerer", "warlock", "wizard"],
    ),
]


def register_core_spells(repo: SpellRepository) -> SpellRepository:
    """Seed `repo` with the built-in spell list and return it."""
    for spell in CORE_SPELLS:
        repo.add(spell)
    return repo
