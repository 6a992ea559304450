"""Request payloads -> engine state objects."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from vttengine.api.schemas import CombatantSpec, SpellcasterCreate, VictoryConditionDTO
from vttengine.core.engine.definitions import normalize_ability
from vttengine.core.engine.state import (
    AbilityScores,
    Combatant,
    HitPoints,
    Position,
    SpellSlot,
    Spellcaster,
    VictoryCondition,
)


@dataclass(frozen=True)
class CombatantOverrides:
    hp_current: Optional[int] = None
    temp_hp: Optional[int] = None
    position: Optional[Position] = None


def combatant_from_spec(
    spec: CombatantSpec, overrides: Optional[CombatantOverrides] = None
) -> Combatant:
    ov = overrides or CombatantOverrides()

    current = spec.hp.current if ov.hp_current is None else ov.hp_current
    temp = spec.hp.temporary if ov.temp_hp is None else ov.temp_hp
    # a payload can't start a combatant above its maximum
    current = max(0, min(current, spec.hp.maximum))

    position = ov.position or Position(x=spec.position.x, y=spec.position.y)

    return Combatant(
        id=spec.id,
        name=spec.name,
        team=spec.team,
        hp=HitPoints(current=current, maximum=spec.hp.maximum, temporary=max(0, temp)),
        armor_class=spec.armor_class,
        speed=spec.speed,
        level=spec.level,
        abilities=AbilityScores(**spec.abilities.model_dump()),
        proficiency_bonus=spec.proficiency_bonus,
        saving_throw_proficiencies={
            normalize_ability(a) for a in spec.saving_throw_proficiencies
        },
        position=Position(x=position.x, y=position.y),
        weapons=list(spec.weapons),
        spells=list(spec.spells),
        features=list(spec.features),
        damage_resistances=set(spec.damage_resistances),
        damage_vulnerabilities=set(spec.damage_vulnerabilities),
        damage_immunities=set(spec.damage_immunities),
    )


def victory_condition_from_dto(dto: VictoryConditionDTO) -> VictoryCondition:
    return VictoryCondition(
        type=dto.type, description=dto.description, parameters=dict(dto.parameters)
    )


def spellcaster_from_spec(spec: SpellcasterCreate) -> Spellcaster:
    return Spellcaster(
        id=spec.id,
        caster_class=spec.caster_class.lower(),
        level=spec.level,
        ability=normalize_ability(spec.ability),
        ability_modifier=spec.ability_modifier,
        attack_bonus=spec.attack_bonus,
        save_dc=spec.save_dc,
        constitution_modifier=spec.constitution_modifier,
        combatant_id=spec.combatant_id,
        slots=[SpellSlot(level=s.level, total=s.total, used=s.used) for s in spec.slots],
        known_spells=list(spec.known_spells),
        prepared_spells=list(spec.prepared_spells),
        prepares_spells=spec.prepares_spells,
    )
