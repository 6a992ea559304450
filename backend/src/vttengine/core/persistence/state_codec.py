from __future__ import annotations

from dataclasses import fields, is_dataclass
from typing import Any, Dict, List, Type, TypeVar, cast

from pydantic import TypeAdapter

from vttengine.core.engine.definitions import (
    Battlefield,
    CombatFeature,
    Effect,
    EndsOnSave,
    RulePreset,
    Weapon,
)
from vttengine.core.engine.dice import RollResult
from vttengine.core.engine.state import (
    AbilityScores,
    ActionEconomy,
    ActiveConcentration,
    CombatCondition,
    CombatEncounter,
    CombatLogEntry,
    Combatant,
    HitPoints,
    Position,
    SpellSlot,
    Spellcaster,
    VictoryCondition,
)

T = TypeVar("T")

_EFFECTS = TypeAdapter(List[Effect])


# ---------- generic helpers ----------


def _jsonable(v: Any) -> Any:
    """Plain JSON types all the way down (set/tuple -> list, dataclass/pydantic -> dict)."""
    if v is None or isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, set):
        return sorted(_jsonable(x) for x in v)
    if isinstance(v, (list, tuple)):
        return [_jsonable(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _jsonable(val) for k, val in v.items()}

    md = getattr(v, "model_dump", None)
    if callable(md):
        return md(mode="json")

    if is_dataclass(v) and not isinstance(v, type):
        return {f.name: _jsonable(getattr(v, f.name)) for f in fields(v)}

    raise TypeError(f"Cannot serialise {type(v).__name__}")


def _build(cls: Type[T], data: Dict[str, Any], **overrides: Any) -> T:
    """Dataclass from dict; unknown keys are dropped so old snapshots still load."""
    allowed = {f.name for f in fields(cast(Any, cls))}
    kwargs = {k: v for k, v in data.items() if k in allowed}
    kwargs.update(overrides)
    return cls(**kwargs)


# ---------- combatants ----------


def _condition_from_dict(data: Dict[str, Any]) -> CombatCondition:
    ends = data.get("ends_on_save")
    return _build(
        CombatCondition,
        data,
        effects=_EFFECTS.validate_python(data.get("effects") or []),
        ends_on_save=EndsOnSave.model_validate(ends) if ends else None,
    )


def combatant_to_dict(c: Combatant) -> Dict[str, Any]:
    return cast(Dict[str, Any], _jsonable(c))


def combatant_from_dict(data: Dict[str, Any]) -> Combatant:
    roll = data.get("initiative_roll")
    return _build(
        Combatant,
        data,
        hp=_build(HitPoints, data["hp"]),
        abilities=_build(AbilityScores, data.get("abilities") or {}),
        position=_build(Position, data.get("position") or {}),
        economy=_build(ActionEconomy, data.get("economy") or {}),
        conditions=[_condition_from_dict(c) for c in data.get("conditions") or []],
        initiative_roll=RollResult.model_validate(roll) if roll else None,
        weapons=[Weapon.model_validate(w) for w in data.get("weapons") or []],
        features=[CombatFeature.model_validate(f) for f in data.get("features") or []],
        spells=list(data.get("spells") or []),
        saving_throw_proficiencies=set(data.get("saving_throw_proficiencies") or []),
        damage_resistances=set(data.get("damage_resistances") or []),
        damage_vulnerabilities=set(data.get("damage_vulnerabilities") or []),
        damage_immunities=set(data.get("damage_immunities") or []),
    )


# ---------- encounters ----------


def encounter_to_dict(encounter: CombatEncounter) -> Dict[str, Any]:
    return cast(Dict[str, Any], _jsonable(encounter))


def encounter_from_dict(data: Dict[str, Any]) -> CombatEncounter:
    return _build(
        CombatEncounter,
        data,
        combatants=[combatant_from_dict(c) for c in data.get("combatants") or []],
        turn_order=list(data.get("turn_order") or []),
        battlefield=Battlefield.model_validate(data.get("battlefield") or {}),
        rules=RulePreset.model_validate(data.get("rules") or {}),
        action_log=[CombatLogEntry.model_validate(e) for e in data.get("action_log") or []],
        damage_dealt={str(k): int(v) for k, v in (data.get("damage_dealt") or {}).items()},
        victory_conditions=[
            _build(VictoryCondition, v) for v in data.get("victory_conditions") or []
        ],
    )


# ---------- spellcasters ----------


def spellcaster_to_dict(caster: Spellcaster) -> Dict[str, Any]:
    return cast(Dict[str, Any], _jsonable(caster))


def spellcaster_from_dict(data: Dict[str, Any]) -> Spellcaster:
    conc = data.get("concentration")
    return _build(
        Spellcaster,
        data,
        slots=[_build(SpellSlot, s) for s in data.get("slots") or []],
        known_spells=list(data.get("known_spells") or []),
        prepared_spells=list(data.get("prepared_spells") or []),
        concentration=_build(ActiveConcentration, conc) if conc else None,
    )
