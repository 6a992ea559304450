"""
Pre-flight checks. Nothing here mutates state; engines call these first and
raise the first error before committing anything.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Type

from vttengine.core.errors import (
    ActionEconomyError,
    CombatantNotFoundError,
    EngineError,
    IllegalStateError,
    InsufficientMovementError,
    NoSpellSlotError,
    NotFoundError,
    PhaseError,
    RuleValidationError,
    SpellNotKnownError,
)
from vttengine.core.engine.definitions import ActionCost, CombatAction
from vttengine.core.engine.state import CombatEncounter, Combatant, Spellcaster

MAX_REACTIONS_PER_ROUND = 1


@dataclass
class ValidationError:
    code: str
    message: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    ok: bool
    errors: List[ValidationError] = field(default_factory=list)
    cost_preview: Dict[str, Any] = field(default_factory=dict)


def _ok(**cost_preview: Any) -> ValidationResult:
    return ValidationResult(ok=True, cost_preview=cost_preview)


def _err(code: str, message: str, **meta: Any) -> ValidationResult:
    return ValidationResult(
        ok=False, errors=[ValidationError(code=code, message=message, meta=meta)]
    )


_ERRORS_BY_CODE: Dict[str, Type[EngineError]] = {
    "UNKNOWN_COMBATANT": NotFoundError,
    "BAD_PHASE": PhaseError,
    "ACTION_UNAVAILABLE": ActionEconomyError,
    "NOT_ENOUGH_MOVEMENT": InsufficientMovementError,
    "NO_SPELL_SLOT": NoSpellSlotError,
    "SPELL_NOT_KNOWN": SpellNotKnownError,
    "SPELL_NOT_PREPARED": SpellNotKnownError,
    "NOT_YOUR_TURN": IllegalStateError,
    "NOT_CONSCIOUS": IllegalStateError,
}


def raise_for(result: ValidationResult) -> None:
    if result.ok:
        return
    first = result.errors[0]
    if first.code == "UNKNOWN_COMBATANT":
        raise CombatantNotFoundError(first.meta.get("combatant_id", "?"))
    exc_cls = _ERRORS_BY_CODE.get(first.code, RuleValidationError)
    raise exc_cls(first.message, code=first.code, **first.meta)


# ---------- action economy ----------


def can_pay(combatant: Combatant, cost: ActionCost) -> bool:
    eco = combatant.economy
    if cost == "action":
        return not eco.action_used
    if cost == "bonus_action":
        return not eco.bonus_action_used
    if cost == "reaction":
        return eco.reactions_used < MAX_REACTIONS_PER_ROUND
    if cost == "movement":
        return eco.movement_spent < combatant.effective_speed
    return True


def validate_cost(combatant: Combatant, cost: ActionCost, label: str) -> ValidationResult:
    if can_pay(combatant, cost):
        return _ok(cost=cost)
    return _err(
        "ACTION_UNAVAILABLE",
        f"{combatant.name} cannot pay {cost} for {label}",
        combatant_id=combatant.id,
        cost=cost,
    )


# ---------- combat ----------


def validate_phase(encounter: CombatEncounter, *allowed: str) -> ValidationResult:
    if encounter.phase in allowed:
        return _ok()
    return _err(
        "BAD_PHASE",
        f"Encounter is in phase {encounter.phase}, expected {'/'.join(allowed)}",
        phase=encounter.phase,
    )


def validate_targets(
    encounter: CombatEncounter, target_ids: Sequence[str], max_targets: Optional[int]
) -> ValidationResult:
    for tid in target_ids:
        if encounter.find(tid) is None:
            return _err("UNKNOWN_COMBATANT", f"Unknown target {tid}", combatant_id=tid)
    if max_targets is not None and len(target_ids) > max_targets:
        return _err(
            "TOO_MANY_TARGETS",
            f"At most {max_targets} target(s) allowed",
            targets=len(target_ids),
            max_targets=max_targets,
        )
    return _ok()


def validate_action(
    encounter: CombatEncounter,
    actor: Combatant,
    action: CombatAction,
    target_ids: Sequence[str],
) -> ValidationResult:
    res = validate_phase(encounter, "combat")
    if not res.ok:
        return res

    if not actor.is_conscious:
        return _err(
            "NOT_CONSCIOUS", f"{actor.name} is unconscious", combatant_id=actor.id
        )

    if actor.level < action.requirements.minimum_level:
        return _err(
            "LEVEL_TOO_LOW",
            f"{action.name} requires level {action.requirements.minimum_level}",
            level=actor.level,
        )

    needs_target = (
        action.attack_roll is not None or action.saving_throw is not None
    )
    if needs_target and not target_ids:
        return _err("NO_TARGET", f"{action.name} needs a target")

    res = validate_targets(encounter, target_ids, action.requirements.targets)
    if not res.ok:
        return res

    return validate_cost(actor, action.action_cost, action.name)


def validate_move(
    encounter: CombatEncounter, combatant: Combatant, cost_ft: int, x: float, y: float
) -> ValidationResult:
    res = validate_phase(encounter, "combat")
    if not res.ok:
        return res
    if not encounter.battlefield.contains(x, y):
        return _err("OUT_OF_BOUNDS", f"({x}, {y}) is outside the battlefield", x=x, y=y)
    remaining = combatant.effective_speed - combatant.economy.movement_spent
    if cost_ft > remaining:
        return _err(
            "NOT_ENOUGH_MOVEMENT",
            f"{combatant.name} needs {cost_ft} ft but has {remaining} ft left",
            cost=cost_ft,
            remaining=remaining,
        )
    return _ok(movement=cost_ft)


# ---------- spellcasting ----------


def validate_cast(
    caster: Spellcaster,
    spell_id: str,
    spell_level: int,
    cast_level: int,
    *,
    target_count: int,
    max_targets: Optional[int],
) -> ValidationResult:
    if spell_id not in caster.known_spells:
        return _err(
            "SPELL_NOT_KNOWN", f"{caster.id} does not know {spell_id}", spell_id=spell_id
        )
    must_prepare = caster.prepares_spells or bool(caster.prepared_spells)
    if spell_level > 0 and must_prepare and spell_id not in caster.prepared_spells:
        return _err(
            "SPELL_NOT_PREPARED",
            f"{spell_id} is not prepared",
            spell_id=spell_id,
        )

    if spell_level == 0:
        if cast_level != 0:
            return _err("BAD_LEVEL", "Cantrips are cast at level 0", level=cast_level)
    else:
        if cast_level < spell_level or cast_level > 9:
            return _err(
                "BAD_LEVEL",
                f"{spell_id} cannot be cast at level {cast_level}",
                level=cast_level,
                spell_level=spell_level,
            )
        slot = caster.slot(cast_level)
        if slot is None or slot.available <= 0:
            return _err(
                "NO_SPELL_SLOT",
                f"No level {cast_level} slot available",
                level=cast_level,
            )

    if max_targets is not None and target_count > max_targets:
        return _err(
            "TOO_MANY_TARGETS",
            f"At most {max_targets} target(s) allowed",
            targets=target_count,
            max_targets=max_targets,
        )
    return _ok(slot_level=cast_level if spell_level > 0 else None)
