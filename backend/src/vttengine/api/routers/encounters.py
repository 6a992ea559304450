from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from vttengine.api.deps import forced_rolls, get_app_settings, get_engine
from vttengine.api.schemas import (
    ActionRequest,
    CombatantSpec,
    EncounterCreate,
    EncounterOut,
    InitiativeRequest,
    MoveRequest,
    TurnOut,
)
from vttengine.core.adapters.mapper import combatant_from_spec, victory_condition_from_dto
from vttengine.config import Settings
from vttengine.core.engine.combat import CombatEngine
from vttengine.core.engine.definitions import CombatAction
from vttengine.core.engine.state import CombatEncounter, CombatLogEntry, MovementPath
from vttengine.core.errors import PhaseError, RuleValidationError
from vttengine.core.persistence.state_codec import combatant_to_dict, encounter_to_dict

router = APIRouter(prefix="/encounters", tags=["encounters"])


def _out(encounter: CombatEncounter) -> EncounterOut:
    return EncounterOut(encounter_id=encounter.id, state=encounter_to_dict(encounter))


def _turn(encounter: CombatEncounter) -> TurnOut:
    return TurnOut(
        encounter_id=encounter.id,
        phase=encounter.phase,
        round=encounter.round,
        current_turn=encounter.current_turn,
        current_combatant_id=encounter.current_combatant_id,
    )


def _lookup_action(
    engine: CombatEngine, encounter_id: str, payload: ActionRequest
) -> CombatAction:
    if payload.action is not None:
        return payload.action
    if not payload.action_id:
        raise RuleValidationError("Either action or action_id is required", code="NO_ACTION")

    encounter = engine.get_encounter(encounter_id)
    actor_id = payload.actor_id or encounter.current_combatant_id
    if actor_id is None:
        raise PhaseError("No combatant is acting", phase=encounter.phase)
    actor = engine.get_combatant(encounter, actor_id)

    # unfiltered, so an exhausted action reports ACTION_UNAVAILABLE instead of "unknown"
    known = [w.to_action() for w in actor.weapons]
    known.extend(f.action for f in actor.features if f.action is not None)
    for action in known:
        if action.id == payload.action_id:
            return action
    raise RuleValidationError(
        f"{actor.name} has no action {payload.action_id!r}",
        code="UNKNOWN_ACTION",
        action_id=payload.action_id,
    )


@router.get("")
def list_encounters(engine: CombatEngine = Depends(get_engine)) -> List[Dict[str, Any]]:
    return [
        {"id": e.id, "name": e.name, "phase": e.phase, "round": e.round}
        for e in engine.list_encounters()
    ]


@router.post("", response_model=EncounterOut)
def create_encounter(
    payload: EncounterCreate,
    engine: CombatEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
):
    encounter = engine.create_encounter(
        payload.name,
        [combatant_from_spec(c) for c in payload.combatants],
        payload.preset or settings.DEFAULT_PRESET,
        victory_conditions=[victory_condition_from_dto(v) for v in payload.victory_conditions],
        description=payload.description,
        encounter_id=payload.encounter_id,
    )
    return _out(encounter)


@router.get("/{encounter_id}", response_model=EncounterOut)
def get_encounter(encounter_id: str, engine: CombatEngine = Depends(get_engine)):
    return _out(engine.get_encounter(encounter_id))


@router.post("/{encounter_id}/combatants", response_model=EncounterOut)
def add_combatant(
    encounter_id: str, payload: CombatantSpec, engine: CombatEngine = Depends(get_engine)
):
    engine.add_combatant(encounter_id, combatant_from_spec(payload))
    return _out(engine.get_encounter(encounter_id))


@router.post("/{encounter_id}/initiative")
def roll_initiative(
    encounter_id: str,
    payload: Optional[InitiativeRequest] = None,
    engine: CombatEngine = Depends(get_engine),
) -> Dict[str, Any]:
    rolls = payload.rolls if payload is not None else []
    with forced_rolls(engine.dice, rolls):
        order = engine.roll_initiative(encounter_id)
    encounter = engine.get_encounter(encounter_id)
    return {"turn_order": order, "turn": _turn(encounter).model_dump()}


@router.post("/{encounter_id}/actions")
def execute_action(
    encounter_id: str, payload: ActionRequest, engine: CombatEngine = Depends(get_engine)
) -> Dict[str, Any]:
    action = _lookup_action(engine, encounter_id, payload)
    with forced_rolls(engine.dice, payload.rolls):
        results = engine.execute_action(
            encounter_id, action, payload.target_ids, actor_id=payload.actor_id
        )
    encounter = engine.get_encounter(encounter_id)
    return {
        "results": [r.model_dump(mode="json") for r in results],
        "log_entry": encounter.action_log[-1].model_dump(mode="json"),
        "turn": _turn(encounter).model_dump(),
    }


@router.post("/{encounter_id}/combatants/{combatant_id}/move", response_model=MovementPath)
def move_combatant(
    encounter_id: str,
    combatant_id: str,
    payload: MoveRequest,
    engine: CombatEngine = Depends(get_engine),
):
    return engine.move_combatant(encounter_id, combatant_id, payload.x, payload.y)


@router.post("/{encounter_id}/turn:end", response_model=TurnOut)
def end_turn(encounter_id: str, engine: CombatEngine = Depends(get_engine)):
    engine.end_turn(encounter_id)
    return _turn(engine.get_encounter(encounter_id))


@router.get("/{encounter_id}/current")
def current_combatant(
    encounter_id: str, engine: CombatEngine = Depends(get_engine)
) -> Dict[str, Any]:
    combatant = engine.get_current_combatant(encounter_id)
    return {"combatant": combatant_to_dict(combatant) if combatant is not None else None}


@router.get(
    "/{encounter_id}/combatants/{combatant_id}/actions",
    response_model=List[CombatAction],
)
def available_actions(
    encounter_id: str, combatant_id: str, engine: CombatEngine = Depends(get_engine)
):
    return engine.get_available_actions(encounter_id, combatant_id)


@router.get("/{encounter_id}/log", response_model=List[CombatLogEntry])
def action_log(
    encounter_id: str,
    limit: int = Query(default=100, ge=1, le=1000),
    engine: CombatEngine = Depends(get_engine),
):
    return engine.get_encounter(encounter_id).action_log[-limit:]
