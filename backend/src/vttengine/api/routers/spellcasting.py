from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from vttengine.api.deps import forced_rolls, get_roll_history, get_spellcasting
from vttengine.api.schemas import (
    CastRequest,
    ConcentrationSaveRequest,
    RestRequest,
    SpellcasterCreate,
    SpellcasterOut,
)
from vttengine.core.adapters.mapper import spellcaster_from_spec
from vttengine.core.engine.dice import RollHistory, RollResult, RollStats
from vttengine.core.engine.spells.casting import (
    ConcentrationCheck,
    ReadySpell,
    SpellcastingResolver,
    SpellcastingResult,
)
from vttengine.core.engine.spells.definitions import Spell
from vttengine.core.engine.state import Spellcaster
from vttengine.core.persistence.state_codec import spellcaster_to_dict

router = APIRouter(tags=["spellcasting"])


def _out(caster: Spellcaster) -> SpellcasterOut:
    return SpellcasterOut(caster_id=caster.id, state=spellcaster_to_dict(caster))


@router.get("/spells", response_model=List[Spell])
def list_spells(
    caster_class: Optional[str] = None,
    max_level: Optional[int] = Query(default=None, ge=0, le=9),
    q: Optional[str] = None,
    spellcasting: SpellcastingResolver = Depends(get_spellcasting),
):
    if q:
        return spellcasting.spells.search(q)
    if caster_class:
        return spellcasting.spells.for_class(caster_class, max_level)
    return [
        s for s in spellcasting.spells.list() if max_level is None or s.level <= max_level
    ]


@router.get("/spells/{spell_id}", response_model=Spell)
def get_spell(spell_id: str, spellcasting: SpellcastingResolver = Depends(get_spellcasting)):
    return spellcasting.spells.require(spell_id)


@router.post("/spellcasters", response_model=SpellcasterOut)
def register_spellcaster(
    payload: SpellcasterCreate,
    spellcasting: SpellcastingResolver = Depends(get_spellcasting),
):
    return _out(spellcasting.register_spellcaster(spellcaster_from_spec(payload)))


@router.get("/spellcasters/{caster_id}", response_model=SpellcasterOut)
def get_spellcaster(
    caster_id: str, spellcasting: SpellcastingResolver = Depends(get_spellcasting)
):
    return _out(spellcasting.require_caster(caster_id))


@router.get("/spellcasters/{caster_id}/ready", response_model=List[ReadySpell])
def ready_spells(
    caster_id: str, spellcasting: SpellcastingResolver = Depends(get_spellcasting)
):
    return spellcasting.get_ready_spells(caster_id)


@router.post("/spellcasters/{caster_id}/cast", response_model=SpellcastingResult)
def cast_spell(
    caster_id: str,
    payload: CastRequest,
    spellcasting: SpellcastingResolver = Depends(get_spellcasting),
):
    with forced_rolls(spellcasting.dice, payload.rolls):
        return spellcasting.cast_spell(
            caster_id,
            payload.spell_id,
            payload.level,
            payload.target_ids,
            encounter_id=payload.encounter_id,
        )


@router.post(
    "/spellcasters/{caster_id}/concentration:save", response_model=ConcentrationCheck
)
def concentration_save(
    caster_id: str,
    payload: ConcentrationSaveRequest,
    spellcasting: SpellcastingResolver = Depends(get_spellcasting),
):
    with forced_rolls(spellcasting.dice, payload.rolls):
        return spellcasting.make_concentration_save(caster_id, payload.damage)


@router.post("/spellcasters/{caster_id}/rest", response_model=SpellcasterOut)
def rest(
    caster_id: str,
    payload: RestRequest,
    spellcasting: SpellcastingResolver = Depends(get_spellcasting),
):
    return _out(spellcasting.rest(caster_id, payload.type))


@router.get("/rolls", response_model=List[RollResult])
def recent_rolls(
    limit: int = Query(default=20, ge=1, le=500),
    history: RollHistory = Depends(get_roll_history),
):
    return history.recent(limit)


@router.get("/rolls/stats", response_model=RollStats)
def roll_stats(history: RollHistory = Depends(get_roll_history)):
    return history.stats()
