from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Sequence

from fastapi import Request

from vttengine.config import Settings
from vttengine.core.engine.combat import CombatEngine
from vttengine.core.engine.dice import DiceResolver, RollHistory
from vttengine.core.engine.spells.casting import SpellcastingResolver


def get_engine(request: Request) -> CombatEngine:
    return request.app.state.engine


def get_spellcasting(request: Request) -> SpellcastingResolver:
    return request.app.state.spellcasting


def get_roll_history(request: Request) -> RollHistory:
    return request.app.state.roll_history


@contextmanager
def forced_rolls(dice: DiceResolver, rolls: Sequence[int]) -> Iterator[None]:
    """Queue `rolls` for this request only; leftovers never leak into the next one."""
    dice.supply(*rolls)
    try:
        yield
    finally:
        dice.clear_supplied()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
