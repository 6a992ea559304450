from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from vttengine.api.errors import register_error_handlers
from vttengine.api.routers.encounters import router as encounters_router
from vttengine.api.routers.spellcasting import router as spellcasting_router
from vttengine.config import Settings, get_settings
from vttengine.core.engine.combat import CombatEngine
from vttengine.core.engine.dice import DiceResolver, RollHistory
from vttengine.core.engine.events import EventBus
from vttengine.core.engine.repository import InMemoryRepository
from vttengine.core.engine.spells.casting import SpellcastingResolver
from vttengine.core.engine.spells.library import register_core_spells
from vttengine.core.engine.spells.registry import SpellRepository
from vttengine.core.persistence.sql_repository import (
    SqlEncounterRepository,
    SqlSpellcasterRepository,
)
from vttengine.db import init_db as db_init
from vttengine.db import session as db_session
from vttengine.logging_config import configure_logging

logger = logging.getLogger(__name__)


def _wire(app: FastAPI, settings: Settings) -> None:
    history = RollHistory(max_size=settings.ROLL_HISTORY_SIZE)
    dice = DiceResolver(seed=settings.DICE_SEED, recorder=history)
    events = EventBus()

    if settings.ENCOUNTER_STORE == "sql":
        db_init.init_db()
        encounters = SqlEncounterRepository(db_session.SessionLocal)
        casters = SqlSpellcasterRepository(db_session.SessionLocal)
    else:
        encounters = InMemoryRepository()
        casters = InMemoryRepository()

    engine = CombatEngine(dice, events, encounters=encounters)
    spellcasting = SpellcastingResolver(
        dice,
        events,
        spells=register_core_spells(SpellRepository()),
        casters=casters,
        engine=engine,
    )

    app.state.settings = settings
    app.state.roll_history = history
    app.state.events = events
    app.state.engine = engine
    app.state.spellcasting = spellcasting
    logger.info("engine ready (store=%s)", settings.ENCOUNTER_STORE)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL)
        _wire(app, settings)
        yield

    app = FastAPI(title="VTT Combat & Spellcasting Engine", lifespan=lifespan)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    register_error_handlers(app)
    app.include_router(encounters_router)
    app.include_router(spellcasting_router)
    return app


app = create_app()
