from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vttengine.api.main import create_app
from vttengine.config import Settings
from vttengine.core.engine.combat import CombatEngine
from vttengine.core.engine.definitions import Weapon
from vttengine.core.engine.dice import DiceResolver
from vttengine.core.engine.events import EventBus
from vttengine.core.engine.spells.casting import SpellcastingResolver
from vttengine.core.engine.spells.library import register_core_spells
from vttengine.core.engine.spells.registry import SpellRepository
from vttengine.core.engine.state import (
    AbilityScores,
    Combatant,
    HitPoints,
    SpellSlot,
    Spellcaster,
)
from vttengine.db.base import Base
import vttengine.db.session as db_session
import vttengine.db.init_db as db_init


@pytest.fixture(scope="session")
def db_engine():
    # one in-memory connection shared by the whole session
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    return eng


@pytest.fixture(scope="session")
def TestingSessionLocal(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture(scope="session", autouse=True)
def _patch_db(db_engine, TestingSessionLocal):
    db_session.engine = db_engine
    db_session.SessionLocal = TestingSessionLocal

    db_init.engine = db_engine

    Base.metadata.create_all(bind=db_engine)
    yield
    Base.metadata.drop_all(bind=db_engine)


def _settings(store: str) -> Settings:
    s = Settings()
    s.ENCOUNTER_STORE = store
    s.DICE_SEED = 1234
    s.LOG_LEVEL = "WARNING"
    s.DEFAULT_PRESET = "QUICK_SKIRMISH"
    return s


@pytest.fixture()
def client():
    with TestClient(create_app(_settings("memory"))) as c:
        yield c


@pytest.fixture()
def sql_client():
    with TestClient(create_app(_settings("sql"))) as c:
        yield c


# ---------- engine-level fixtures ----------


@pytest.fixture()
def dice():
    return DiceResolver(seed=42)


@pytest.fixture()
def events():
    return EventBus()


@pytest.fixture()
def combat(dice, events):
    return CombatEngine(dice, events)


@pytest.fixture()
def spellcasting(combat):
    return SpellcastingResolver(
        spells=register_core_spells(SpellRepository()), engine=combat
    )


@pytest.fixture()
def make_combatant():
    def _make(cid: str, team: str = "player", **kw) -> Combatant:
        hp = kw.pop("hp", 20)
        return Combatant(
            id=cid,
            name=kw.pop("name", cid.title()),
            team=team,  # type: ignore[arg-type]
            hp=HitPoints(current=hp, maximum=kw.pop("hp_max", hp)),
            **kw,
        )

    return _make


@pytest.fixture()
def hero(make_combatant):
    return make_combatant(
        "hero",
        "player",
        name="Hero",
        hp=30,
        armor_class=16,
        abilities=AbilityScores(strength=16, dexterity=14),
        weapons=[
            Weapon(
                id="longsword",
                name="Longsword",
                attack_bonus=5,
                damage="1d8",
                damage_type="slashing",
                damage_bonus=3,
            )
        ],
    )


@pytest.fixture()
def goblin(make_combatant):
    return make_combatant(
        "goblin",
        "enemy",
        name="Goblin",
        hp=20,
        armor_class=13,
        abilities=AbilityScores(dexterity=14),
        weapons=[
            Weapon(
                id="scimitar",
                name="Scimitar",
                attack_bonus=4,
                damage="1d6",
                damage_type="slashing",
                damage_bonus=2,
            )
        ],
    )


@pytest.fixture()
def fight(combat, hero, goblin):
    """Hero (initiative 15+2) acts before Goblin (12+2); round 1, Hero's turn."""
    enc = combat.create_encounter("Ambush", [hero, goblin])
    combat.dice.supply(15, 12)
    combat.roll_initiative(enc.id)
    return enc


# ---------- spellcasters ----------


@pytest.fixture()
def wizard():
    return Spellcaster(
        id="wizard",
        caster_class="wizard",
        level=5,
        ability="intelligence",
        ability_modifier=3,
        attack_bonus=6,
        save_dc=14,
        constitution_modifier=1,
        slots=[SpellSlot(1, 4), SpellSlot(2, 3), SpellSlot(3, 2)],
        known_spells=[
            "fire_bolt",
            "mage_hand",
            "magic_missile",
            "shield",
            "hold_person",
            "fireball",
            "counterspell",
        ],
    )


@pytest.fixture()
def cleric():
    return Spellcaster(
        id="cleric",
        caster_class="cleric",
        level=3,
        ability="wisdom",
        ability_modifier=3,
        attack_bonus=5,
        save_dc=13,
        slots=[SpellSlot(1, 4), SpellSlot(2, 2)],
        known_spells=["bless", "cure_wounds", "healing_word", "hold_person"],
        prepared_spells=["cure_wounds", "healing_word", "hold_person"],
        prepares_spells=True,
    )


@pytest.fixture()
def warlock():
    return Spellcaster(
        id="warlock",
        caster_class="warlock",
        level=3,
        ability="charisma",
        ability_modifier=3,
        attack_bonus=5,
        save_dc=13,
        slots=[SpellSlot(2, 2)],
        known_spells=["hold_person"],
    )


@pytest.fixture()
def arena(combat, spellcasting, make_combatant, goblin, wizard):
    """Wizard (20) > Goblin (7) > Grunt (6); round 1, Wizard's turn."""
    wiz = make_combatant(
        "wizard",
        "player",
        name="Wizard",
        hp=24,
        armor_class=12,
        abilities=AbilityScores(dexterity=14, constitution=12),
    )
    grunt = make_combatant(
        "grunt", "enemy", name="Grunt", hp=20, armor_class=13,
        abilities=AbilityScores(dexterity=14),
    )
    enc = combat.create_encounter("Tower", [wiz, goblin, grunt])
    combat.dice.supply(18, 5, 4)
    combat.roll_initiative(enc.id)
    spellcasting.register_spellcaster(wizard)
    return enc
