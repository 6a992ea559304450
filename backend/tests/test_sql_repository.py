from vttengine.core.engine.combat import CombatEngine
from vttengine.core.engine.dice import DiceResolver
from vttengine.core.engine.state import SpellSlot, Spellcaster
from vttengine.core.persistence.sql_repository import (
    SqlEncounterRepository,
    SqlSpellcasterRepository,
)
from vttengine.db.models import EncounterSnapshot


def test_encounter_written_through(TestingSessionLocal, hero, goblin):
    repo = SqlEncounterRepository(TestingSessionLocal)
    combat = CombatEngine(DiceResolver(), encounters=repo)

    enc = combat.create_encounter("Crypt", [hero, goblin], encounter_id="sql-crypt")
    combat.dice.supply(15, 12, 12, 5)
    combat.roll_initiative(enc.id)
    combat.execute_action(enc.id, hero.weapons[0].to_action(), ["goblin"])

    # same object while this repository is alive
    assert repo.get("sql-crypt") is enc

    with TestingSessionLocal() as db:
        row = db.get(EncounterSnapshot, "sql-crypt")
        assert row.phase == "combat"
        assert row.round == 1

    # a fresh repository rebuilds it from the row
    loaded = SqlEncounterRepository(TestingSessionLocal).get("sql-crypt")
    assert loaded is not enc
    assert loaded.find("goblin").hp.current == 12
    assert loaded.action_log[-1].action == "Longsword Attack"


def test_remove_and_list(TestingSessionLocal, hero):
    repo = SqlEncounterRepository(TestingSessionLocal)
    combat = CombatEngine(DiceResolver(), encounters=repo)
    combat.create_encounter("Tmp", [hero], encounter_id="sql-tmp")

    assert "sql-tmp" in [e.id for e in repo.list()]
    assert repo.remove("sql-tmp")
    assert not repo.remove("sql-tmp")
    assert repo.get("sql-tmp") is None


def test_spellcaster_repository(TestingSessionLocal):
    repo = SqlSpellcasterRepository(TestingSessionLocal)
    repo.put(
        "sql-sorc",
        Spellcaster(id="sql-sorc", caster_class="sorcerer", slots=[SpellSlot(1, 2, used=1)]),
    )
    loaded = SqlSpellcasterRepository(TestingSessionLocal).get("sql-sorc")
    assert loaded.caster_class == "sorcerer"
    assert loaded.slot(1).used == 1
