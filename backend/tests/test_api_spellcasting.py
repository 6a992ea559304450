WIZARD = {
    "id": "api-wizard",
    "caster_class": "Wizard",
    "level": 5,
    "ability": "int",
    "ability_modifier": 3,
    "attack_bonus": 6,
    "save_dc": 14,
    "constitution_modifier": 1,
    "combatant_id": "wizard",
    "slots": [{"level": 1, "total": 4}, {"level": 2, "total": 3}, {"level": 3, "total": 2}],
    "known_spells": ["fire_bolt", "magic_missile", "hold_person", "fireball"],
}


def _register(client, **overrides):
    r = client.post("/spellcasters", json={**WIZARD, **overrides})
    assert r.status_code == 200, r.text
    return r.json()


def test_register_and_fetch(client):
    body = _register(client)
    assert body["caster_id"] == "api-wizard"
    assert body["state"]["caster_class"] == "wizard"
    assert body["state"]["ability"] == "intelligence"

    r = client.get("/spellcasters/api-wizard")
    assert r.status_code == 200
    assert [s["level"] for s in r.json()["state"]["slots"]] == [1, 2, 3]


def test_unknown_caster_is_404(client):
    r = client.get("/spellcasters/ghost")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "UNKNOWN_SPELLCASTER"


def test_ready_spells(client):
    _register(client)
    ready = {s["spell"]["id"]: s["available_levels"] for s in client.get(
        "/spellcasters/api-wizard/ready"
    ).json()}
    assert ready["fire_bolt"] == [0]
    assert ready["hold_person"] == [2, 3]
    assert ready["fireball"] == [3]


def test_cast_in_encounter(client):
    _register(client)
    r = client.post(
        "/encounters",
        json={
            "name": "Tower",
            "encounter_id": "api-tower",
            "combatants": [
                {
                    "id": "wizard",
                    "name": "Wizard",
                    "team": "player",
                    "hp": {"current": 24, "maximum": 24},
                    "armor_class": 12,
                    "abilities": {"dexterity": 14, "constitution": 12},
                },
                {
                    "id": "goblin",
                    "name": "Goblin",
                    "team": "enemy",
                    "hp": {"current": 20, "maximum": 20},
                    "armor_class": 13,
                    "abilities": {"dexterity": 14},
                },
            ],
        },
    )
    assert r.status_code == 200, r.text
    client.post("/encounters/api-tower/initiative", json={"rolls": [18, 5]})

    r = client.post(
        "/spellcasters/api-wizard/cast",
        json={
            "spell_id": "fire_bolt",
            "target_ids": ["goblin"],
            "encounter_id": "api-tower",
            "rolls": [15, 7, 3],
        },
    )
    assert r.status_code == 200, r.text
    result = r.json()
    assert result["hits"] == {"goblin": True}
    assert result["damage"] == {"goblin": 10}
    assert result["slot_used"] is None

    log = client.get("/encounters/api-tower/log", params={"limit": 1}).json()
    assert log[0]["action"] == "Fire Bolt"

    # action already spent this turn
    r = client.post(
        "/spellcasters/api-wizard/cast",
        json={"spell_id": "fire_bolt", "target_ids": ["goblin"], "encounter_id": "api-tower"},
    )
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "ACTION_UNAVAILABLE"


def test_concentration_save_and_rest(client):
    _register(client)
    r = client.post(
        "/spellcasters/api-wizard/cast",
        json={"spell_id": "hold_person", "target_ids": ["orc"]},
    )
    assert r.status_code == 200, r.text
    assert r.json()["concentration_started"] is True

    r = client.post(
        "/spellcasters/api-wizard/concentration:save", json={"damage": 30, "rolls": [13]}
    )
    assert r.status_code == 200
    check = r.json()
    assert check["dc"] == 15
    assert check["success"] is False

    r = client.post("/spellcasters/api-wizard/concentration:save", json={"damage": 5})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "NOT_CONCENTRATING"

    state = client.get("/spellcasters/api-wizard").json()["state"]
    assert next(s for s in state["slots"] if s["level"] == 2)["used"] == 1

    r = client.post("/spellcasters/api-wizard/rest", json={"type": "long"})
    assert r.status_code == 200
    assert all(s["used"] == 0 for s in r.json()["state"]["slots"])


def test_cast_errors(client):
    _register(client, slots=[{"level": 1, "total": 1, "used": 1}])

    r = client.post(
        "/spellcasters/api-wizard/cast",
        json={"spell_id": "magic_missile", "target_ids": ["orc"]},
    )
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "NO_SPELL_SLOT"

    r = client.post(
        "/spellcasters/api-wizard/cast", json={"spell_id": "wish", "target_ids": []}
    )
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "UNKNOWN_SPELL"

    r = client.post("/spellcasters/api-wizard/rest", json={"type": "nap"})
    assert r.status_code == 422


def test_spell_catalogue(client):
    cantrips = client.get("/spells", params={"caster_class": "wizard", "max_level": 0}).json()
    ids = {s["id"] for s in cantrips}
    assert "fire_bolt" in ids
    assert all(s["level"] == 0 for s in cantrips)

    found = client.get("/spells", params={"q": "fireball"}).json()
    assert "fireball" in {s["id"] for s in found}

    r = client.get("/spells/cure_wounds")
    assert r.status_code == 200
    assert r.json()["level"] == 1


def test_roll_history(client):
    client.post("/encounters", json={"name": "Solo", "encounter_id": "api-solo", "combatants": [
        {"id": "a", "name": "A", "team": "player", "hp": {"current": 5, "maximum": 5}},
    ]})
    client.post("/encounters/api-solo/initiative", json={"rolls": [20]})

    recent = client.get("/rolls", params={"limit": 5}).json()
    assert recent[0]["natural"] == 20
    assert recent[0]["kind"] == "initiative"

    stats = client.get("/rolls/stats").json()
    assert stats["count"] >= 1
    assert stats["natural_20s"] >= 1


def test_bad_supplied_roll_keeps_the_slot(client):
    _register(client)
    r = client.post(
        "/spellcasters/api-wizard/cast",
        json={"spell_id": "magic_missile", "level": 1, "target_ids": ["orc"], "rolls": [9]},
    )
    assert r.status_code == 422

    state = client.get("/spellcasters/api-wizard").json()["state"]
    assert next(s for s in state["slots"] if s["level"] == 1)["used"] == 0
