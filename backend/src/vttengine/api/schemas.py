from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from vttengine.core.engine.definitions import CombatAction, CombatFeature, Weapon
from vttengine.core.engine.state import Team, VictoryType


class PosDTO(BaseModel):
    x: float = 0
    y: float = 0


class HitPointsDTO(BaseModel):
    current: int = Field(ge=0)
    maximum: int = Field(gt=0)
    temporary: int = Field(default=0, ge=0)


class AbilityScoresDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    strength: int = Field(default=10, ge=1, le=30)
    dexterity: int = Field(default=10, ge=1, le=30)
    constitution: int = Field(default=10, ge=1, le=30)
    intelligence: int = Field(default=10, ge=1, le=30)
    wisdom: int = Field(default=10, ge=1, le=30)
    charisma: int = Field(default=10, ge=1, le=30)


class CombatantSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    team: Team
    hp: HitPointsDTO
    armor_class: int = Field(default=10, ge=0)
    speed: int = Field(default=30, ge=0)
    level: int = Field(default=1, ge=1, le=20)
    abilities: AbilityScoresDTO = Field(default_factory=AbilityScoresDTO)
    proficiency_bonus: int = 2
    saving_throw_proficiencies: List[str] = Field(default_factory=list)
    position: PosDTO = Field(default_factory=PosDTO)

    weapons: List[Weapon] = Field(default_factory=list)
    spells: List[str] = Field(default_factory=list)
    features: List[CombatFeature] = Field(default_factory=list)

    damage_resistances: List[str] = Field(default_factory=list)
    damage_vulnerabilities: List[str] = Field(default_factory=list)
    damage_immunities: List[str] = Field(default_factory=list)


class VictoryConditionDTO(BaseModel):
    type: VictoryType = "defeat_all"
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)


class EncounterCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    preset: Optional[str] = None
    combatants: List[CombatantSpec] = Field(default_factory=list)
    victory_conditions: List[VictoryConditionDTO] = Field(default_factory=list)
    encounter_id: Optional[str] = None


class RollSupply(BaseModel):
    # faces forced onto the next dice, consumed in order
    rolls: List[int] = Field(default_factory=list)


class InitiativeRequest(RollSupply):
    pass


class ActionRequest(RollSupply):
    """Either a full action definition or the id of one of the actor's available actions."""

    action: Optional[CombatAction] = None
    action_id: Optional[str] = None
    target_ids: List[str] = Field(default_factory=list)
    actor_id: Optional[str] = None


class MoveRequest(BaseModel):
    x: float
    y: float


class EncounterOut(BaseModel):
    encounter_id: str
    state: Dict[str, Any]


class TurnOut(BaseModel):
    encounter_id: str
    phase: str
    round: int
    current_turn: int
    current_combatant_id: Optional[str] = None


# ---------- spellcasting ----------


class SpellSlotDTO(BaseModel):
    level: int = Field(ge=1, le=9)
    total: int = Field(ge=0)
    used: int = Field(default=0, ge=0)


class SpellcasterCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    caster_class: str
    level: int = Field(default=1, ge=1, le=20)
    ability: str = "intelligence"
    ability_modifier: int = 0
    attack_bonus: int = 0
    save_dc: int = 10
    constitution_modifier: int = 0
    combatant_id: Optional[str] = None
    slots: List[SpellSlotDTO] = Field(default_factory=list)
    known_spells: List[str] = Field(default_factory=list)
    prepared_spells: List[str] = Field(default_factory=list)
    prepares_spells: bool = False


class CastRequest(RollSupply):
    spell_id: str
    level: Optional[int] = None
    target_ids: List[str] = Field(default_factory=list)
    encounter_id: Optional[str] = None


class ConcentrationSaveRequest(RollSupply):
    damage: int = Field(ge=0)


class RestRequest(BaseModel):
    type: Literal["long", "short"]


class SpellcasterOut(BaseModel):
    caster_id: str
    state: Dict[str, Any]
