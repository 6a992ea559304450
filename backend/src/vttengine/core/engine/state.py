from __future__ import annotations

import copy
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from vttengine.core.engine.definitions import (
    Battlefield,
    CombatFeature,
    Effect,
    EndsOnSave,
    RulePreset,
    StatChangeEffect,
    Weapon,
    normalize_ability,
)
from vttengine.core.engine.dice import RollResult

Team = Literal["player", "npc", "enemy", "ally"]
Phase = Literal["setup", "initiative", "combat", "resolution", "ended"]
VictoryType = Literal[
    "defeat_all", "defeat_specific", "survive_rounds", "reach_location", "custom"
]

UNCONSCIOUS = "Unconscious"


def _id() -> str:
    return str(uuid4())


def ability_mod(score: int) -> int:
    return (score - 10) // 2


@contextmanager
def rollback_on_error(*objects: Any) -> Iterator[None]:
    """
    Put each dataclass instance back the way it was if the block raises.

    Events already published inside the block are not retracted.
    """
    # listed objects keep pointing at each other and are restored in place
    memo: Dict[int, Any] = {id(obj): obj for obj in objects}
    saved = [(obj, copy.deepcopy(vars(obj), memo)) for obj in objects]
    try:
        yield
    except Exception:
        for obj, state in saved:
            vars(obj).clear()
            vars(obj).update(state)
        raise


@dataclass
class AbilityScores:
    strength: int = 10
    dexterity: int = 10
    constitution: int = 10
    intelligence: int = 10
    wisdom: int = 10
    charisma: int = 10

    def score(self, ability: str) -> int:
        return int(getattr(self, normalize_ability(ability)))

    def modifier(self, ability: str) -> int:
        return ability_mod(self.score(ability))


@dataclass
class HitPoints:
    current: int
    maximum: int
    temporary: int = 0


@dataclass
class Position:
    x: float = 0
    y: float = 0


@dataclass
class ActionEconomy:
    action_used: bool = False
    bonus_action_used: bool = False
    movement_spent: int = 0  # feet
    reactions_used: int = 0

    def reset(self) -> None:
        self.action_used = False
        self.bonus_action_used = False
        self.movement_spent = 0
        self.reactions_used = 0


@dataclass
class CombatCondition:
    name: str
    description: str = ""
    duration: int = -1  # rounds, -1 = until removed
    source: str = ""
    effects: List[Effect] = field(default_factory=list)
    ends_on_save: Optional[EndsOnSave] = None
    stackable: bool = False
    id: str = field(default_factory=_id)

    @property
    def indefinite(self) -> bool:
        return self.duration < 0


@dataclass
class Combatant:
    id: str
    name: str
    team: Team
    hp: HitPoints
    armor_class: int = 10
    speed: int = 30
    level: int = 1
    abilities: AbilityScores = field(default_factory=AbilityScores)
    proficiency_bonus: int = 2
    saving_throw_proficiencies: set[str] = field(default_factory=set)

    initiative: int = 0
    initiative_roll: Optional[RollResult] = None

    position: Position = field(default_factory=Position)
    economy: ActionEconomy = field(default_factory=ActionEconomy)
    conditions: List[CombatCondition] = field(default_factory=list)
    concentrating_on: Optional[str] = None

    weapons: List[Weapon] = field(default_factory=list)
    spells: List[str] = field(default_factory=list)
    features: List[CombatFeature] = field(default_factory=list)

    damage_resistances: set[str] = field(default_factory=set)
    damage_vulnerabilities: set[str] = field(default_factory=set)
    damage_immunities: set[str] = field(default_factory=set)

    @property
    def is_conscious(self) -> bool:
        return self.hp.current > 0

    def _stat_bonus(self, *stats: str) -> int:
        total = 0
        for cond in self.conditions:
            for ef in cond.effects:
                if isinstance(ef, StatChangeEffect) and ef.stat in stats:
                    total += ef.modifier
        return total

    @property
    def effective_armor_class(self) -> int:
        return self.armor_class + self._stat_bonus("armor_class", "ac")

    @property
    def effective_speed(self) -> int:
        return max(0, self.speed + self._stat_bonus("speed"))

    def ability_modifier(self, ability: str) -> int:
        return self.abilities.modifier(ability)

    def saving_throw_modifier(self, ability: str) -> int:
        ability = normalize_ability(ability)
        mod = self.abilities.modifier(ability)
        if ability in self.saving_throw_proficiencies:
            mod += self.proficiency_bonus
        return mod + self._stat_bonus(f"{ability}_save", "saving_throws")

    def has_condition(self, name: str) -> bool:
        return any(c.name == name for c in self.conditions)


class LogResults(BaseModel):
    success: bool = False
    critical: bool = False
    damage: int = 0
    healing: int = 0
    effects: List[str] = Field(default_factory=list)


class CombatLogEntry(BaseModel):
    id: str = Field(default_factory=_id)
    round: int
    turn: int
    timestamp: float = Field(default_factory=time.time)
    actor: str
    action: str
    targets: List[str] = Field(default_factory=list)
    results: LogResults = Field(default_factory=LogResults)
    rolls: List[RollResult] = Field(default_factory=list)
    description: str = ""


@dataclass
class VictoryCondition:
    type: VictoryType = "defeat_all"
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    completed: bool = False


@dataclass
class CombatEncounter:
    id: str
    name: str
    description: str = ""
    phase: Phase = "setup"
    round: int = 0
    current_turn: int = 0
    combatants: List[Combatant] = field(default_factory=list)
    turn_order: List[str] = field(default_factory=list)
    battlefield: Battlefield = field(default_factory=Battlefield)
    rules: RulePreset = field(default_factory=RulePreset)
    action_log: List[CombatLogEntry] = field(default_factory=list)
    damage_dealt: Dict[str, int] = field(default_factory=dict)
    victory_conditions: List[VictoryCondition] = field(default_factory=list)
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def find(self, combatant_id: str) -> Optional[Combatant]:
        for c in self.combatants:
            if c.id == combatant_id:
                return c
        return None

    @property
    def current_combatant_id(self) -> Optional[str]:
        if self.phase != "combat" or not self.turn_order:
            return None
        if not 0 <= self.current_turn < len(self.turn_order):
            return None
        return self.turn_order[self.current_turn]


# ---------- results ----------


class AttackResult(BaseModel):
    attacker_id: str
    target_id: str
    hit: bool
    critical: bool = False
    attack_roll: Optional[RollResult] = None
    damage_rolls: List[RollResult] = Field(default_factory=list)
    total_damage: int = 0
    damage_types: Dict[str, int] = Field(default_factory=dict)


class SaveOutcome(BaseModel):
    target_id: str
    ability: str
    dc: int
    roll: RollResult
    success: bool
    effects_applied: List[str] = Field(default_factory=list)


class MovementPath(BaseModel):
    valid: bool
    path: List[Dict[str, float]] = Field(default_factory=list)
    cost: int = 0
    remaining_movement: int = 0


# ---------- spellcasting ----------


@dataclass
class SpellSlot:
    level: int
    total: int
    used: int = 0

    @property
    def available(self) -> int:
        return self.total - self.used


@dataclass
class ActiveConcentration:
    spell_id: str
    level: int
    start_time: float
    duration: int = 600  # seconds
    encounter_id: Optional[str] = None
    target_ids: List[str] = field(default_factory=list)


@dataclass
class Spellcaster:
    id: str
    caster_class: str
    level: int = 1
    ability: str = "intelligence"
    ability_modifier: int = 0
    attack_bonus: int = 0
    save_dc: int = 10
    constitution_modifier: int = 0
    combatant_id: Optional[str] = None
    slots: List[SpellSlot] = field(default_factory=list)
    known_spells: List[str] = field(default_factory=list)
    prepared_spells: List[str] = field(default_factory=list)
    prepares_spells: bool = False
    concentration: Optional[ActiveConcentration] = None

    def __post_init__(self) -> None:
        if self.combatant_id is None:
            self.combatant_id = self.id

    def slot(self, level: int) -> Optional[SpellSlot]:
        for s in self.slots:
            if s.level == level:
                return s
        return None
