"""
Immutable rule templates: actions, effects, weapons, rule presets.

Templates never change during play; everything that does change lives in
`state.py`.
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Ability = Literal[
    "strength", "dexterity", "constitution", "intelligence", "wisdom", "charisma"
]
ActionCost = Literal["action", "bonus_action", "reaction", "movement", "free"]
CriticalHitRule = Literal["double_dice", "double_damage", "max_damage_plus_roll"]
SaveFrequency = Literal["start_of_turn", "end_of_turn", "immediate"]

ABILITY_ALIASES: Dict[str, str] = {
    "str": "strength",
    "dex": "dexterity",
    "con": "constitution",
    "int": "intelligence",
    "wis": "wisdom",
    "cha": "charisma",
}


def normalize_ability(name: str) -> str:
    key = name.strip().lower()
    return ABILITY_ALIASES.get(key, key)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class EndsOnSave(_Frozen):
    ability: str
    dc: int
    frequency: SaveFrequency = "end_of_turn"


# ---------- effects (closed union, dispatched with isinstance) ----------


class DamageEffect(_Frozen):
    type: Literal["damage"] = "damage"
    dice: Optional[str] = None
    value: int = 0
    damage_type: str = "force"


class HealingEffect(_Frozen):
    type: Literal["healing"] = "healing"
    dice: Optional[str] = None
    value: int = 0
    # grant temporary hit points instead of restoring current HP
    temporary: bool = False


class ConditionEffect(_Frozen):
    type: Literal["condition"] = "condition"
    condition: str
    description: str = ""
    duration: int = -1
    ends_on_save: Optional[EndsOnSave] = None
    stackable: bool = False


class StatChangeEffect(_Frozen):
    type: Literal["stat_change"] = "stat_change"
    stat: str
    modifier: int
    duration: int = 1


class SpecialEffect(_Frozen):
    type: Literal["special"] = "special"
    special: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


Effect = Annotated[
    Union[DamageEffect, HealingEffect, ConditionEffect, StatChangeEffect, SpecialEffect],
    Field(discriminator="type"),
]


# ---------- actions ----------


class DamageRoll(_Frozen):
    dice: str
    damage_type: str = "bludgeoning"
    bonus: int = 0
    # extra dice only rolled on a critical hit (e.g. "2d6" for a crit-fishing feature)
    critical_dice: Optional[str] = None


class AttackRollSpec(_Frozen):
    bonus: int = 0
    advantage: bool = False
    disadvantage: bool = False
    critical_range: int = 20


class SavingThrowSpec(_Frozen):
    ability: str
    dc: int
    success_effects: List[Effect] = Field(default_factory=list)
    failure_effects: List[Effect] = Field(default_factory=list)


class ActionRequirements(_Frozen):
    minimum_level: int = 0
    range: int = 5
    targets: int = 1


class CombatAction(_Frozen):
    id: str
    name: str
    description: str = ""
    action_cost: ActionCost = "action"
    requirements: ActionRequirements = Field(default_factory=ActionRequirements)
    effects: List[Effect] = Field(default_factory=list)
    attack_roll: Optional[AttackRollSpec] = None
    damage_rolls: List[DamageRoll] = Field(default_factory=list)
    saving_throw: Optional[SavingThrowSpec] = None


class Weapon(_Frozen):
    id: str
    name: str
    attack_bonus: int = 0
    damage: str = "1d4"
    damage_type: str = "bludgeoning"
    damage_bonus: int = 0
    range: int = 5
    properties: List[str] = Field(default_factory=list)

    def to_action(self) -> CombatAction:
        return CombatAction(
            id=f"attack_{self.id}",
            name=f"{self.name} Attack",
            description=f"Attack with {self.name}",
            action_cost="action",
            requirements=ActionRequirements(range=self.range),
            attack_roll=AttackRollSpec(bonus=self.attack_bonus),
            damage_rolls=[
                DamageRoll(
                    dice=self.damage,
                    damage_type=self.damage_type,
                    bonus=self.damage_bonus,
                )
            ],
        )


class CombatFeature(_Frozen):
    id: str
    name: str
    description: str = ""
    action: Optional[CombatAction] = None
    uses_per_rest: Optional[int] = None


# ---------- rules ----------


class RulePreset(_Frozen):
    critical_hit_rule: CriticalHitRule = "double_dice"
    initiative_variant: Literal["standard", "group", "popcorn"] = "standard"
    flanking: bool = False
    diagonal_movement: Literal["standard", "alternating", "euclidean"] = "standard"
    cleave: bool = False
    massive_hp: bool = False
    # automatic concentration saves when a concentrating combatant takes damage
    lingering: bool = True
    turn_time_limit: Optional[int] = None  # seconds, informational
    combat_time_limit: Optional[int] = None  # minutes, informational


class Battlefield(BaseModel):
    type: Literal["grid", "theater_of_mind", "hex"] = "grid"
    width: int = 20
    height: int = 20
    terrain: List[Dict[str, Any]] = Field(default_factory=list)
    obstacles: List[Dict[str, Any]] = Field(default_factory=list)
    lighting: Literal["bright", "dim", "darkness"] = "bright"

    @property
    def bounded(self) -> bool:
        return self.type != "theater_of_mind" and self.width > 0 and self.height > 0

    def contains(self, x: float, y: float) -> bool:
        if not self.bounded:
            return True
        return 0 <= x < self.width and 0 <= y < self.height


class CombatPreset(_Frozen):
    rules: RulePreset
    battlefield: Battlefield


COMBAT_PRESETS: Dict[str, CombatPreset] = {
    "QUICK_SKIRMISH": CombatPreset(
        rules=RulePreset(
            critical_hit_rule="double_dice",
            initiative_variant="standard",
            flanking=True,
            diagonal_movement="standard",
            cleave=False,
            massive_hp=True,
            lingering=True,
            turn_time_limit=30,
        ),
        battlefield=Battlefield(type="grid", width=20, height=20, lighting="bright"),
    ),
    "EPIC_BATTLE": CombatPreset(
        rules=RulePreset(
            critical_hit_rule="max_damage_plus_roll",
            initiative_variant="group",
            flanking=True,
            diagonal_movement="alternating",
            cleave=True,
            massive_hp=False,
            lingering=True,
            turn_time_limit=60,
        ),
        battlefield=Battlefield(type="grid", width=40, height=40, lighting="dim"),
    ),
    "THEATER_OF_MIND": CombatPreset(
        rules=RulePreset(
            critical_hit_rule="double_dice",
            initiative_variant="popcorn",
            flanking=False,
            diagonal_movement="standard",
            cleave=False,
            massive_hp=True,
            lingering=True,
        ),
        battlefield=Battlefield(
            type="theater_of_mind", width=0, height=0, lighting="bright"
        ),
    ),
}
