from __future__ import annotations

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from vttengine.core.engine.definitions import ActionCost, Effect

SpellSchool = Literal[
    "abjuration",
    "conjuration",
    "divination",
    "enchantment",
    "evocation",
    "illusion",
    "necromancy",
    "transmutation",
]
CastingTime = Literal["action", "bonus_action", "reaction", "ritual", "long"]
TargetType = Literal["single", "multiple", "area", "self", "special"]

_EXTRA_DICE_RE = re.compile(r"^\s*\+?\s*(\d+)d(\d+)\s*$")
_EXTRA_INT_RE = re.compile(r"^\s*\+?\s*(\d+)\b")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class SpellDamage(_Frozen):
    dice: str
    type: str
    modifier: int = 0
    # add the caster's spellcasting modifier on top
    add_spellcasting_modifier: bool = False
    scaling_dice: Optional[str] = None
    scaling_modifier: int = 0


class SpellHealing(_Frozen):
    dice: str
    modifier: int = 0
    add_spellcasting_modifier: bool = False
    scaling_dice: Optional[str] = None
    scaling_modifier: int = 0
    temporary: bool = False


class UpcastScaling(_Frozen):
    # damage | healing add dice, targets adds extra targets
    type: Literal["damage", "healing", "targets"] = "damage"
    amount: str = ""
    interval: int = 1

    def extra_dice(self) -> Optional[tuple[int, int]]:
        """(count, sides) from amounts like '+1d6', None otherwise."""
        m = _EXTRA_DICE_RE.match(self.amount)
        if not m:
            return None
        return int(m.group(1)), int(m.group(2))

    def extra_count(self) -> int:
        m = _EXTRA_INT_RE.match(self.amount)
        return int(m.group(1)) if m else 1


class SpellCastingTime(_Frozen):
    type: CastingTime = "action"
    condition: Optional[str] = None

    @property
    def action_cost(self) -> Optional[ActionCost]:
        """Economy spent when cast in combat. Rituals and long casts can't be."""
        if self.type in ("action", "bonus_action", "reaction"):
            return self.type  # type: ignore[return-value]
        return None


class SpellRange(_Frozen):
    type: Literal["feet", "self", "touch", "sight", "unlimited"] = "feet"
    distance: int = 0


class SpellComponents(_Frozen):
    verbal: bool = True
    somatic: bool = True
    material: bool = False
    material_component: Optional[str] = None


class SpellDuration(_Frozen):
    type: Literal["instantaneous", "concentration", "permanent", "timed"] = (
        "instantaneous"
    )
    length: Optional[str] = None
    concentration: bool = False
    seconds: Optional[int] = None


class SpellTargets(_Frozen):
    type: TargetType = "single"
    count: Optional[int] = None

    @property
    def max_targets(self) -> Optional[int]:
        if self.type == "single":
            return 1
        if self.type == "self":
            return 0
        if self.type == "multiple":
            return self.count
        # area and special: whoever the caller says is inside
        return None


class SpellAttack(_Frozen):
    type: Literal["melee", "ranged"] = "ranged"
    bonus: int = 0


class SpellSavingThrow(_Frozen):
    ability: str
    # otherwise a successful save takes no damage
    half_damage_on_save: bool = False


class Spell(_Frozen):
    id: str
    name: str
    level: int = Field(ge=0, le=9)
    school: SpellSchool = "evocation"
    casting_time: SpellCastingTime = Field(default_factory=SpellCastingTime)
    range: SpellRange = Field(default_factory=SpellRange)
    components: SpellComponents = Field(default_factory=SpellComponents)
    duration: SpellDuration = Field(default_factory=SpellDuration)
    description: str = ""
    higher_level_description: Optional[str] = None
    effects: List[Effect] = Field(default_factory=list)
    targets: SpellTargets = Field(default_factory=SpellTargets)
    spell_attack: Optional[SpellAttack] = None
    saving_throw: Optional[SpellSavingThrow] = None
    damage: List[SpellDamage] = Field(default_factory=list)
    healing: List[SpellHealing] = Field(default_factory=list)
    upcast_scaling: Optional[UpcastScaling] = None
    ritual: bool = False
    concentration: bool = False
    classes: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    @property
    def requires_concentration(self) -> bool:
        return self.concentration or self.duration.concentration

    @property
    def is_cantrip(self) -> bool:
        return self.level == 0
