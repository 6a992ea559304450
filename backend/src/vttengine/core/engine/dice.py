from __future__ import annotations

import logging
import random
import re
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Literal, Optional, Tuple, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from vttengine.core.errors import DiceExpressionError

logger = logging.getLogger(__name__)

AdvState = Literal["normal", "advantage", "disadvantage"]
RollKind = Literal[
    "d20", "attack", "damage", "healing", "initiative", "save", "check", "other"
]

# hard cap per die so a run of max faces can never loop forever
MAX_EXPLOSIONS = 10

_DICE_RE = re.compile(r"^\s*(\d*)\s*[dD]\s*(\d+)\s*([+-]\s*\d+)?\s*$")
_FLAT_RE = re.compile(r"^\s*([+-]?\s*\d+)\s*$")


@dataclass(frozen=True)
class DiceExpression:
    """`NdS+M`. A flat number is count=0, sides=0."""

    count: int
    sides: int
    modifier: int = 0

    @classmethod
    def parse(cls, formula: Union[str, int, "DiceExpression"]) -> "DiceExpression":
        if isinstance(formula, DiceExpression):
            return formula
        if isinstance(formula, int):
            return cls(count=0, sides=0, modifier=formula)

        m = _DICE_RE.match(formula)
        if m:
            count = int(m.group(1)) if m.group(1) else 1
            sides = int(m.group(2))
            mod = m.group(3)
            modifier = int(mod.replace(" ", "")) if mod else 0
            if sides < 1:
                raise DiceExpressionError(
                    f"Dice must have at least one side: {formula!r}", formula=formula
                )
            return cls(count=count, sides=sides, modifier=modifier)

        m = _FLAT_RE.match(formula)
        if m:
            return cls(count=0, sides=0, modifier=int(m.group(1).replace(" ", "")))

        raise DiceExpressionError(
            f"Unsupported dice formula: {formula!r}", formula=formula
        )

    @property
    def is_flat(self) -> bool:
        return self.count == 0

    @property
    def is_single_d20(self) -> bool:
        return self.count == 1 and self.sides == 20

    def max_dice(self) -> int:
        return self.count * self.sides

    def max_total(self) -> int:
        return self.max_dice() + self.modifier

    def doubled(self) -> "DiceExpression":
        """Dice count doubled, modifier untouched (critical hit)."""
        return DiceExpression(self.count * 2, self.sides, self.modifier)

    def scaled(self, extra_count: int = 0, extra_modifier: int = 0) -> "DiceExpression":
        return DiceExpression(
            self.count + extra_count, self.sides, self.modifier + extra_modifier
        )

    def with_modifier(self, modifier: int) -> "DiceExpression":
        return DiceExpression(self.count, self.sides, modifier)

    def __str__(self) -> str:
        if self.is_flat:
            return str(self.modifier)
        base = f"{self.count}d{self.sides}"
        if self.modifier > 0:
            return f"{base}+{self.modifier}"
        if self.modifier < 0:
            return f"{base}{self.modifier}"
        return base


def combine_adv(*states: AdvState) -> AdvState:
    has_adv = any(s == "advantage" for s in states)
    has_dis = any(s == "disadvantage" for s in states)
    if has_adv and has_dis:
        return "normal"
    if has_adv:
        return "advantage"
    if has_dis:
        return "disadvantage"
    return "normal"


def adv_state_from(advantage: bool, disadvantage: bool) -> AdvState:
    return combine_adv(
        "advantage" if advantage else "normal",
        "disadvantage" if disadvantage else "normal",
    )


class RollOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    advantage: bool = False
    disadvantage: bool = False
    bonus: int = 0
    exploding: bool = False
    reroll_ones: bool = False
    # None -> the die's own maximum (20 on a d20)
    critical_threshold: Optional[int] = None
    kind: RollKind = "other"
    label: Optional[str] = None


class DieResult(BaseModel):
    value: int
    sides: int
    discarded: bool = False
    exploded: bool = False  # this die rolled max and spawned the next one
    explosion: bool = False  # this die was spawned by an explosion
    rerolled_from: Optional[int] = None
    is_max: bool = False
    is_min: bool = False


class RollResult(BaseModel):
    roll_id: UUID = Field(default_factory=uuid4)
    expression: str
    kind: RollKind = "other"
    label: Optional[str] = None
    dice: List[DieResult] = Field(default_factory=list)
    modifier: int = 0
    bonus: int = 0
    total: int
    adv_state: AdvState = "normal"
    natural: Optional[int] = None
    is_critical: bool = False
    is_minimum: bool = False
    timestamp: float = Field(default_factory=time.time)

    @property
    def kept(self) -> List[int]:
        return [d.value for d in self.dice if not d.discarded]

    @property
    def dice_total(self) -> int:
        return sum(self.kept)


class DiceResolver:
    """
    Rolls dice expressions.

    Values handed to `supply()` are consumed before the RNG, in order. That is
    how a UI that already animated a roll feeds the faces back in, and how
    tests force outcomes.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        *,
        seed: Optional[int] = None,
        recorder: Optional[Callable[[RollResult], None]] = None,
    ) -> None:
        self.rng = rng if rng is not None else random.Random(seed)
        self.recorder = recorder
        self._supplied: Deque[int] = deque()

    # ---------- supplied values ----------

    def supply(self, *values: int) -> None:
        self._supplied.extend(int(v) for v in values)

    @property
    def pending(self) -> int:
        return len(self._supplied)

    def clear_supplied(self) -> None:
        self._supplied.clear()

    def _face(self, sides: int) -> int:
        if self._supplied:
            value = self._supplied[0]
            if not 1 <= value <= sides:
                raise DiceExpressionError(
                    f"Supplied value {value} is not a face of a d{sides}",
                    value=value,
                    sides=sides,
                )
            self._supplied.popleft()
            return value
        return self.rng.randint(1, sides)

    # ---------- rolling ----------

    def _die(self, sides: int, value: int, **flags) -> DieResult:
        return DieResult(
            value=value, sides=sides, is_max=value == sides, is_min=value == 1, **flags
        )

    def _roll_chain(self, sides: int, opts: RollOptions) -> List[DieResult]:
        """One die plus whatever it explodes into."""
        value = self._face(sides)
        rerolled_from: Optional[int] = None
        if opts.reroll_ones and value == 1:
            rerolled_from = value
            value = self._face(sides)

        chain = [self._die(sides, value, rerolled_from=rerolled_from)]
        if not opts.exploding or sides < 2:
            return chain

        explosions = 0
        while chain[-1].value == sides and explosions < MAX_EXPLOSIONS:
            chain[-1] = chain[-1].model_copy(update={"exploded": True})
            chain.append(self._die(sides, self._face(sides), explosion=True))
            explosions += 1
        return chain

    def roll(
        self,
        expression: Union[str, int, DiceExpression],
        options: Optional[RollOptions] = None,
        **overrides,
    ) -> RollResult:
        expr = DiceExpression.parse(expression)
        opts = options or RollOptions()
        if overrides:
            opts = opts.model_copy(update=overrides)

        adv_state = adv_state_from(opts.advantage, opts.disadvantage)
        if not expr.is_single_d20:
            # advantage only means something on a lone d20
            adv_state = "normal"

        dice: List[DieResult] = []
        natural: Optional[int] = None

        if adv_state != "normal":
            first = self._roll_chain(20, opts)
            second = self._roll_chain(20, opts)
            if adv_state == "advantage":
                keep_first = first[0].value >= second[0].value
            else:
                keep_first = first[0].value <= second[0].value
            if keep_first:
                second = [d.model_copy(update={"discarded": True}) for d in second]
            else:
                first = [d.model_copy(update={"discarded": True}) for d in first]
            dice = first + second
            natural = (first if keep_first else second)[0].value
        else:
            for _ in range(expr.count):
                dice.extend(self._roll_chain(expr.sides, opts))
            if expr.is_single_d20:
                natural = dice[0].value

        threshold = opts.critical_threshold or expr.sides
        is_critical = natural is not None and natural >= threshold
        is_minimum = natural == 1

        total = sum(d.value for d in dice if not d.discarded) + expr.modifier + opts.bonus
        result = RollResult(
            expression=str(expr),
            kind=opts.kind,
            label=opts.label,
            dice=dice,
            modifier=expr.modifier,
            bonus=opts.bonus,
            total=total,
            adv_state=adv_state,
            natural=natural,
            is_critical=is_critical,
            is_minimum=is_minimum,
        )
        logger.debug(
            "roll %s (%s) -> %s %s", result.expression, adv_state, result.kept, total
        )
        if self.recorder is not None:
            self.recorder(result)
        return result

    def roll_d20(
        self,
        bonus: int = 0,
        adv_state: AdvState = "normal",
        *,
        kind: RollKind = "d20",
        label: Optional[str] = None,
        critical_threshold: Optional[int] = None,
    ) -> RollResult:
        return self.roll(
            "1d20",
            RollOptions(
                advantage=adv_state == "advantage",
                disadvantage=adv_state == "disadvantage",
                bonus=bonus,
                kind=kind,
                label=label,
                critical_threshold=critical_threshold,
            ),
        )

    def roll_check(
        self,
        modifier: int,
        dc: int,
        adv_state: AdvState = "normal",
        *,
        kind: RollKind = "save",
        label: Optional[str] = None,
    ) -> Tuple[RollResult, bool]:
        roll = self.roll_d20(modifier, adv_state, kind=kind, label=label)
        return roll, roll.total >= dc


class RollStats(BaseModel):
    count: int = 0
    average: float = 0.0
    highest: Optional[int] = None
    lowest: Optional[int] = None
    natural_20s: int = 0
    natural_1s: int = 0
    # die size -> face -> how often it came up
    distribution: Dict[int, Dict[int, int]] = Field(default_factory=dict)


class RollHistory:
    """Bounded roll log. Pass an instance as `DiceResolver(recorder=...)`."""

    def __init__(self, max_size: int = 1000) -> None:
        self._rolls: Deque[RollResult] = deque(maxlen=max_size)

    def record(self, result: RollResult) -> None:
        self._rolls.append(result)

    __call__ = record

    def __len__(self) -> int:
        return len(self._rolls)

    def recent(self, limit: int = 10) -> List[RollResult]:
        """Newest first."""
        return list(reversed(self._rolls))[:limit]

    def filter(
        self,
        *,
        sides: Optional[int] = None,
        label: Optional[str] = None,
        kind: Optional[RollKind] = None,
    ) -> List[RollResult]:
        out = []
        for r in self._rolls:
            if sides is not None and not any(d.sides == sides for d in r.dice):
                continue
            if label is not None and r.label != label:
                continue
            if kind is not None and r.kind != kind:
                continue
            out.append(r)
        return out

    def clear(self) -> None:
        self._rolls.clear()

    def stats(self) -> RollStats:
        if not self._rolls:
            return RollStats()
        totals = [r.total for r in self._rolls]
        distribution: Dict[int, Dict[int, int]] = {}
        for r in self._rolls:
            for d in r.dice:
                faces = distribution.setdefault(d.sides, {})
                faces[d.value] = faces.get(d.value, 0) + 1
        return RollStats(
            count=len(totals),
            average=round(sum(totals) / len(totals), 2),
            highest=max(totals),
            lowest=min(totals),
            natural_20s=sum(1 for r in self._rolls if r.natural == 20),
            natural_1s=sum(1 for r in self._rolls if r.natural == 1),
            distribution=distribution,
        )
