from __future__ import annotations

import logging
from typing import List, Literal, Optional

from vttengine.core.engine.definitions import ConditionEffect, StatChangeEffect
from vttengine.core.engine.dice import DiceResolver
from vttengine.core.engine.events import ConditionApplied, ConditionRemoved, EventBus
from vttengine.core.engine.state import CombatCondition, Combatant

logger = logging.getLogger(__name__)

Timing = Literal["start_of_turn", "end_of_turn"]


def condition_from_effect(effect: ConditionEffect, source: str = "") -> CombatCondition:
    return CombatCondition(
        name=effect.condition,
        description=effect.description,
        duration=effect.duration,
        source=source,
        ends_on_save=effect.ends_on_save,
        stackable=effect.stackable,
    )


def condition_from_stat_change(effect: StatChangeEffect, source: str = "") -> CombatCondition:
    # stat changes ride on a condition so they share duration bookkeeping
    sign = "+" if effect.modifier >= 0 else ""
    return CombatCondition(
        name=f"{effect.stat} {sign}{effect.modifier}",
        duration=effect.duration,
        source=source,
        effects=[effect],
        stackable=True,
    )


class ConditionManager:
    """Attach, expire and save-to-end conditions on combatants."""

    def __init__(self, dice: DiceResolver, events: EventBus) -> None:
        self.dice = dice
        self.events = events

    def has(self, combatant: Combatant, name: str) -> bool:
        return combatant.has_condition(name)

    def add(
        self,
        combatant: Combatant,
        condition: CombatCondition,
        *,
        encounter_id: Optional[str] = None,
    ) -> CombatCondition:
        if not condition.stackable:
            for existing in combatant.conditions:
                if existing.name == condition.name:
                    # refresh rather than stack
                    if existing.indefinite or condition.indefinite:
                        existing.duration = -1
                    else:
                        existing.duration = max(existing.duration, condition.duration)
                    if condition.source:
                        existing.source = condition.source
                    return existing

        combatant.conditions.append(condition)
        logger.debug("%s gains %s (%s)", combatant.name, condition.name, condition.duration)
        self.events.publish(
            ConditionApplied(
                encounter_id=encounter_id,
                combatant_id=combatant.id,
                condition=condition.name,
                duration=condition.duration,
                source=condition.source,
            )
        )

        save = condition.ends_on_save
        if save is not None and save.frequency == "immediate":
            self._try_save(combatant, condition, encounter_id=encounter_id)
        return condition

    def remove(
        self,
        combatant: Combatant,
        name: str,
        *,
        reason: str = "removed",
        encounter_id: Optional[str] = None,
    ) -> bool:
        matching = [c for c in combatant.conditions if c.name == name]
        for cond in matching:
            self._drop(combatant, cond, reason=reason, encounter_id=encounter_id)
        return bool(matching)

    def remove_by_source(
        self,
        combatant: Combatant,
        source: str,
        *,
        reason: str = "source_ended",
        encounter_id: Optional[str] = None,
    ) -> List[str]:
        matching = [c for c in combatant.conditions if c.source == source]
        for cond in matching:
            self._drop(combatant, cond, reason=reason, encounter_id=encounter_id)
        return [c.name for c in matching]

    def process(
        self,
        combatant: Combatant,
        timing: Timing,
        *,
        encounter_id: Optional[str] = None,
    ) -> List[str]:
        """
        Run saves whose frequency matches `timing`; at end of turn also tick
        durations down. Returns names of conditions that went away.
        """
        removed: List[str] = []
        for cond in list(combatant.conditions):
            save = cond.ends_on_save
            if save is not None and save.frequency == timing:
                if self._try_save(combatant, cond, encounter_id=encounter_id):
                    removed.append(cond.name)
                    continue

            if timing == "end_of_turn" and not cond.indefinite:
                cond.duration -= 1
                if cond.duration <= 0:
                    self._drop(combatant, cond, reason="expired", encounter_id=encounter_id)
                    removed.append(cond.name)
        return removed

    # ---------- internals ----------

    def _try_save(
        self,
        combatant: Combatant,
        cond: CombatCondition,
        *,
        encounter_id: Optional[str],
    ) -> bool:
        save = cond.ends_on_save
        assert save is not None
        _, ok = self.dice.roll_check(
            combatant.saving_throw_modifier(save.ability),
            save.dc,
            label=f"save:{cond.name}",
        )
        if ok:
            self._drop(combatant, cond, reason="saved", encounter_id=encounter_id)
        return ok

    def _drop(
        self,
        combatant: Combatant,
        cond: CombatCondition,
        *,
        reason: str,
        encounter_id: Optional[str],
    ) -> None:
        if cond not in combatant.conditions:
            return
        combatant.conditions.remove(cond)
        logger.debug("%s loses %s (%s)", combatant.name, cond.name, reason)
        self.events.publish(
            ConditionRemoved(
                encounter_id=encounter_id,
                combatant_id=combatant.id,
                condition=cond.name,
                reason=reason,
            )
        )
