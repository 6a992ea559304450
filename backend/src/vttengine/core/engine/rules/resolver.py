from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from vttengine.core.engine.conditions import (
    ConditionManager,
    condition_from_effect,
    condition_from_stat_change,
)
from vttengine.core.engine.definitions import (
    CombatAction,
    ConditionEffect,
    CriticalHitRule,
    DamageEffect,
    DamageRoll,
    Effect,
    HealingEffect,
    RulePreset,
    SavingThrowSpec,
    SpecialEffect,
    StatChangeEffect,
)
from vttengine.core.engine.dice import (
    DiceExpression,
    DiceResolver,
    RollKind,
    RollOptions,
    RollResult,
    adv_state_from,
)
from vttengine.core.engine.events import DamageDealt, EventBus, HealingDone
from vttengine.core.engine.state import (
    UNCONSCIOUS,
    AttackResult,
    CombatCondition,
    Combatant,
    SaveOutcome,
)

logger = logging.getLogger(__name__)


def roll_damage(
    dice: DiceResolver,
    expression: str | DiceExpression,
    *,
    critical: bool = False,
    rule: CriticalHitRule = "double_dice",
    bonus: int = 0,
    label: Optional[str] = None,
    kind: RollKind = "damage",
) -> RollResult:
    """
    Roll damage, applying the critical rule when `critical` is set.

    double_dice          dice count doubled, modifiers untouched
    double_damage        normal roll, total doubled
    max_damage_plus_roll normal roll plus the dice's maximum
    """
    expr = DiceExpression.parse(expression)
    opts = RollOptions(bonus=bonus, kind=kind, label=label)

    if not critical:
        return dice.roll(expr, opts)

    if rule == "double_dice":
        return dice.roll(expr.doubled(), opts)

    roll = dice.roll(expr, opts)
    if rule == "double_damage":
        return roll.model_copy(update={"total": roll.total * 2})
    return roll.model_copy(update={"total": roll.total + expr.max_dice()})


def apply_damage_with_temp_hp(target: Combatant, dmg: int) -> Tuple[int, int, int]:
    """
    return (temp_hp_before, hp_before, hp_after)
    """
    temp_before = target.hp.temporary
    hp_before = target.hp.current

    remaining = max(0, dmg)
    if target.hp.temporary > 0 and remaining > 0:
        absorbed = min(target.hp.temporary, remaining)
        target.hp.temporary -= absorbed
        remaining -= absorbed

    if remaining > 0:
        target.hp.current = max(0, target.hp.current - remaining)

    return temp_before, hp_before, target.hp.current


def adjust_for_defenses(target: Combatant, buckets: Dict[str, int]) -> Dict[str, int]:
    out: Dict[str, int] = {}
    for damage_type, amount in buckets.items():
        if damage_type in target.damage_immunities:
            amount = 0
        elif damage_type in target.damage_resistances:
            amount = amount // 2
        if damage_type in target.damage_vulnerabilities:
            amount = amount * 2
        out[damage_type] = max(0, amount)
    return out


@dataclass
class ResolutionTrace:
    """What happened while resolving, beyond the AttackResult."""

    rolls: List[RollResult] = field(default_factory=list)
    saves: List[SaveOutcome] = field(default_factory=list)
    damage: int = 0
    healing: int = 0
    effects: List[str] = field(default_factory=list)


class ActionResolver:
    def __init__(
        self, dice: DiceResolver, conditions: ConditionManager, events: EventBus
    ) -> None:
        self.dice = dice
        self.conditions = conditions
        self.events = events

    # ---------- entry point ----------

    def resolve(
        self,
        actor: Combatant,
        target: Combatant,
        action: CombatAction,
        rules: RulePreset,
        *,
        encounter_id: Optional[str] = None,
        trace: Optional[ResolutionTrace] = None,
        on_save: Optional[Callable[[SaveOutcome], None]] = None,
    ) -> Optional[AttackResult]:
        trace = trace if trace is not None else ResolutionTrace()

        if action.attack_roll is not None:
            return self._resolve_attack(
                actor, target, action, rules, encounter_id=encounter_id, trace=trace
            )

        if action.saving_throw is not None:
            outcome = self.resolve_save(
                actor,
                target,
                action.saving_throw,
                encounter_id=encounter_id,
                trace=trace,
            )
            if on_save is not None:
                on_save(outcome)
            return None

        for effect in action.effects:
            self.apply_effect(
                actor, target, effect, encounter_id=encounter_id, trace=trace
            )
        return None

    # ---------- attack ----------

    def _resolve_attack(
        self,
        actor: Combatant,
        target: Combatant,
        action: CombatAction,
        rules: RulePreset,
        *,
        encounter_id: Optional[str],
        trace: ResolutionTrace,
    ) -> AttackResult:
        spec = action.attack_roll
        assert spec is not None

        attack_roll = self.dice.roll_d20(
            spec.bonus,
            adv_state_from(spec.advantage, spec.disadvantage),
            kind="attack",
            label=action.name,
            critical_threshold=spec.critical_range,
        )
        trace.rolls.append(attack_roll)

        critical = attack_roll.is_critical
        if critical:
            hit = True
        elif attack_roll.is_minimum:
            hit = False
        else:
            hit = attack_roll.total >= target.effective_armor_class

        logger.debug(
            "%s attacks %s: %s vs AC %s -> %s%s",
            actor.name,
            target.name,
            attack_roll.total,
            target.effective_armor_class,
            "hit" if hit else "miss",
            " (critical)" if critical else "",
        )

        if not hit:
            return AttackResult(
                attacker_id=actor.id,
                target_id=target.id,
                hit=False,
                critical=False,
                attack_roll=attack_roll,
            )

        damage_rolls: List[RollResult] = []
        buckets: Dict[str, int] = {}
        for dr in action.damage_rolls:
            for roll in self._roll_component(dr, critical, rules.critical_hit_rule):
                damage_rolls.append(roll)
                # a negative modifier floors the component at 0
                amount = max(0, roll.total)
                buckets[dr.damage_type] = buckets.get(dr.damage_type, 0) + amount
        trace.rolls.extend(damage_rolls)

        applied = self.deal_damage(
            target,
            buckets,
            source_id=actor.id,
            critical=critical,
            encounter_id=encounter_id,
        )

        # riders such as "poisoned on hit"
        for effect in action.effects:
            self.apply_effect(
                actor, target, effect, encounter_id=encounter_id, trace=trace
            )

        return AttackResult(
            attacker_id=actor.id,
            target_id=target.id,
            hit=True,
            critical=critical,
            attack_roll=attack_roll,
            damage_rolls=damage_rolls,
            total_damage=sum(applied.values()),
            damage_types=applied,
        )

    def _roll_component(
        self, dr: DamageRoll, critical: bool, rule: CriticalHitRule
    ) -> List[RollResult]:
        rolls = [
            roll_damage(
                self.dice,
                dr.dice,
                critical=critical,
                rule=rule,
                bonus=dr.bonus,
                label=dr.damage_type,
            )
        ]
        if critical and dr.critical_dice:
            rolls.append(
                self.dice.roll(
                    dr.critical_dice, RollOptions(kind="damage", label=dr.damage_type)
                )
            )
        return rolls

    # ---------- saving throw ----------

    def resolve_save(
        self,
        actor: Combatant,
        target: Combatant,
        spec: SavingThrowSpec,
        *,
        encounter_id: Optional[str] = None,
        trace: Optional[ResolutionTrace] = None,
        source: Optional[str] = None,
    ) -> SaveOutcome:
        trace = trace if trace is not None else ResolutionTrace()
        roll, success = self.dice.roll_check(
            target.saving_throw_modifier(spec.ability),
            spec.dc,
            label=f"{spec.ability} save",
        )
        trace.rolls.append(roll)

        # exactly one branch
        effects = spec.success_effects if success else spec.failure_effects
        before = len(trace.effects)
        for effect in effects:
            self.apply_effect(
                actor,
                target,
                effect,
                encounter_id=encounter_id,
                trace=trace,
                source=source,
            )

        outcome = SaveOutcome(
            target_id=target.id,
            ability=spec.ability,
            dc=spec.dc,
            roll=roll,
            success=success,
            effects_applied=trace.effects[before:],
        )
        trace.saves.append(outcome)
        logger.debug(
            "%s %s %s save (%s vs DC %s)",
            target.name,
            "succeeds" if success else "fails",
            spec.ability,
            roll.total,
            spec.dc,
        )
        return outcome

    # ---------- effects ----------

    def apply_effect(
        self,
        actor: Combatant,
        target: Combatant,
        effect: Effect,
        *,
        encounter_id: Optional[str] = None,
        trace: Optional[ResolutionTrace] = None,
        source: Optional[str] = None,
    ) -> None:
        trace = trace if trace is not None else ResolutionTrace()
        source = source or actor.id

        if isinstance(effect, DamageEffect):
            amount = effect.value
            if effect.dice:
                roll = self.dice.roll(
                    effect.dice, RollOptions(kind="damage", label=effect.damage_type)
                )
                trace.rolls.append(roll)
                amount += roll.total
            applied = self.deal_damage(
                target,
                {effect.damage_type: amount},
                source_id=actor.id,
                encounter_id=encounter_id,
            )
            trace.damage += sum(applied.values())
            trace.effects.append(f"{effect.damage_type} damage")
        elif isinstance(effect, HealingEffect):
            amount = effect.value
            if effect.dice:
                roll = self.dice.roll(effect.dice, RollOptions(kind="healing"))
                trace.rolls.append(roll)
                amount += roll.total
            healed = self.heal(
                target,
                amount,
                source_id=actor.id,
                temporary=effect.temporary,
                encounter_id=encounter_id,
            )
            trace.healing += healed
            trace.effects.append("temporary hit points" if effect.temporary else "healing")
        elif isinstance(effect, ConditionEffect):
            self.conditions.add(
                target, condition_from_effect(effect, source), encounter_id=encounter_id
            )
            trace.effects.append(effect.condition)
        elif isinstance(effect, StatChangeEffect):
            cond = condition_from_stat_change(effect, source)
            self.conditions.add(target, cond, encounter_id=encounter_id)
            trace.effects.append(cond.name)
        elif isinstance(effect, SpecialEffect):
            # recorded only; interpreting specials is up to the caller
            logger.debug("special effect %s on %s", effect.special, target.name)
            trace.effects.append(effect.special)
        else:
            raise TypeError(f"Unknown effect: {effect!r}")

    # ---------- hp ----------

    def deal_damage(
        self,
        target: Combatant,
        buckets: Dict[str, int],
        *,
        source_id: Optional[str] = None,
        critical: bool = False,
        encounter_id: Optional[str] = None,
    ) -> Dict[str, int]:
        """Apply typed damage. Returns the per-type amounts after defenses."""
        adjusted = adjust_for_defenses(target, buckets)
        total = sum(adjusted.values())
        _, hp_before, hp_after = apply_damage_with_temp_hp(target, total)

        if hp_after <= 0 and hp_before > 0 and not target.has_condition(UNCONSCIOUS):
            self.conditions.add(
                target,
                CombatCondition(
                    name=UNCONSCIOUS,
                    description="The creature is unconscious",
                    duration=-1,
                    source="damage",
                ),
                encounter_id=encounter_id,
            )

        if total > 0:
            self.events.publish(
                DamageDealt(
                    encounter_id=encounter_id,
                    combatant_id=target.id,
                    source_id=source_id,
                    amount=total,
                    damage_types=adjusted,
                    hp_after=hp_after,
                    critical=critical,
                )
            )
        return adjusted

    def heal(
        self,
        target: Combatant,
        amount: int,
        *,
        source_id: Optional[str] = None,
        temporary: bool = False,
        encounter_id: Optional[str] = None,
    ) -> int:
        amount = max(0, amount)
        if temporary:
            # temporary hit points don't stack; keep the larger pool
            gained = max(0, amount - target.hp.temporary)
            target.hp.temporary = max(target.hp.temporary, amount)
        else:
            before = target.hp.current
            target.hp.current = min(target.hp.maximum, target.hp.current + amount)
            gained = target.hp.current - before
            if target.hp.current > 0:
                self.conditions.remove(
                    target, UNCONSCIOUS, reason="healed", encounter_id=encounter_id
                )

        self.events.publish(
            HealingDone(
                encounter_id=encounter_id,
                combatant_id=target.id,
                source_id=source_id,
                amount=gained,
                temporary=temporary,
                hp_after=target.hp.current,
            )
        )
        return gained
