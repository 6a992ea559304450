"""
Spell slots, known/prepared checks, upcasting, concentration and rests.

Outside an encounter a cast only spends the slot and rolls the numbers. With
`encounter_id` it also pays the casting time from the caster's action
economy and applies damage, healing and effects to combatants through the
combat engine.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from vttengine.core.errors import (
    ActionEconomyError,
    IllegalStateError,
    NotConcentratingError,
    RuleValidationError,
    SpellcasterNotFoundError,
)
from vttengine.core.engine.combat import CombatEngine
from vttengine.core.engine.definitions import ConditionEffect, Effect, EndsOnSave, RulePreset
from vttengine.core.engine.dice import DiceExpression, DiceResolver, RollResult
from vttengine.core.engine.events import (
    ConcentrationEnded,
    ConcentrationStarted,
    DamageDealt,
    EventBus,
    SpellCast,
)
from vttengine.core.engine.repository import InMemoryRepository, Repository
from vttengine.core.engine.rules.resolver import ResolutionTrace, roll_damage
from vttengine.core.engine.rules.validator import raise_for, validate_cast, validate_phase
from vttengine.core.engine.spells.definitions import Spell, SpellDamage, SpellHealing
from vttengine.core.engine.spells.registry import SpellRepository
from vttengine.core.engine.state import (
    ActiveConcentration,
    CombatEncounter,
    Combatant,
    SpellSlot,
    Spellcaster,
    rollback_on_error,
)

logger = logging.getLogger(__name__)

SHORT_REST_RECOVERY_CLASSES = frozenset({"warlock"})
CANTRIP_SCALING_LEVELS = (5, 11, 17)
DEFAULT_CONCENTRATION_SECONDS = 600


def concentration_source(caster_id: str, spell_id: str) -> str:
    return f"concentration:{caster_id}:{spell_id}"


class SpellSaveResult(BaseModel):
    target_id: str
    ability: str
    dc: int
    roll: RollResult
    success: bool


class SpellcastingResult(BaseModel):
    success: bool = True
    caster_id: str
    spell_id: str
    level: int
    slot_used: Optional[int] = None
    target_ids: List[str] = Field(default_factory=list)
    attack_rolls: List[RollResult] = Field(default_factory=list)
    damage_rolls: List[RollResult] = Field(default_factory=list)
    healing_rolls: List[RollResult] = Field(default_factory=list)
    saves: List[SpellSaveResult] = Field(default_factory=list)
    hits: Dict[str, bool] = Field(default_factory=dict)
    critical: bool = False
    damage: Dict[str, int] = Field(default_factory=dict)
    healing: Dict[str, int] = Field(default_factory=dict)
    effects_applied: List[str] = Field(default_factory=list)
    concentration_started: bool = False
    concentration_ended: Optional[str] = None
    description: str = ""

    @property
    def total_damage(self) -> int:
        return sum(self.damage.values())

    @property
    def total_healing(self) -> int:
        return sum(self.healing.values())


class ConcentrationCheck(BaseModel):
    caster_id: str
    spell_id: str
    damage: int
    dc: int
    roll: RollResult
    success: bool


class ReadySpell(BaseModel):
    spell: Spell
    available_levels: List[int]


class SpellcastingResolver:
    def __init__(
        self,
        dice: Optional[DiceResolver] = None,
        events: Optional[EventBus] = None,
        *,
        spells: Optional[SpellRepository] = None,
        casters: Optional[Repository[Spellcaster]] = None,
        engine: Optional[CombatEngine] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.engine = engine
        self.dice = dice or (engine.dice if engine is not None else DiceResolver())
        self.events = events or (engine.events if engine is not None else EventBus())
        self.spells = spells if spells is not None else SpellRepository()
        self.casters: Repository[Spellcaster] = (
            casters if casters is not None else InMemoryRepository()
        )
        self.clock = clock
        if engine is not None:
            self.events.subscribe("damage_dealt", self._on_damage)

    # ---------- casters & spells ----------

    def register_spellcaster(self, caster: Spellcaster) -> Spellcaster:
        for s in caster.slots:
            if not 0 <= s.used <= s.total:
                raise RuleValidationError(
                    f"Slot level {s.level} has {s.used}/{s.total} used",
                    code="BAD_SLOT",
                    level=s.level,
                )
        self.casters.put(caster.id, caster)
        logger.info("spellcaster %s registered (%s %s)", caster.id, caster.caster_class, caster.level)
        return caster

    def get_spellcaster(self, caster_id: str) -> Optional[Spellcaster]:
        return self.casters.get(caster_id)

    def require_caster(self, caster_id: str) -> Spellcaster:
        caster = self.casters.get(caster_id)
        if caster is None:
            raise SpellcasterNotFoundError(caster_id)
        return caster

    def get_spell(self, spell_id: str) -> Optional[Spell]:
        return self.spells.get(spell_id)

    def add_spell(self, spell: Spell) -> None:
        self.spells.add(spell)

    def prepare_spells(self, caster_id: str, spell_ids: Sequence[str]) -> Spellcaster:
        caster = self.require_caster(caster_id)
        unknown = [sid for sid in spell_ids if sid not in caster.known_spells]
        if unknown:
            raise RuleValidationError(
                f"Cannot prepare unknown spells: {', '.join(unknown)}",
                code="SPELL_NOT_KNOWN",
                spell_ids=unknown,
            )
        caster.prepared_spells = list(spell_ids)
        self.casters.put(caster.id, caster)
        return caster

    # ---------- scaling ----------

    def scaling_steps(self, spell: Spell, level: int, caster: Spellcaster) -> int:
        if spell.is_cantrip:
            return sum(1 for threshold in CANTRIP_SCALING_LEVELS if caster.level >= threshold)
        scaling = spell.upcast_scaling
        if scaling is None or level <= spell.level:
            return 0
        return (level - spell.level) // max(1, scaling.interval)

    def scaled_expression(
        self,
        spell: Spell,
        component: Union[SpellDamage, SpellHealing],
        level: int,
        caster: Spellcaster,
    ) -> DiceExpression:
        base = DiceExpression.parse(component.dice)
        modifier = base.modifier + component.modifier
        if component.add_spellcasting_modifier:
            modifier += caster.ability_modifier
        expr = base.with_modifier(modifier)

        steps = self.scaling_steps(spell, level, caster)
        if steps == 0:
            return expr

        per_step = 0
        if component.scaling_dice:
            extra = DiceExpression.parse(component.scaling_dice)
            if extra.sides == base.sides:
                per_step = extra.count
        elif spell.is_cantrip:
            per_step = base.count
        elif spell.upcast_scaling is not None:
            kind = "damage" if isinstance(component, SpellDamage) else "healing"
            extra_dice = spell.upcast_scaling.extra_dice()
            if spell.upcast_scaling.type == kind and extra_dice and extra_dice[1] == base.sides:
                per_step = extra_dice[0]

        return expr.scaled(per_step * steps, component.scaling_modifier * steps)

    def max_targets(self, spell: Spell, level: int, caster: Spellcaster) -> Optional[int]:
        base = spell.targets.max_targets
        scaling = spell.upcast_scaling
        if base is None or scaling is None or scaling.type != "targets":
            return base
        return base + self.scaling_steps(spell, level, caster) * scaling.extra_count()

    # ---------- casting ----------

    def cast_spell(
        self,
        caster_id: str,
        spell_id: str,
        level: Optional[int] = None,
        target_ids: Sequence[str] = (),
        *,
        encounter_id: Optional[str] = None,
    ) -> SpellcastingResult:
        caster = self.require_caster(caster_id)
        spell = self.spells.require(spell_id)
        level = spell.level if level is None else level
        target_ids = list(target_ids)

        raise_for(
            validate_cast(
                caster,
                spell.id,
                spell.level,
                level,
                target_count=len(target_ids),
                max_targets=self.max_targets(spell, level, caster),
            )
        )
        if spell.targets.type in ("single", "multiple") and not target_ids and (
            spell.spell_attack or spell.saving_throw or spell.damage or spell.healing
        ):
            raise RuleValidationError(f"{spell.name} needs a target", code="NO_TARGET")

        encounter: Optional[CombatEncounter] = None
        caster_combatant: Optional[Combatant] = None
        targets: List[Combatant] = []
        if encounter_id is not None:
            encounter, caster_combatant, targets = self._check_encounter(
                caster, spell, encounter_id, target_ids
            )

        touched = self._touched_encounters(caster, encounter)
        guarded: List[object] = [caster]
        for enc in touched:
            guarded.extend([enc, *enc.combatants])
        try:
            # a roll that fails part-way (e.g. a bad supplied face) undoes the commit
            with rollback_on_error(*guarded):
                result = self._commit_cast(
                    caster, spell, level, target_ids, encounter, caster_combatant, targets
                )
        except Exception:
            # handlers run during the cast may already have saved these
            for enc in touched:
                self.engine.encounters.put(enc.id, enc)  # type: ignore[union-attr]
            self.casters.put(caster.id, caster)
            raise

        if encounter is not None and self.engine is not None:
            self.engine.encounters.put(encounter.id, encounter)
        self.casters.put(caster.id, caster)
        logger.info("%s casts %s at level %s", caster.id, spell.id, level)
        return result

    def _touched_encounters(
        self, caster: Spellcaster, encounter: Optional[CombatEncounter]
    ) -> List[CombatEncounter]:
        out: List[CombatEncounter] = [encounter] if encounter is not None else []
        conc = caster.concentration
        if self.engine is not None and conc is not None and conc.encounter_id is not None:
            other = self.engine.get_encounter_by_id(conc.encounter_id)
            if other is not None and other is not encounter:
                out.append(other)
        return out

    def _commit_cast(
        self,
        caster: Spellcaster,
        spell: Spell,
        level: int,
        target_ids: List[str],
        encounter: Optional[CombatEncounter],
        caster_combatant: Optional[Combatant],
        targets: List[Combatant],
    ) -> SpellcastingResult:
        if encounter is not None and caster_combatant is not None:
            cost = spell.casting_time.action_cost
            assert cost is not None
            self.engine.consume_action_cost(caster_combatant, cost)  # type: ignore[union-attr]

        slot_used: Optional[int] = None
        if not spell.is_cantrip:
            slot = caster.slot(level)
            assert slot is not None
            slot.used += 1
            slot_used = level

        result = SpellcastingResult(
            caster_id=caster.id,
            spell_id=spell.id,
            level=level,
            slot_used=slot_used,
            target_ids=target_ids,
        )

        if spell.requires_concentration and caster.concentration is not None:
            result.concentration_ended = caster.concentration.spell_id
            self._end_concentration(caster, reason="new_concentration")

        rules = encounter.rules if encounter is not None else RulePreset()
        self._resolve(spell, level, caster, caster_combatant, targets, encounter, rules, result)

        if spell.requires_concentration:
            self._start_concentration(caster, spell, level, encounter, result.target_ids)
            result.concentration_started = True

        result.description = self._describe(spell, level, caster, targets, result)
        combatant_id = caster_combatant.id if caster_combatant is not None else caster.id
        self.events.publish(
            SpellCast(
                encounter_id=encounter.id if encounter is not None else None,
                combatant_id=combatant_id,
                caster_id=caster.id,
                spell_id=spell.id,
                level=level,
                target_ids=result.target_ids,
            )
        )

        if encounter is not None and self.engine is not None:
            dealt = result.total_damage
            if dealt:
                encounter.damage_dealt[combatant_id] = (
                    encounter.damage_dealt.get(combatant_id, 0) + dealt
                )
            self.engine.log_action(
                encounter,
                actor=combatant_id,
                action=spell.name,
                targets=result.target_ids,
                description=result.description,
                rolls=result.attack_rolls + result.damage_rolls + result.healing_rolls
                + [s.roll for s in result.saves],
                success=result.success,
                critical=result.critical,
                damage=dealt,
                healing=result.total_healing,
                effects=result.effects_applied,
            )
        return result

    def _check_encounter(
        self,
        caster: Spellcaster,
        spell: Spell,
        encounter_id: str,
        target_ids: List[str],
    ) -> tuple[CombatEncounter, Combatant, List[Combatant]]:
        if self.engine is None:
            raise IllegalStateError(
                "No combat engine attached", code="NO_ENGINE", encounter_id=encounter_id
            )
        encounter = self.engine.get_encounter(encounter_id)
        raise_for(validate_phase(encounter, "combat"))

        assert caster.combatant_id is not None
        caster_combatant = self.engine.get_combatant(encounter, caster.combatant_id)
        targets = [self.engine.get_combatant(encounter, tid) for tid in target_ids]

        cost = spell.casting_time.action_cost
        if cost is None:
            raise IllegalStateError(
                f"{spell.name} takes too long to cast in combat",
                code="CASTING_TIME_TOO_LONG",
                spell_id=spell.id,
            )
        if not caster_combatant.is_conscious:
            raise IllegalStateError(
                f"{caster_combatant.name} is unconscious",
                code="NOT_CONSCIOUS",
                combatant_id=caster_combatant.id,
            )
        if cost != "reaction" and encounter.current_combatant_id != caster_combatant.id:
            raise IllegalStateError(
                f"It is not {caster_combatant.name}'s turn",
                code="NOT_YOUR_TURN",
                combatant_id=caster_combatant.id,
            )
        if not self.engine.can_pay(caster_combatant, cost):
            raise ActionEconomyError(
                f"{caster_combatant.name} cannot pay {cost} for {spell.name}",
                combatant_id=caster_combatant.id,
                cost=cost,
            )

        if spell.targets.type == "self" or (spell.targets.type == "special" and not targets):
            targets = [caster_combatant]
        return encounter, caster_combatant, targets

    # ---------- resolution ----------

    def _resolve(
        self,
        spell: Spell,
        level: int,
        caster: Spellcaster,
        caster_combatant: Optional[Combatant],
        targets: List[Combatant],
        encounter: Optional[CombatEncounter],
        rules: RulePreset,
        result: SpellcastingResult,
    ) -> None:
        damage_exprs = [
            (c.type, self.scaled_expression(spell, c, level, caster)) for c in spell.damage
        ]
        healing_comps = [
            (c, self.scaled_expression(spell, c, level, caster)) for c in spell.healing
        ]
        effects = [self._bind_caster_dc(e, caster) for e in spell.effects]
        source = concentration_source(caster.id, spell.id) if spell.requires_concentration else caster.id
        encounter_id = encounter.id if encounter is not None else None
        # slots: real combatants, or one detached "target" when there is no encounter
        slots: List[Optional[Combatant]] = list(targets) if encounter is not None else [None]

        if spell.spell_attack is not None:
            bonus = caster.attack_bonus + spell.spell_attack.bonus
            for target in slots:
                attack = self.dice.roll_d20(bonus, kind="attack", label=spell.name)
                result.attack_rolls.append(attack)
                if attack.is_critical:
                    hit = True
                elif attack.is_minimum:
                    hit = False
                else:
                    hit = target is None or attack.total >= target.effective_armor_class
                if target is not None:
                    result.hits[target.id] = hit
                if not hit:
                    continue
                result.critical = result.critical or attack.is_critical
                buckets = self._roll_damage(damage_exprs, attack.is_critical, rules, result)
                self._deal(caster_combatant, target, buckets, attack.is_critical, encounter_id, result)
                self._apply_effects(caster_combatant, target, effects, encounter_id, source, result)
            result.success = any(result.hits.values()) if result.hits else True
            return

        if spell.saving_throw is not None:
            save = spell.saving_throw
            # one damage roll shared by every target
            buckets = self._roll_damage(damage_exprs, False, rules, result)
            if encounter is None:
                if buckets:
                    result.damage["_"] = sum(buckets.values())
                return
            for target in targets:
                roll, success = self.dice.roll_check(
                    target.saving_throw_modifier(save.ability),
                    caster.save_dc,
                    label=f"{save.ability} save",
                )
                result.saves.append(
                    SpellSaveResult(
                        target_id=target.id,
                        ability=save.ability,
                        dc=caster.save_dc,
                        roll=roll,
                        success=success,
                    )
                )
                if success:
                    if save.half_damage_on_save:
                        taken = {t: a // 2 for t, a in buckets.items()}
                    else:
                        taken = {}
                else:
                    taken = dict(buckets)
                if taken:
                    self._deal(caster_combatant, target, taken, False, encounter_id, result)
                if not success:
                    self._apply_effects(caster_combatant, target, effects, encounter_id, source, result)
            result.success = any(not s.success for s in result.saves) or bool(result.damage)
            return

        # automatic: damage and healing land on every target
        for target in slots:
            if damage_exprs:
                buckets = self._roll_damage(damage_exprs, False, rules, result)
                self._deal(caster_combatant, target, buckets, False, encounter_id, result)
            for comp, expr in healing_comps:
                roll = self.dice.roll(expr, kind="healing", label=spell.name)
                result.healing_rolls.append(roll)
                self._heal(caster_combatant, target, roll.total, comp.temporary, encounter_id, result)
            self._apply_effects(caster_combatant, target, effects, encounter_id, source, result)

    def _roll_damage(
        self,
        damage_exprs: List[tuple[str, DiceExpression]],
        critical: bool,
        rules: RulePreset,
        result: SpellcastingResult,
    ) -> Dict[str, int]:
        buckets: Dict[str, int] = {}
        for damage_type, expr in damage_exprs:
            # critical rule applies to the already upcast expression
            roll = roll_damage(
                self.dice,
                expr,
                critical=critical,
                rule=rules.critical_hit_rule,
                label=damage_type,
            )
            result.damage_rolls.append(roll)
            buckets[damage_type] = buckets.get(damage_type, 0) + max(0, roll.total)
        return buckets

    def _deal(
        self,
        caster_combatant: Optional[Combatant],
        target: Optional[Combatant],
        buckets: Dict[str, int],
        critical: bool,
        encounter_id: Optional[str],
        result: SpellcastingResult,
    ) -> None:
        if target is None or self.engine is None:
            key = target.id if target is not None else "_"
            result.damage[key] = result.damage.get(key, 0) + sum(buckets.values())
            return
        applied = self.engine.resolver.deal_damage(
            target,
            buckets,
            source_id=caster_combatant.id if caster_combatant is not None else None,
            critical=critical,
            encounter_id=encounter_id,
        )
        result.damage[target.id] = result.damage.get(target.id, 0) + sum(applied.values())

    def _heal(
        self,
        caster_combatant: Optional[Combatant],
        target: Optional[Combatant],
        amount: int,
        temporary: bool,
        encounter_id: Optional[str],
        result: SpellcastingResult,
    ) -> None:
        if target is None or self.engine is None:
            result.healing["_"] = result.healing.get("_", 0) + amount
            return
        healed = self.engine.resolver.heal(
            target,
            amount,
            source_id=caster_combatant.id if caster_combatant is not None else None,
            temporary=temporary,
            encounter_id=encounter_id,
        )
        result.healing[target.id] = result.healing.get(target.id, 0) + healed

    def _apply_effects(
        self,
        caster_combatant: Optional[Combatant],
        target: Optional[Combatant],
        effects: List[Effect],
        encounter_id: Optional[str],
        source: str,
        result: SpellcastingResult,
    ) -> None:
        if not effects:
            return
        if target is None or caster_combatant is None or self.engine is None:
            result.effects_applied.extend(
                getattr(e, "condition", None) or getattr(e, "special", None) or e.type
                for e in effects
            )
            return
        trace = ResolutionTrace()
        for effect in effects:
            self.engine.resolver.apply_effect(
                caster_combatant,
                target,
                effect,
                encounter_id=encounter_id,
                trace=trace,
                source=source,
            )
        result.effects_applied.extend(trace.effects)
        result.damage_rolls.extend(r for r in trace.rolls if r.kind == "damage")
        result.healing_rolls.extend(r for r in trace.rolls if r.kind == "healing")

    @staticmethod
    def _bind_caster_dc(effect: Effect, caster: Spellcaster) -> Effect:
        # ends_on_save dc 0 means "the caster's spell save DC"
        if isinstance(effect, ConditionEffect) and effect.ends_on_save is not None:
            if effect.ends_on_save.dc <= 0:
                bound = EndsOnSave(
                    ability=effect.ends_on_save.ability,
                    dc=caster.save_dc,
                    frequency=effect.ends_on_save.frequency,
                )
                return effect.model_copy(update={"ends_on_save": bound})
        return effect

    @staticmethod
    def _describe(
        spell: Spell,
        level: int,
        caster: Spellcaster,
        targets: List[Combatant],
        result: SpellcastingResult,
    ) -> str:
        text = f"{caster.id} casts {spell.name}"
        if level > spell.level:
            text += f" at level {level}"
        others = [t.name for t in targets if t.id != caster.combatant_id]
        if others:
            text += " on " + ", ".join(others)
        if result.hits:
            hits = sum(1 for h in result.hits.values() if h)
            text += f" - {hits}/{len(result.hits)} hit"
            if result.critical:
                text += " (critical)"
        if result.saves:
            failed = sum(1 for s in result.saves if not s.success)
            text += f" - {failed}/{len(result.saves)} failed {result.saves[0].ability} save"
        if result.total_damage:
            text += f" for {result.total_damage} damage"
        if result.total_healing:
            text += f", healing {result.total_healing}"
        return text

    # ---------- concentration ----------

    def _start_concentration(
        self,
        caster: Spellcaster,
        spell: Spell,
        level: int,
        encounter: Optional[CombatEncounter],
        target_ids: List[str],
    ) -> None:
        caster.concentration = ActiveConcentration(
            spell_id=spell.id,
            level=level,
            start_time=self.clock(),
            duration=spell.duration.seconds or DEFAULT_CONCENTRATION_SECONDS,
            encounter_id=encounter.id if encounter is not None else None,
            target_ids=list(target_ids),
        )
        combatant_id = caster.combatant_id or caster.id
        if encounter is not None:
            c = encounter.find(combatant_id)
            if c is not None:
                c.concentrating_on = spell.id
        self.events.publish(
            ConcentrationStarted(
                encounter_id=encounter.id if encounter is not None else None,
                combatant_id=combatant_id,
                caster_id=caster.id,
                spell_id=spell.id,
            )
        )

    def end_concentration(self, caster_id: str, reason: str = "ended") -> Optional[str]:
        """End the caster's concentration, if any. Returns the spell id that ended."""
        caster = self.require_caster(caster_id)
        if caster.concentration is None:
            return None
        spell_id = self._end_concentration(caster, reason=reason)
        self.casters.put(caster.id, caster)
        return spell_id

    def _end_concentration(self, caster: Spellcaster, *, reason: str) -> str:
        conc = caster.concentration
        assert conc is not None
        caster.concentration = None

        if self.engine is not None and conc.encounter_id is not None:
            encounter = self.engine.get_encounter_by_id(conc.encounter_id)
            if encounter is not None:
                tag = concentration_source(caster.id, conc.spell_id)
                for c in encounter.combatants:
                    self.engine.conditions.remove_by_source(
                        c, tag, reason="concentration_ended", encounter_id=encounter.id
                    )
                    if c.id == caster.combatant_id:
                        c.concentrating_on = None
                self.engine.encounters.put(encounter.id, encounter)

        logger.info("%s loses concentration on %s (%s)", caster.id, conc.spell_id, reason)
        self.events.publish(
            ConcentrationEnded(
                encounter_id=conc.encounter_id,
                combatant_id=caster.combatant_id,
                caster_id=caster.id,
                spell_id=conc.spell_id,
                reason=reason,
            )
        )
        return conc.spell_id

    def make_concentration_save(self, caster_id: str, damage_taken: int) -> ConcentrationCheck:
        caster = self.require_caster(caster_id)
        if caster.concentration is None:
            raise NotConcentratingError(f"{caster_id} is not concentrating", caster_id=caster_id)

        spell_id = caster.concentration.spell_id
        dc = max(10, damage_taken // 2)
        roll, success = self.dice.roll_check(
            caster.constitution_modifier, dc, label="concentration"
        )
        if not success:
            self._end_concentration(caster, reason="failed_save")
        self.casters.put(caster.id, caster)
        return ConcentrationCheck(
            caster_id=caster.id,
            spell_id=spell_id,
            damage=damage_taken,
            dc=dc,
            roll=roll,
            success=success,
        )

    def _on_damage(self, event: DamageDealt) -> None:
        if self.engine is None or event.encounter_id is None:
            return
        encounter = self.engine.get_encounter_by_id(event.encounter_id)
        if encounter is None:
            return
        for caster in self.casters.list():
            if caster.concentration is None or caster.combatant_id != event.combatant_id:
                continue
            if event.hp_after <= 0:
                self.end_concentration(caster.id, reason="incapacitated")
            elif encounter.rules.lingering:
                self.make_concentration_save(caster.id, event.amount)

    # ---------- rests ----------

    def rest(self, caster_id: str, rest_type: str) -> Spellcaster:
        caster = self.require_caster(caster_id)
        if rest_type == "long":
            for slot in caster.slots:
                slot.used = 0
        elif rest_type == "short":
            if caster.caster_class.lower() in SHORT_REST_RECOVERY_CLASSES:
                for slot in caster.slots:
                    slot.used = 0
        else:
            raise RuleValidationError(
                f"Unknown rest type {rest_type!r}", code="BAD_REST", rest_type=rest_type
            )
        self.casters.put(caster.id, caster)
        return caster

    def long_rest(self, caster_id: str) -> Spellcaster:
        return self.rest(caster_id, "long")

    def short_rest(self, caster_id: str) -> Spellcaster:
        return self.rest(caster_id, "short")

    # ---------- queries ----------

    def get_available_slots(self, caster_id: str) -> List[SpellSlot]:
        caster = self.require_caster(caster_id)
        return [s for s in caster.slots if s.available > 0]

    def get_ready_spells(self, caster_id: str) -> List[ReadySpell]:
        caster = self.require_caster(caster_id)
        must_prepare = caster.prepares_spells or bool(caster.prepared_spells)
        ready: List[ReadySpell] = []
        for spell_id in caster.known_spells:
            spell = self.spells.get(spell_id)
            if spell is None:
                continue
            if spell.is_cantrip:
                ready.append(ReadySpell(spell=spell, available_levels=[0]))
                continue
            if must_prepare and spell_id not in caster.prepared_spells:
                continue
            levels = sorted(
                s.level for s in caster.slots if s.level >= spell.level and s.available > 0
            )
            if levels:
                ready.append(ReadySpell(spell=spell, available_levels=levels))
        return ready

    def can_cast_any(self, caster_id: str) -> bool:
        return bool(self.get_ready_spells(caster_id))

    def describe_spell(
        self, spell_id: str, level: Optional[int] = None, caster_id: Optional[str] = None
    ) -> str:
        spell = self.spells.require(spell_id)
        level = spell.level if level is None else level
        text = spell.description
        if spell.higher_level_description and level > spell.level:
            text += "\n\nAt Higher Levels: " + spell.higher_level_description
        if caster_id is not None:
            caster = self.require_caster(caster_id)
            if spell.damage:
                expr = self.scaled_expression(spell, spell.damage[0], level, caster)
                text += f"\n\nDamage: {expr} {spell.damage[0].type}"
            if spell.healing:
                expr = self.scaled_expression(spell, spell.healing[0], level, caster)
                text += f"\n\nHealing: {expr}"
        return text
