from __future__ import annotations

import copy
import logging
import math
import time
from typing import Callable, Iterable, List, Optional, Sequence, Union
from uuid import uuid4

from vttengine.core.errors import (
    CombatantNotFoundError,
    EncounterNotFoundError,
    IllegalStateError,
    RuleValidationError,
)
from vttengine.core.engine.conditions import ConditionManager
from vttengine.core.engine.definitions import (
    COMBAT_PRESETS,
    ActionCost,
    Battlefield,
    CombatAction,
    CombatPreset,
    RulePreset,
)
from vttengine.core.engine.dice import DiceResolver, RollResult
from vttengine.core.engine.events import (
    CombatEnded,
    CombatStarted,
    EventBus,
    RoundEnded,
    RoundStarted,
    TurnEnded,
    TurnStarted,
)
from vttengine.core.engine.repository import InMemoryRepository, Repository
from vttengine.core.engine.rules.resolver import ActionResolver, ResolutionTrace
from vttengine.core.engine.rules.validator import (
    can_pay,
    raise_for,
    validate_action,
    validate_move,
    validate_phase,
)
from vttengine.core.engine.state import (
    AttackResult,
    CombatEncounter,
    CombatLogEntry,
    Combatant,
    LogResults,
    MovementPath,
    VictoryCondition,
    rollback_on_error,
)
from vttengine.core.engine.victory import VictoryEvaluator, VictoryRules

logger = logging.getLogger(__name__)

FEET_PER_GRID_UNIT = 5

PresetArg = Union[str, RulePreset, CombatPreset]


def _resolve_preset(preset: PresetArg) -> CombatPreset:
    if isinstance(preset, CombatPreset):
        return preset
    if isinstance(preset, RulePreset):
        return CombatPreset(rules=preset, battlefield=Battlefield())
    try:
        return COMBAT_PRESETS[preset]
    except KeyError:
        raise RuleValidationError(
            f"Unknown rule preset {preset!r}", code="UNKNOWN_PRESET", preset=preset
        ) from None


class CombatEngine:
    """
    Encounter lifecycle: setup -> initiative -> combat -> resolution -> ended.

    Every mutating call validates first, then commits, then stores the
    encounter back into the repository.
    """

    def __init__(
        self,
        dice: Optional[DiceResolver] = None,
        events: Optional[EventBus] = None,
        *,
        encounters: Optional[Repository[CombatEncounter]] = None,
        conditions: Optional[ConditionManager] = None,
        resolver: Optional[ActionResolver] = None,
        victory: Optional[VictoryRules] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.dice = dice or DiceResolver()
        self.events = events or EventBus()
        self.encounters: Repository[CombatEncounter] = (
            encounters if encounters is not None else InMemoryRepository()
        )
        self.conditions = conditions or ConditionManager(self.dice, self.events)
        self.resolver = resolver or ActionResolver(
            self.dice, self.conditions, self.events
        )
        self.victory = victory or VictoryRules()
        self.clock = clock

    # ---------- lookup ----------

    def get_encounter_by_id(self, encounter_id: str) -> Optional[CombatEncounter]:
        return self.encounters.get(encounter_id)

    def get_encounter(self, encounter_id: str) -> CombatEncounter:
        encounter = self.encounters.get(encounter_id)
        if encounter is None:
            raise EncounterNotFoundError(encounter_id)
        return encounter

    def list_encounters(self) -> List[CombatEncounter]:
        return self.encounters.list()

    def remove_encounter(self, encounter_id: str) -> bool:
        return self.encounters.remove(encounter_id)

    @staticmethod
    def get_combatant(encounter: CombatEncounter, combatant_id: str) -> Combatant:
        combatant = encounter.find(combatant_id)
        if combatant is None:
            raise CombatantNotFoundError(combatant_id)
        return combatant

    def get_current_combatant(self, encounter_id: str) -> Optional[Combatant]:
        encounter = self.get_encounter(encounter_id)
        cid = encounter.current_combatant_id
        return encounter.find(cid) if cid is not None else None

    def get_available_actions(
        self, encounter_id: str, combatant_id: str
    ) -> List[CombatAction]:
        encounter = self.get_encounter(encounter_id)
        combatant = self.get_combatant(encounter, combatant_id)

        actions: List[CombatAction] = [w.to_action() for w in combatant.weapons]
        actions.extend(f.action for f in combatant.features if f.action is not None)
        return [
            a
            for a in actions
            if can_pay(combatant, a.action_cost)
            and combatant.level >= a.requirements.minimum_level
        ]

    # ---------- setup ----------

    def create_encounter(
        self,
        name: str,
        combatants: Iterable[Combatant],
        preset: PresetArg = "QUICK_SKIRMISH",
        *,
        victory_conditions: Optional[Sequence[VictoryCondition]] = None,
        description: Optional[str] = None,
        encounter_id: Optional[str] = None,
    ) -> CombatEncounter:
        preset_data = _resolve_preset(preset)

        owned = [copy.deepcopy(c) for c in combatants]
        ids = [c.id for c in owned]
        if len(set(ids)) != len(ids):
            raise RuleValidationError(
                "Combatant ids must be unique", code="DUPLICATE_COMBATANT", ids=ids
            )
        for c in owned:
            c.economy.reset()
            c.conditions = []
            c.concentrating_on = None

        encounter = CombatEncounter(
            id=encounter_id or f"encounter_{uuid4().hex[:12]}",
            name=name,
            description=description or f"Combat encounter: {name}",
            combatants=owned,
            battlefield=preset_data.battlefield.model_copy(deep=True),
            rules=preset_data.rules,
            victory_conditions=list(
                copy.deepcopy(victory_conditions)
                if victory_conditions
                else [VictoryCondition(type="defeat_all", description="Defeat all enemies")]
            ),
            start_time=self.clock(),
        )
        self.encounters.put(encounter.id, encounter)
        logger.info("encounter %s created (%s combatants)", encounter.id, len(owned))
        self.events.publish(CombatStarted(encounter_id=encounter.id, name=name))
        return encounter

    def add_combatant(self, encounter_id: str, combatant: Combatant) -> Combatant:
        encounter = self.get_encounter(encounter_id)
        if encounter.phase in ("resolution", "ended"):
            raise IllegalStateError(
                "Encounter is over", code="BAD_PHASE", phase=encounter.phase
            )
        if encounter.find(combatant.id) is not None:
            raise RuleValidationError(
                f"Combatant {combatant.id} already present",
                code="DUPLICATE_COMBATANT",
                combatant_id=combatant.id,
            )

        owned = copy.deepcopy(combatant)
        owned.economy.reset()
        encounter.combatants.append(owned)

        if encounter.phase == "combat":
            current_id = encounter.current_combatant_id
            roll = self._roll_initiative_for(encounter, owned)
            self.log_action(
                encounter,
                actor=owned.id,
                action="Initiative",
                description=f"{owned.name} joins with initiative {roll.total}",
                rolls=[roll],
                success=True,
            )
            encounter.turn_order = self._sorted_turn_order(encounter)
            if current_id is not None:
                encounter.current_turn = encounter.turn_order.index(current_id)

        self.encounters.put(encounter.id, encounter)
        return owned

    def remove_combatant(self, encounter_id: str, combatant_id: str) -> bool:
        encounter = self.get_encounter(encounter_id)
        combatant = encounter.find(combatant_id)
        if combatant is None:
            return False

        encounter.combatants.remove(combatant)
        if combatant_id in encounter.turn_order:
            idx = encounter.turn_order.index(combatant_id)
            encounter.turn_order.remove(combatant_id)
            if encounter.phase == "combat":
                if idx < encounter.current_turn:
                    encounter.current_turn -= 1
                elif idx == encounter.current_turn:
                    # the next in order takes over the turn slot
                    if not encounter.turn_order:
                        self._end_combat(encounter, reason="no_combatants")
                    elif encounter.current_turn >= len(encounter.turn_order):
                        self._end_round(encounter)
                    else:
                        self._start_turn(encounter)

        self.encounters.put(encounter.id, encounter)
        return True

    # ---------- initiative ----------

    def _roll_initiative_for(self, encounter: CombatEncounter, c: Combatant) -> RollResult:
        roll = self.dice.roll_d20(
            c.ability_modifier("dexterity"), kind="initiative", label=c.name
        )
        c.initiative = roll.total
        c.initiative_roll = roll
        return roll

    @staticmethod
    def _sorted_turn_order(encounter: CombatEncounter) -> List[str]:
        ordered = sorted(
            encounter.combatants,
            key=lambda c: (-c.initiative, -c.abilities.dexterity),
        )
        return [c.id for c in ordered]

    def roll_initiative(self, encounter_id: str) -> List[str]:
        encounter = self.get_encounter(encounter_id)
        raise_for(validate_phase(encounter, "setup"))
        if not encounter.combatants:
            raise RuleValidationError(
                "Cannot start combat without combatants", code="NO_COMBATANTS"
            )

        encounter.phase = "initiative"
        for c in encounter.combatants:
            roll = self._roll_initiative_for(encounter, c)
            self.log_action(
                encounter,
                actor=c.id,
                action="Initiative",
                description=f"{c.name} rolls initiative: {roll.total}",
                rolls=[roll],
                success=True,
            )

        encounter.turn_order = self._sorted_turn_order(encounter)
        encounter.phase = "combat"
        encounter.round = 1
        encounter.current_turn = 0
        logger.info("encounter %s: initiative %s", encounter.id, encounter.turn_order)

        self.events.publish(RoundStarted(encounter_id=encounter.id, round=1))
        self._start_turn(encounter)
        self.encounters.put(encounter.id, encounter)
        return list(encounter.turn_order)

    # ---------- turns & rounds ----------

    def _current(self, encounter: CombatEncounter) -> Combatant:
        cid = encounter.current_combatant_id
        if cid is None:
            raise IllegalStateError(
                "No active combatant", code="BAD_PHASE", phase=encounter.phase
            )
        return self.get_combatant(encounter, cid)

    def _start_turn(self, encounter: CombatEncounter) -> None:
        combatant = self._current(encounter)
        combatant.economy.reset()
        self.conditions.process(combatant, "start_of_turn", encounter_id=encounter.id)
        self.events.publish(
            TurnStarted(
                encounter_id=encounter.id,
                combatant_id=combatant.id,
                round=encounter.round,
                turn=encounter.current_turn,
            )
        )
        self.log_action(
            encounter,
            actor=combatant.id,
            action="Turn Start",
            description=f"{combatant.name}'s turn begins",
            success=True,
        )

    def end_turn(self, encounter_id: str) -> None:
        encounter = self.get_encounter(encounter_id)
        raise_for(validate_phase(encounter, "combat"))
        combatant = self._current(encounter)

        self.conditions.process(combatant, "end_of_turn", encounter_id=encounter.id)
        self.events.publish(
            TurnEnded(
                encounter_id=encounter.id,
                combatant_id=combatant.id,
                round=encounter.round,
                turn=encounter.current_turn,
            )
        )
        self.log_action(
            encounter,
            actor=combatant.id,
            action="Turn End",
            description=f"{combatant.name}'s turn ends",
            success=True,
        )

        encounter.current_turn += 1
        if encounter.current_turn >= len(encounter.turn_order):
            self._end_round(encounter)
        else:
            self._start_turn(encounter)
        self.encounters.put(encounter.id, encounter)

    def _end_round(self, encounter: CombatEncounter) -> None:
        self.events.publish(RoundEnded(encounter_id=encounter.id, round=encounter.round))

        if self.victory.check(encounter):
            self._end_combat(encounter, reason="victory")
            return

        encounter.round += 1
        encounter.current_turn = 0
        self.events.publish(RoundStarted(encounter_id=encounter.id, round=encounter.round))
        self._start_turn(encounter)

    def register_victory_evaluator(self, victory_type: str, evaluator: VictoryEvaluator) -> None:
        self.victory.register(victory_type, evaluator)

    def end_combat(self, encounter_id: str, reason: str = "ended") -> CombatEncounter:
        encounter = self.get_encounter(encounter_id)
        if encounter.phase == "ended":
            raise IllegalStateError(
                "Encounter already ended", code="BAD_PHASE", phase=encounter.phase
            )
        self._end_combat(encounter, reason=reason)
        self.encounters.put(encounter.id, encounter)
        return encounter

    def _end_combat(self, encounter: CombatEncounter, *, reason: str) -> None:
        if encounter.phase == "ended":
            return
        encounter.phase = "resolution"
        self.log_action(
            encounter,
            actor="",
            action="Combat End",
            description=f"Combat ends after round {encounter.round} ({reason})",
            success=reason == "victory",
        )
        encounter.phase = "ended"
        encounter.end_time = self.clock()
        logger.info("encounter %s ended: %s", encounter.id, reason)
        self.events.publish(
            CombatEnded(encounter_id=encounter.id, round=encounter.round, reason=reason)
        )

    # ---------- actions ----------

    def can_pay(self, combatant: Combatant, cost: ActionCost) -> bool:
        return can_pay(combatant, cost)

    def consume_action_cost(self, combatant: Combatant, cost: ActionCost) -> None:
        eco = combatant.economy
        if cost == "action":
            eco.action_used = True
        elif cost == "bonus_action":
            eco.bonus_action_used = True
        elif cost == "reaction":
            eco.reactions_used += 1
        elif cost == "movement":
            remaining = combatant.effective_speed - eco.movement_spent
            eco.movement_spent += min(FEET_PER_GRID_UNIT, max(0, remaining))

    def execute_action(
        self,
        encounter_id: str,
        action: CombatAction,
        target_ids: Sequence[str] = (),
        *,
        actor_id: Optional[str] = None,
    ) -> List[AttackResult]:
        """
        The current combatant performs `action`. Passing another combatant as
        `actor_id` is only allowed for reactions.
        """
        encounter = self.get_encounter(encounter_id)
        raise_for(validate_phase(encounter, "combat"))

        actor = self._current(encounter)
        if actor_id is not None and actor_id != actor.id:
            if action.action_cost != "reaction":
                raise IllegalStateError(
                    f"It is not {actor_id}'s turn",
                    code="NOT_YOUR_TURN",
                    combatant_id=actor_id,
                )
            actor = self.get_combatant(encounter, actor_id)

        target_ids = list(target_ids)
        raise_for(validate_action(encounter, actor, action, target_ids))

        # a roll that fails part-way (e.g. a bad supplied face) undoes the commit
        with rollback_on_error(encounter, *encounter.combatants):
            results = self._perform(encounter, actor, action, target_ids)
        self.encounters.put(encounter.id, encounter)
        return results

    def _perform(
        self,
        encounter: CombatEncounter,
        actor: Combatant,
        action: CombatAction,
        target_ids: List[str],
    ) -> List[AttackResult]:
        self.consume_action_cost(actor, action.action_cost)

        targets = [self.get_combatant(encounter, tid) for tid in target_ids]
        if not targets and action.attack_roll is None and action.saving_throw is None:
            targets = [actor]

        trace = ResolutionTrace()
        results: List[AttackResult] = []
        for target in targets:
            result = self.resolver.resolve(
                actor, target, action, encounter.rules, encounter_id=encounter.id, trace=trace
            )
            if result is not None:
                results.append(result)

        dealt = sum(r.total_damage for r in results) + trace.damage
        if dealt:
            encounter.damage_dealt[actor.id] = encounter.damage_dealt.get(actor.id, 0) + dealt

        if results:
            success = any(r.hit for r in results)
        elif trace.saves:
            success = any(not s.success for s in trace.saves)
        else:
            success = True

        self.log_action(
            encounter,
            actor=actor.id,
            action=action.name,
            targets=target_ids,
            description=self._describe(action, actor, targets, results, trace),
            rolls=trace.rolls,
            success=success,
            critical=any(r.critical for r in results),
            damage=dealt,
            healing=trace.healing,
            effects=trace.effects,
        )
        return results

    @staticmethod
    def _describe(
        action: CombatAction,
        actor: Combatant,
        targets: List[Combatant],
        results: List[AttackResult],
        trace: ResolutionTrace,
    ) -> str:
        description = f"{actor.name} uses {action.name}"
        others = [t for t in targets if t.id != actor.id]
        if others:
            description += " against " + ", ".join(t.name for t in others)

        total_damage = sum(r.total_damage for r in results) + trace.damage
        if results:
            hits = sum(1 for r in results if r.hit)
            criticals = sum(1 for r in results if r.critical)
            description += f" - {hits}/{len(results)} hit"
            if criticals:
                description += f" ({criticals} critical)"
        if trace.saves:
            failed = sum(1 for s in trace.saves if not s.success)
            ability = trace.saves[0].ability
            description += f" - {failed}/{len(trace.saves)} failed {ability} save"
        if total_damage > 0:
            description += f" for {total_damage} damage"
        if trace.healing > 0:
            description += f", healing {trace.healing}"
        return description

    # ---------- hp adjustments from collaborators ----------

    def apply_damage(
        self,
        encounter_id: str,
        combatant_id: str,
        amount: int,
        damage_type: str = "force",
        *,
        source_id: Optional[str] = None,
    ) -> int:
        encounter = self.get_encounter(encounter_id)
        target = self.get_combatant(encounter, combatant_id)
        applied = self.resolver.deal_damage(
            target,
            {damage_type: amount},
            source_id=source_id,
            encounter_id=encounter.id,
        )
        if source_id is not None:
            encounter.damage_dealt[source_id] = (
                encounter.damage_dealt.get(source_id, 0) + sum(applied.values())
            )
        self.encounters.put(encounter.id, encounter)
        return sum(applied.values())

    def apply_healing(
        self,
        encounter_id: str,
        combatant_id: str,
        amount: int,
        *,
        temporary: bool = False,
        source_id: Optional[str] = None,
    ) -> int:
        encounter = self.get_encounter(encounter_id)
        target = self.get_combatant(encounter, combatant_id)
        healed = self.resolver.heal(
            target,
            amount,
            source_id=source_id,
            temporary=temporary,
            encounter_id=encounter.id,
        )
        self.encounters.put(encounter.id, encounter)
        return healed

    # ---------- movement ----------

    def calculate_movement(
        self, encounter: CombatEncounter, combatant: Combatant, x: float, y: float
    ) -> MovementPath:
        """Straight line from the current position; no pathfinding."""
        start = combatant.position
        distance = math.hypot(x - start.x, y - start.y)
        remaining = combatant.effective_speed - combatant.economy.movement_spent
        cost = math.ceil(round(distance * FEET_PER_GRID_UNIT, 6))

        return MovementPath(
            valid=cost <= remaining and encounter.battlefield.contains(x, y),
            path=[{"x": start.x, "y": start.y}, {"x": x, "y": y}],
            cost=cost,
            remaining_movement=max(0, remaining - cost),
        )

    def move_combatant(
        self, encounter_id: str, combatant_id: str, x: float, y: float
    ) -> MovementPath:
        encounter = self.get_encounter(encounter_id)
        combatant = self.get_combatant(encounter, combatant_id)

        path = self.calculate_movement(encounter, combatant, x, y)
        raise_for(validate_move(encounter, combatant, path.cost, x, y))

        combatant.position.x = x
        combatant.position.y = y
        combatant.economy.movement_spent += path.cost
        self.log_action(
            encounter,
            actor=combatant.id,
            action="Movement",
            description=f"{combatant.name} moves to ({x}, {y})",
            success=True,
        )
        self.encounters.put(encounter.id, encounter)
        return path

    # ---------- log ----------

    def log_action(
        self,
        encounter: CombatEncounter,
        *,
        actor: str,
        action: str,
        description: str,
        targets: Optional[List[str]] = None,
        rolls: Optional[List[RollResult]] = None,
        success: bool = False,
        critical: bool = False,
        damage: int = 0,
        healing: int = 0,
        effects: Optional[List[str]] = None,
    ) -> CombatLogEntry:
        entry = CombatLogEntry(
            round=encounter.round,
            turn=encounter.current_turn,
            timestamp=self.clock(),
            actor=actor,
            action=action,
            targets=list(targets or []),
            results=LogResults(
                success=success,
                critical=critical,
                damage=damage,
                healing=healing,
                effects=list(effects or []),
            ),
            rolls=list(rolls or []),
            description=description,
        )
        encounter.action_log.append(entry)
        logger.debug("[%s r%s] %s", encounter.id, encounter.round, description)
        return entry
