from __future__ import annotations

from typing import Callable, Dict

from vttengine.core.engine.state import CombatEncounter, VictoryCondition

VictoryEvaluator = Callable[[CombatEncounter, VictoryCondition], bool]


def _defeat_all(encounter: CombatEncounter, cond: VictoryCondition) -> bool:
    team = cond.parameters.get("team", "enemy")
    return all(c.hp.current <= 0 for c in encounter.combatants if c.team == team)


def _defeat_specific(encounter: CombatEncounter, cond: VictoryCondition) -> bool:
    ids = cond.parameters.get("combatant_ids") or []
    if not ids:
        return False
    for cid in ids:
        c = encounter.find(cid)
        # removed from the fight counts as defeated
        if c is not None and c.hp.current > 0:
            return False
    return True


def _survive_rounds(encounter: CombatEncounter, cond: VictoryCondition) -> bool:
    return encounter.round >= int(cond.parameters.get("rounds", 0))


DEFAULT_EVALUATORS: Dict[str, VictoryEvaluator] = {
    "defeat_all": _defeat_all,
    "defeat_specific": _defeat_specific,
    "survive_rounds": _survive_rounds,
}


class VictoryRules:
    """Victory evaluators by condition type. Unknown types never complete."""

    def __init__(self) -> None:
        self._evaluators: Dict[str, VictoryEvaluator] = dict(DEFAULT_EVALUATORS)

    def register(self, victory_type: str, evaluator: VictoryEvaluator) -> None:
        self._evaluators[victory_type] = evaluator

    def check(self, encounter: CombatEncounter) -> bool:
        """Mark satisfied conditions completed; True when any is completed."""
        won = False
        for cond in encounter.victory_conditions:
            evaluator = self._evaluators.get(cond.type)
            if evaluator is None:
                continue
            if evaluator(encounter, cond):
                cond.completed = True
                won = True
        return won
