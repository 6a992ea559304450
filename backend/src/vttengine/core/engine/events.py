from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Annotated, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

logger = logging.getLogger(__name__)


class _Event(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: float = Field(default_factory=time.time)
    encounter_id: Optional[str] = None
    combatant_id: Optional[str] = None


class CombatStarted(_Event):
    type: Literal["combat_start"] = "combat_start"
    name: str = ""


class CombatEnded(_Event):
    type: Literal["combat_end"] = "combat_end"
    round: int = 0
    reason: str = ""


class RoundStarted(_Event):
    type: Literal["round_start"] = "round_start"
    round: int


class RoundEnded(_Event):
    type: Literal["round_end"] = "round_end"
    round: int


class TurnStarted(_Event):
    type: Literal["turn_start"] = "turn_start"
    round: int
    turn: int


class TurnEnded(_Event):
    type: Literal["turn_end"] = "turn_end"
    round: int
    turn: int


class DamageDealt(_Event):
    """combatant_id is the one who took the damage."""

    type: Literal["damage_dealt"] = "damage_dealt"
    source_id: Optional[str] = None
    amount: int
    damage_types: Dict[str, int] = Field(default_factory=dict)
    hp_after: int
    critical: bool = False


class HealingDone(_Event):
    type: Literal["healing_done"] = "healing_done"
    source_id: Optional[str] = None
    amount: int
    temporary: bool = False
    hp_after: int


class ConditionApplied(_Event):
    type: Literal["condition_applied"] = "condition_applied"
    condition: str
    duration: int = -1
    source: str = ""


class ConditionRemoved(_Event):
    type: Literal["condition_removed"] = "condition_removed"
    condition: str
    reason: str = ""


class SpellCast(_Event):
    """combatant_id is the caster's combatant (or caster id outside combat)."""

    type: Literal["spell_cast"] = "spell_cast"
    caster_id: str
    spell_id: str
    level: int
    target_ids: List[str] = Field(default_factory=list)


class ConcentrationStarted(_Event):
    type: Literal["concentration_started"] = "concentration_started"
    caster_id: str
    spell_id: str


class ConcentrationEnded(_Event):
    type: Literal["concentration_ended"] = "concentration_ended"
    caster_id: str
    spell_id: str
    reason: str = ""


CombatEvent = Annotated[
    Union[
        CombatStarted,
        CombatEnded,
        RoundStarted,
        RoundEnded,
        TurnStarted,
        TurnEnded,
        DamageDealt,
        HealingDone,
        ConditionApplied,
        ConditionRemoved,
        SpellCast,
        ConcentrationStarted,
        ConcentrationEnded,
    ],
    Field(discriminator="type"),
]

EventType = Literal[
    "combat_start",
    "combat_end",
    "round_start",
    "round_end",
    "turn_start",
    "turn_end",
    "damage_dealt",
    "healing_done",
    "condition_applied",
    "condition_removed",
    "spell_cast",
    "concentration_started",
    "concentration_ended",
]

EventHandler = Callable[[CombatEvent], None]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(CombatEvent)


def event_from_dict(data: dict) -> CombatEvent:
    return _EVENT_ADAPTER.validate_python(data)


class EventBus:
    """
    Synchronous publish/subscribe.

    Handlers run in subscription order inside `publish`. A handler that
    raises is logged and skipped; the remaining handlers and the engine
    operation that published the event carry on.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._universal: List[EventHandler] = []
        self.published = 0

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Callable[[], bool]:
        self._subscribers[event_type].append(handler)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> bool:
        try:
            self._subscribers[event_type].remove(handler)
            return True
        except ValueError:
            return False

    def subscribe_all(self, handler: EventHandler) -> Callable[[], bool]:
        self._universal.append(handler)
        return lambda: self.unsubscribe_all(handler)

    def unsubscribe_all(self, handler: EventHandler) -> bool:
        try:
            self._universal.remove(handler)
            return True
        except ValueError:
            return False

    def publish(self, event: CombatEvent) -> None:
        self.published += 1
        # copy: a handler may unsubscribe itself
        handlers = list(self._subscribers.get(event.type, ())) + list(self._universal)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "event handler %r failed on %s",
                    getattr(handler, "__name__", handler),
                    event.type,
                )
