"""
Engine exceptions.

Every rejected operation raises before any state is touched, so a caller
catching an EngineError can keep using the encounter as-is.
"""
from __future__ import annotations

from typing import Any, Dict


class EngineError(Exception):
    """Base for all engine errors. `code` is stable, `message` is for humans."""

    code: str = "ENGINE_ERROR"

    def __init__(self, message: str, *, code: str | None = None, **meta: Any) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.meta: Dict[str, Any] = meta

    def to_dict(self) -> Dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message, "meta": self.meta}}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code}, message={self.message!r})"


# --- not found ---


class NotFoundError(EngineError):
    code = "NOT_FOUND"


class EncounterNotFoundError(NotFoundError):
    code = "UNKNOWN_ENCOUNTER"

    def __init__(self, encounter_id: str) -> None:
        super().__init__(
            f"Encounter {encounter_id} not found", encounter_id=encounter_id
        )


class CombatantNotFoundError(NotFoundError):
    code = "UNKNOWN_COMBATANT"

    def __init__(self, combatant_id: str) -> None:
        super().__init__(
            f"Combatant {combatant_id} not found", combatant_id=combatant_id
        )


class SpellNotFoundError(NotFoundError):
    code = "UNKNOWN_SPELL"

    def __init__(self, spell_id: str) -> None:
        super().__init__(f"Spell {spell_id} not found", spell_id=spell_id)


class SpellcasterNotFoundError(NotFoundError):
    code = "UNKNOWN_SPELLCASTER"

    def __init__(self, caster_id: str) -> None:
        super().__init__(f"Spellcaster {caster_id} not found", caster_id=caster_id)


# --- illegal state: the request is well-formed but not allowed right now ---


class IllegalStateError(EngineError):
    code = "ILLEGAL_STATE"


class PhaseError(IllegalStateError):
    code = "BAD_PHASE"


class ActionEconomyError(IllegalStateError):
    code = "ACTION_UNAVAILABLE"


class InsufficientMovementError(IllegalStateError):
    code = "NOT_ENOUGH_MOVEMENT"


class NoSpellSlotError(IllegalStateError):
    code = "NO_SPELL_SLOT"


class SpellNotKnownError(IllegalStateError):
    code = "SPELL_NOT_KNOWN"


class NotConcentratingError(IllegalStateError):
    code = "NOT_CONCENTRATING"


# --- malformed request ---


class RuleValidationError(EngineError):
    code = "INVALID_REQUEST"


class DiceExpressionError(RuleValidationError, ValueError):
    code = "BAD_DICE_EXPRESSION"
