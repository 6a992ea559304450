from __future__ import annotations

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from vttengine.core.engine.state import CombatEncounter, Spellcaster
from vttengine.core.persistence.state_codec import (
    encounter_from_dict,
    encounter_to_dict,
    spellcaster_from_dict,
    spellcaster_to_dict,
)
from vttengine.db.models import EncounterSnapshot, SpellcasterSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _SqlSnapshotRepository(Generic[T]):
    """
    Write-through store of JSON snapshots.

    Live objects are kept in an identity map so every component holding an
    encounter sees the same instance; each `put` rewrites the row.
    """

    model: Type[Any]

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory
        self._live: Dict[str, T] = {}

    # subclass hooks
    def _encode(self, value: T) -> Dict[str, Any]:
        raise NotImplementedError

    def _decode(self, data: Dict[str, Any]) -> T:
        raise NotImplementedError

    def _columns(self, value: T) -> Dict[str, Any]:
        return {}

    def get(self, key: str) -> Optional[T]:
        if key in self._live:
            return self._live[key]
        with self.session_factory() as db:
            row = db.get(self.model, key)
            if row is None:
                return None
            value = self._decode(row.state_json)
        self._live[key] = value
        return value

    def put(self, key: str, value: T) -> None:
        self._live[key] = value
        state = self._encode(value)
        with self.session_factory() as db:
            row = db.get(self.model, key)
            if row is None:
                row = self.model(id=key, state_json=state, **self._columns(value))
                db.add(row)
            else:
                row.state_json = state
                for k, v in self._columns(value).items():
                    setattr(row, k, v)
            db.commit()
        logger.debug("%s %s saved", self.model.__tablename__, key)

    def remove(self, key: str) -> bool:
        self._live.pop(key, None)
        with self.session_factory() as db:
            row = db.get(self.model, key)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True

    def list(self) -> List[T]:
        with self.session_factory() as db:
            ids = db.scalars(select(self.model.id)).all()
        out: List[T] = []
        for key in ids:
            value = self.get(key)
            if value is not None:
                out.append(value)
        return out


class SqlEncounterRepository(_SqlSnapshotRepository[CombatEncounter]):
    model = EncounterSnapshot

    def _encode(self, value: CombatEncounter) -> Dict[str, Any]:
        return encounter_to_dict(value)

    def _decode(self, data: Dict[str, Any]) -> CombatEncounter:
        return encounter_from_dict(data)

    def _columns(self, value: CombatEncounter) -> Dict[str, Any]:
        return {"name": value.name, "phase": value.phase, "round": value.round}


class SqlSpellcasterRepository(_SqlSnapshotRepository[Spellcaster]):
    model = SpellcasterSnapshot

    def _encode(self, value: Spellcaster) -> Dict[str, Any]:
        return spellcaster_to_dict(value)

    def _decode(self, data: Dict[str, Any]) -> Spellcaster:
        return spellcaster_from_dict(data)

    def _columns(self, value: Spellcaster) -> Dict[str, Any]:
        return {"caster_class": value.caster_class}
