from __future__ import annotations

from typing import Dict, List, Optional

from vttengine.core.errors import SpellNotFoundError
from vttengine.core.engine.spells.definitions import Spell


class SpellRepository:
    """Spell catalogue owned by whoever constructs it; there is no global registry."""

    def __init__(self, spells: Optional[List[Spell]] = None) -> None:
        self._spells: Dict[str, Spell] = {}
        for spell in spells or []:
            self.add(spell)

    def add(self, spell: Spell) -> None:
        self._spells[spell.id] = spell

    def get(self, spell_id: str) -> Optional[Spell]:
        return self._spells.get(spell_id)

    def require(self, spell_id: str) -> Spell:
        spell = self._spells.get(spell_id)
        if spell is None:
            raise SpellNotFoundError(spell_id)
        return spell

    def list(self) -> List[Spell]:
        return sorted(self._spells.values(), key=lambda s: (s.level, s.id))

    def for_class(self, class_name: str, max_level: Optional[int] = None) -> List[Spell]:
        name = class_name.lower()
        return [
            s
            for s in self.list()
            if name in s.classes and (max_level is None or s.level <= max_level)
        ]

    def search(self, query: str) -> List[Spell]:
        term = query.lower()
        return [
            s
            for s in self.list()
            if term in s.name.lower() or term in s.school or term in s.description.lower()
        ]

    def clear(self) -> None:
        self._spells.clear()

    def __contains__(self, spell_id: object) -> bool:
        return spell_id in self._spells

    def __len__(self) -> int:
        return len(self._spells)
