from __future__ import annotations

from typing import Dict, Generic, List, Optional, Protocol, TypeVar

T = TypeVar("T")


class Repository(Protocol[T]):
    """Keyed store injected into the engines. Implementations own their storage."""

    def get(self, key: str) -> Optional[T]: ...

    def put(self, key: str, value: T) -> None: ...

    def remove(self, key: str) -> bool: ...

    def list(self) -> List[T]: ...


class InMemoryRepository(Generic[T]):
    def __init__(self) -> None:
        self._items: Dict[str, T] = {}

    def get(self, key: str) -> Optional[T]:
        return self._items.get(key)

    def put(self, key: str, value: T) -> None:
        self._items[key] = value

    def remove(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def list(self) -> List[T]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items
