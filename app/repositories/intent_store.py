"""Storage contract for cached classifications and learned patterns."""

from typing import Dict, List, Optional, Protocol, runtime_checkable

from app.models.cache_entry import CacheEntry, IntentPattern, UserPattern


@runtime_checkable
class IntentStore(Protocol):
    """Narrow read/write contract used by ``IntentCacheManager``.

    Writes replace whole records. Implementations must never expose a
    partially written record to a concurrent reader.
    """

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        ...

    async def put_entry(self, entry: CacheEntry) -> None:
        ...

    async def delete_entry(self, key: str) -> None:
        ...

    async def list_entries(self) -> List[CacheEntry]:
        ...

    async def count_entries(self) -> int:
        ...

    async def get_pattern(self, key: str) -> Optional[IntentPattern]:
        ...

    async def put_pattern(self, pattern: IntentPattern) -> None:
        ...

    async def delete_pattern(self, key: str) -> None:
        ...

    async def list_patterns(self) -> List[IntentPattern]:
        ...

    async def get_user_pattern(self, user_id: str) -> Optional[UserPattern]:
        ...

    async def put_user_pattern(self, pattern: UserPattern) -> None:
        ...

    async def delete_user_pattern(self, user_id: str) -> None:
        ...

    async def list_user_patterns(self) -> List[UserPattern]:
        ...

    async def clear(self) -> None:
        ...


class InMemoryIntentStore:
    """Per-process dictionary store; each instance is fully isolated."""

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._patterns: Dict[str, IntentPattern] = {}
        self._user_patterns: Dict[str, UserPattern] = {}

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def put_entry(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    async def delete_entry(self, key: str) -> None:
        self._entries.pop(key, None)

    async def list_entries(self) -> List[CacheEntry]:
        return list(self._entries.values())

    async def count_entries(self) -> int:
        return len(self._entries)

    async def get_pattern(self, key: str) -> Optional[IntentPattern]:
        return self._patterns.get(key)

    async def put_pattern(self, pattern: IntentPattern) -> None:
        self._patterns[pattern.key] = pattern

    async def delete_pattern(self, key: str) -> None:
        self._patterns.pop(key, None)

    async def list_patterns(self) -> List[IntentPattern]:
        return list(self._patterns.values())

    async def get_user_pattern(self, user_id: str) -> Optional[UserPattern]:
        return self._user_patterns.get(user_id)

    async def put_user_pattern(self, pattern: UserPattern) -> None:
        self._user_patterns[pattern.user_id] = pattern

    async def delete_user_pattern(self, user_id: str) -> None:
        self._user_patterns.pop(user_id, None)

    async def list_user_patterns(self) -> List[UserPattern]:
        return list(self._user_patterns.values())

    async def clear(self) -> None:
        self._entries.clear()
        self._patterns.clear()
        self._user_patterns.clear()


__all__ = ["InMemoryIntentStore", "IntentStore"]
