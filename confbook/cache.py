"""TTL cache for room listings, dropped wholesale whenever a room changes."""
from __future__ import annotations

from typing import Generic, Iterable, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class ListingCache(Generic[T]):
    def __init__(self, ttl: int, maxsize: int = 256) -> None:
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=ttl)

    @staticmethod
    def key(
        min_capacity: Optional[int] = None,
        location: Optional[str] = None,
        amenities: Optional[Iterable[str]] = None,
        include_inactive: bool = False,
    ) -> str:
        wanted = ",".join(sorted(set(amenities or [])))
        return f"rooms:{min_capacity or ''}:{(location or '').lower()}:{wanted}:{int(include_inactive)}"

    def get(self, key: str) -> Optional[T]:
        return self._cache.get(key)

    def set(self, key: str, value: T) -> None:
        self._cache[key] = value

    def invalidate(self) -> None:
        self._cache.clear()
