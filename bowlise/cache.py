"""
Composite-key cache for per-subject, per-target lookups.

Entries are keyed by the (subject_id, target_id) tuple, so ids may contain
any character without two distinct pairs colliding.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Generic, TypeVar

V = TypeVar("V")


class SubjectTargetCache(Generic[V]):
    """
    Unbounded cache of values per (subject, target) pair.

    Features:
    - Tuple keys, no string delimiter
    - No TTL and no eviction; entries live until invalidated or cleared
    - Values may be exceptions (negative cache), stored verbatim
    """

    def __init__(self, name: str = "cache"):
        self.name = name
        self._entries: dict[tuple[str, str], V] = {}
        # Bumped by invalidate() per key and by clear() for every key
        self._generations: dict[tuple[str, str], int] = {}
        self._epoch = 0

    @staticmethod
    def _make_key(subject_id: str, target_id: str) -> tuple[str, str]:
        return (subject_id, target_id)

    def contains(self, subject_id: str, target_id: str) -> bool:
        return self._make_key(subject_id, target_id) in self._entries

    def get(self, subject_id: str, target_id: str) -> V | None:
        """
        Get a cached value.

        Args:
            subject_id: Subject identifier
            target_id: Target identifier

        Returns:
            Cached value or None if not present
        """
        return self._entries.get(self._make_key(subject_id, target_id))

    def put(self, subject_id: str, target_id: str, value: V) -> None:
        """Store a value, replacing any previous entry for the pair."""
        self._entries[self._make_key(subject_id, target_id)] = value

    def generation(self, subject_id: str, target_id: str) -> tuple[int, int]:
        """
        Token that changes whenever the pair is invalidated or the cache cleared.

        Take it before awaiting a backend and hand it to put_if_current().
        """
        return (self._epoch, self._generations.get(self._make_key(subject_id, target_id), 0))

    def put_if_current(
        self, subject_id: str, target_id: str, value: V, generation: tuple[int, int]
    ) -> bool:
        """
        Store a value unless the pair was invalidated since generation was taken.

        Returns:
            True if the value was stored
        """
        if self.generation(subject_id, target_id) != generation:
            return False
        self.put(subject_id, target_id, value)
        return True

    def invalidate(self, subject_id: str, target_id: str) -> bool:
        """
        Remove the entry for a pair.

        Returns:
            True if an entry was removed
        """
        key = self._make_key(subject_id, target_id)
        self._generations[key] = self._generations.get(key, 0) + 1
        return self._entries.pop(key, None) is not None

    def missing(self, subject_id: str, target_ids: Iterable[str]) -> list[str]:
        """
        Target ids with no cached entry for the subject.

        Order of first appearance is kept and duplicates are dropped, so the
        result can be sent to a backend as-is.
        """
        seen: set[str] = set()
        result: list[str] = []
        for target_id in target_ids:
            if target_id in seen:
                continue
            seen.add(target_id)
            if not self.contains(subject_id, target_id):
                result.append(target_id)
        return result

    def clear(self) -> None:
        """Clear all cached entries."""
        self._entries.clear()
        self._generations.clear()
        self._epoch += 1

    def size(self) -> int:
        """Get current number of cached entries."""
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with entry count and how many entries hold errors
        """
        errors = sum(1 for value in self._entries.values() if isinstance(value, Exception))
        return {
            "name": self.name,
            "size": len(self._entries),
            "errors": errors,
        }
