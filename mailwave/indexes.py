"""
Tabular Index Builder
Purpose: Turn ordered input records into read-only lookup structures.
Unique indexes are last-write-wins; multi indexes keep every record per key
in input order. Empty keys and collisions are counted, never fatal.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .exceptions import CriticalInputError


@dataclass(frozen=True)
class IndexStats:
    name: str
    records: int
    keys: int
    empty_keys: int
    duplicates: int

    @property
    def clean(self) -> bool:
        return self.empty_keys == 0 and self.duplicates == 0


class _FrozenIndex(Mapping):
    """Immutable mapping carrying the stats gathered while it was built"""

    def __init__(self, data: Dict[Any, Any], stats: IndexStats):
        self._data = MappingProxyType(data)
        self.stats = stats

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self) -> Iterator:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.stats.name!r}, keys={len(self)})"


class UniqueIndex(_FrozenIndex):
    pass


class MultiIndex(_FrozenIndex):
    def get_all(self, key) -> Tuple:
        return self._data.get(key, ())

    def first(self, key) -> Optional[Any]:
        bucket = self._data.get(key)
        return bucket[0] if bucket else None


def _keys_of(value: Any, multi_key: bool) -> List[Any]:
    if multi_key:
        return [k for k in (value or ()) if k]
    return [value] if value else []


def build_unique_index(
    records: Optional[Iterable[Any]],
    key_fn: Callable[[Any], Any],
    name: str = "index",
    multi_key: bool = False,
) -> UniqueIndex:
    """Key -> record; a later record with the same key replaces the earlier one."""
    data: Dict[Any, Any] = {}
    total = empty = dupes = 0
    for record in records or ():
        total += 1
        keys = _keys_of(key_fn(record), multi_key)
        if not keys:
            empty += 1
            continue
        for key in keys:
            if key in data:
                dupes += 1
            data[key] = record
    return UniqueIndex(data, IndexStats(name, total, len(data), empty, dupes))


def build_multi_index(
    records: Optional[Iterable[Any]],
    key_fn: Callable[[Any], Any],
    name: str = "index",
    multi_key: bool = False,
) -> MultiIndex:
    """Key -> tuple of records in input order."""
    buckets: Dict[Any, List[Any]] = {}
    total = empty = 0
    for record in records or ():
        total += 1
        keys = _keys_of(key_fn(record), multi_key)
        if not keys:
            empty += 1
            continue
        for key in keys:
            bucket = buckets.setdefault(key, [])
            # one record listed under the same key twice is a single entry
            if not any(r is record for r in bucket):
                bucket.append(record)
    data = {k: tuple(v) for k, v in buckets.items()}
    # in a multi index a shared key is expected, not a collision
    return MultiIndex(data, IndexStats(name, total, len(data), empty, 0))


def require_records(records: Optional[Sequence[Any]], name: str, critical: bool) -> bool:
    """
    Check that an input collection has rows.

    Critical inputs raise CriticalInputError when empty; non-critical ones
    return False so the caller can warn and continue with an empty index.
    """
    if records is None or len(records) == 0:
        if critical:
            raise CriticalInputError(name, "missing or empty")
        return False
    return True
