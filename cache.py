"""
Valuation cache — TTL memoization over derived stock results.

Keys are (kind, id, cutoff-or-"current"). Entries carry a write timestamp
and a TTL; a read past expiry is a miss and evicts the stale entry.

Invalidation is explicit. Nothing here watches the ledger: every write
path that appends a movement must call invalidate()/invalidate_lot() for
each affected id before trusting the next read. A missed call serves
stale values until the TTL runs out.

Usage:
    cache = ValuationCache()
    cache.set(CacheKind.POSITION, 7, None, result)
    cache.get(CacheKind.POSITION, 7)            # result
    cache.invalidate(7)
    cache.get(CacheKind.POSITION, 7) is MISS    # True
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable

from costman.conf import costman_settings

logger = logging.getLogger('costman')


class CacheKind:
    LOT = 'lot'            # derive_lot_stock results
    POSITION = 'position'  # derive_position_stock results
    LOTS = 'lots'          # available-lots lists
    BALANCE = 'balance'    # stock balance report rows

    ALL = (LOT, POSITION, LOTS, BALANCE)
    # kinds keyed by position id
    POSITION_SCOPED = (POSITION, LOTS, BALANCE)


class _Miss:
    __slots__ = ()

    def __bool__(self):
        return False

    def __repr__(self):
        return 'MISS'


MISS = _Miss()

CURRENT = 'current'


def cutoff_key(cutoff: date | None) -> str:
    return cutoff.isoformat() if cutoff is not None else CURRENT


@dataclass
class CacheEntry:
    """A cached value with its write time and TTL (seconds)."""

    value: Any
    written_at: float
    ttl: float
    owner: int | None = None  # position id that owns a lot entry

    def is_expired(self, now: float) -> bool:
        return now - self.written_at > self.ttl


class ValuationCache:
    """
    In-memory map of derived results, safe for concurrent readers and writers.

    Pass one instance explicitly to the services that share it; there is
    no module-level cache. ``clock`` returns seconds and is injectable so
    tests can move time forward.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 enabled: bool | None = None):
        self._clock = clock
        self._enabled = enabled
        self._entries: dict[tuple[str, int, str], CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        if self._enabled is not None:
            return self._enabled
        return costman_settings.CACHE_ENABLED

    @staticmethod
    def ttl_for(kind: str) -> int:
        """TTL class per kind: short for lots, long for aggregates."""
        if kind == CacheKind.LOT:
            return costman_settings.CACHE_TTL_SHORT
        if kind == CacheKind.BALANCE:
            return costman_settings.CACHE_TTL_LONG
        return costman_settings.CACHE_TTL_DEFAULT

    # ══════════════════════════════════════════════════════════════
    # READ / WRITE
    # ══════════════════════════════════════════════════════════════

    def get(self, kind: str, id: int, cutoff: date | None = None) -> Any:
        """Cached value, or MISS if absent, expired or the cache is off."""
        if not self.enabled:
            return MISS
        key = (kind, id, cutoff_key(cutoff))
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return MISS
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return MISS
            return entry.value

    def set(self, kind: str, id: int, cutoff: date | None, value: Any,
            ttl: float | None = None, owner: int | None = None) -> None:
        if not self.enabled:
            return
        key = (kind, id, cutoff_key(cutoff))
        entry = CacheEntry(
            value=value,
            written_at=self._clock(),
            ttl=self.ttl_for(kind) if ttl is None else ttl,
            owner=owner,
        )
        with self._lock:
            self._entries[key] = entry

    # ══════════════════════════════════════════════════════════════
    # INVALIDATION
    # ══════════════════════════════════════════════════════════════

    def invalidate(self, position_id: int) -> int:
        """
        Drop every entry derived from a position, at every cutoff.

        Includes lot entries owned by the position: a lot's remaining
        quantity can move when a weighted-average sale drains the pool.
        """
        with self._lock:
            doomed = [
                key for key, entry in self._entries.items()
                if (key[0] in CacheKind.POSITION_SCOPED and key[1] == position_id)
                or (key[0] == CacheKind.LOT and entry.owner == position_id)
            ]
            for key in doomed:
                del self._entries[key]
        logger.debug(
            "costman.cache.invalidated",
            extra={"position_id": position_id, "entries": len(doomed)},
        )
        return len(doomed)

    def invalidate_lot(self, lot_id: int) -> int:
        """Drop every cached stock result of a lot, at every cutoff."""
        with self._lock:
            doomed = [
                key for key in self._entries
                if key[0] == CacheKind.LOT and key[1] == lot_id
            ]
            for key in doomed:
                del self._entries[key]
        logger.debug(
            "costman.cache.invalidated",
            extra={"lot_id": lot_id, "entries": len(doomed)},
        )
        return len(doomed)

    def invalidate_many(self, position_ids: Iterable[int]) -> int:
        return sum(self.invalidate(pid) for pid in set(position_ids))

    # ══════════════════════════════════════════════════════════════
    # MAINTENANCE
    # ══════════════════════════════════════════════════════════════

    def sweep_expired(self) -> int:
        """
        Evict expired entries. Memory hygiene only; reads already
        ignore expired entries, so calling this is never required.
        """
        now = self._clock()
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("costman.cache.swept", extra={"entries": len(doomed)})
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, dict[str, int]]:
        """Entry counts per kind, with how many are already expired."""
        now = self._clock()
        result = {kind: {'total': 0, 'expired': 0} for kind in CacheKind.ALL}
        with self._lock:
            for (kind, _id, _cutoff), entry in self._entries.items():
                bucket = result.setdefault(kind, {'total': 0, 'expired': 0})
                bucket['total'] += 1
                if entry.is_expired(now):
                    bucket['expired'] += 1
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
