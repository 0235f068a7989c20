"""
TTL result cache for derived correlation results.

Entries are keyed by (user, cause, effect[, discriminators]) and rendered
as ``correlation:{user}:{cause}:{effect}[:extra...]``.  Reads evict
expired entries lazily; ``invalidate_by_cause`` / ``invalidate_by_effect``
drop everything that references an identity as soon as a new event for it
is logged.

Writes for the same key are serialised with a per-key asyncio.Lock; the
last write wins.  Storage goes through a small backend protocol so the
in-memory default can be swapped for a shared store.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Protocol, Tuple

import config
from models import utcnow

log = logging.getLogger("pipeline.result_cache")

KEY_PREFIX = "correlation"


class CacheKey(NamedTuple):
    user_id: str
    cause_id: str
    effect_id: str
    extra: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return ":".join((KEY_PREFIX, self.user_id, self.cause_id, self.effect_id) + tuple(self.extra))


@dataclass
class CacheEntry:
    key: CacheKey
    value: Any
    computed_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CacheBackend(Protocol):
    async def get(self, key: CacheKey) -> Optional[CacheEntry]: ...

    async def set(self, entry: CacheEntry) -> None: ...

    async def delete(self, key: CacheKey) -> None: ...

    async def invalidate(self, predicate: Callable[[CacheEntry], bool]) -> int: ...

    async def entries(self, user_id: Optional[str] = None) -> List[CacheEntry]: ...


class MemoryCacheBackend:
    def __init__(self):
        self._entries: Dict[CacheKey, CacheEntry] = {}

    async def get(self, key):
        return self._entries.get(key)

    async def set(self, entry):
        self._entries[entry.key] = entry

    async def delete(self, key):
        self._entries.pop(key, None)

    async def invalidate(self, predicate):
        doomed = [k for k, e in self._entries.items() if predicate(e)]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    async def entries(self, user_id=None):
        return [e for e in self._entries.values() if user_id is None or e.key.user_id == user_id]


class ResultCache:
    """Async memoisation of derived results with TTL and identity invalidation."""

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        default_ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.backend = backend or MemoryCacheBackend()
        self.default_ttl = default_ttl or timedelta(hours=config.CACHE_TTL_HOURS)
        self.clock = clock
        self._locks: Dict[CacheKey, asyncio.Lock] = {}

    @staticmethod
    def make_key(user_id: str, cause_id: str, effect_id: str, *extra: Any) -> CacheKey:
        return CacheKey(user_id, cause_id, effect_id, tuple(str(x) for x in extra))

    def _lock_for(self, key: CacheKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get(self, key: CacheKey) -> Optional[Any]:
        """Cached value, or None on a miss.  Expired entries are evicted."""
        entry = await self.backend.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock()):
            async with self._lock_for(key):
                current = await self.backend.get(key)
                if current is not None and current.is_expired(self.clock()):
                    await self.backend.delete(key)
            await self._prune_locks()
            return None
        return entry.value

    async def set(self, key: CacheKey, value: Any, ttl: Optional[timedelta] = None) -> CacheEntry:
        now = self.clock()
        ttl = ttl if ttl is not None else self.default_ttl
        entry = CacheEntry(key=key, value=value, computed_at=now, expires_at=now + ttl)
        async with self._lock_for(key):
            await self.backend.set(entry)
        return entry

    async def _prune_locks(self) -> None:
        """Forget locks for keys the backend no longer holds."""
        live = {e.key for e in await self.backend.entries()}
        for key in [k for k, lock in self._locks.items() if k not in live and not lock.locked()]:
            del self._locks[key]

    async def _invalidate(self, predicate: Callable[[CacheEntry], bool]) -> int:
        count = await self.backend.invalidate(predicate)
        await self._prune_locks()
        return count

    async def invalidate(self, user_id: str, cause_id: str, effect_id: str) -> int:
        """Drop every entry for one (user, cause, effect) pair, whatever its extras."""
        count = await self._invalidate(
            lambda e: e.key.user_id == user_id and e.key.cause_id == cause_id and e.key.effect_id == effect_id
        )
        log.debug("Invalidated %d entries for %s -> %s (user %s)", count, cause_id, effect_id, user_id)
        return count

    async def invalidate_by_cause(self, user_id: str, cause_id: str) -> int:
        count = await self._invalidate(
            lambda e: e.key.user_id == user_id and e.key.cause_id == cause_id
        )
        log.debug("Invalidated %d entries for cause %s (user %s)", count, cause_id, user_id)
        return count

    async def invalidate_by_effect(self, user_id: str, effect_id: str) -> int:
        count = await self._invalidate(
            lambda e: e.key.user_id == user_id and e.key.effect_id == effect_id
        )
        log.debug("Invalidated %d entries for effect %s (user %s)", count, effect_id, user_id)
        return count

    async def invalidate_user(self, user_id: str) -> int:
        return await self._invalidate(lambda e: e.key.user_id == user_id)

    async def cleanup_expired(self, user_id: Optional[str] = None) -> int:
        now = self.clock()
        return await self._invalidate(
            lambda e: (user_id is None or e.key.user_id == user_id) and e.is_expired(now)
        )

    async def delete_older_than(self, user_id: str, cutoff: datetime) -> int:
        """Drop a user's entries computed before ``cutoff``."""
        return await self._invalidate(
            lambda e: e.key.user_id == user_id and e.computed_at < cutoff
        )

    async def latest_computed_at(self, user_id: str, tag: Optional[str] = None) -> Optional[datetime]:
        """Newest unexpired computed_at, optionally among entries whose extras hold ``tag``."""
        now = self.clock()
        stamps = [
            e.computed_at for e in await self.backend.entries(user_id)
            if not e.is_expired(now) and (tag is None or tag in e.key.extra)
        ]
        return max(stamps) if stamps else None

    async def values(self, user_id: str, tag: Optional[str] = None) -> List[Any]:
        now = self.clock()
        return [
            e.value for e in await self.backend.entries(user_id)
            if not e.is_expired(now) and (tag is None or tag in e.key.extra)
        ]

    async def stats(self, user_id: Optional[str] = None) -> Dict[str, int]:
        now = self.clock()
        entries = await self.backend.entries(user_id)
        expired = sum(1 for e in entries if e.is_expired(now))
        return {"total": len(entries), "expired": expired, "active": len(entries) - expired}
