"""
Single-flight TTL cache for personalized rankings.

Lifecycle: construct → get / set / get_or_compute → invalidate / clear →
sweep. One instance is injected into the recommendation engine; nothing is
module-global.

Concurrency model
-----------------
- One ``threading.Lock`` guards the entry and in-flight maps. It is held only
  for dictionary bookkeeping, never while a computation runs, so reads of
  unrelated keys never wait on a slow computation.
- Concurrent misses for the same key collapse into one computation: the
  first caller (the leader) computes; later callers (followers) wait on the
  leader's ``threading.Event``.
- A follower that finds an expired entry still inside ``stale_grace_seconds``
  returns it immediately instead of waiting.
- A follower's ``wait_timeout`` only abandons that follower's wait
  (``CacheWaitTimeout``); the leader keeps computing for everyone else.
- ``invalidate`` / ``clear`` take effect for the next read and detach any
  in-flight computation for the dropped keys: it still answers its waiters
  but is not written back. Each invalidation bumps ``generation``.

Expiry uses the monotonic clock; ``cached_at`` reported to callers is wall
clock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Hashable, Literal, Optional

from validator_analytics.errors import CacheCorruptionError, CacheWaitTimeout
from validator_analytics.utils.time_utils import monotonic, utcnow

logger = logging.getLogger(__name__)

LookupStatus = Literal["fresh", "cached", "stale"]


@dataclass
class _Entry:
    value: Any
    expires_at: float
    cached_at: datetime


@dataclass
class _Flight:
    event: threading.Event = field(default_factory=threading.Event)
    value: Any = None
    error: Optional[BaseException] = None
    cached_at: Optional[datetime] = None


@dataclass(frozen=True)
class CacheLookup:
    """Value returned by ``get_or_compute`` plus how it was obtained.

    ``status``: ``"fresh"`` (computed for this call or a concurrent identical
    call), ``"cached"`` (unexpired entry) or ``"stale"`` (expired entry served
    inside the grace window while another caller recomputes).
    """

    value: Any
    status: LookupStatus
    cached_at: Optional[datetime]


def _key_matches_prefix(key: Hashable, prefix: Hashable) -> bool:
    if isinstance(key, tuple):
        prefix_t = prefix if isinstance(prefix, tuple) else (prefix,)
        return key[: len(prefix_t)] == prefix_t
    if isinstance(key, str) and isinstance(prefix, str):
        return key.startswith(prefix)
    return key == prefix


class SingleFlightCache:
    """Thread-safe TTL cache with single-flight de-duplication.

    Args:
        default_ttl: Seconds an entry stays fresh.
        stale_grace: Seconds after expiry an entry may still be served to
            followers while a refresh is in flight.
        value_type: If given, every stored value must be an instance of it;
            a mismatch raises ``CacheCorruptionError`` and evicts the entry.
        clock: Monotonic seconds source (injectable for tests).
    """

    def __init__(
        self,
        default_ttl: float = 1800.0,
        stale_grace: float = 300.0,
        value_type: Optional[type] = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.stale_grace = stale_grace
        self.value_type = value_type
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}
        self._flights: dict[Hashable, _Flight] = {}
        self._generation = 0
        self._stats = {
            "hits": 0,
            "stale_hits": 0,
            "misses": 0,
            "computations": 0,
            "waits": 0,
            "timeouts": 0,
            "errors": 0,
            "invalidations": 0,
            "evictions": 0,
        }

    # ── Basic operations ───────────────────────────────────────────────────────

    def _check_type(self, key: Hashable, entry: _Entry) -> None:
        """Evict and raise if the entry holds the wrong type. Caller holds the lock."""
        if self.value_type is not None and not isinstance(entry.value, self.value_type):
            del self._entries[key]
            self._stats["errors"] += 1
            raise CacheCorruptionError(str(key), type(entry.value).__name__)

    def get(self, key: Hashable) -> Any:
        """Return the unexpired value for ``key``, or ``None``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() >= entry.expires_at:
                self._stats["misses"] += 1
                return None
            self._check_type(key, entry)
            self._stats["hits"] += 1
            return entry.value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = _Entry(value, self._clock() + ttl, utcnow())

    def invalidate(self, key: Hashable) -> bool:
        """Drop ``key`` and detach any in-flight computation. Returns whether anything was dropped."""
        with self._lock:
            self._generation += 1
            self._stats["invalidations"] += 1
            dropped = self._entries.pop(key, None) is not None
            detached = self._flights.pop(key, None) is not None
            return dropped or detached

    def invalidate_prefix(self, prefix: Hashable) -> int:
        """Drop every key starting with ``prefix``. Returns entries dropped."""
        with self._lock:
            self._generation += 1
            self._stats["invalidations"] += 1
            keys = [k for k in self._entries if _key_matches_prefix(k, prefix)]
            for k in keys:
                del self._entries[k]
            for k in [k for k in self._flights if _key_matches_prefix(k, prefix)]:
                del self._flights[k]
            return len(keys)

    def clear(self) -> int:
        with self._lock:
            self._generation += 1
            self._stats["invalidations"] += 1
            count = len(self._entries)
            self._entries.clear()
            self._flights.clear()
            return count

    def sweep(self) -> int:
        """Remove entries past expiry plus the stale grace window. Returns count removed."""
        with self._lock:
            now = self._clock()
            expired = [
                k for k, e in self._entries.items()
                if now >= e.expires_at + self.stale_grace
            ]
            for k in expired:
                del self._entries[k]
            self._stats["evictions"] += len(expired)
        if expired:
            logger.debug("Cache sweep removed %d entries", len(expired))
        return len(expired)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            now = self._clock()
            fresh = sum(1 for e in self._entries.values() if now < e.expires_at)
            return {
                **self._stats,
                "entries": len(self._entries),
                "fresh_entries": fresh,
                "in_flight": len(self._flights),
                "generation": self._generation,
                "default_ttl": self.default_ttl,
                "stale_grace": self.stale_grace,
            }

    # ── Single-flight ─────────────────────────────────────────────────────────

    def get_or_compute(
        self,
        key: Hashable,
        compute: Callable[[], Any],
        ttl: Optional[float] = None,
        wait_timeout: Optional[float] = None,
        force_refresh: bool = False,
    ) -> CacheLookup:
        """Return the cached value for ``key`` or compute it exactly once.

        Args:
            key: Cache key.
            compute: Zero-argument callable producing the value.
            ttl: Entry lifetime; defaults to ``default_ttl``.
            wait_timeout: Seconds a follower waits for the leader; ``None``
                waits indefinitely.
            force_refresh: Skip the cached and stale entry and recompute
                (still single-flight with concurrent callers).

        Raises:
            CacheCorruptionError: The stored entry has the wrong type.
            CacheWaitTimeout: This follower gave up waiting.
            Exception: Whatever ``compute`` raised, re-raised to the leader and
                every follower waiting on it.
        """
        ttl = self.default_ttl if ttl is None else ttl

        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None:
                self._check_type(key, entry)
            if entry is not None and not force_refresh and now < entry.expires_at:
                self._stats["hits"] += 1
                return CacheLookup(entry.value, "cached", entry.cached_at)

            self._stats["misses"] += 1
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[key] = flight
            elif (
                entry is not None
                and not force_refresh
                and now < entry.expires_at + self.stale_grace
            ):
                self._stats["stale_hits"] += 1
                return CacheLookup(entry.value, "stale", entry.cached_at)
            else:
                self._stats["waits"] += 1

        if not leader:
            return self._follow(key, flight, wait_timeout)
        return self._lead(key, flight, compute, ttl)

    def _follow(
        self, key: Hashable, flight: _Flight, wait_timeout: Optional[float]
    ) -> CacheLookup:
        if not flight.event.wait(wait_timeout):
            with self._lock:
                self._stats["timeouts"] += 1
            logger.warning("Gave up waiting %.1fs for in-flight key %s", wait_timeout, key)
            raise CacheWaitTimeout(str(key), wait_timeout or 0.0)
        if flight.error is not None:
            raise flight.error
        return CacheLookup(flight.value, "fresh", flight.cached_at)

    def _lead(
        self,
        key: Hashable,
        flight: _Flight,
        compute: Callable[[], Any],
        ttl: float,
    ) -> CacheLookup:
        with self._lock:
            self._stats["computations"] += 1
        try:
            value = compute()
        except BaseException as exc:
            flight.error = exc
            with self._lock:
                self._stats["errors"] += 1
                if self._flights.get(key) is flight:
                    del self._flights[key]
            flight.event.set()
            raise

        cached_at = utcnow()
        with self._lock:
            if self._flights.get(key) is flight:
                del self._flights[key]
                self._entries[key] = _Entry(value, self._clock() + ttl, cached_at)
            else:
                logger.debug("Cache key %s invalidated during computation; not stored", key)

        flight.value = value
        flight.cached_at = cached_at
        flight.event.set()
        return CacheLookup(value, "fresh", cached_at)
