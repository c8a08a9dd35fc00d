"""
Analytics Cache with Redis Support
==================================

Per-dataset TTL cache for composed analytics results:
- AnalyticsCache: lock-guarded get / set / get_or_compute with expiry,
  10% eviction when full and stats
- MemoryCacheBackend: in-process dict store (default)
- RedisCacheBackend: pickled entries with native redis TTLs
- RefreshScheduler: daemon timer that re-runs a refresh callback

Backend failures surface as CacheUnavailable inside the backends; the cache
logs them and behaves as a miss / dropped write so callers recompute.
"""

import logging
import math
import pickle
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import redis

from .errors import CacheUnavailable
from .instrumentation import cache_entries, cache_requests_total
from .models import DatasetKind

logger = logging.getLogger(__name__)

# Seconds each dataset kind stays fresh
DEFAULT_TTLS: Dict[DatasetKind, float] = {
    DatasetKind.REAL_TIME_STATS: 30,
    DatasetKind.MARKET_DATA: 60,
    DatasetKind.PAYMENT_METHODS: 120,
    DatasetKind.RETIREMENTS: 120,
    DatasetKind.CERTIFICATES: 300,
    DatasetKind.SUPPLY: 300,
    DatasetKind.TOKENIZATION: 300,
    DatasetKind.ANALYTICS_LISTS: 300,
    DatasetKind.HISTORICAL: 900,
}

EVICTION_FRACTION = 0.10

_MISSING = object()


# ============================================================================
# ENTRIES & STATS
# ============================================================================

@dataclass(frozen=True)
class CacheEntry:
    """Immutable cached value; replaced wholesale, never mutated"""
    value: Any
    stored_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    entries: int = 0
    hits: int = 0
    misses: int = 0
    errors: int = 0
    evictions: int = 0
    max_entries: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups * 100 if lookups else 0.0


# ============================================================================
# BACKENDS
# ============================================================================

class MemoryCacheBackend:
    """In-process entry store"""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry, ttl_seconds: float) -> None:
        try:
            self._entries[key] = entry
        except MemoryError as e:
            raise CacheUnavailable(f"memory cache write failed: {e}") from e

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._entries)

    def items(self) -> List[tuple]:
        return list(self._entries.items())

    def close(self) -> None:
        self._entries.clear()


class RedisCacheBackend:
    """Redis entry store; entries are pickled and expire via redis TTLs"""

    def __init__(self, client: "redis.Redis", prefix: str = "irec:cache:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "irec:cache:") -> "RedisCacheBackend":
        try:
            client = redis.Redis.from_url(url)
            client.ping()
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"redis not reachable at {url}: {e}") from e
        return cls(client, prefix)

    def _full(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self.client.get(self._full(key))
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"redis get failed: {e}") from e
        if raw is None:
            return None
        try:
            entry = pickle.loads(raw)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError, IndexError, TypeError, ValueError) as e:
            raise CacheUnavailable(f"corrupt redis entry {key}: {e}") from e
        if not isinstance(entry, CacheEntry):
            raise CacheUnavailable(f"unexpected redis entry {key}: {type(entry).__name__}")
        return entry

    def set(self, key: str, entry: CacheEntry, ttl_seconds: float) -> None:
        try:
            self.client.set(self._full(key), pickle.dumps(entry), ex=max(1, math.ceil(ttl_seconds)))
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"redis set failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._full(key))
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"redis delete failed: {e}") from e

    def keys(self) -> List[str]:
        try:
            raw_keys = list(self.client.scan_iter(match=f"{self.prefix}*"))
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(f"redis scan failed: {e}") from e
        keys = []
        for raw in raw_keys:
            name = raw.decode() if isinstance(raw, bytes) else raw
            keys.append(name[len(self.prefix):])
        return keys

    def items(self) -> List[tuple]:
        pairs = []
        for key in self.keys():
            entry = self.get(key)
            if entry is not None:
                pairs.append((key, entry))
        return pairs

    def close(self) -> None:
        self.client.close()


# ============================================================================
# CACHE
# ============================================================================

class AnalyticsCache:
    """
    TTL cache keyed by (dataset kind, key).

    Args:
        ttls: Seconds per dataset kind (missing kinds use DEFAULT_TTLS)
        max_entries: Capacity before the entries closest to expiry are evicted
        clock: Seconds source, injectable for tests
        backend: MemoryCacheBackend (default) or RedisCacheBackend
    """

    def __init__(
        self,
        ttls: Optional[Dict[DatasetKind, float]] = None,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
        backend=None,
    ):
        self.ttls = dict(DEFAULT_TTLS)
        if ttls:
            self.ttls.update(ttls)
        self.max_entries = max_entries
        self.clock = clock
        self.backend = backend or MemoryCacheBackend()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._errors = 0
        self._evictions = 0

    @staticmethod
    def _key(kind: DatasetKind, key: str) -> str:
        return f"{kind.value}:{key}"

    def ttl_for(self, kind: DatasetKind) -> float:
        return self.ttls[kind]

    def _record(self, kind: DatasetKind, result: str) -> None:
        cache_requests_total.labels(dataset=kind.value, result=result).inc()

    def _lookup(self, kind: DatasetKind, key: str) -> Any:
        full_key = self._key(kind, key)
        with self._lock:
            try:
                entry = self.backend.get(full_key)
                if entry is not None and entry.is_expired(self.clock()):
                    self.backend.delete(full_key)
                    entry = None
            except CacheUnavailable as e:
                self._errors += 1
                self._misses += 1
                self._record(kind, "error")
                logger.warning(f"Cache unavailable on read of {full_key}: {e}; recomputing")
                return _MISSING

            if entry is None:
                self._misses += 1
                self._record(kind, "miss")
                return _MISSING

            self._hits += 1
            self._record(kind, "hit")
            return entry.value

    def get(self, kind: DatasetKind, key: str) -> Optional[Any]:
        """Cached value, or None when absent / expired / unavailable"""
        value = self._lookup(kind, key)
        return None if value is _MISSING else value

    def set(self, kind: DatasetKind, key: str, value: Any) -> None:
        full_key = self._key(kind, key)
        ttl = self.ttl_for(kind)
        now = self.clock()
        entry = CacheEntry(value=value, stored_at=now, expires_at=now + ttl)

        with self._lock:
            try:
                existing = self.backend.keys()
                if full_key not in existing and len(existing) >= self.max_entries:
                    self._evict(now)
                self.backend.set(full_key, entry, ttl)
                cache_entries.set(len(self.backend.keys()))
            except CacheUnavailable as e:
                self._errors += 1
                logger.warning(f"Cache unavailable on write of {full_key}: {e}; value not cached")

    def get_or_compute(self, kind: DatasetKind, key: str, compute: Callable[[], Any]) -> Any:
        """Return the cached value or compute, store and return a fresh one"""
        value = self._lookup(kind, key)
        if value is not _MISSING:
            return value
        value = compute()
        self.set(kind, key, value)
        return value

    def _evict(self, now: float) -> None:
        """Drop expired entries, then the 10% of capacity closest to expiry"""
        entries = self.backend.items()
        expired = [k for k, e in entries if e.is_expired(now)]
        for key in expired:
            self.backend.delete(key)
        if len(entries) - len(expired) < self.max_entries:
            return

        live = sorted((e.expires_at, k) for k, e in entries if not e.is_expired(now))
        victims = max(1, int(self.max_entries * EVICTION_FRACTION))
        for _, key in live[:victims]:
            self.backend.delete(key)
        self._evictions += victims
        logger.debug(f"Evicted {victims} cache entries")

    def purge_expired(self) -> int:
        """Remove expired entries; returns how many were removed"""
        now = self.clock()
        with self._lock:
            try:
                expired = [k for k, e in self.backend.items() if e.is_expired(now)]
                for key in expired:
                    self.backend.delete(key)
                cache_entries.set(len(self.backend.keys()))
            except CacheUnavailable as e:
                self._errors += 1
                logger.warning(f"Cache unavailable during purge: {e}")
                return 0
        if expired:
            logger.debug(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    def clear(self, kind: Optional[DatasetKind] = None) -> None:
        """Drop every entry, or only those of one dataset kind"""
        with self._lock:
            try:
                for key in self.backend.keys():
                    if kind is None or key.startswith(f"{kind.value}:"):
                        self.backend.delete(key)
                cache_entries.set(len(self.backend.keys()))
            except CacheUnavailable as e:
                self._errors += 1
                logger.warning(f"Cache unavailable during clear: {e}")

    def stats(self) -> CacheStats:
        with self._lock:
            try:
                keys = self.backend.keys()
            except CacheUnavailable as e:
                logger.warning(f"Cache unavailable during stats: {e}")
                keys = []
            by_kind: Dict[str, int] = {k.value: 0 for k in DatasetKind}
            for key in keys:
                kind_name = key.split(":", 1)[0]
                by_kind[kind_name] = by_kind.get(kind_name, 0) + 1
            return CacheStats(
                entries=len(keys),
                hits=self._hits,
                misses=self._misses,
                errors=self._errors,
                evictions=self._evictions,
                max_entries=self.max_entries,
                by_kind=by_kind,
            )

    def close(self) -> None:
        self.backend.close()


def build_backend(redis_url: Optional[str]):
    """Redis backend when a URL is configured and reachable, else in-memory"""
    if not redis_url:
        return MemoryCacheBackend()
    try:
        backend = RedisCacheBackend.from_url(redis_url)
        logger.info(f"Using redis cache backend at {redis_url}")
        return backend
    except CacheUnavailable as e:
        logger.warning(f"Redis not available: {e}, using in-memory fallback")
        return MemoryCacheBackend()


# ============================================================================
# REFRESH SCHEDULER
# ============================================================================

class RefreshScheduler:
    """
    Re-runs `callback` every `interval` seconds on a daemon timer chain.

    start() while running replaces the pending timer. A tick that fires while
    the previous one is still running is skipped.
    """

    def __init__(self, callback: Callable[[], Any], interval: float = 60.0, name: str = "irec-refresh"):
        self.callback = callback
        self.interval = interval
        self.name = name
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._active = False
        self.ticks = 0
        self.skipped = 0

    @property
    def is_running(self) -> bool:
        return self._active

    def start(self, interval: Optional[float] = None) -> None:
        with self._lock:
            if interval is not None:
                self.interval = interval
            if self._timer is not None:
                self._timer.cancel()
            self._active = True
            self._schedule()
        logger.info(f"Refresh scheduler armed every {self.interval}s")

    def stop(self) -> None:
        with self._lock:
            self._active = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.info("Refresh scheduler stopped")

    def _schedule(self) -> None:
        timer = threading.Timer(self.interval, self._fire)
        timer.daemon = True
        timer.name = self.name
        self._timer = timer
        timer.start()

    def _fire(self) -> None:
        self.tick()
        with self._lock:
            # a start() during the tick already armed a replacement timer
            if self._active and threading.current_thread() is self._timer:
                self._schedule()

    def tick(self) -> bool:
        """Run the callback once unless a run is already in progress"""
        if not self._tick_lock.acquire(blocking=False):
            self.skipped += 1
            logger.warning("Refresh tick skipped: previous refresh still running")
            return False
        try:
            self.callback()
            self.ticks += 1
            logger.debug(f"Refresh tick {self.ticks} complete")
        except Exception as e:
            logger.error(f"Refresh tick failed: {e}", exc_info=True)
        finally:
            self._tick_lock.release()
        return True
