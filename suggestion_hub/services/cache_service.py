"""
Derived-Data Cache — tagged, TTL-bound, advisory.

Provides:
  - ``TaggedCache``: get / set(key, value, ttl, tags) / invalidate_tags / flush
  - Detail, list and statistics TTLs (5 min / 30 s / 10 min defaults)
  - Hit / miss counters and an expiry sweep for the housekeeping thread

Uses Redis when ``REDIS_URL`` points at a server, falls back to an in-process
dict for development/testing. The cache is never the source of truth: a miss
always falls through to the store, and flushing it at any time is safe.
"""

import json
import logging
import os
import threading
import time

from redis.exceptions import WatchError

logger = logging.getLogger(__name__)

# ── Default TTLs ─────────────────────────────────────────────────────────

DEFAULT_TTL = 300
LIST_TTL = 30          # list pages churn fast
DETAIL_TTL = 300       # 5 minutes
STATS_TTL = 600        # 10 minutes

# ── Tag builders ─────────────────────────────────────────────────────────

LIST_TAG = "suggestions:list"
STATS_TAG = "statistics"


def suggestion_tag(suggestion_id):
    return f"suggestion:{suggestion_id}"


def mutation_tags(suggestion_id):
    """Tags invalidated by any committed write to one suggestion."""
    return [suggestion_tag(suggestion_id), LIST_TAG, STATS_TAG]


# ── In-memory backend ────────────────────────────────────────────────────


class _MemoryBackend:
    """Dict cache with tag index for dev/testing."""

    name = "memory"

    def __init__(self):
        self._entries = {}   # key → (value_json, expire_ts)
        self._tags = {}      # tag → set(keys)
        self._generations = {}  # tag → int, bumped on every invalidation
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            val, expires = entry
            if expires and time.time() > expires:
                self._entries.pop(key, None)
                return None
            return val

    def generations(self, tags):
        with self._lock:
            return [self._generations.get(tag, 0) for tag in tags]

    def set(self, key, value, ttl_seconds, tags, generations=None):
        with self._lock:
            if generations is not None and list(generations) != [
                self._generations.get(tag, 0) for tag in tags
            ]:
                return False
            self._entries[key] = (value, time.time() + ttl_seconds)
            for tag in tags:
                self._tags.setdefault(tag, set()).add(key)
        return True

    def invalidate_tags(self, tags):
        removed = 0
        with self._lock:
            for tag in tags:
                self._generations[tag] = self._generations.get(tag, 0) + 1
                for key in self._tags.pop(tag, set()):
                    if self._entries.pop(key, None) is not None:
                        removed += 1
        return removed

    def flush(self):
        # generations survive a flush so in-flight loads stay comparable
        with self._lock:
            self._entries.clear()
            self._tags.clear()

    def sweep(self):
        """Drop expired entries and prune dangling tag members."""
        now = time.time()
        with self._lock:
            expired = [k for k, (_, exp) in self._entries.items() if exp and now > exp]
            for key in expired:
                self._entries.pop(key, None)
            for tag in list(self._tags):
                live = {k for k in self._tags[tag] if k in self._entries}
                if live:
                    self._tags[tag] = live
                else:
                    self._tags.pop(tag)
        return len(expired)

    def size(self):
        return len(self._entries)

    def ping(self):
        return True


# ── Redis backend ────────────────────────────────────────────────────────


class _RedisBackend:
    """Redis cache; each tag is a set of member keys under ``tag:<name>``."""

    name = "redis"

    def __init__(self, client, prefix="sh:"):
        self._r = client
        self._prefix = prefix

    def _k(self, key):
        return f"{self._prefix}{key}"

    def _t(self, tag):
        return f"{self._prefix}tag:{tag}"

    def _g(self, tag):
        return f"{self._prefix}gen:{tag}"

    def get(self, key):
        return self._r.get(self._k(key))

    def generations(self, tags):
        if not tags:
            return []
        return [int(v or 0) for v in self._r.mget([self._g(tag) for tag in tags])]

    def set(self, key, value, ttl_seconds, tags, generations=None):
        """Write *key*; with *generations*, only while no tag was invalidated since."""
        gen_keys = [self._g(tag) for tag in tags]
        with self._r.pipeline() as pipe:
            try:
                if generations is not None and gen_keys:
                    pipe.watch(*gen_keys)
                    current = [int(v or 0) for v in pipe.mget(gen_keys)]
                    if current != list(generations):
                        return False
                pipe.multi()
                pipe.setex(self._k(key), ttl_seconds, value)
                for tag in tags:
                    pipe.sadd(self._t(tag), self._k(key))
                pipe.execute()
            except WatchError:
                return False
        return True

    def invalidate_tags(self, tags):
        removed = 0
        for tag in tags:
            # bump, read and drop the tag set in one MULTI
            pipe = self._r.pipeline()
            pipe.incr(self._g(tag))
            pipe.smembers(self._t(tag))
            pipe.delete(self._t(tag))
            _, members, _ = pipe.execute()
            if members:
                removed += self._r.delete(*members)
        return removed

    def flush(self):
        gen_prefix = self._g("")
        keys = [k for k in self._r.scan_iter(f"{self._prefix}*") if not k.startswith(gen_prefix)]
        if keys:
            self._r.delete(*keys)

    def sweep(self):
        """Redis expires keys itself; only prune tag sets of dead members."""
        pruned = 0
        for tag_key in self._r.scan_iter(f"{self._prefix}tag:*"):
            for member in self._r.smembers(tag_key):
                if not self._r.exists(member):
                    self._r.srem(tag_key, member)
                    pruned += 1
        return pruned

    def size(self):
        return sum(1 for _ in self._r.scan_iter(f"{self._prefix}*"))

    def ping(self):
        return self._r.ping()


# ── Tagged cache facade ──────────────────────────────────────────────────


class TaggedCache:
    """Cache port injected into the suggestion store and readers.

    Values are JSON-encoded; anything that does not round-trip through JSON
    must not be cached.
    """

    def __init__(self, backend=None, default_ttl=DEFAULT_TTL):
        self.backend = backend or _MemoryBackend()
        self.default_ttl = default_ttl
        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    def get(self, key):
        """Return the cached value or None on miss / backend error."""
        try:
            raw = self.backend.get(key)
        except Exception as exc:
            logger.warning("Cache get failed for %s: %s", key, exc)
            raw = None
        if raw is None:
            self._misses += 1
            return None
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            self._misses += 1
            return None
        self._hits += 1
        return value

    def set(self, key, value, ttl=None, tags=(), generations=None):
        """Store *value*. Returns False when the write was skipped.

        With *generations* (as read by ``backend.generations(tags)``) the write
        only lands if none of the tags has been invalidated in the meantime.
        """
        try:
            return self.backend.set(
                key, json.dumps(value), ttl or self.default_ttl, list(tags), generations,
            )
        except Exception as exc:
            logger.warning("Cache set failed for %s: %s", key, exc)
            return False

    def get_or_load(self, key, loader, ttl=None, tags=()):
        """Cache-aside: call *loader* on miss and cache its result.

        Tag generations are read before loading; if a write invalidates any
        of the tags while the loader runs, its (possibly stale) result is
        returned but not cached.
        """
        value = self.get(key)
        if value is not None:
            return value
        tags = list(tags)
        try:
            generations = self.backend.generations(tags)
        except Exception as exc:
            logger.warning("Cache generation read failed for %s: %s", key, exc)
            return loader()
        value = loader()
        if value is not None and not self.set(key, value, ttl=ttl, tags=tags, generations=generations):
            logger.debug("Cache write skipped for %s: tags invalidated during load", key)
        return value

    def invalidate_tags(self, tags):
        tags = list(tags)
        try:
            removed = self.backend.invalidate_tags(tags)
        except Exception as exc:
            logger.warning("Cache invalidation failed for %s: %s", tags, exc)
            return 0
        self._invalidations += 1
        logger.debug("Cache invalidated tags=%s removed=%d", tags, removed)
        return removed

    def flush(self):
        """Flush entire cache (mainly for testing)."""
        self.backend.flush()

    def sweep(self):
        return self.backend.sweep()

    def stats(self):
        total = self._hits + self._misses
        return {
            "backend": self.backend.name,
            "entries": self.backend.size(),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total else 0.0,
            "invalidations": self._invalidations,
        }

    def health_check(self):
        """Return cache backend status."""
        try:
            self.backend.ping()
            return {"status": "ok", "backend": self.backend.name}
        except Exception as exc:
            return {"status": "error", "detail": str(exc)}


# ── Singleton ────────────────────────────────────────────────────────────

_cache = None


def _build_backend(redis_url):
    if redis_url and not redis_url.startswith("memory://"):
        try:
            import redis as _redis
            client = _redis.from_url(redis_url, decode_responses=True)
            client.ping()
            logger.info("Cache: using Redis at %s", redis_url.split("@")[-1])
            return _RedisBackend(client)
        except Exception as exc:
            logger.warning("Redis unavailable (%s) — falling back to memory cache", exc)
    return _MemoryBackend()


def init_cache(redis_url=None, default_ttl=DEFAULT_TTL):
    """(Re)build the process-wide cache. Called from the app factory."""
    global _cache
    _cache = TaggedCache(_build_backend(redis_url), default_ttl=default_ttl)
    return _cache


def get_cache():
    """Lazy-initialise from ``REDIS_URL`` when the factory has not run."""
    global _cache
    if _cache is None:
        _cache = TaggedCache(_build_backend(os.getenv("REDIS_URL")))
    return _cache
