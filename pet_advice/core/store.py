"""Expiring key-value backends.

Every stored value is a string; structured values are JSON-encoded by the
caller. Backends raise ``BackingStoreUnavailable`` on connectivity failure and
leave the fail-open/fail-closed decision to the component that called them.
"""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Protocol

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from pet_advice.core.errors import BackingStoreUnavailable
from pet_advice.core.metrics import metrics
from pet_advice.core.settings import Settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class ExpiringStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: float | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def exists(self, key: str) -> bool: ...

    async def expire(self, key: str, ttl: float) -> bool: ...

    async def add_to_set(self, key: str, member: str, ttl: float | None = None) -> bool: ...

    async def remove_from_set(self, key: str, member: str) -> bool: ...

    async def set_members(self, key: str) -> set[str]: ...

    async def add_scored(self, key: str, member: str, score: float) -> None: ...

    async def trim_scored(self, key: str, max_score: float) -> int: ...

    async def scored_members(self, key: str) -> list[str]: ...

    async def ping(self) -> bool: ...


class MemoryStore:
    """Process-local store with lazy expiry.

    Expired keys are dropped when read, and a full scan on a write removes the
    rest at most once every ``purge_interval_sec``, so keys nobody reads again
    do not pile up.

    ``clock`` is injectable so callers can drive virtual time, and
    ``unavailable`` makes every operation raise as a disconnected backend would.
    """

    def __init__(self, clock: Clock | None = None, purge_interval_sec: float = 60.0) -> None:
        self._clock = clock or time.time
        self._values: dict[str, tuple[float | None, str]] = {}
        self._sets: dict[str, tuple[float | None, set[str]]] = {}
        self._scored: dict[str, tuple[float | None, dict[str, float]]] = {}
        self._lock = Lock()
        self._purge_interval = max(0.0, float(purge_interval_sec))
        self._next_purge_at = self._clock() + self._purge_interval
        self.unavailable = False

    def __len__(self) -> int:
        with self._lock:
            return sum(len(table) for table in self._tables())

    def _tables(self) -> tuple[dict, ...]:
        return (self._values, self._sets, self._scored)

    def _check(self, op: str) -> None:
        if self.unavailable:
            metrics.inc("store_errors_total", {"op": op})
            raise BackingStoreUnavailable(f"memory store unavailable during {op}")

    def _expires_at(self, ttl: float | None) -> float | None:
        if ttl is None:
            return None
        return self._clock() + ttl

    def _live(self, table: dict, key: str):
        entry = table.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at is not None and expires_at <= self._clock():
            table.pop(key, None)
            return None
        return entry

    def _purge_if_due(self) -> None:
        # caller holds self._lock
        now = self._clock()
        if now < self._next_purge_at:
            return
        self._next_purge_at = now + self._purge_interval
        removed = 0
        for table in self._tables():
            expired = [key for key, (expires_at, _) in table.items() if expires_at is not None and expires_at <= now]
            for key in expired:
                del table[key]
            removed += len(expired)
        if removed:
            logger.debug("purged %d expired keys from memory store", removed)

    async def get(self, key: str) -> str | None:
        self._check("get")
        with self._lock:
            entry = self._live(self._values, key)
            return None if entry is None else entry[1]

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        self._check("set")
        with self._lock:
            self._purge_if_due()
            self._values[key] = (self._expires_at(ttl), value)

    async def delete(self, key: str) -> bool:
        self._check("delete")
        with self._lock:
            removed = False
            for table in self._tables():
                if self._live(table, key) is not None:
                    removed = True
                table.pop(key, None)
            return removed

    async def exists(self, key: str) -> bool:
        self._check("exists")
        with self._lock:
            return any(self._live(table, key) is not None for table in self._tables())

    async def expire(self, key: str, ttl: float) -> bool:
        self._check("expire")
        with self._lock:
            for table in self._tables():
                entry = self._live(table, key)
                if entry is not None:
                    table[key] = (self._expires_at(ttl), entry[1])
                    return True
            return False

    async def add_to_set(self, key: str, member: str, ttl: float | None = None) -> bool:
        self._check("add_to_set")
        with self._lock:
            self._purge_if_due()
            entry = self._live(self._sets, key)
            members = set() if entry is None else entry[1]
            added = member not in members
            members.add(member)
            expires_at = entry[0] if entry is not None else None
            if ttl is not None and added:
                expires_at = self._expires_at(ttl)
            self._sets[key] = (expires_at, members)
            return added

    async def remove_from_set(self, key: str, member: str) -> bool:
        self._check("remove_from_set")
        with self._lock:
            entry = self._live(self._sets, key)
            if entry is None or member not in entry[1]:
                return False
            entry[1].discard(member)
            if not entry[1]:
                self._sets.pop(key, None)
            return True

    async def set_members(self, key: str) -> set[str]:
        self._check("set_members")
        with self._lock:
            entry = self._live(self._sets, key)
            return set() if entry is None else set(entry[1])

    async def add_scored(self, key: str, member: str, score: float) -> None:
        self._check("add_scored")
        with self._lock:
            self._purge_if_due()
            entry = self._live(self._scored, key)
            if entry is None:
                entry = (None, {})
                self._scored[key] = entry
            entry[1][member] = float(score)

    async def trim_scored(self, key: str, max_score: float) -> int:
        self._check("trim_scored")
        with self._lock:
            entry = self._live(self._scored, key)
            if entry is None:
                return 0
            stale = [member for member, score in entry[1].items() if score <= max_score]
            for member in stale:
                del entry[1][member]
            if not entry[1]:
                self._scored.pop(key, None)
            return len(stale)

    async def scored_members(self, key: str) -> list[str]:
        self._check("scored_members")
        with self._lock:
            entry = self._live(self._scored, key)
            if entry is None:
                return []
            return [member for member, _ in sorted(entry[1].items(), key=lambda item: item[1])]

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def close(self) -> None:
        return None


class RedisStore:
    def __init__(self, redis_url: str, client=None) -> None:
        if client is None:
            client = redis_asyncio.Redis.from_url(redis_url, decode_responses=True)
        self._redis = client

    async def _call(self, op: str, coro):
        try:
            return await coro
        except (RedisError, OSError) as exc:
            metrics.inc("store_errors_total", {"op": op})
            raise BackingStoreUnavailable(f"redis {op} failed: {exc}") from exc

    async def get(self, key: str) -> str | None:
        return await self._call("get", self._redis.get(key))

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expiry = None if ttl is None else max(1, int(ttl))
        await self._call("set", self._redis.set(key, value, ex=expiry))

    async def delete(self, key: str) -> bool:
        return bool(await self._call("delete", self._redis.delete(key)))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", self._redis.exists(key)))

    async def expire(self, key: str, ttl: float) -> bool:
        return bool(await self._call("expire", self._redis.expire(key, max(1, int(ttl)))))

    async def add_to_set(self, key: str, member: str, ttl: float | None = None) -> bool:
        added = bool(await self._call("add_to_set", self._redis.sadd(key, member)))
        if ttl is not None and added:
            await self._call("expire", self._redis.expire(key, max(1, int(ttl))))
        return added

    async def remove_from_set(self, key: str, member: str) -> bool:
        return bool(await self._call("remove_from_set", self._redis.srem(key, member)))

    async def set_members(self, key: str) -> set[str]:
        members = await self._call("set_members", self._redis.smembers(key))
        return {str(member) for member in members or ()}

    async def add_scored(self, key: str, member: str, score: float) -> None:
        await self._call("add_scored", self._redis.zadd(key, {member: score}))

    async def trim_scored(self, key: str, max_score: float) -> int:
        removed = await self._call("trim_scored", self._redis.zremrangebyscore(key, "-inf", max_score))
        return int(removed or 0)

    async def scored_members(self, key: str) -> list[str]:
        members = await self._call("scored_members", self._redis.zrange(key, 0, -1))
        return [str(member) for member in members or ()]

    async def ping(self) -> bool:
        return bool(await self._call("ping", self._redis.ping()))

    async def close(self) -> None:
        await self._redis.aclose()


def build_store(settings: Settings) -> ExpiringStore:
    if settings.redis_url:
        logger.info("using redis expiring store")
        return RedisStore(settings.redis_url)
    logger.info("PA_REDIS_URL not set, using in-memory expiring store")
    return MemoryStore()
