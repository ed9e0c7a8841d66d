from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Dict, Optional

from pet_advice.core.errors import BackingStoreUnavailable
from pet_advice.core.logging_config import short_id
from pet_advice.core.metrics import metrics
from pet_advice.core.store import Clock, ExpiringStore

logger = logging.getLogger(__name__)

_KEY_PREFIX = "rcache:"
_INDEX_KEY = "rcache:index"
_PROBE_TTL_SEC = 10


@dataclass(frozen=True)
class CachedResponse:
    answer: str
    reasoning: Optional[str]
    created_at: float
    expires_at: float


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    hit_ratio: float

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ResponseCache:
    """Content-addressed answer cache keyed by query fingerprint.

    An entry lives at most ``ttl_sec`` after it was written. Within that hard
    limit it stays alive only while it keeps being read: every hit pushes its
    expiry out to ``sliding_sec`` from now, capped at the absolute deadline.
    Backing-store failures are reported as misses.
    """

    def __init__(
        self,
        store: ExpiringStore,
        *,
        ttl_sec: int = 3600,
        sliding_sec: int = 1800,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._ttl_sec = max(1, int(ttl_sec))
        self._sliding_sec = max(1, int(sliding_sec))
        self._clock = clock or time.time
        self._hits = 0
        self._misses = 0
        self._lock = Lock()

    @staticmethod
    def _key(fingerprint: str) -> str:
        return f"{_KEY_PREFIX}{fingerprint}"

    def _record(self, hit: bool, result: str) -> None:
        with self._lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
        metrics.inc("response_cache_lookup_total", {"result": result})

    async def get(self, fingerprint: str) -> Optional[CachedResponse]:
        key = self._key(fingerprint)
        try:
            raw = await self._store.get(key)
        except BackingStoreUnavailable as exc:
            logger.warning("response cache read failed for %s: %s", short_id(fingerprint), exc)
            self._record(False, "error")
            return None

        entry = _decode(raw)
        now = self._clock()
        if entry is None or entry.expires_at <= now:
            logger.debug("response cache miss for %s", short_id(fingerprint))
            self._record(False, "miss")
            return None

        self._record(True, "hit")
        logger.debug("response cache hit for %s", short_id(fingerprint))
        remaining = entry.expires_at - now
        try:
            await self._store.expire(key, min(self._sliding_sec, remaining))
        except BackingStoreUnavailable as exc:
            logger.warning("response cache sliding refresh failed for %s: %s", short_id(fingerprint), exc)
        return entry

    async def put(self, fingerprint: str, answer: str, reasoning: Optional[str]) -> bool:
        now = self._clock()
        entry = CachedResponse(
            answer=answer,
            reasoning=reasoning,
            created_at=now,
            expires_at=now + self._ttl_sec,
        )
        payload = json.dumps(asdict(entry), ensure_ascii=False)
        try:
            await self._store.set(self._key(fingerprint), payload, min(self._sliding_sec, self._ttl_sec))
            # index members are scored by absolute deadline; anything past it is gone from the store
            await self._store.add_scored(_INDEX_KEY, fingerprint, entry.expires_at)
            await self._store.trim_scored(_INDEX_KEY, now)
            await self._store.expire(_INDEX_KEY, self._ttl_sec)
        except BackingStoreUnavailable as exc:
            logger.warning("response cache write failed for %s: %s", short_id(fingerprint), exc)
            metrics.inc("response_cache_store_total", {"result": "error"})
            return False
        metrics.inc("response_cache_store_total", {"result": "ok"})
        logger.debug(
            "cached response for %s (~%dKB)",
            short_id(fingerprint),
            _estimate_kb(answer, reasoning),
        )
        return True

    def stats(self) -> CacheStats:
        with self._lock:
            hits, misses = self._hits, self._misses
        total = hits + misses
        ratio = (hits / total * 100.0) if total else 0.0
        return CacheStats(hits=hits, misses=misses, hit_ratio=round(ratio, 2))

    async def clear(self) -> int:
        removed = 0
        try:
            for fp in await self._store.scored_members(_INDEX_KEY):
                if await self._store.delete(self._key(fp)):
                    removed += 1
            await self._store.delete(_INDEX_KEY)
        except BackingStoreUnavailable as exc:
            logger.warning("response cache clear incomplete: %s", exc)
        with self._lock:
            self._hits = 0
            self._misses = 0
        logger.info("response cache cleared (%d entries)", removed)
        return removed

    async def probe(self) -> bool:
        """Round-trip a throwaway entry without touching hit/miss counters."""
        key = f"{_KEY_PREFIX}probe:{uuid.uuid4().hex}"
        marker = uuid.uuid4().hex
        try:
            await self._store.set(key, marker, _PROBE_TTL_SEC)
            ok = await self._store.get(key) == marker
            await self._store.delete(key)
        except BackingStoreUnavailable as exc:
            logger.warning("response cache probe failed: %s", exc)
            return False
        return ok


def _decode(raw: Optional[str]) -> Optional[CachedResponse]:
    if raw is None:
        return None
    try:
        data = json.loads(raw)
        return CachedResponse(
            answer=str(data["answer"]),
            reasoning=data.get("reasoning"),
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
        )
    except (ValueError, KeyError, TypeError):
        logger.warning("discarding malformed response cache entry")
        return None


def _estimate_kb(answer: str, reasoning: Optional[str]) -> int:
    size = len(answer) * 2 + len(reasoning or "") * 2 + 100
    return size // 1024
