from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Dict, List, Optional

from pet_advice.core.logging_config import short_id
from pet_advice.core.metrics import metrics
from pet_advice.core.store import Clock

logger = logging.getLogger(__name__)

_KB_PER_TURN = 0.5


@dataclass(frozen=True)
class ActivityMetadata:
    session_id: str
    last_activity: float
    turn_count: int


@dataclass(frozen=True)
class SessionStats:
    total_sessions: int
    active_sessions: int
    total_turns: int
    estimated_memory_kb: float

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ActivityTracker:
    def __init__(
        self,
        *,
        session_timeout_sec: int = 86400,
        active_window_sec: int = 3600,
        clock: Clock | None = None,
    ) -> None:
        self._timeout = max(1, int(session_timeout_sec))
        self._active_window = max(1, int(active_window_sec))
        self._clock = clock or time.time
        self._sessions: Dict[str, ActivityMetadata] = {}
        self._lock = Lock()

    def record_activity(self, session_id: str, turn_count: int) -> None:
        entry = ActivityMetadata(session_id=session_id, last_activity=self._clock(), turn_count=max(0, int(turn_count)))
        with self._lock:
            self._sessions[session_id] = entry

    def get(self, session_id: str) -> Optional[ActivityMetadata]:
        with self._lock:
            return self._sessions.get(session_id)

    def clear(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.debug("cleared activity for session %s", short_id(session_id))
        return removed

    def sweep(self) -> List[str]:
        cutoff = self._clock() - self._timeout
        with self._lock:
            expired = [sid for sid, meta in self._sessions.items() if meta.last_activity < cutoff]
            for sid in expired:
                del self._sessions[sid]
            remaining = len(self._sessions)
        metrics.set("sessions_tracked", value=remaining)
        if expired:
            metrics.inc("session_sweep_removed_total", value=len(expired))
            logger.info("swept %d inactive sessions", len(expired))
        return expired

    def stats(self) -> SessionStats:
        now = self._clock()
        with self._lock:
            entries = list(self._sessions.values())
        total_turns = sum(meta.turn_count for meta in entries)
        return SessionStats(
            total_sessions=len(entries),
            active_sessions=sum(1 for meta in entries if now - meta.last_activity < self._active_window),
            total_turns=total_turns,
            estimated_memory_kb=round(total_turns * _KB_PER_TURN, 2),
        )


class SessionSweeper:
    """Runs ``ActivityTracker.sweep`` on a fixed interval in a background task."""

    def __init__(self, tracker: ActivityTracker, interval_sec: float = 1800) -> None:
        self._tracker = tracker
        self._interval = max(0.01, float(interval_sec))
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="session-sweeper")
        logger.info("session sweeper started (interval=%ss)", self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("session sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._tracker.sweep()
            except Exception:
                logger.exception("session sweep failed")
