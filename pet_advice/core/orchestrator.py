from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

from pet_advice.core.activity import ActivityTracker
from pet_advice.core.conversation_store import ROLE_USER, ConversationStore, Turn, make_turn
from pet_advice.core.errors import EMPTY_ANSWER_MESSAGE, ErrorResponse, ModelTimeout, error_for_exception
from pet_advice.core.fingerprint import fingerprint, normalize_query
from pet_advice.core.logging_config import short_id
from pet_advice.core.metrics import metrics
from pet_advice.core.model_client import ModelClient, ModelFailure, ModelResult
from pet_advice.core.profile import PetProfile
from pet_advice.core.reasoning import DEFAULT_END_TAG, DEFAULT_START_TAG, parse_reasoning
from pet_advice.core.response_cache import ResponseCache

logger = logging.getLogger(__name__)

# system + user + assistant
FIRST_EXCHANGE_TURNS = 3


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class AdviceResult:
    answer: str
    reasoning: Optional[str]
    session_id: str
    cached: bool = False
    error_code: Optional[str] = None
    error_id: Optional[str] = None


class SessionLocks:
    """One asyncio.Lock per session, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[session_id] -= 1
            if self._users[session_id] <= 0:
                self._users.pop(session_id, None)
                self._locks.pop(session_id, None)


class AdviceOrchestrator:
    def __init__(
        self,
        conversations: ConversationStore,
        cache: ResponseCache,
        model: ModelClient,
        tracker: ActivityTracker,
        *,
        reasoning_enabled: bool = False,
        reasoning_start_tag: str = DEFAULT_START_TAG,
        reasoning_end_tag: str = DEFAULT_END_TAG,
        serialize_session_turns: bool = True,
    ) -> None:
        self._conversations = conversations
        self._cache = cache
        self._model = model
        self._tracker = tracker
        self._reasoning_enabled = reasoning_enabled
        self._start_tag = reasoning_start_tag
        self._end_tag = reasoning_end_tag
        self._serialize = serialize_session_turns
        self._locks = SessionLocks()

    async def get_advice(
        self,
        message: str,
        session_id: Optional[str] = None,
        profile: Optional[PetProfile] = None,
    ) -> AdviceResult:
        resolved_id = session_id or new_session_id()
        try:
            if self._serialize:
                async with self._locks.hold(resolved_id):
                    result = await self._advise(message, resolved_id, profile)
            else:
                result = await self._advise(message, resolved_id, profile)
        except Exception as exc:
            result = _error_result(error_for_exception(exc), resolved_id)
        if result.error_code:
            outcome = "error"
        else:
            outcome = "cache_hit" if result.cached else "ok"
        metrics.inc("advice_requests_total", {"result": outcome})
        return result

    async def _advise(self, message: str, session_id: str, profile: Optional[PetProfile]) -> AdviceResult:
        if not isinstance(message, str) or not message.strip():
            raise ValueError("message must not be empty")

        turns = await self._conversations.load(session_id)
        first_turn = not turns
        if first_turn:
            turns = self._conversations.initialize(profile)

        fp: Optional[str] = None
        # punctuation-only questions normalize to "" and are never cached
        if first_turn and normalize_query(message):
            fp = fingerprint(message, profile)
            cached = await self._cache.get(fp)
            if cached is not None:
                turns.append(make_turn(ROLE_USER, message))
                await self._conversations.append_and_persist(session_id, turns, cached.answer)
                logger.info("answered session %s from response cache", short_id(session_id))
                return AdviceResult(cached.answer, cached.reasoning, session_id, cached=True)

        turns.append(make_turn(ROLE_USER, message))
        logger.info("advice request: session=%s turns=%d", short_id(session_id), len(turns))
        outcome = await self._call_model(turns)
        if isinstance(outcome, ModelFailure):
            return _error_result(outcome.error, session_id)
        if outcome.content is None or not outcome.content.strip():
            logger.warning("model returned an empty answer for session %s", short_id(session_id))
            return AdviceResult(EMPTY_ANSWER_MESSAGE, None, session_id, error_code="EMPTY_RESPONSE")

        answer, reasoning = self._parse(outcome.content)
        await self._conversations.append_and_persist(session_id, turns, answer)
        if fp is not None and len(turns) == FIRST_EXCHANGE_TURNS:
            await self._cache.put(fp, answer, reasoning)
        return AdviceResult(answer, reasoning, session_id)

    async def _call_model(self, turns: List[Turn]) -> ModelResult:
        try:
            return await asyncio.wait_for(self._model.complete(list(turns)), timeout=self._model.timeout_sec)
        except asyncio.TimeoutError:
            return ModelFailure(error_for_exception(ModelTimeout("model call exceeded deadline")))

    def _parse(self, raw: str) -> tuple[str, Optional[str]]:
        if not self._reasoning_enabled:
            return raw, None
        return parse_reasoning(raw, self._start_tag, self._end_tag)

    async def end_session(self, session_id: str) -> bool:
        removed = await self._conversations.delete(session_id)
        cleared = self._tracker.clear(session_id)
        logger.info("ended session %s", short_id(session_id))
        return removed or cleared


def _error_result(error: ErrorResponse, session_id: str) -> AdviceResult:
    return AdviceResult(
        answer=error.message,
        reasoning=None,
        session_id=session_id,
        error_code=error.error_code,
        error_id=error.error_id,
    )
