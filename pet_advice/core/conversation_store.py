from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional

from pet_advice.core.activity import ActivityTracker
from pet_advice.core.errors import BackingStoreUnavailable
from pet_advice.core.logging_config import short_id
from pet_advice.core.metrics import metrics
from pet_advice.core.profile import PetProfile
from pet_advice.core.store import ExpiringStore

logger = logging.getLogger(__name__)

Turn = Dict[str, str]

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
_ROLES = {ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT}
_KEY_PREFIX = "conversation:"

SYSTEM_PROMPT = (
    "You are a knowledgeable and compassionate virtual veterinary assistant. "
    "You provide helpful advice about pet health, behavior, nutrition, and general care. "
    "Always remind users that for serious health concerns, they should consult with a real veterinarian. "
    "Be friendly, professional, and thorough in your responses. "
    "Focus on common pets like dogs, cats, birds, rabbits, and small animals. "
    "If asked about emergencies, always advise immediate veterinary care."
)


def make_turn(role: str, content: str) -> Turn:
    return {"role": role, "content": content}


def build_system_prompt(profile: Optional[PetProfile] = None) -> str:
    if profile is None:
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT} {profile.prompt_context()} Tailor your advice to this pet."


def trim_turns(turns: List[Turn], max_turns: int) -> List[Turn]:
    # index 0 is the system turn and is never removed
    if len(turns) > max_turns:
        del turns[1:3]
    return turns


class ConversationStore:
    def __init__(
        self,
        store: ExpiringStore,
        tracker: ActivityTracker,
        *,
        ttl_sec: int = 7 * 24 * 3600,
        max_turns: int = 20,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._ttl_sec = max(1, int(ttl_sec))
        self._max_turns = max(3, int(max_turns))

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{_KEY_PREFIX}{session_id}"

    def initialize(self, profile: Optional[PetProfile] = None) -> List[Turn]:
        return [make_turn(ROLE_SYSTEM, build_system_prompt(profile))]

    async def load(self, session_id: str) -> Optional[List[Turn]]:
        try:
            raw = await self._store.get(self._key(session_id))
        except BackingStoreUnavailable as exc:
            metrics.inc("conversation_load_total", {"result": "error"})
            logger.warning("conversation load failed for session %s: %s", short_id(session_id), exc)
            return None
        if raw is None:
            metrics.inc("conversation_load_total", {"result": "miss"})
            return None
        turns = _decode_turns(raw)
        if turns is None:
            metrics.inc("conversation_load_total", {"result": "invalid"})
            logger.warning("discarding malformed conversation for session %s", short_id(session_id))
            return None
        metrics.inc("conversation_load_total", {"result": "hit"})
        logger.debug("loaded %d turns for session %s", len(turns), short_id(session_id))
        return turns

    async def save(self, session_id: str, turns: List[Turn]) -> bool:
        try:
            await self._store.set(self._key(session_id), json.dumps(turns, ensure_ascii=False), self._ttl_sec)
        except BackingStoreUnavailable as exc:
            metrics.inc("conversation_save_total", {"result": "error"})
            logger.warning("conversation save failed for session %s: %s", short_id(session_id), exc)
            return False
        metrics.inc("conversation_save_total", {"result": "ok"})
        logger.debug("saved %d turns for session %s", len(turns), short_id(session_id))
        return True

    async def append_and_persist(self, session_id: str, turns: List[Turn], answer: str) -> List[Turn]:
        turns.append(make_turn(ROLE_ASSISTANT, answer))
        trim_turns(turns, self._max_turns)
        await self.save(session_id, turns)
        self._tracker.record_activity(session_id, len(turns))
        return turns

    async def delete(self, session_id: str) -> bool:
        try:
            return await self._store.delete(self._key(session_id))
        except BackingStoreUnavailable as exc:
            logger.warning("conversation delete failed for session %s: %s", short_id(session_id), exc)
            return False


def _decode_turns(raw: str) -> Optional[List[Turn]]:
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, list) or not data:
        return None
    turns: List[Turn] = []
    for item in data:
        if not isinstance(item, dict):
            return None
        role = item.get("role")
        content = item.get("content")
        if role not in _ROLES or not isinstance(content, str):
            return None
        turns.append(make_turn(role, content))
    if turns[0]["role"] != ROLE_SYSTEM or any(t["role"] == ROLE_SYSTEM for t in turns[1:]):
        return None
    return turns
