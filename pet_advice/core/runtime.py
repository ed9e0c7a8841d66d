from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pet_advice.core.activity import ActivityTracker, SessionSweeper
from pet_advice.core.conversation_store import ConversationStore
from pet_advice.core.credentials import CredentialCache
from pet_advice.core.model_client import ModelClient
from pet_advice.core.orchestrator import AdviceOrchestrator
from pet_advice.core.response_cache import ResponseCache
from pet_advice.core.settings import Settings
from pet_advice.core.store import Clock, ExpiringStore, build_store


@dataclass
class Services:
    settings: Settings
    store: ExpiringStore
    tracker: ActivityTracker
    sweeper: SessionSweeper
    cache: ResponseCache
    conversations: ConversationStore
    credentials: CredentialCache
    model: ModelClient
    orchestrator: AdviceOrchestrator

    async def start(self) -> None:
        self.sweeper.start()

    async def stop(self) -> None:
        await self.sweeper.stop()
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()


def build_services(
    settings: Settings,
    *,
    store: Optional[ExpiringStore] = None,
    model: Optional[ModelClient] = None,
    clock: Optional[Clock] = None,
) -> Services:
    resolved_store = store if store is not None else build_store(settings)
    tracker = ActivityTracker(
        session_timeout_sec=settings.session_timeout_sec,
        active_window_sec=settings.active_window_sec,
        clock=clock,
    )
    cache = ResponseCache(
        resolved_store,
        ttl_sec=settings.response_cache_ttl_sec,
        sliding_sec=settings.response_cache_sliding_sec,
        clock=clock,
    )
    conversations = ConversationStore(
        resolved_store,
        tracker,
        ttl_sec=settings.conversation_ttl_sec,
        max_turns=settings.conversation_max_turns,
    )
    resolved_model = model if model is not None else ModelClient.from_settings(settings)
    orchestrator = AdviceOrchestrator(
        conversations,
        cache,
        resolved_model,
        tracker,
        reasoning_enabled=settings.reasoning_enabled,
        reasoning_start_tag=settings.reasoning_start_tag,
        reasoning_end_tag=settings.reasoning_end_tag,
        serialize_session_turns=settings.serialize_session_turns,
    )
    return Services(
        settings=settings,
        store=resolved_store,
        tracker=tracker,
        sweeper=SessionSweeper(tracker, settings.sweep_interval_sec),
        cache=cache,
        conversations=conversations,
        credentials=CredentialCache(
            resolved_store,
            grace_sec=settings.credential_grace_sec,
            fail_open=settings.credential_fail_open,
        ),
        model=resolved_model,
        orchestrator=orchestrator,
    )
