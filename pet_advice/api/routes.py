import logging
import re
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from pet_advice.api.schemas import CacheClearResponse, ChatRequest, ChatResponse, SessionEndResponse
from pet_advice.core.errors import BackingStoreUnavailable
from pet_advice.core.logging_config import short_id
from pet_advice.core.metrics import metrics
from pet_advice.core.profile import PetProfile
from pet_advice.core.runtime import Services

router = APIRouter()
logger = logging.getLogger(__name__)

_SESSION_ID_RE = re.compile(r"^[a-zA-Z0-9\-_]{1,100}$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def _services(request: Request) -> Services:
    return request.app.state.services


def sanitize_input(text: str) -> str:
    return _CONTROL_CHARS_RE.sub("", text or "").strip()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    services = _services(request)
    try:
        store_ok = await services.store.ping()
    except BackingStoreUnavailable as exc:
        logger.warning("readiness store ping failed: %s", exc)
        store_ok = False
    cache_ok = await services.cache.probe() if store_ok else False
    status = "ok" if store_ok and cache_ok else "degraded"
    body = {
        "status": status,
        "store": "ok" if store_ok else "unavailable",
        "response_cache": {"ok": cache_ok, **services.cache.stats().as_dict()},
    }
    return JSONResponse(status_code=200 if status == "ok" else 503, content=body)


@router.get("/metrics")
def metrics_endpoint(request: Request):
    services = _services(request)
    return {
        "counters": metrics.snapshot(),
        "response_cache": services.cache.stats().as_dict(),
        "sessions": services.tracker.stats().as_dict(),
    }


@router.post("/api/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest, request: Request):
    services = _services(request)
    message = sanitize_input(payload.message)
    if not message:
        raise HTTPException(status_code=400, detail={"code": "empty_message", "message": "Message cannot be empty"})
    session_id = sanitize_input(payload.session_id or "") or None
    profile = PetProfile.from_dict(payload.profile.model_dump()) if payload.profile else None

    logger.info("chat request: message_len=%d session=%s", len(message), short_id(session_id))
    result = await services.orchestrator.get_advice(message, session_id, profile)
    logger.info(
        "chat response: session=%s answer_len=%d reasoning=%s cached=%s",
        short_id(result.session_id),
        len(result.answer),
        result.reasoning is not None,
        result.cached,
    )
    return ChatResponse(
        answer=result.answer,
        reasoning=result.reasoning,
        session_id=result.session_id,
        cached=result.cached,
        error_code=result.error_code,
        error_id=result.error_id,
        timestamp=datetime.now(timezone.utc),
    )


@router.delete("/api/chat/{session_id}", response_model=SessionEndResponse)
async def end_session(session_id: str, request: Request):
    if not _SESSION_ID_RE.match(session_id):
        raise HTTPException(status_code=400, detail={"code": "invalid_session_id", "message": "invalid session id"})
    removed = await _services(request).orchestrator.end_session(session_id)
    return SessionEndResponse(session_id=session_id, removed=removed)


@router.post("/internal/cache/clear", response_model=CacheClearResponse)
async def clear_cache(request: Request):
    removed = await _services(request).cache.clear()
    return CacheClearResponse(removed=removed)
