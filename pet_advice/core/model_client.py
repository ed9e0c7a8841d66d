from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx

from pet_advice.core.errors import ErrorResponse, UnknownError, error_for_exception, error_for_status
from pet_advice.core.metrics import metrics
from pet_advice.core.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSuccess:
    content: Optional[str]
    model: str
    took_ms: int


@dataclass(frozen=True)
class ModelFailure:
    error: ErrorResponse
    status_code: Optional[int] = None


ModelResult = Union[ModelSuccess, ModelFailure]


def extract_content(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0]
        if isinstance(choice, dict):
            message = choice.get("message")
            if isinstance(message, dict):
                content = message.get("content")
                if content is not None:
                    return str(content)
    return None


class ModelClient:
    """OpenAI-compatible chat completion client.

    Never raises for provider or transport failures; those come back as a
    ``ModelFailure`` carrying a user-safe ``ErrorResponse``. No retries.
    """

    def __init__(self, base_url: str, api_key: str, model: str, timeout_sec: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_sec = timeout_sec

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelClient":
        return cls(
            base_url=settings.model_base_url,
            api_key=settings.model_api_key,
            model=settings.model_name,
            timeout_sec=settings.model_timeout_sec,
        )

    def _url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"
        return headers

    async def complete(self, messages: List[Dict[str, str]]) -> ModelResult:
        payload = {"model": self.model, "messages": messages}
        started = time.perf_counter()
        logger.info("sending %d messages to model %s", len(messages), self.model)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
                response = await client.post(self._url(), json=payload, headers=self._headers())
        except httpx.TransportError as exc:
            result = "timeout" if isinstance(exc, httpx.TimeoutException) else "network_error"
            metrics.inc("model_call_total", {"result": result})
            return ModelFailure(error_for_exception(exc))
        finally:
            took_ms = int((time.perf_counter() - started) * 1000)
            metrics.observe("model_call_latency_ms", max(0, took_ms))

        status_code = int(response.status_code)
        if status_code < 200 or status_code >= 300:
            metrics.inc("model_call_total", {"result": f"http_{status_code}"})
            return ModelFailure(error_for_status(status_code, getattr(response, "text", None)), status_code)

        try:
            data = response.json()
        except ValueError:
            metrics.inc("model_call_total", {"result": "invalid_json"})
            return ModelFailure(error_for_exception(UnknownError("model returned invalid json")), status_code)

        metrics.inc("model_call_total", {"result": "ok"})
        logger.debug("model response received in %dms", took_ms)
        return ModelSuccess(content=extract_content(data), model=self.model, took_ms=took_ms)
