import os
from dataclasses import dataclass

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:4173"


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    redis_url: str
    model_base_url: str
    model_api_key: str
    model_name: str
    model_timeout_sec: float
    reasoning_enabled: bool
    reasoning_start_tag: str
    reasoning_end_tag: str
    response_cache_ttl_sec: int
    response_cache_sliding_sec: int
    conversation_ttl_sec: int
    conversation_max_turns: int
    session_timeout_sec: int
    sweep_interval_sec: int
    active_window_sec: int
    credential_grace_sec: int
    credential_fail_open: bool
    serialize_session_turns: bool
    log_level: str
    cors_allow_origins: list[str]


def load_settings() -> Settings:
    return Settings(
        redis_url=os.getenv("PA_REDIS_URL", "").strip(),
        model_base_url=os.getenv("PA_MODEL_BASE_URL", "https://api.groq.com/openai/v1").rstrip("/"),
        model_api_key=os.getenv("PA_MODEL_API_KEY", ""),
        model_name=os.getenv("PA_MODEL_NAME", "qwen/qwen3-32b").strip(),
        model_timeout_sec=max(1.0, float(os.getenv("PA_MODEL_TIMEOUT_SEC", "30"))),
        reasoning_enabled=_env_bool("PA_REASONING_ENABLED", "false"),
        reasoning_start_tag=os.getenv("PA_REASONING_START_TAG", "<think>"),
        reasoning_end_tag=os.getenv("PA_REASONING_END_TAG", "</think>"),
        response_cache_ttl_sec=max(1, int(os.getenv("PA_RESPONSE_CACHE_TTL_SEC", "3600"))),
        response_cache_sliding_sec=max(1, int(os.getenv("PA_RESPONSE_CACHE_SLIDING_SEC", "1800"))),
        conversation_ttl_sec=max(1, int(os.getenv("PA_CONVERSATION_TTL_SEC", str(7 * 24 * 3600)))),
        conversation_max_turns=max(3, int(os.getenv("PA_CONVERSATION_MAX_TURNS", "20"))),
        session_timeout_sec=max(1, int(os.getenv("PA_SESSION_TIMEOUT_SEC", "86400"))),
        sweep_interval_sec=max(1, int(os.getenv("PA_SWEEP_INTERVAL_SEC", "1800"))),
        active_window_sec=max(1, int(os.getenv("PA_ACTIVE_WINDOW_SEC", "3600"))),
        credential_grace_sec=max(0, int(os.getenv("PA_CREDENTIAL_GRACE_SEC", "3600"))),
        credential_fail_open=_env_bool("PA_CREDENTIAL_FAIL_OPEN", "true"),
        serialize_session_turns=_env_bool("PA_SERIALIZE_SESSION_TURNS", "true"),
        log_level=os.getenv("PA_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        cors_allow_origins=_split_csv(os.getenv("CORS_ALLOW_ORIGINS", DEFAULT_CORS_ORIGINS)),
    )
