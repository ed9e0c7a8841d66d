from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

logger = logging.getLogger(__name__)

EMPTY_ANSWER_MESSAGE = "I couldn't find a proper response. Please try rephrasing your question."


class AdviceError(Exception):
    code = "UNEXPECTED_ERROR"
    user_message = "An unexpected error occurred. Please try again or contact support if this continues."


class NetworkError(AdviceError):
    code = "NETWORK_ERROR"
    user_message = "Network connection failed. Please check your internet connection and try again."


class ModelTimeout(AdviceError):
    code = "REQUEST_TIMEOUT"
    user_message = "Request took too long to process. Please try again with a shorter message."


class AuthError(AdviceError):
    code = "AUTH_FAILED"
    user_message = "Authentication failed. Please contact support if this continues."


class RateLimited(AdviceError):
    code = "RATE_LIMITED"
    user_message = "Too many requests. Please wait a moment and try again."


class ServerError(AdviceError):
    code = "SERVER_ERROR"
    user_message = "The AI service is temporarily unavailable. Please try again in a few minutes."


class BadRequestError(AdviceError):
    code = "BAD_REQUEST"
    user_message = "Invalid request format. Please check your message and try again."


class UnknownError(AdviceError):
    code = "UNKNOWN_ERROR"
    user_message = "Unable to process your request right now. Please try again."


class BackingStoreUnavailable(AdviceError):
    code = "STORE_UNAVAILABLE"
    user_message = "Service is temporarily unavailable. Please try again in a few minutes."


_STATUS_ERRORS: dict[int, type[AdviceError]] = {
    400: BadRequestError,
    401: AuthError,
    403: AuthError,
    408: ModelTimeout,
    429: RateLimited,
    500: ServerError,
    502: ServerError,
    504: ServerError,
}

_MAINTENANCE_MESSAGE = "The AI service is currently under maintenance. Please try again later."


def new_error_id() -> str:
    return uuid.uuid4().hex[:8]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ErrorResponse:
    message: str
    error_code: str
    error_id: str
    timestamp: datetime = field(default_factory=_utcnow)


def error_for_status(status_code: int, body: str | None = None) -> ErrorResponse:
    error_id = new_error_id()
    if status_code == 503:
        response = ErrorResponse(_MAINTENANCE_MESSAGE, "MAINTENANCE", error_id)
    else:
        error_cls = _STATUS_ERRORS.get(status_code, UnknownError)
        response = ErrorResponse(error_cls.user_message, error_cls.code, error_id)
    logger.warning(
        "model service error: status=%s error_id=%s body=%s",
        status_code,
        error_id,
        (body or "")[:200],
    )
    return response


def error_for_exception(exc: BaseException) -> ErrorResponse:
    error_id = new_error_id()
    if isinstance(exc, AdviceError):
        error_cls: type[AdviceError] = type(exc)
    elif isinstance(exc, httpx.TimeoutException):
        error_cls = ModelTimeout
    elif isinstance(exc, httpx.TransportError):
        error_cls = NetworkError
    elif isinstance(exc, ValueError):
        return _log_generic(exc, ErrorResponse(
            "Invalid input provided. Please check your message and try again.", "INVALID_INPUT", error_id
        ))
    else:
        error_cls = AdviceError
    return _log_generic(exc, ErrorResponse(error_cls.user_message, error_cls.code, error_id))


def _log_generic(exc: BaseException, response: ErrorResponse) -> ErrorResponse:
    if isinstance(exc, (AdviceError, httpx.TransportError)):
        logger.warning(
            "advice request failed: error_id=%s type=%s", response.error_id, type(exc).__name__
        )
    else:
        logger.error(
            "unhandled advice error: error_id=%s type=%s",
            response.error_id,
            type(exc).__name__,
            exc_info=exc,
        )
    return response
