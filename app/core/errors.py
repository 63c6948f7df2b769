"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Every error carries two codes:
- ``code``: fine-grained, snake_case identifier (e.g. ``upstream_timeout``).
- ``reason``: one of the stable reason codes exposed to callers
  (``INVALID_INPUT``, ``AUTH_ERROR``, ``RATE_LIMIT``, ``API_ERROR``,
  ``TIMEOUT``, ``UNAVAILABLE``, ``PERSISTENCE_ERROR``, ``NOT_FOUND``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    max_chars: int
    actual_chars: int
    retry_after: float
    attempts: int
    timeout_seconds: float
    model: str
    upstream_status: int
    parse_error: str
    submission_id: str
    result: dict[str, Any]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    reason: ClassVar[str] = "INTERNAL_ERROR"
    http_status: ClassVar[int] = 500

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""

    reason = "INVALID_INPUT"
    http_status = 400


class AuthenticationAppError(AppError):
    """Raised when the caller cannot be identified."""

    reason = "AUTH_ERROR"
    http_status = 403


class RateLimitAppError(AppError):
    """Raised when an identity submits again inside its cooldown window."""

    reason = "RATE_LIMIT"
    http_status = 429

    @property
    def retry_after(self) -> float:
        return float((self.details or {}).get("retry_after", 0.0))


class NotFoundAppError(AppError):
    """Raised when a submission does not exist for the calling identity."""

    reason = "NOT_FOUND"
    http_status = 404


class LLMAppError(AppError):
    """Raised when LLM provider/client operations fail."""

    reason = "API_ERROR"
    http_status = 502

    #: Whether the invoker may try the call again.
    retryable: ClassVar[bool] = False


class UpstreamRateLimitedError(LLMAppError):
    """The LLM provider itself throttled the request."""


class UpstreamAuthError(LLMAppError):
    """The credential sent to the LLM provider was rejected."""


class MalformedUpstreamResponseError(LLMAppError):
    """The provider answered, but not with the expected structure."""


class UpstreamTimeoutError(LLMAppError):
    """The provider did not answer within the configured timeout."""

    reason = "TIMEOUT"
    http_status = 504
    retryable = True


class UpstreamUnavailableError(LLMAppError):
    """Network/transport failure or provider-side 5xx."""

    reason = "UNAVAILABLE"
    http_status = 503
    retryable = True


class StorageAppError(AppError):
    """Raised by storage adapters when the backend cannot serve a request."""

    reason = "UNAVAILABLE"
    http_status = 503


class QuotaUnavailableError(StorageAppError):
    """The rate gate could not consult the store and failed closed."""


class PersistenceAppError(AppError):
    """The result was computed but could not be saved."""

    reason = "PERSISTENCE_ERROR"
    http_status = 500
