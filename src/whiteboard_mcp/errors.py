"""Structured error handling — typed failures, classification, and tool error model."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

QUOTA_MESSAGE = (
    "You've exceeded your API quota. To continue using the app, "
    "please check your plan and billing details."
)


class WhiteboardError(Exception):
    """Base class for failures raised by the lesson generation core."""


class TransientUpstreamError(WhiteboardError):
    """Quota or rate-limit signal from the model backend.

    Not retried by the core; callers decide whether to retry.
    """

    def __init__(self, message: str = QUOTA_MESSAGE) -> None:
        super().__init__(message)
        self.user_message = message


class PlanGenerationError(WhiteboardError):
    """The backend call failed for a reason other than quota."""


class QueueFullError(WhiteboardError):
    """A bounded rate-limiter queue rejected a new task."""


class MalformedResponseError(WhiteboardError):
    """No usable plan JSON could be recovered from a response.

    Attributes:
        stage: Recovery stage that failed last (``brace_match``, ``validation``).
        reason: Short description of why that stage failed.
        length: Length of the response text.
        prefix: First 200 characters of the response text.
    """

    def __init__(self, stage: str, reason: str, text: str) -> None:
        self.stage = stage
        self.reason = reason
        self.length = len(text)
        self.prefix = text[:200]
        super().__init__(
            f"Malformed response at stage '{stage}': {reason} "
            f"(length={self.length}, prefix={self.prefix!r})"
        )


class ErrorCategory(str, Enum):
    """Categories of errors for diagnostics."""

    API_PERMISSION_DENIED = "API_PERMISSION_DENIED"
    API_QUOTA_EXCEEDED = "API_QUOTA_EXCEEDED"
    API_INVALID_ARGUMENT = "API_INVALID_ARGUMENT"
    API_NOT_FOUND = "API_NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    QUEUE_FULL = "QUEUE_FULL"
    GENERATION_FAILED = "GENERATION_FAILED"
    UNKNOWN = "UNKNOWN"


class ToolError(BaseModel):
    """Structured error returned from any tool."""

    error: str
    category: str
    hint: str
    retryable: bool = False
    retry_after_seconds: int | None = None


def categorize_error(error: Exception) -> tuple[ErrorCategory, str]:
    """Map an exception to an ErrorCategory + human-readable hint."""
    if isinstance(error, TransientUpstreamError):
        return (
            ErrorCategory.API_QUOTA_EXCEEDED,
            "Rate limit hit — wait and retry",
        )
    if isinstance(error, MalformedResponseError):
        return (
            ErrorCategory.MALFORMED_RESPONSE,
            f"Model output could not be parsed as a lesson plan (stage: {error.stage}) — try again",
        )
    if isinstance(error, QueueFullError):
        return (
            ErrorCategory.QUEUE_FULL,
            "Narration queue is full — wait for pending speech requests to finish",
        )
    if isinstance(error, PlanGenerationError):
        return (
            ErrorCategory.GENERATION_FAILED,
            "Plan generation failed — check the server log for the upstream error",
        )
    if isinstance(error, TimeoutError):
        return (
            ErrorCategory.NETWORK_ERROR,
            "Request timed out — try again or check connectivity",
        )

    s = str(error).lower()

    if "403" in s or "permission" in s:
        return (
            ErrorCategory.API_PERMISSION_DENIED,
            "API key lacks permission for this model",
        )
    if "429" in s or "quota" in s or "resource_exhausted" in s or "rate limit" in s:
        return (
            ErrorCategory.API_QUOTA_EXCEEDED,
            "Rate limit hit — wait and retry",
        )
    if "400" in s:
        return (
            ErrorCategory.API_INVALID_ARGUMENT,
            "Bad request — check input format",
        )
    if "404" in s:
        return (
            ErrorCategory.API_NOT_FOUND,
            "Model not found — check WHITEBOARD_PLAN_MODEL / WHITEBOARD_TTS_MODEL",
        )
    if "timeout" in s or "timed out" in s or "503" in s or "unavailable" in s:
        return (
            ErrorCategory.NETWORK_ERROR,
            "Upstream unavailable or timed out — try again",
        )

    return (ErrorCategory.UNKNOWN, str(error))


def make_tool_error(error: Exception) -> dict:
    """Create a serialisable ToolError dict from an exception."""
    cat, hint = categorize_error(error)
    retryable = cat in {
        ErrorCategory.API_QUOTA_EXCEEDED,
        ErrorCategory.NETWORK_ERROR,
        ErrorCategory.MALFORMED_RESPONSE,
        ErrorCategory.QUEUE_FULL,
    }
    return ToolError(
        error=str(error),
        category=cat.value,
        hint=hint,
        retryable=retryable,
        retry_after_seconds=60 if cat == ErrorCategory.API_QUOTA_EXCEEDED else None,
    ).model_dump(mode="json")
