"""
groundchat.core.errors — Error taxonomy for response generation.

Only ``BackendRejection`` and ``FinalFailure`` ever leave the orchestrator.
The others are absorbed internally and degrade the response instead.
"""

from __future__ import annotations

from enum import StrEnum

import httpx


class ChatError(Exception):
    """Base error for all groundchat operations."""


class SearchUnavailable(ChatError):
    """The external search call failed or returned nothing usable."""


class StreamTransportError(ChatError):
    """The streaming response broke off or carried a malformed chunk."""


class RejectionKind(StrEnum):
    MODEL_NOT_FOUND = "model_not_found"
    PERMISSION_DENIED = "permission_denied"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"


_REJECTION_MESSAGES: dict[RejectionKind, str] = {
    RejectionKind.MODEL_NOT_FOUND: 'Model "{model}" is not available. Please try a different model.',
    RejectionKind.PERMISSION_DENIED: 'Access denied for model "{model}". Please check your API key permissions.',
    RejectionKind.QUOTA_EXCEEDED: (
        'API quota exceeded for model "{model}". '
        "Please try again later or use a different model."
    ),
    RejectionKind.RATE_LIMITED: 'Rate limit exceeded for model "{model}". Please wait a moment before trying again.',
}


class BackendRejection(ChatError):
    """The backend refused the request; retrying would not change the outcome."""

    def __init__(self, kind: RejectionKind, model: str, detail: str = ""):
        self.kind = kind
        self.model = model
        self.detail = detail
        super().__init__(_REJECTION_MESSAGES[kind].format(model=model))


class FinalFailure(ChatError):
    """Both the streaming attempt and the non-streaming fallback failed."""

    def __init__(self, model: str, cause: BaseException):
        self.model = model
        super().__init__(f"Error communicating with {model}: {type(cause).__name__}: {cause}")


_QUOTA_MARKERS = ("quota", "resource_exhausted", "exhausted", "billing")


def _response_text(response: httpx.Response) -> str:
    try:
        return response.text
    except httpx.ResponseNotRead:
        return ""


def classify_error(exc: BaseException, model: str) -> BackendRejection | None:
    """
    Map a backend error onto one of the four rejection kinds.

    Returns ``None`` when the error is not a rejection (transport errors,
    server errors, malformed payloads), which callers treat as retryable
    once via the non-streaming path.
    """
    if isinstance(exc, BackendRejection):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = _response_text(exc.response)
        lowered = body.lower()
        if status == 404:
            return BackendRejection(RejectionKind.MODEL_NOT_FOUND, model, body[:300])
        if status in (401, 403):
            return BackendRejection(RejectionKind.PERMISSION_DENIED, model, body[:300])
        if status == 429:
            if any(marker in lowered for marker in _QUOTA_MARKERS):
                return BackendRejection(RejectionKind.QUOTA_EXCEEDED, model, body[:300])
            return BackendRejection(RejectionKind.RATE_LIMITED, model, body[:300])
        return None

    if isinstance(exc, (httpx.TransportError, StreamTransportError)):
        return None

    message = str(exc).lower()
    if "model" in message and "not found" in message:
        return BackendRejection(RejectionKind.MODEL_NOT_FOUND, model, str(exc))
    if "quota" in message:
        return BackendRejection(RejectionKind.QUOTA_EXCEEDED, model, str(exc))
    if "permission" in message or "access denied" in message:
        return BackendRejection(RejectionKind.PERMISSION_DENIED, model, str(exc))
    if "rate limit" in message:
        return BackendRejection(RejectionKind.RATE_LIMITED, model, str(exc))
    return None
