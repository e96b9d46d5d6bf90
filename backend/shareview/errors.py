"""Share access error taxonomy and the error envelope shared with the backend."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

import httpx

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."
MAX_RAW_MESSAGE_LENGTH = 300


class ErrorKind(str, Enum):
    LINK_INVALID = "link_invalid"
    ACCESS_DENIED = "access_denied"
    SESSION_STALE = "session_stale"
    NETWORK_FAILURE = "network_failure"
    PREVIEW_UNSUPPORTED = "preview_unsupported"


class ShareError(Exception):
    """Base class for every recoverable or terminal share access failure."""

    kind: ErrorKind = ErrorKind.NETWORK_FAILURE
    default_message = GENERIC_ERROR_MESSAGE

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def is_auth_failure(self) -> bool:
        """The backend refused the viewer identity itself."""
        return isinstance(self, AccessDenied) and self.status_code in (401, 403)

    def to_envelope(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class LinkInvalid(ShareError):
    """Token unknown, revoked or past its expiry date. Terminal for the page."""

    kind = ErrorKind.LINK_INVALID
    default_message = "This link is invalid or has expired."


class AccessDenied(ShareError):
    """Wrong email for a restricted share, bad OTP, disallowed domain."""

    kind = ErrorKind.ACCESS_DENIED
    default_message = "Access denied."


class SessionStale(ShareError):
    """A cached identity was rejected by the server on restore."""

    kind = ErrorKind.SESSION_STALE
    default_message = "Stored session is no longer valid."


class NetworkFailure(ShareError):
    kind = ErrorKind.NETWORK_FAILURE


class PreviewUnsupported(ShareError):
    kind = ErrorKind.PREVIEW_UNSUPPORTED
    default_message = "Preview is not available for this file type. Please download to view."


def _message_from_payload(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None

    # Structured envelope
    if payload.get("kind") and isinstance(payload.get("message"), str):
        return payload["message"]

    # Compatibility shim for FastAPI/Flask style bodies.
    # TODO: drop once the document backend answers with the envelope only.
    detail = payload.get("detail")
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(detail, list):
        msgs = [e.get("msg") for e in detail if isinstance(e, dict) and e.get("msg")]
        if msgs:
            return ", ".join(msgs)
    for key in ("error", "message"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def parse_error_body(text: str) -> tuple[str | None, bool]:
    """Extract a user-facing message from an error body.

    Returns ``(message, structured)`` where ``structured`` tells whether the
    body was JSON carrying a known message field.
    """
    text = (text or "").strip()
    if not text:
        return None, False
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:MAX_RAW_MESSAGE_LENGTH], False

    message = _message_from_payload(payload)
    if message is not None:
        return message, True
    return text[:MAX_RAW_MESSAGE_LENGTH], False


def error_from_response(
    resp: httpx.Response,
    fallback: str,
) -> ShareError:
    """Map a non-2xx backend response to the error taxonomy.

    401/403 answers and 4xx answers with a structured message are access
    failures; 5xx answers and bodies nobody can read are network failures.
    """
    message, structured = parse_error_body(resp.text)
    if resp.status_code in (401, 403):
        return AccessDenied(message or fallback, status_code=resp.status_code)
    if 400 <= resp.status_code < 500 and structured:
        return AccessDenied(message, status_code=resp.status_code)
    return NetworkFailure(message or fallback, status_code=resp.status_code)
