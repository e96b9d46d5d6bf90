"""Viewer access state machine: email -> OTP -> success.

States are a tagged union (``EmailInput | OtpInput | Success``) and every
change goes through :func:`transition`, so an OTP step without the email the
code was sent to cannot be represented.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Union

from shareview.config import settings
from shareview.errors import AccessDenied, SessionStale, ShareError
from shareview.schemas.share import SharedDocument, ShareInfo, ShareType, StoredSession

if TYPE_CHECKING:
    from shareview.services.session_store import ClientSessions
    from shareview.services.share_client import ShareApiClient

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
OTP_RE = re.compile(r"^[0-9]+$")

AUTO_SENT_NOTICE = "A verification code was sent automatically to {email}."
SENT_NOTICE = "A verification code was sent to {email}."


class AccessStep(str, Enum):
    EMAIL_INPUT = "email_input"
    OTP_INPUT = "otp_input"
    SUCCESS = "success"


# --- States ---

@dataclass(frozen=True)
class EmailInput:
    email_draft: str = ""
    error: str | None = None

    step = AccessStep.EMAIL_INPUT


@dataclass(frozen=True)
class OtpInput:
    email: str
    notice: str | None = None
    error: str | None = None
    automatic: bool = False

    step = AccessStep.OTP_INPUT


@dataclass(frozen=True)
class Success:
    email: str
    share_type: ShareType
    folder_id: str | None = None
    restored: bool = False

    step = AccessStep.SUCCESS


AccessState = Union[EmailInput, OtpInput, Success]


# --- Events ---

@dataclass(frozen=True)
class CodeSent:
    email: str
    automatic: bool = False


@dataclass(frozen=True)
class RequestFailed:
    email: str
    message: str


@dataclass(frozen=True)
class Verified:
    email: str
    share_type: ShareType
    folder_id: str | None = None
    restored: bool = False


@dataclass(frozen=True)
class VerifyFailed:
    message: str


@dataclass(frozen=True)
class ChangeEmail:
    pass


@dataclass(frozen=True)
class Reset:
    email_draft: str = ""


AccessEvent = Union[CodeSent, RequestFailed, Verified, VerifyFailed, ChangeEmail, Reset]

VALID_TRANSITIONS: dict[type, set[type]] = {
    # Verified from EmailInput is the silent restore of a cached session
    EmailInput: {CodeSent, RequestFailed, Verified},
    OtpInput: {CodeSent, RequestFailed, Verified, VerifyFailed, ChangeEmail},
    Success: {Reset},
}


class InvalidTransition(Exception):
    def __init__(self, state: AccessState, event: object):
        self.state = state
        self.event = event
        super().__init__(
            f"{type(event).__name__} is not allowed in {state.step.value}"
        )


def transition(state: AccessState, event: AccessEvent) -> AccessState:
    """Apply ``event`` to ``state`` and return the next state."""
    if type(event) not in VALID_TRANSITIONS.get(type(state), set()):
        raise InvalidTransition(state, event)

    if isinstance(event, CodeSent):
        template = AUTO_SENT_NOTICE if event.automatic else SENT_NOTICE
        return OtpInput(
            email=event.email,
            notice=template.format(email=event.email),
            automatic=event.automatic,
        )
    if isinstance(event, RequestFailed):
        if isinstance(state, OtpInput):
            return OtpInput(email=state.email, error=event.message, automatic=state.automatic)
        return EmailInput(email_draft=event.email, error=event.message)
    if isinstance(event, Verified):
        return Success(
            email=event.email,
            share_type=event.share_type,
            folder_id=event.folder_id,
            restored=event.restored,
        )
    if isinstance(event, VerifyFailed):
        return OtpInput(
            email=state.email, notice=state.notice, error=event.message,
            automatic=state.automatic,
        )
    if isinstance(event, ChangeEmail):
        return EmailInput(email_draft=state.email)
    if isinstance(event, Reset):
        return EmailInput(email_draft=event.email_draft)
    raise InvalidTransition(state, event)


ContentLoader = Callable[[StoredSession], Awaitable[None]]


class AccessStateMachine:
    """Drives one page session's verification flow against the backend."""

    def __init__(
        self,
        token: str,
        share_info: ShareInfo,
        client: ShareApiClient,
        store: ClientSessions,
        load_content: ContentLoader,
        allowed_domain: str | None = None,
    ):
        self._token = token
        self._info = share_info
        self._client = client
        self._store = store
        self._load_content = load_content
        self._allowed_domain = (
            allowed_domain if allowed_domain is not None else settings.allowed_email_domain
        ).lstrip("@").lower()
        self._state: AccessState = EmailInput()
        self._auto_sent = False
        self._document: SharedDocument | None = None

    @property
    def state(self) -> AccessState:
        return self._state

    @property
    def step(self) -> AccessStep:
        return self._state.step

    @property
    def document(self) -> SharedDocument | None:
        """Document hints from the last successful verification, if any."""
        return self._document

    @property
    def auto_sent(self) -> bool:
        return self._auto_sent

    def _apply(self, event: AccessEvent) -> AccessState:
        old = self._state
        self._state = transition(old, event)
        if old.step != self._state.step:
            logger.info(
                "Share %s access: %s -> %s", self._token, old.step.value, self._state.step.value,
            )
        return self._state

    # --- Flow ---

    async def start(self) -> AccessState:
        """Restore a cached session if the server still accepts it, else begin verification."""
        session = self._store.read(self._token)
        if session is not None:
            try:
                await self._restore(session)
                return self._state
            except SessionStale as e:
                logger.info("Cached session for %s rejected (%s), re-verifying", self._token, e.message)
                self._store.clear(self._token)

        await self._begin_verification()
        return self._state

    async def reset(self) -> AccessState:
        """Drop a verified identity the server no longer accepts and start over."""
        self._store.clear(self._token)
        self._document = None
        self._apply(Reset(email_draft=self._info.target_email or ""))
        await self._begin_verification()
        return self._state

    async def _restore(self, session: StoredSession) -> None:
        try:
            await self._load_content(session)
        except ShareError as e:
            raise SessionStale(e.message, status_code=e.status_code) from e
        self._apply(Verified(
            email=session.email,
            share_type=session.share_type,
            folder_id=session.folder_id,
            restored=True,
        ))

    async def _begin_verification(self) -> None:
        if not self._info.is_restricted:
            return
        if not self._info.target_email:
            logger.warning(
                "Share %s is restricted but names no recipient, falling back to manual email entry",
                self._token,
            )
            return
        if self._auto_sent:
            return
        self._auto_sent = True
        await self._send_code(self._info.target_email, automatic=True)

    async def _send_code(self, email: str, automatic: bool) -> None:
        try:
            await self._client.request_access(self._token, email)
        except ShareError as e:
            logger.info("OTP request for %s on %s failed: %s", email, self._token, e.message)
            self._apply(RequestFailed(email=email, message=e.message))
            return
        logger.info("OTP sent to %s for share %s (automatic=%s)", email, self._token, automatic)
        self._apply(CodeSent(email=email, automatic=automatic))

    def _check_email(self, email: str) -> None:
        if not EMAIL_RE.match(email):
            raise AccessDenied("Please enter a valid email address.")
        if self._allowed_domain and not email.endswith("@" + self._allowed_domain):
            raise AccessDenied(
                f"Only @{self._allowed_domain} email addresses can access shared links."
            )

    # --- User actions ---

    async def submit_email(self, email: str) -> AccessState:
        if not isinstance(self._state, EmailInput):
            raise InvalidTransition(self._state, CodeSent(email=email))

        email = email.strip().lower()
        try:
            self._check_email(email)
        except AccessDenied as e:
            self._apply(RequestFailed(email=email, message=e.message))
            return self._state

        await self._send_code(email, automatic=False)
        return self._state

    async def resend_code(self) -> AccessState:
        if not isinstance(self._state, OtpInput):
            raise InvalidTransition(self._state, CodeSent(email=""))
        await self._send_code(self._state.email, automatic=False)
        return self._state

    async def submit_otp(self, otp: str) -> AccessState:
        state = self._state
        if not isinstance(state, OtpInput):
            raise InvalidTransition(state, VerifyFailed(message=""))

        code = otp.strip()
        if not OTP_RE.match(code):
            self._apply(VerifyFailed("Enter the numeric code from your email."))
            return self._state

        try:
            result = await self._client.verify_access(self._token, state.email, code)
        except ShareError as e:
            logger.info("OTP verification for %s on %s failed: %s", state.email, self._token, e.message)
            self._apply(VerifyFailed(e.message))
            return self._state

        self._store.write(self._token, state.email, result.share_type, result.folder_id)
        self._document = result.document
        self._apply(Verified(
            email=state.email,
            share_type=result.share_type,
            folder_id=result.folder_id,
        ))
        return self._state

    def change_email(self) -> AccessState:
        return self._apply(ChangeEmail())
