"""Page session: one load of a shared link, owning every piece of its state."""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import TYPE_CHECKING

from shareview.config import settings
from shareview.errors import LinkInvalid, ShareError
from shareview.schemas.page import AccessStateOut, FolderViewOut, PageOut
from shareview.schemas.preview import PreviewOut
from shareview.schemas.share import FolderItem, SharedDocument, StoredSession
from shareview.services.access_state import (
    AccessStateMachine,
    AccessStep,
    EmailInput,
    OtpInput,
    Success,
)
from shareview.services.download_manager import ContentHandle, ContentSlot
from shareview.services.folder_navigator import FolderNavigator
from shareview.services.preview import (
    PresentationPreview,
    Preview,
    SpreadsheetPreview,
    TextPreview,
)
from shareview.services.share_info import ShareInfoResolver
from shareview.utils.content import looks_like_mime

if TYPE_CHECKING:
    from shareview.services.download_manager import DownloadManager
    from shareview.services.preview import ContentPreviewDispatcher
    from shareview.services.session_store import ClientSessions
    from shareview.services.share_client import ShareApiClient

logger = logging.getLogger(__name__)


class PageStatus(str, Enum):
    LOADING = "loading"
    LINK_INVALID = "link_invalid"
    EMAIL_INPUT = "email_input"
    OTP_INPUT = "otp_input"
    SUCCESS = "success"


class PageStateError(Exception):
    """The requested action does not fit the page's current state."""


class ItemNotFound(Exception):
    pass


class SharedViewerPage:
    """Wires resolver, session store, state machine, navigator and previews
    together for one token and releases every local resource on close."""

    def __init__(
        self,
        token: str,
        client: ShareApiClient,
        store: ClientSessions,
        downloads: DownloadManager,
        dispatcher: ContentPreviewDispatcher,
        allowed_domain: str | None = None,
        page_id: str | None = None,
    ):
        self.page_id = page_id or uuid.uuid4().hex
        self.token = token
        self.client_id = store.client_id
        self._client = client
        self._store = store
        self._downloads = downloads
        self._dispatcher = dispatcher
        self._allowed_domain = allowed_domain
        self._resolver = ShareInfoResolver(client, token)
        self._machine: AccessStateMachine | None = None
        self._navigator: FolderNavigator | None = None
        self._preview = ContentSlot()
        self._content_error: str | None = None
        self._closed = False

    # --- State ---

    @property
    def status(self) -> PageStatus:
        if self._resolver.error is not None:
            return PageStatus.LINK_INVALID
        if self._machine is None:
            return PageStatus.LOADING
        return PageStatus(self._machine.step.value)

    @property
    def machine(self) -> AccessStateMachine | None:
        return self._machine

    @property
    def navigator(self) -> FolderNavigator | None:
        return self._navigator

    @property
    def preview(self) -> Preview | None:
        return self._preview.current

    @property
    def content_error(self) -> str | None:
        return self._content_error

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_machine(self) -> AccessStateMachine:
        if self._machine is None:
            raise PageStateError(f"Page is {self.status.value}")
        return self._machine

    def _require_success(self) -> Success:
        state = self._require_machine().state
        if not isinstance(state, Success):
            raise PageStateError(f"Page is {state.step.value}, not verified")
        return state

    def _require_navigator(self) -> FolderNavigator:
        self._require_success()
        if self._navigator is None:
            raise PageStateError("This link does not share a folder")
        return self._navigator

    # --- Lifecycle ---

    async def load(self) -> PageStatus:
        """Resolve the share, then restore a cached identity or start verification."""
        if self._machine is not None or self._resolver.error is not None:
            return self.status
        try:
            info = await self._resolver.resolve()
        except LinkInvalid:
            return self.status

        # Stays "loading" until a cached identity is restored or verification begins
        machine = AccessStateMachine(
            self.token, info, self._client, self._store,
            load_content=self._restore_content,
            allowed_domain=self._allowed_domain,
        )
        await machine.start()
        self._machine = machine
        return self.status

    def close(self) -> None:
        """Release the open preview and everything it owns."""
        if self._closed:
            return
        self._closed = True
        self._preview.clear()
        logger.debug("Closed page %s for share %s", self.page_id, self.token)

    # --- Access actions ---

    async def submit_email(self, email: str) -> PageStatus:
        await self._require_machine().submit_email(email)
        return self.status

    async def resend_code(self) -> PageStatus:
        await self._require_machine().resend_code()
        return self.status

    def change_email(self) -> PageStatus:
        self._require_machine().change_email()
        return self.status

    async def submit_otp(self, otp: str) -> PageStatus:
        machine = self._require_machine()
        state = await machine.submit_otp(otp)
        if isinstance(state, Success):
            await self._load_verified(state, machine.document)
        return self.status

    # --- Content ---

    async def _restore_content(self, session: StoredSession) -> None:
        """Load content with a cached identity. Any ShareError means the cache is stale."""
        if session.share_type == "folder":
            navigator = self._make_navigator(session.email, session.folder_id)
            await navigator.enter(session.folder_id)
            self._navigator = navigator
        else:
            await self._show_file(session.email, item_id=None, hint=None)

    async def _load_verified(self, state: Success, document: SharedDocument | None) -> None:
        self._content_error = None
        try:
            if state.share_type == "folder":
                self._navigator = self._make_navigator(state.email, state.folder_id)
                await self._navigator.enter(state.folder_id)
            else:
                await self._show_file(state.email, item_id=None, hint=document)
        except ShareError as e:
            await self._content_failed(e)

    def _make_navigator(self, email: str, root_folder_id: str | None) -> FolderNavigator:
        return FolderNavigator(
            self._client, self.token, email,
            root_folder_id=root_folder_id,
            open_file=self._open_folder_item,
        )

    async def _show_file(
        self, email: str, item_id: str | None, hint: SharedDocument | None,
    ) -> None:
        handle = await self._downloads.fetch_and_open(self.token, email, item_id=item_id, hint=hint)
        if self._closed:
            handle.release()
            logger.debug("Page %s closed during download, dropped %s", self.page_id, handle.file_name)
            return
        try:
            preview = self._dispatcher.render(handle)
        except Exception:
            handle.release()
            raise
        self._preview.replace(preview)
        self._content_error = None

    async def _open_folder_item(self, item: FolderItem) -> None:
        email = self._require_success().email
        hint = SharedDocument(
            doc_id=item.id,
            docname=item.name,
            media_type=item.media_type or None,
            mime_type=item.media_type if looks_like_mime(item.media_type) else None,
        )
        await self._show_file(email, item_id=item.id, hint=hint)

    async def _content_failed(self, error: ShareError) -> None:
        if error.is_auth_failure:
            logger.info(
                "Share %s rejected verified identity (%s), starting over", self.token, error.message,
            )
            self._preview.clear()
            self._navigator = None
            self._content_error = None
            await self._require_machine().reset()
            return
        self._content_error = error.message

    async def enter_folder(self, folder_id: str | None) -> PageStatus:
        navigator = self._require_navigator()
        try:
            await navigator.enter(folder_id)
        except ShareError as e:
            await self._content_failed(e)
        return self.status

    async def go_up(self) -> PageStatus:
        navigator = self._require_navigator()
        try:
            await navigator.go_up()
        except ShareError as e:
            await self._content_failed(e)
        return self.status

    async def open_item(self, item_id: str) -> PageStatus:
        navigator = self._require_navigator()
        item = navigator.find(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        try:
            await navigator.open_file(item)
        except ShareError as e:
            await self._content_failed(e)
        return self.status

    async def open_shared_file(self) -> PageStatus:
        """(Re)open the file of a single-file share."""
        state = self._require_success()
        if state.share_type != "file":
            raise PageStateError("This link shares a folder")
        try:
            await self._show_file(state.email, item_id=None, hint=self._machine.document)
        except ShareError as e:
            await self._content_failed(e)
        return self.status

    def select_sheet(self, sheet: str) -> PreviewOut:
        preview = self._preview.current
        if not isinstance(preview, SpreadsheetPreview):
            raise PageStateError("No spreadsheet is open")
        preview.select_sheet(sheet)
        return self._preview_view(preview)

    def close_preview(self) -> None:
        self._preview.clear()

    def current_content(self) -> ContentHandle | None:
        preview = self._preview.current
        return preview.handle if preview is not None else None

    def current_thumbnail(self) -> ContentHandle | None:
        preview = self._preview.current
        if isinstance(preview, PresentationPreview):
            return preview.thumbnail
        return None

    # --- View ---

    def _url(self, suffix: str) -> str:
        return f"{settings.api_prefix}/pages/{self.page_id}/{suffix}"

    def _preview_view(self, preview: Preview) -> PreviewOut:
        out = PreviewOut(
            kind=preview.kind.value,
            file_name=preview.handle.file_name,
            file_type=preview.handle.file_type,
            content_url=self._url("content"),
            notice=preview.notice,
        )
        if isinstance(preview, TextPreview):
            out.text = preview.text
        elif isinstance(preview, SpreadsheetPreview):
            out.sheet_names = preview.sheet_names
            out.grid = preview.grid
        elif isinstance(preview, PresentationPreview):
            out.slides = preview.slides
            if preview.thumbnail is not None:
                out.thumbnail_url = self._url("thumbnail")
        return out

    def _access_view(self) -> AccessStateOut | None:
        if self._machine is None:
            return None
        state = self._machine.state
        hint = self._resolver.info.target_email_hint if self._resolver.info else None
        if isinstance(state, EmailInput):
            return AccessStateOut(
                step=state.step.value, email_draft=state.email_draft,
                email_hint=hint, error=state.error,
            )
        if isinstance(state, OtpInput):
            return AccessStateOut(
                step=state.step.value, email=state.email, email_draft=state.email,
                email_hint=hint, notice=state.notice, error=state.error,
            )
        return AccessStateOut(step=AccessStep.SUCCESS.value, email=state.email)

    def _folder_view(self) -> FolderViewOut | None:
        nav = self._navigator
        if nav is None:
            return None
        listing = nav.listing
        return FolderViewOut(
            loading=nav.loading,
            folder_id=nav.folder_id,
            folder_name=listing.folder_name if listing else "",
            root_folder_id=nav.root_folder_id,
            contents=nav.contents,
            breadcrumbs=nav.breadcrumbs,
            error=nav.error,
        )

    def view(self) -> PageOut:
        error = self._resolver.error
        preview = self._preview.current
        return PageOut(
            page_id=self.page_id,
            token=self.token,
            status=self.status.value,
            error=error.message if error else None,
            share_info=self._resolver.info,
            access=self._access_view(),
            folder=self._folder_view(),
            preview=self._preview_view(preview) if preview is not None else None,
            content_error=self._content_error,
        )
