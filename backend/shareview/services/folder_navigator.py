"""Breadcrumb-tracked traversal of a shared folder tree."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from shareview.errors import ShareError
from shareview.schemas.share import BreadcrumbItem, FolderContents, FolderItem

if TYPE_CHECKING:
    from shareview.services.share_client import ShareApiClient

logger = logging.getLogger(__name__)

FileOpener = Callable[[FolderItem], Awaitable[None]]


class FolderNavigator:
    """Current view of one folder share.

    Listings and breadcrumbs always come from the backend; nothing about
    nesting is derived locally. While a fetch is in flight ``contents`` is
    None, and the result of a navigation that has been superseded is dropped.
    """

    def __init__(
        self,
        client: ShareApiClient,
        token: str,
        viewer_email: str,
        root_folder_id: str | None = None,
        open_file: FileOpener | None = None,
    ):
        self._client = client
        self._token = token
        self._email = viewer_email
        self._root_id = root_folder_id
        self._open_file = open_file
        self._generation = 0
        self._listing: FolderContents | None = None
        self._loading = False
        self._error: str | None = None

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def listing(self) -> FolderContents | None:
        return None if self._loading else self._listing

    @property
    def contents(self) -> list[FolderItem] | None:
        listing = self.listing
        return listing.contents if listing else None

    @property
    def breadcrumbs(self) -> list[BreadcrumbItem]:
        listing = self.listing
        return listing.breadcrumbs if listing else []

    @property
    def root_folder_id(self) -> str | None:
        return self._root_id

    @property
    def folder_id(self) -> str | None:
        listing = self.listing
        return listing.folder_id if listing else None

    async def enter(self, folder_id: str | None = None) -> FolderContents | None:
        """Load ``folder_id`` (None = share root) and make it the current view.

        Returns the listing, or None when a newer navigation superseded this
        one. Failures are recorded on ``error`` and re-raised.
        """
        self._generation += 1
        generation = self._generation
        self._loading = True
        self._error = None

        parent_id = folder_id if folder_id and folder_id != self._root_id else None
        try:
            listing = await self._client.folder_contents(self._token, self._email, parent_id=parent_id)
        except ShareError as e:
            if generation != self._generation:
                return None
            self._loading = False
            self._error = e.message
            logger.info("Folder %s of share %s failed: %s", folder_id or "root", self._token, e.message)
            raise

        if generation != self._generation:
            logger.debug("Discarding superseded listing of %s", folder_id or "root")
            return None

        if self._root_id is None:
            self._root_id = listing.root_folder_id
        self._listing = listing
        self._loading = False
        logger.debug(
            "Share %s: entered %s (%d items)", self._token, listing.folder_id, len(listing.contents),
        )
        return listing

    async def go_up(self) -> FolderContents | None:
        """Re-enter the parent breadcrumb. No-op at the share root."""
        crumbs = self.breadcrumbs
        if len(crumbs) < 2:
            return self.listing
        return await self.enter(crumbs[-2].id)

    def find(self, item_id: str) -> FolderItem | None:
        for item in self.contents or []:
            if item.id == item_id:
                return item
        return None

    async def open_file(self, item: FolderItem) -> None:
        if item.type == "folder":
            await self.enter(item.id)
            return
        if self._open_file is None:
            raise RuntimeError("No file opener configured")
        await self._open_file(item)
