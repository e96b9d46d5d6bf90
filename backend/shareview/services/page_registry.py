"""In-memory registry of open page sessions."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Callable

from shareview.config import settings
from shareview.services.viewer_page import SharedViewerPage

logger = logging.getLogger(__name__)

PageFactory = Callable[[str, str], SharedViewerPage]


class PageRegistry:
    """Open pages by id, least recently used first.

    Opening a page beyond ``max_pages`` closes the least recently used one so
    its local content is released.
    """

    def __init__(self, factory: PageFactory, max_pages: int | None = None):
        self._factory = factory
        self._max_pages = max_pages or settings.max_open_pages
        self._pages: OrderedDict[str, SharedViewerPage] = OrderedDict()

    def __len__(self) -> int:
        return len(self._pages)

    async def open(self, token: str, client_id: str) -> SharedViewerPage:
        """Create and load a page for ``token`` on behalf of browser ``client_id``."""
        page = self._factory(token, client_id)
        self._pages[page.page_id] = page
        while len(self._pages) > self._max_pages:
            old_id, old_page = self._pages.popitem(last=False)
            old_page.close()
            logger.info("Evicted page %s (share %s)", old_id, old_page.token)
        await page.load()
        logger.info("Opened page %s for share %s: %s", page.page_id, token, page.status.value)
        return page

    def get(self, page_id: str) -> SharedViewerPage | None:
        page = self._pages.get(page_id)
        if page is not None:
            self._pages.move_to_end(page_id)
        return page

    def close(self, page_id: str) -> bool:
        page = self._pages.pop(page_id, None)
        if page is None:
            return False
        page.close()
        return True

    def close_all(self) -> None:
        while self._pages:
            _, page = self._pages.popitem(last=False)
            page.close()
