"""Business logic services: singleton registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shareview.config import settings

if TYPE_CHECKING:
    from shareview.services.download_manager import DownloadManager
    from shareview.services.page_registry import PageRegistry
    from shareview.services.preview import ContentPreviewDispatcher
    from shareview.services.session_store import SessionStore
    from shareview.services.share_client import ShareApiClient

logger = logging.getLogger(__name__)

_share_client: ShareApiClient | None = None
_session_store: SessionStore | None = None
_download_manager: DownloadManager | None = None
_dispatcher: ContentPreviewDispatcher | None = None
_page_registry: PageRegistry | None = None


def init_services(client: ShareApiClient | None = None) -> None:
    """Create and wire up all service singletons."""
    global _share_client, _session_store, _download_manager, _dispatcher, _page_registry

    from shareview.services.download_manager import DownloadManager
    from shareview.services.page_registry import PageRegistry
    from shareview.services.preview import ContentPreviewDispatcher
    from shareview.services.session_store import SessionStore
    from shareview.services.share_client import ShareApiClient
    from shareview.services.viewer_page import SharedViewerPage

    _share_client = client or ShareApiClient()
    _session_store = SessionStore()
    _download_manager = DownloadManager(_share_client)
    _dispatcher = ContentPreviewDispatcher(materialize=_download_manager.write_local)

    def _new_page(token: str, client_id: str) -> SharedViewerPage:
        return SharedViewerPage(
            token,
            client=_share_client,
            store=_session_store.for_client(client_id),
            downloads=_download_manager,
            dispatcher=_dispatcher,
            allowed_domain=settings.allowed_email_domain,
        )

    _page_registry = PageRegistry(_new_page)
    logger.info("Share services initialized (backend %s)", _share_client.base_url)


def shutdown_services() -> None:
    """Close all open pages, releasing their local content."""
    global _page_registry
    if _page_registry:
        _page_registry.close_all()
        _page_registry = None


def get_share_client() -> ShareApiClient:
    if _share_client is None:
        raise RuntimeError("Services not initialized, call init_services() first")
    return _share_client


def get_session_store() -> SessionStore:
    if _session_store is None:
        raise RuntimeError("Services not initialized, call init_services() first")
    return _session_store


def get_page_registry() -> PageRegistry:
    if _page_registry is None:
        raise RuntimeError("Services not initialized, call init_services() first")
    return _page_registry
