"""FastAPI dependency injection: browser client identity and page session lookup."""

from __future__ import annotations

import re
import secrets

from fastapi import HTTPException, Request, Response, status

from shareview.config import settings
from shareview.services import get_page_registry
from shareview.services.viewer_page import SharedViewerPage

_CLIENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{32,128}$")


def read_client_id(request: Request) -> str | None:
    """The browser's client id from its cookie, or None if absent or malformed."""
    value = request.cookies.get(settings.client_cookie_name)
    if value and _CLIENT_ID_RE.match(value):
        return value
    return None


def ensure_client_id(request: Request, response: Response) -> str:
    """Reuse the browser's client id or issue a new one, refreshing the cookie."""
    client_id = read_client_id(request) or secrets.token_urlsafe(32)
    response.set_cookie(
        settings.client_cookie_name,
        client_id,
        max_age=settings.client_cookie_max_age_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.client_cookie_secure,
        samesite="lax",
    )
    return client_id


async def get_page(page_id: str, request: Request) -> SharedViewerPage:
    """Resolve an open page session owned by the calling browser or 404."""
    page = get_page_registry().get(page_id)
    if page is None or page.client_id != read_client_id(request):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Page session not found or expired, reload the shared link",
        )
    return page
