"""Shared link viewer routes: one page session per link load."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from fastapi.responses import FileResponse, StreamingResponse

from shareview.api.deps import ensure_client_id, get_page
from shareview.errors import ShareError
from shareview.schemas.page import EmailSubmit, OtpSubmit, PageOut, SheetSelect
from shareview.schemas.preview import PreviewOut
from shareview.services import get_page_registry, get_share_client
from shareview.services.download_manager import ContentHandle
from shareview.services.viewer_page import ItemNotFound, SharedViewerPage

logger = logging.getLogger(__name__)
router = APIRouter()

PASSTHROUGH_HEADERS = ("content-type", "content-length", "content-range", "accept-ranges")


@router.post("/shared/{token}/pages", response_model=PageOut, status_code=status.HTTP_201_CREATED)
async def open_page(token: str, request: Request, response: Response):
    """Load a shared link: resolve the share, then restore or start verification.

    Only sessions verified by the same browser (client cookie) are restored.
    """
    client_id = ensure_client_id(request, response)
    page = await get_page_registry().open(token, client_id)
    return page.view()


@router.get("/pages/{page_id}", response_model=PageOut)
async def page_view(page: SharedViewerPage = Depends(get_page)):
    return page.view()


@router.delete("/pages/{page_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_page(page: SharedViewerPage = Depends(get_page)):
    get_page_registry().close(page.page_id)


# --- Access ---

@router.post("/pages/{page_id}/email", response_model=PageOut)
async def submit_email(body: EmailSubmit, page: SharedViewerPage = Depends(get_page)):
    await page.submit_email(body.email)
    return page.view()


@router.post("/pages/{page_id}/otp", response_model=PageOut)
async def submit_otp(body: OtpSubmit, page: SharedViewerPage = Depends(get_page)):
    await page.submit_otp(body.otp)
    return page.view()


@router.post("/pages/{page_id}/change-email", response_model=PageOut)
async def change_email(page: SharedViewerPage = Depends(get_page)):
    page.change_email()
    return page.view()


@router.post("/pages/{page_id}/resend", response_model=PageOut)
async def resend_code(page: SharedViewerPage = Depends(get_page)):
    await page.resend_code()
    return page.view()


# --- Folder navigation ---

@router.post("/pages/{page_id}/folders/{folder_id}", response_model=PageOut)
async def enter_folder(folder_id: str, page: SharedViewerPage = Depends(get_page)):
    await page.enter_folder(folder_id)
    return page.view()


@router.post("/pages/{page_id}/up", response_model=PageOut)
async def go_up(page: SharedViewerPage = Depends(get_page)):
    await page.go_up()
    return page.view()


@router.post("/pages/{page_id}/items/{item_id}/open", response_model=PageOut)
async def open_item(item_id: str, page: SharedViewerPage = Depends(get_page)):
    try:
        await page.open_item(item_id)
    except ItemNotFound:
        raise HTTPException(404, f"Item {item_id} is not in the current folder")
    return page.view()


@router.post("/pages/{page_id}/file/open", response_model=PageOut)
async def open_shared_file(page: SharedViewerPage = Depends(get_page)):
    await page.open_shared_file()
    return page.view()


# --- Preview ---

@router.get("/pages/{page_id}/preview", response_model=PreviewOut)
async def preview(page: SharedViewerPage = Depends(get_page)):
    out = page.view().preview
    if out is None:
        raise HTTPException(404, "No file is open")
    return out


@router.post("/pages/{page_id}/preview/sheet", response_model=PreviewOut)
async def select_sheet(body: SheetSelect, page: SharedViewerPage = Depends(get_page)):
    try:
        return page.select_sheet(body.sheet)
    except KeyError:
        raise HTTPException(404, f"Sheet '{body.sheet}' not found")


@router.delete("/pages/{page_id}/preview", status_code=status.HTTP_204_NO_CONTENT)
async def close_preview(page: SharedViewerPage = Depends(get_page)):
    page.close_preview()


@router.get("/pages/{page_id}/content")
async def content(
    page: SharedViewerPage = Depends(get_page),
    range_header: str | None = Header(default=None, alias="Range"),
):
    """Bytes of the open file, or the proxied video stream."""
    handle = page.current_content()
    if handle is None or handle.released:
        raise HTTPException(404, "No file is open")
    if handle.is_stream:
        return await _proxy_stream(handle, range_header)
    return _file_response(handle)


@router.get("/pages/{page_id}/thumbnail")
async def thumbnail(page: SharedViewerPage = Depends(get_page)):
    handle = page.current_thumbnail()
    if handle is None or handle.released:
        raise HTTPException(404, "No thumbnail available")
    return _file_response(handle)


def _file_response(handle: ContentHandle) -> FileResponse:
    return FileResponse(
        handle.path,
        media_type=handle.file_type,
        filename=handle.file_name,
        content_disposition_type="inline",
    )


async def _proxy_stream(handle: ContentHandle, range_header: str | None) -> StreamingResponse:
    """Relay the backend video stream without buffering it."""
    headers = {"Range": range_header} if range_header else None
    stack = AsyncExitStack()
    try:
        upstream = await stack.enter_async_context(
            get_share_client().open_stream(handle.stream_url, headers=headers)
        )
    except ShareError:
        await stack.aclose()
        raise

    async def body():
        try:
            async for chunk in upstream.aiter_bytes():
                yield chunk
        finally:
            await stack.aclose()

    passthrough = {k: v for k, v in upstream.headers.items() if k.lower() in PASSTHROUGH_HEADERS}
    passthrough.setdefault("content-type", handle.file_type)
    return StreamingResponse(body(), status_code=upstream.status_code, headers=passthrough)
