"""Document backend client for the /share endpoints."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from pydantic import ValidationError

from shareview.config import settings
from shareview.errors import (
    LinkInvalid,
    NetworkFailure,
    error_from_response,
    parse_error_body,
)
from shareview.schemas.share import FolderContents, ShareInfo, VerifyResult

logger = logging.getLogger(__name__)


class ShareApiClient:
    """Thin async client over the backend's share API.

    Every call opens its own short-lived ``httpx.AsyncClient``; ``transport``
    is injectable so tests can answer with ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or settings.backend_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Share backend unreachable (%s %s): %s", method, path, e)
            raise NetworkFailure("Could not reach the document service.") from e

    @staticmethod
    def _params(viewer_email: str, **extra: str | None) -> dict[str, str]:
        params = {"viewer_email": viewer_email}
        params.update({k: v for k, v in extra.items() if v})
        return params

    async def get_share_info(self, token: str) -> ShareInfo:
        try:
            resp = await self._send("GET", f"/share/info/{token}")
        except NetworkFailure as e:
            raise LinkInvalid() from e
        if not resp.is_success:
            message, structured = parse_error_body(resp.text)
            raise LinkInvalid(message if structured else None, status_code=resp.status_code)
        try:
            return ShareInfo.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.warning("Malformed share info for token %s: %s", token, e)
            raise LinkInvalid() from e

    async def request_access(self, token: str, viewer_email: str) -> dict:
        """Ask the backend to send an OTP to ``viewer_email``."""
        resp = await self._send(
            "POST", f"/share/request-access/{token}",
            json={"viewer_email": viewer_email},
        )
        if not resp.is_success:
            raise error_from_response(resp, "Failed to request access")
        try:
            return resp.json()
        except ValueError:
            return {}

    async def verify_access(self, token: str, viewer_email: str, otp: str) -> VerifyResult:
        resp = await self._send(
            "POST", f"/share/verify-access/{token}",
            json={"viewer_email": viewer_email, "otp": otp},
        )
        if not resp.is_success:
            raise error_from_response(resp, "Verification failed")
        try:
            return VerifyResult.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise NetworkFailure("Unexpected verification response.") from e

    async def folder_contents(
        self, token: str, viewer_email: str, parent_id: str | None = None,
    ) -> FolderContents:
        resp = await self._send(
            "GET", f"/share/folder-contents/{token}",
            params=self._params(viewer_email, parent_id=parent_id),
        )
        if not resp.is_success:
            raise error_from_response(resp, "Failed to load folder contents")
        try:
            return FolderContents.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise NetworkFailure("Unexpected folder listing response.") from e

    async def download(
        self, token: str, viewer_email: str, doc_id: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Fetch the full file body. The caller reads headers and content."""
        resp = await self._send(
            "GET", f"/share/download/{token}",
            params=self._params(viewer_email, doc_id=doc_id),
            headers=headers,
        )
        if not resp.is_success:
            raise error_from_response(resp, "Download failed")
        return resp

    def stream_url(self, token: str, viewer_email: str, doc_id: str | None = None) -> str:
        """Absolute backend URL of the video stream endpoint."""
        url = httpx.URL(f"{self._base_url}/share/stream/{token}")
        return str(url.copy_merge_params(self._params(viewer_email, doc_id=doc_id)))

    @asynccontextmanager
    async def open_stream(
        self, url: str, headers: dict[str, str] | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streamed GET on ``url``; the body is read lazily by the caller."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                async with client.stream("GET", url, headers=headers) as resp:
                    if not resp.is_success:
                        await resp.aread()
                        raise error_from_response(resp, "Stream failed")
                    yield resp
        except httpx.HTTPError as e:
            logger.warning("Stream failed for %s: %s", url, e)
            raise NetworkFailure("Could not reach the document service.") from e
