"""Authenticated share downloads and the local content handles they produce."""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Protocol

from shareview.config import settings
from shareview.schemas.share import SharedDocument
from shareview.utils.content import (
    base_type,
    effective_content_type,
    extension,
    filename_from_disposition,
)

if TYPE_CHECKING:
    from shareview.services.share_client import ShareApiClient

logger = logging.getLogger(__name__)


class HandleReleased(Exception):
    """Raised when reading from a handle that was already released."""


class ContentHandle:
    """Local, short-lived reference to downloaded bytes (or a video stream URL).

    ``release()`` frees the resource exactly once; later calls are no-ops.
    """

    def __init__(
        self,
        file_name: str,
        file_type: str,
        path: Path | None = None,
        stream_url: str | None = None,
    ):
        self.file_name = file_name
        self.file_type = file_type
        self.path = path
        self.stream_url = stream_url
        self._released = False

    @property
    def is_stream(self) -> bool:
        return self.stream_url is not None

    @property
    def released(self) -> bool:
        return self._released

    @property
    def file_url(self) -> str:
        if self.stream_url is not None:
            return self.stream_url
        return self.path.as_uri() if self.path else ""

    @property
    def size(self) -> int:
        if self.path is None or self._released:
            return 0
        return self.path.stat().st_size

    def read_bytes(self) -> bytes:
        if self._released:
            raise HandleReleased(self.file_name)
        if self.path is None:
            raise ValueError(f"{self.file_name} is a stream, not a local file")
        return self.path.read_bytes()

    def release(self) -> bool:
        """Free the local resource. Returns True only on the releasing call."""
        if self._released:
            return False
        self._released = True
        if self.path is not None:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
        logger.debug("Released content handle %s", self.file_name)
        return True

    def __repr__(self) -> str:
        return f"<ContentHandle(name='{self.file_name}', type='{self.file_type}', released={self._released})>"


class Releasable(Protocol):
    def release(self) -> bool: ...


class ContentSlot:
    """Holds at most one live resource; replacing or clearing releases the old one."""

    def __init__(self) -> None:
        self._resource: Releasable | None = None

    @property
    def current(self):
        return self._resource

    def replace(self, resource: Releasable | None) -> None:
        old, self._resource = self._resource, resource
        if old is not None and old is not resource:
            old.release()

    def clear(self) -> None:
        self.replace(None)


class DownloadManager:
    """Fetches shared files and materializes them as :class:`ContentHandle`."""

    DEFAULT_FILE_NAME = "file"
    DEFAULT_VIDEO_NAME = "video.mp4"

    def __init__(self, client: ShareApiClient, preview_dir: str | None = None):
        self._client = client
        self._dir = Path(preview_dir or settings.preview_dir)

    async def fetch_and_open(
        self,
        token: str,
        viewer_email: str,
        item_id: str | None = None,
        hint: SharedDocument | None = None,
        default_name: str | None = None,
    ) -> ContentHandle:
        """Download a shared file (or resolve its video stream) into a handle.

        ``item_id`` is required for members of a folder share and omitted for
        single-file shares. Without a ``hint`` a one-byte ranged probe decides
        whether the file is a video.
        """
        doc_id = item_id or (hint.doc_id if hint else None)
        fallback_name = (hint.docname if hint else None) or default_name

        if hint is not None and hint.is_video:
            return self._stream_handle(
                token, viewer_email, doc_id,
                fallback_name or self.DEFAULT_VIDEO_NAME,
                hint.mime_type if (hint.mime_type or "").startswith("video/") else "video/mp4",
            )

        if hint is None:
            probe = await self._client.download(
                token, viewer_email, doc_id=doc_id, headers={"Range": "bytes=0-0"},
            )
            probe_type = base_type(probe.headers.get("content-type"))
            probe_name = filename_from_disposition(probe.headers.get("content-disposition"))
            if probe_type.startswith("video/"):
                return self._stream_handle(
                    token, viewer_email, doc_id,
                    probe_name or fallback_name or self.DEFAULT_VIDEO_NAME, probe_type,
                )
            # Server ignored the range and sent everything
            resp = probe if probe.status_code == 200 else None
        else:
            resp = None

        if resp is None:
            resp = await self._client.download(token, viewer_email, doc_id=doc_id)

        file_name = (
            filename_from_disposition(resp.headers.get("content-disposition"))
            or fallback_name
            or self.DEFAULT_FILE_NAME
        )
        file_type = effective_content_type(
            resp.headers.get("content-type"),
            hint.mime_type if hint else None,
            file_name,
        )
        handle = self.write_local(resp.content, file_name, file_type)
        logger.info(
            "Downloaded %s (%s, %d bytes) from share %s",
            file_name, file_type, len(resp.content), token,
        )
        return handle

    @asynccontextmanager
    async def materialize(self, *args, **kwargs) -> AsyncIterator[ContentHandle]:
        """``fetch_and_open`` with guaranteed release when the block exits."""
        handle = await self.fetch_and_open(*args, **kwargs)
        try:
            yield handle
        finally:
            handle.release()

    def _stream_handle(
        self, token: str, viewer_email: str, doc_id: str | None, file_name: str, file_type: str,
    ) -> ContentHandle:
        url = self._client.stream_url(token, viewer_email, doc_id=doc_id)
        logger.info("Streaming %s from share %s", file_name, token)
        return ContentHandle(file_name=file_name, file_type=file_type, stream_url=url)

    def write_local(self, data: bytes, file_name: str, file_type: str) -> ContentHandle:
        """Materialize bytes as a temp file owned by the returned handle."""
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix="share-", suffix=extension(file_name), dir=self._dir)
        path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError:
            path.unlink(missing_ok=True)
            raise
        return ContentHandle(file_name=file_name, file_type=file_type, path=path)
