"""Test fixtures: in-memory document backend and FastAPI test client."""

import json

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shareview.config import settings
from shareview.main import create_app
from shareview.services import init_services, shutdown_services
from shareview.services.download_manager import DownloadManager
from shareview.services.preview import ContentPreviewDispatcher
from shareview.services.session_store import SessionStore
from shareview.services.share_client import ShareApiClient

BACKEND_URL = "http://docs.test/api"
OTP_CODE = "123456"
BROWSER_ID = "browser-1"


def _envelope(status_code: int, kind: str, message: str) -> httpx.Response:
    return httpx.Response(status_code, json={"kind": kind, "message": message})


class FakeDocumentBackend:
    """Answers the /share endpoints the way the document service does.

    Every viewer must pass OTP verification before listing or downloading;
    the only valid code is ``OTP_CODE``.
    """

    def __init__(self):
        self.shares: dict[str, dict] = {}
        self.grants: dict[str, dict] = {}
        self.files: dict[tuple[str, str | None], tuple[bytes, str, str | None]] = {}
        self.folders: dict[tuple[str, str | None], dict] = {}
        self.verified: set[tuple[str, str]] = set()
        self.requests: list[httpx.Request] = []

    # --- Setup ---

    def add_share(
        self,
        token: str,
        share_type: str = "file",
        is_restricted: bool = False,
        target_email: str | None = None,
        folder_id: str | None = None,
        document: dict | None = None,
    ) -> None:
        self.shares[token] = {
            "is_restricted": is_restricted,
            "target_email": target_email,
            "target_email_hint": _mask(target_email) if target_email else None,
            "expiry_date": "2030-01-01T00:00:00Z",
            "share_type": share_type,
        }
        self.grants[token] = {"share_type": share_type, "folder_id": folder_id, "document": document}

    def add_file(
        self,
        token: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        filename: str | None = None,
        doc_id: str | None = None,
    ) -> None:
        self.files[(token, doc_id)] = (data, content_type, filename)

    def add_folder(self, token: str, listing: dict, parent_id: str | None = None) -> None:
        self.folders[(token, parent_id)] = listing

    def calls(self, action: str) -> list[httpx.Request]:
        return [r for r in self.requests if f"/share/{action}/" in r.url.path]

    # --- Transport ---

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        action, token = request.url.path.split("/")[-2:]
        share = self.shares.get(token)
        if share is None:
            return _envelope(404, "link_invalid", "Share link not found.")

        if action == "info":
            return httpx.Response(200, json=share)

        if action == "request-access":
            email = json.loads(request.content)["viewer_email"]
            if share["is_restricted"] and email != share["target_email"]:
                return _envelope(403, "access_denied", "This link was not shared with you.")
            return httpx.Response(200, json={"message": "Verification code sent"})

        if action == "verify-access":
            body = json.loads(request.content)
            if body["otp"] != OTP_CODE:
                return _envelope(400, "access_denied", "Invalid or expired code.")
            self.verified.add((token, body["viewer_email"]))
            return httpx.Response(200, json=self.grants[token])

        email = request.url.params.get("viewer_email")
        if (token, email) not in self.verified:
            return _envelope(403, "access_denied", "Access denied.")

        if action == "folder-contents":
            listing = self.folders.get((token, request.url.params.get("parent_id")))
            if listing is None:
                return _envelope(404, "access_denied", "Folder not found.")
            return httpx.Response(200, json=listing)

        # Single-file shares resolve the document from the token alone
        doc_id = request.url.params.get("doc_id") if share["share_type"] == "folder" else None
        entry = self.files.get((token, doc_id))
        if entry is None:
            return _envelope(404, "access_denied", "File not found.")
        data, content_type, filename = entry
        headers = {"content-type": content_type}
        if filename:
            headers["content-disposition"] = f'attachment; filename="{filename}"'

        range_header = request.headers.get("range")
        if range_header and (action == "stream" or content_type.startswith("video/")):
            start, _, end = range_header.removeprefix("bytes=").partition("-")
            first = int(start)
            last = int(end) if end else len(data) - 1
            headers["content-range"] = f"bytes {first}-{last}/{len(data)}"
            headers["accept-ranges"] = "bytes"
            return httpx.Response(206, content=data[first:last + 1], headers=headers)
        return httpx.Response(200, content=data, headers=headers)


def _mask(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[0]}***@{domain}"


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    """Keep session files and previews inside the test's temp dir."""
    monkeypatch.setattr(settings, "session_dir", str(tmp_path / "sessions"))
    monkeypatch.setattr(settings, "preview_dir", str(tmp_path / "previews"))
    monkeypatch.setattr(settings, "allowed_email_domain", "")


@pytest.fixture
def backend():
    return FakeDocumentBackend()


@pytest.fixture
def share_client(backend):
    return ShareApiClient(base_url=BACKEND_URL, transport=httpx.MockTransport(backend.handler))


@pytest.fixture
def sessions(tmp_path):
    return SessionStore(session_dir=str(tmp_path / "sessions"))


@pytest.fixture
def store(sessions):
    """Stored sessions of a single browser."""
    return sessions.for_client(BROWSER_ID)


@pytest.fixture
def downloads(share_client, tmp_path):
    return DownloadManager(share_client, preview_dir=str(tmp_path / "previews"))


@pytest.fixture
def dispatcher(downloads):
    return ContentPreviewDispatcher(materialize=downloads.write_local)


@pytest.fixture
def app(share_client):
    """FastAPI app whose services talk to the fake document backend."""
    init_services(client=share_client)
    yield create_app()
    shutdown_services()


@pytest_asyncio.fixture
async def client(app):
    """Provide an async test client; it keeps cookies like a browser."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
