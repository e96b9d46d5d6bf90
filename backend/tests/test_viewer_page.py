"""End-to-end page session tests against the in-memory document backend."""

import pytest

from shareview.services.viewer_page import (
    ItemNotFound,
    PageStateError,
    PageStatus,
    SharedViewerPage,
)

from conftest import OTP_CODE

ALICE = "alice@org.com"
BOB = "bob@org.com"


@pytest.fixture
def new_page(share_client, store, downloads, dispatcher):
    def _new(token: str, allowed_domain: str = "") -> SharedViewerPage:
        return SharedViewerPage(
            token, share_client, store, downloads, dispatcher, allowed_domain=allowed_domain,
        )
    return _new


@pytest.fixture
def file_share(backend):
    """abc123: a text file restricted to alice."""
    backend.add_share(
        "abc123", is_restricted=True, target_email=ALICE,
        document={"doc_id": "1", "docname": "notes.txt", "mime_type": "text/plain", "media_type": "document"},
    )
    backend.add_file("abc123", b"meeting notes", "text/plain", filename="notes.txt")
    return backend


@pytest.fixture
def folder_share(backend):
    """xyz789: an open folder share with a subfolder, a text file and a video."""
    backend.add_share("xyz789", share_type="folder", folder_id="root")
    backend.add_folder("xyz789", {
        "contents": [
            {"id": "sub", "name": "Reports", "type": "folder"},
            {"id": "d1", "name": "readme.txt", "type": "file", "media_type": "document"},
            {"id": "v1", "name": "demo.mp4", "type": "file", "media_type": "video"},
        ],
        "folder_name": "Shared",
        "breadcrumbs": [{"id": "root", "name": "Shared"}],
        "folder_id": "root",
        "root_folder_id": "root",
    })
    backend.add_folder("xyz789", {
        "contents": [{"id": "d2", "name": "q1.txt", "type": "file"}],
        "folder_name": "Reports",
        "breadcrumbs": [{"id": "root", "name": "Shared"}, {"id": "sub", "name": "Reports"}],
        "folder_id": "sub",
        "root_folder_id": "root",
    }, parent_id="sub")
    backend.add_file("xyz789", b"read me", "text/plain", filename="readme.txt", doc_id="d1")
    backend.add_file("xyz789", b"0123456789", "video/mp4", doc_id="v1")
    return backend


async def _verified_folder_page(new_page) -> SharedViewerPage:
    page = new_page("xyz789")
    await page.load()
    await page.submit_email(BOB)
    await page.submit_otp(OTP_CODE)
    return page


@pytest.mark.asyncio
class TestLoad:
    async def test_invalid_link(self, backend, new_page):
        page = new_page("nope")
        assert await page.load() == PageStatus.LINK_INVALID
        view = page.view()
        assert view.status == "link_invalid"
        assert view.error == "Share link not found."
        assert view.access is None

    async def test_restricted_link_auto_sends_code(self, file_share, new_page):
        page = new_page("abc123")
        assert await page.load() == PageStatus.OTP_INPUT
        assert len(file_share.calls("request-access")) == 1

        view = page.view()
        assert view.access.email == ALICE
        assert view.access.email_hint == "a***@org.com"
        assert view.access.notice == f"A verification code was sent automatically to {ALICE}."

    async def test_load_is_idempotent(self, file_share, new_page):
        page = new_page("abc123")
        await page.load()
        await page.load()
        assert len(file_share.calls("info")) == 1
        assert len(file_share.calls("request-access")) == 1


@pytest.mark.asyncio
class TestFileShare:
    async def test_verify_then_preview(self, file_share, new_page, store):
        page = new_page("abc123")
        await page.load()
        assert await page.submit_otp(OTP_CODE) == PageStatus.SUCCESS

        view = page.view()
        assert view.preview.kind == "text"
        assert view.preview.text == "meeting notes"
        assert view.preview.file_name == "notes.txt"
        assert view.preview.content_url.endswith(f"/pages/{page.page_id}/content")
        assert store.read("abc123").email == ALICE

    async def test_revisit_restores_without_otp(self, file_share, new_page):
        first = new_page("abc123")
        await first.load()
        await first.submit_otp(OTP_CODE)
        first.close()

        second = new_page("abc123")
        assert await second.load() == PageStatus.SUCCESS
        assert second.machine.state.restored is True
        assert second.view().preview.text == "meeting notes"
        assert len(file_share.calls("request-access")) == 1

    async def test_other_browser_not_restored(
        self, file_share, new_page, sessions, share_client, downloads, dispatcher,
    ):
        first = new_page("abc123")
        await first.load()
        await first.submit_otp(OTP_CODE)

        other = SharedViewerPage(
            "abc123", share_client, sessions.for_client("browser-2"), downloads, dispatcher,
        )
        assert await other.load() == PageStatus.OTP_INPUT
        assert other.preview is None
        assert len(file_share.calls("request-access")) == 2

    async def test_loading_until_restore_finishes(self, file_share, new_page, store, downloads, monkeypatch):
        store.write("abc123", ALICE, "file")
        page = new_page("abc123")
        seen = []
        fetch = downloads.fetch_and_open

        async def observed(*args, **kwargs):
            seen.append(page.status)
            return await fetch(*args, **kwargs)

        monkeypatch.setattr(downloads, "fetch_and_open", observed)
        assert await page.load() == PageStatus.SUCCESS
        assert seen == [PageStatus.LOADING]
        assert page.view().access is not None

    async def test_stale_session_reverifies(self, file_share, new_page, store):
        store.write("abc123", ALICE, "file")
        page = new_page("abc123")
        assert await page.load() == PageStatus.OTP_INPUT
        assert store.read("abc123") is None
        assert len(file_share.calls("request-access")) == 1

    async def test_wrong_code(self, file_share, new_page):
        page = new_page("abc123")
        await page.load()
        assert await page.submit_otp("999999") == PageStatus.OTP_INPUT
        assert page.view().access.error == "Invalid or expired code."
        assert page.preview is None

    async def test_close_releases_content(self, file_share, new_page):
        page = new_page("abc123")
        await page.load()
        await page.submit_otp(OTP_CODE)
        handle = page.current_content()
        page.close()
        assert handle.released
        assert not handle.path.exists()

    async def test_reopen_replaces_handle(self, file_share, new_page):
        page = new_page("abc123")
        await page.load()
        await page.submit_otp(OTP_CODE)
        old = page.current_content()
        await page.open_shared_file()
        assert old.released
        assert not page.current_content().released

    async def test_revoked_access_resets_identity(self, file_share, new_page, store):
        page = new_page("abc123")
        await page.load()
        await page.submit_otp(OTP_CODE)
        file_share.verified.clear()

        assert await page.open_shared_file() == PageStatus.EMAIL_INPUT
        assert page.view().access.email_draft == ALICE
        assert page.preview is None
        assert store.read("abc123") is None
        assert len(file_share.calls("request-access")) == 1


@pytest.mark.asyncio
class TestFolderShare:
    async def test_root_listing(self, folder_share, new_page):
        page = await _verified_folder_page(new_page)
        folder = page.view().folder
        assert folder.folder_id == "root"
        assert folder.folder_name == "Shared"
        assert [c.id for c in folder.contents] == ["sub", "d1", "v1"]

    async def test_navigate_down_and_up(self, folder_share, new_page):
        page = await _verified_folder_page(new_page)
        await page.open_item("sub")
        assert [b.name for b in page.view().folder.breadcrumbs] == ["Shared", "Reports"]
        await page.go_up()
        assert page.view().folder.folder_id == "root"

    async def test_open_file(self, folder_share, new_page):
        page = await _verified_folder_page(new_page)
        await page.open_item("d1")
        preview = page.view().preview
        assert preview.text == "read me"
        assert preview.file_name == "readme.txt"

    async def test_open_video_streams(self, folder_share, new_page):
        page = await _verified_folder_page(new_page)
        await page.open_item("v1")
        handle = page.current_content()
        assert handle.is_stream
        assert page.view().preview.kind == "video"
        assert all("doc_id=v1" not in str(r.url) for r in folder_share.calls("download"))

    async def test_close_during_download_discards_file(
        self, folder_share, new_page, downloads, tmp_path, monkeypatch,
    ):
        page = await _verified_folder_page(new_page)
        fetch = downloads.fetch_and_open

        async def close_first(*args, **kwargs):
            handle = await fetch(*args, **kwargs)
            page.close()
            return handle

        monkeypatch.setattr(downloads, "fetch_and_open", close_first)
        await page.open_item("d1")

        assert page.closed
        assert page.preview is None
        assert list((tmp_path / "previews").iterdir()) == []

    async def test_unknown_item(self, folder_share, new_page):
        page = await _verified_folder_page(new_page)
        with pytest.raises(ItemNotFound):
            await page.open_item("missing")

    async def test_missing_folder_is_content_error(self, folder_share, new_page):
        page = await _verified_folder_page(new_page)
        assert await page.enter_folder("gone") == PageStatus.SUCCESS
        assert page.view().folder.error == "Folder not found."

    async def test_revisit_restores_folder(self, folder_share, new_page):
        page = await _verified_folder_page(new_page)
        page.close()

        again = new_page("xyz789")
        assert await again.load() == PageStatus.SUCCESS
        assert again.view().folder.folder_id == "root"


@pytest.mark.asyncio
class TestStateGuards:
    async def test_navigation_before_verification(self, folder_share, new_page):
        page = new_page("xyz789")
        await page.load()
        with pytest.raises(PageStateError):
            await page.enter_folder("sub")

    async def test_actions_on_invalid_link(self, backend, new_page):
        page = new_page("nope")
        await page.load()
        with pytest.raises(PageStateError):
            await page.submit_email(BOB)

    async def test_select_sheet_without_spreadsheet(self, file_share, new_page):
        page = new_page("abc123")
        await page.load()
        await page.submit_otp(OTP_CODE)
        with pytest.raises(PageStateError):
            page.select_sheet("Sheet1")

    async def test_domain_policy(self, folder_share, new_page):
        page = new_page("xyz789", allowed_domain="org.com")
        await page.load()
        assert await page.submit_email("eve@evil.com") == PageStatus.EMAIL_INPUT
        assert page.view().access.error == "Only @org.com email addresses can access shared links."
