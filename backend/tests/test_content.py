"""Tests for content type and disposition helpers."""

from shareview.utils.content import (
    base_type,
    effective_content_type,
    filename_from_disposition,
    is_generic,
    looks_like_mime,
)


class TestBaseType:
    def test_strips_params_and_case(self):
        assert base_type("Text/Plain; charset=UTF-8") == "text/plain"

    def test_none(self):
        assert base_type(None) == ""

    def test_generic(self):
        assert is_generic(None)
        assert is_generic("application/octet-stream")
        assert not is_generic("application/pdf")

    def test_looks_like_mime(self):
        assert looks_like_mime("video/mp4")
        assert not looks_like_mime("video")
        assert not looks_like_mime("")


class TestFilenameFromDisposition:
    def test_quoted(self):
        assert filename_from_disposition('attachment; filename="report.pdf"') == "report.pdf"

    def test_unquoted(self):
        assert filename_from_disposition("inline; filename=notes.txt") == "notes.txt"

    def test_rfc5987_wins(self):
        header = "attachment; filename=\"fallback.txt\"; filename*=UTF-8''r%C3%A9sum%C3%A9.pdf"
        assert filename_from_disposition(header) == "résumé.pdf"

    def test_unknown_charset_falls_back_to_plain(self):
        header = "attachment; filename*=x-unknown''r%C3%A9sum%C3%A9.pdf; filename=\"resume.pdf\""
        assert filename_from_disposition(header) == "resume.pdf"

    def test_unknown_charset_alone(self):
        assert filename_from_disposition("attachment; filename*=x-unknown''a.pdf") is None

    def test_path_stripped(self):
        assert filename_from_disposition('attachment; filename="../../etc/passwd"') == "passwd"
        assert filename_from_disposition("attachment; filename=C:\\tmp\\a.xlsx") == "a.xlsx"

    def test_missing(self):
        assert filename_from_disposition(None) is None
        assert filename_from_disposition("attachment") is None


class TestEffectiveContentType:
    def test_declared_wins(self):
        assert effective_content_type("application/pdf; x=1", "text/plain", "a.txt") == "application/pdf"

    def test_hint_when_generic(self):
        assert effective_content_type("application/octet-stream", "image/png", "a.bin") == "image/png"

    def test_non_mime_hint_ignored(self):
        assert effective_content_type(None, "document", "slides.pdf") == "application/pdf"

    def test_fallback(self):
        assert effective_content_type(None, None, "noext") == "application/octet-stream"
