"""Content-Type / Content-Disposition helpers."""

from __future__ import annotations

import mimetypes
import re
from pathlib import PurePosixPath
from urllib.parse import unquote

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Declared types that say nothing about how to render the bytes
GENERIC_CONTENT_TYPES = frozenset({
    "application/octet-stream",
    "binary/octet-stream",
    "application/download",
    "application/x-download",
    "application/force-download",
    "application/zip",
    "application/x-zip-compressed",
})

_MIME_RE = re.compile(r"^[a-z0-9][a-z0-9!#$&^_.+-]*/[a-z0-9][a-z0-9!#$&^_.+-]*$")
_FILENAME_STAR_RE = re.compile(r"filename\*\s*=\s*([^;]+)", re.IGNORECASE)
_FILENAME_RE = re.compile(r'filename\s*=\s*("(?:[^"\\]|\\.)*"|[^;]+)', re.IGNORECASE)


def base_type(content_type: str | None) -> str:
    """``"Text/Plain; charset=utf-8"`` -> ``"text/plain"``."""
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_generic(content_type: str | None) -> bool:
    ct = base_type(content_type)
    return not ct or ct in GENERIC_CONTENT_TYPES


def looks_like_mime(value: str | None) -> bool:
    return bool(value) and bool(_MIME_RE.match(base_type(value)))


def extension(file_name: str | None) -> str:
    return PurePosixPath(file_name or "").suffix.lower()


def filename_from_disposition(header: str | None) -> str | None:
    """Suggested filename from a Content-Disposition header.

    RFC 5987 ``filename*=`` wins over plain ``filename=``. Any path part is
    stripped.
    """
    if not header:
        return None

    name = None
    m = _FILENAME_STAR_RE.search(header)
    if m:
        value = m.group(1).strip().strip('"')
        charset, sep, rest = value.partition("'")
        if sep:
            _lang, _, encoded = rest.partition("'")
            try:
                name = unquote(encoded, encoding=charset or "utf-8", errors="replace")
            except LookupError:
                # Unknown charset: use the plain filename= parameter instead
                name = None
        else:
            name = unquote(value)

    if not name:
        m = _FILENAME_RE.search(header)
        if m:
            value = m.group(1).strip()
            if value.startswith('"') and value.endswith('"') and len(value) >= 2:
                value = re.sub(r"\\(.)", r"\1", value[1:-1])
            name = value

    if not name:
        return None
    name = name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or None


def effective_content_type(
    declared: str | None,
    hint: str | None = None,
    file_name: str | None = None,
) -> str:
    """Server's declared type, else a plausible hint, else a guess from the name."""
    if not is_generic(declared):
        return base_type(declared)
    if looks_like_mime(hint) and not is_generic(hint):
        return base_type(hint)
    if file_name:
        guessed, _ = mimetypes.guess_type(file_name)
        if guessed:
            return guessed
    return base_type(declared) or DEFAULT_CONTENT_TYPE
