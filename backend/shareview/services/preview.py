"""In-browser preview of downloaded share content.

Classification looks at the declared content type first and only falls back
to the file extension when the type is generic or missing. The first matching
rule wins.
"""

from __future__ import annotations

import codecs
import io
import logging
import re
import zipfile
from datetime import date, datetime, time
from enum import Enum
from itertools import islice
from typing import Any, Callable
from xml.etree import ElementTree

import openpyxl
import xlrd
from openpyxl.utils.exceptions import InvalidFileException

from shareview.config import settings
from shareview.errors import PreviewUnsupported
from shareview.schemas.preview import SheetGrid, SlideData
from shareview.services.download_manager import ContentHandle, Releasable
from shareview.utils.content import base_type, extension, is_generic

logger = logging.getLogger(__name__)

PARSE_FAILED_NOTICE = "Could not preview this file. Please download to view."
NO_SLIDE_TEXT_NOTICE = "No text content found in presentation."
UNSUPPORTED_NOTICE = PreviewUnsupported.default_message


class PreviewKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    VIDEO = "video"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    TEXT = "text"
    UNSUPPORTED = "unsupported"


SPREADSHEET_TYPES = frozenset({
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel.sheet.macroenabled.12",
})
PRESENTATION_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.openxmlformats-officedocument.presentationml.slideshow",
    "application/vnd.ms-powerpoint.presentation.macroenabled.12",
})
TEXT_TYPES = frozenset({
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
    "application/x-sh",
})

_RULES: list[tuple[PreviewKind, Callable[[str], bool], frozenset[str]]] = [
    (PreviewKind.IMAGE, lambda ct: ct.startswith("image/"),
     frozenset({".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".svg"})),
    (PreviewKind.PDF, lambda ct: ct == "application/pdf", frozenset({".pdf"})),
    (PreviewKind.VIDEO, lambda ct: ct.startswith("video/"),
     frozenset({".mp4", ".webm", ".mov", ".m4v", ".ogv"})),
    (PreviewKind.SPREADSHEET, lambda ct: ct in SPREADSHEET_TYPES,
     frozenset({".xls", ".xlsx", ".xlsm"})),
    (PreviewKind.PRESENTATION, lambda ct: ct in PRESENTATION_TYPES,
     frozenset({".pptx", ".pptm", ".ppsx"})),
    (PreviewKind.TEXT, lambda ct: ct.startswith("text/") or ct in TEXT_TYPES,
     frozenset({
         ".txt", ".md", ".csv", ".tsv", ".log", ".json", ".xml", ".yaml", ".yml",
         ".ini", ".cfg", ".conf", ".py", ".js", ".ts", ".html", ".css", ".sql", ".sh",
     })),
]


def classify(content_type: str | None, file_name: str | None) -> PreviewKind:
    ct = base_type(content_type)
    generic = is_generic(ct)
    ext = extension(file_name)
    for kind, matches_type, extensions in _RULES:
        if generic:
            if ext in extensions:
                return kind
        elif matches_type(ct):
            return kind
    return PreviewKind.UNSUPPORTED


# --- Spreadsheets ---

class SpreadsheetError(Exception):
    pass


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


class ParsedWorkbook:
    """Cell values of every sheet, parsed once per file."""

    def __init__(self, sheets: dict[str, list[list[Any]]], truncated: dict[str, bool] | None = None):
        self._sheets = sheets
        self._truncated = truncated or {}

    @property
    def sheet_names(self) -> list[str]:
        return list(self._sheets)

    def grid(self, sheet: str) -> SheetGrid:
        if sheet not in self._sheets:
            raise KeyError(sheet)
        rows = [[_cell_text(v) for v in row] for row in self._sheets[sheet]]
        return SheetGrid(sheet=sheet, rows=rows, truncated=self._truncated.get(sheet, False))


def _load_xlsx(data: bytes, max_rows: int, max_cols: int) -> ParsedWorkbook:
    wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        sheets: dict[str, list[list[Any]]] = {}
        truncated: dict[str, bool] = {}
        for ws in wb.worksheets:
            rows = [
                list(row)
                for row in islice(ws.iter_rows(max_col=max_cols, values_only=True), max_rows + 1)
            ]
            truncated[ws.title] = len(rows) > max_rows or (ws.max_column or 0) > max_cols
            sheets[ws.title] = rows[:max_rows]
        return ParsedWorkbook(sheets, truncated)
    finally:
        wb.close()


def _load_xls(data: bytes, max_rows: int, max_cols: int) -> ParsedWorkbook:
    book = xlrd.open_workbook(file_contents=data)
    sheets: dict[str, list[list[Any]]] = {}
    truncated: dict[str, bool] = {}
    for sh in book.sheets():
        n_rows = min(sh.nrows, max_rows)
        n_cols = min(sh.ncols, max_cols)
        rows = []
        for r in range(n_rows):
            row = []
            for c in range(n_cols):
                value = sh.cell_value(r, c)
                if sh.cell_type(r, c) == xlrd.XL_CELL_DATE:
                    value = xlrd.xldate_as_datetime(value, book.datemode)
                row.append(value)
            rows.append(row)
        sheets[sh.name] = rows
        truncated[sh.name] = sh.nrows > max_rows or sh.ncols > max_cols
    return ParsedWorkbook(sheets, truncated)


def load_workbook(data: bytes, max_rows: int | None = None, max_cols: int | None = None) -> ParsedWorkbook:
    """Parse an XML-zip (xlsx/xlsm) or binary (xls) workbook."""
    max_rows = max_rows or settings.preview_max_rows
    max_cols = max_cols or settings.preview_max_columns
    try:
        if data[:4] == b"PK\x03\x04":
            return _load_xlsx(data, max_rows, max_cols)
        return _load_xls(data, max_rows, max_cols)
    except (zipfile.BadZipFile, InvalidFileException, xlrd.XLRDError, KeyError, ValueError, OSError) as e:
        raise SpreadsheetError(str(e)) from e
    except Exception as e:
        # xlrd.compdoc and openpyxl readers raise arbitrary errors on malformed parts
        logger.debug("Workbook parser failed", exc_info=True)
        raise SpreadsheetError(f"{type(e).__name__}: {e}") from e


# --- Presentations ---

DRAWINGML_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
SLIDE_RE = re.compile(r"^ppt/slides/slide(\d+)\.xml$")
THUMBNAIL_NAMES = ("docProps/thumbnail.jpeg", "docProps/thumbnail.jpg", "docProps/thumbnail.png")


class PresentationError(Exception):
    pass


def extract_presentation(data: bytes) -> tuple[list[SlideData], tuple[str, bytes] | None]:
    """Slide text runs in slide-number order, plus the packaged thumbnail if any."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = zf.namelist()

            thumbnail = None
            for name in THUMBNAIL_NAMES:
                if name in names:
                    thumbnail = (name, zf.read(name))
                    break

            numbered = []
            for name in names:
                m = SLIDE_RE.match(name)
                if m:
                    numbered.append((int(m.group(1)), name))
            numbered.sort()

            slides: list[SlideData] = []
            for position, (_, name) in enumerate(numbered, start=1):
                root = ElementTree.fromstring(zf.read(name))
                texts = [
                    el.text for el in root.iter(f"{{{DRAWINGML_NS}}}t")
                    if el.text and el.text.strip()
                ]
                if texts:
                    slides.append(SlideData(id=position, title=f"Slide {position}", content=texts))
    except (zipfile.BadZipFile, ElementTree.ParseError, KeyError, OSError) as e:
        raise PresentationError(str(e)) from e
    return slides, thumbnail


# --- Text ---

def decode_text(data: bytes) -> str:
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8):].decode("utf-8", errors="replace")
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16", errors="replace")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


# --- Previews ---

class Preview:
    """A rendered file. Owns its content handle and anything derived from it."""

    def __init__(self, kind: PreviewKind, handle: ContentHandle, notice: str | None = None):
        self.kind = kind
        self.handle = handle
        self.notice = notice

    def _owned(self) -> list[Releasable]:
        return [self.handle]

    def release(self) -> bool:
        released = False
        for resource in self._owned():
            released = resource.release() or released
        return released


class TextPreview(Preview):
    def __init__(self, handle: ContentHandle, text: str):
        super().__init__(PreviewKind.TEXT, handle)
        self.text = text


class SpreadsheetPreview(Preview):
    def __init__(self, handle: ContentHandle, workbook: ParsedWorkbook):
        super().__init__(PreviewKind.SPREADSHEET, handle)
        self.workbook = workbook
        names = workbook.sheet_names
        self.active_sheet = names[0] if names else None
        self.grid = workbook.grid(self.active_sheet) if self.active_sheet else None
        if not names:
            self.notice = "This workbook has no sheets."

    @property
    def sheet_names(self) -> list[str]:
        return self.workbook.sheet_names

    def select_sheet(self, name: str) -> SheetGrid:
        """Switch the rendered sheet using the already-parsed workbook."""
        self.grid = self.workbook.grid(name)
        self.active_sheet = name
        return self.grid


class PresentationPreview(Preview):
    def __init__(
        self,
        handle: ContentHandle,
        slides: list[SlideData],
        thumbnail: ContentHandle | None = None,
    ):
        super().__init__(
            PreviewKind.PRESENTATION, handle,
            notice=None if slides else NO_SLIDE_TEXT_NOTICE,
        )
        self.slides = slides
        self.thumbnail = thumbnail

    def _owned(self) -> list[Releasable]:
        owned: list[Releasable] = [self.handle]
        if self.thumbnail is not None:
            owned.append(self.thumbnail)
        return owned


Materializer = Callable[[bytes, str, str], ContentHandle]


class ContentPreviewDispatcher:
    """Routes a content handle to the renderer for its type."""

    def __init__(self, materialize: Materializer | None = None):
        self._materialize = materialize

    def render(self, handle: ContentHandle) -> Preview:
        kind = classify(handle.file_type, handle.file_name)
        logger.debug("Preview %s as %s", handle.file_name, kind.value)

        if kind in (PreviewKind.IMAGE, PreviewKind.PDF, PreviewKind.VIDEO):
            return Preview(kind, handle)
        if kind == PreviewKind.UNSUPPORTED:
            return Preview(kind, handle, notice=UNSUPPORTED_NOTICE)

        data = handle.read_bytes()
        if kind == PreviewKind.TEXT:
            return TextPreview(handle, decode_text(data))
        if kind == PreviewKind.SPREADSHEET:
            return self._render_spreadsheet(handle, data)
        return self._render_presentation(handle, data)

    def _render_spreadsheet(self, handle: ContentHandle, data: bytes) -> Preview:
        try:
            workbook = load_workbook(data)
        except SpreadsheetError as e:
            logger.warning("Could not parse spreadsheet %s: %s", handle.file_name, e)
            return Preview(PreviewKind.SPREADSHEET, handle, notice=PARSE_FAILED_NOTICE)
        return SpreadsheetPreview(handle, workbook)

    def _render_presentation(self, handle: ContentHandle, data: bytes) -> Preview:
        try:
            slides, thumbnail = extract_presentation(data)
        except PresentationError as e:
            logger.warning("Could not parse presentation %s: %s", handle.file_name, e)
            return Preview(PreviewKind.PRESENTATION, handle, notice=PARSE_FAILED_NOTICE)

        thumb_handle = None
        if thumbnail is not None and self._materialize is not None:
            name, thumb_bytes = thumbnail
            thumb_type = "image/png" if name.endswith(".png") else "image/jpeg"
            thumb_handle = self._materialize(thumb_bytes, name.rsplit("/", 1)[-1], thumb_type)
        return PresentationPreview(handle, slides, thumb_handle)
