"""Preview schemas: what the browser needs to render a downloaded file."""

from pydantic import BaseModel


class SlideData(BaseModel):
    """Text of one presentation slide."""
    id: int
    title: str
    content: list[str]


class SheetGrid(BaseModel):
    """Cells of one spreadsheet sheet, as display strings."""
    sheet: str
    rows: list[list[str]]
    truncated: bool = False


class PreviewOut(BaseModel):
    """Rendered preview of the file currently open in a page session."""
    kind: str  # image, pdf, video, spreadsheet, presentation, text, unsupported
    file_name: str
    file_type: str
    content_url: str
    text: str | None = None
    sheet_names: list[str] = []
    grid: SheetGrid | None = None
    slides: list[SlideData] = []
    thumbnail_url: str | None = None
    notice: str | None = None
