"""Page session schemas: request bodies and the view returned to the browser."""

from typing import Literal

from pydantic import BaseModel

from shareview.schemas.preview import PreviewOut
from shareview.schemas.share import BreadcrumbItem, FolderItem, ShareInfo


class EmailSubmit(BaseModel):
    email: str


class OtpSubmit(BaseModel):
    otp: str


class SheetSelect(BaseModel):
    sheet: str


class ErrorEnvelope(BaseModel):
    kind: str
    message: str


class AccessStateOut(BaseModel):
    step: Literal["email_input", "otp_input", "success"]
    email: str | None = None
    email_draft: str = ""
    email_hint: str | None = None
    notice: str | None = None
    error: str | None = None


class FolderViewOut(BaseModel):
    loading: bool = False
    folder_id: str | None = None
    folder_name: str = ""
    root_folder_id: str | None = None
    contents: list[FolderItem] | None = None
    breadcrumbs: list[BreadcrumbItem] = []
    error: str | None = None


class PageOut(BaseModel):
    page_id: str
    token: str
    status: Literal["loading", "link_invalid", "email_input", "otp_input", "success"]
    error: str | None = None
    share_info: ShareInfo | None = None
    access: AccessStateOut | None = None
    folder: FolderViewOut | None = None
    preview: PreviewOut | None = None
    content_error: str | None = None
