"""Share schemas: wire shapes of the document backend's /share endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ShareType = Literal["file", "folder"]


class ShareInfo(BaseModel):
    """Policy attached to a token. Immutable once fetched."""
    model_config = ConfigDict(frozen=True)

    is_restricted: bool = False
    target_email: str | None = None
    target_email_hint: str | None = None
    expiry_date: str | None = None
    share_type: ShareType = "file"


class StoredSession(BaseModel):
    """Verified viewer identity cached per token."""
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    email: str
    verified_at: int = Field(alias="verifiedAt")  # epoch ms
    share_type: ShareType = Field(alias="shareType")
    folder_id: str | None = Field(default=None, alias="folderId")


class FolderItem(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    name: str
    type: Literal["folder", "file"]
    media_type: str = ""


class BreadcrumbItem(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    name: str


class FolderContents(BaseModel):
    """One directory listing as computed by the backend."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    contents: list[FolderItem] = []
    folder_name: str = ""
    breadcrumbs: list[BreadcrumbItem] = []
    folder_id: str
    root_folder_id: str


class SharedDocument(BaseModel):
    """Document hints returned alongside a file-share verification."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    doc_id: str | None = None
    docname: str | None = None
    mime_type: str | None = None
    media_type: str | None = None

    @property
    def is_video(self) -> bool:
        return self.media_type == "video" or (self.mime_type or "").startswith("video/")


class VerifyResult(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    share_type: ShareType
    folder_id: str | None = None
    document: SharedDocument | None = None
