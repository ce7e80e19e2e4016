"""File entry SQLAlchemy model, parent reference type and Pydantic schemas."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from filebox.db.session import Base

FOLDER = "folder"
FILE = "file"
IMAGE = "image"
ENTRY_TYPES = (FOLDER, FILE, IMAGE)

# Wire value of the root parent
ROOT_ID = 0


@dataclass(frozen=True)
class Root:
    """Top level: the entry has no parent."""


@dataclass(frozen=True)
class FolderRef:
    """Reference to an existing folder entry by id."""

    folder_id: int


Parent = Union[Root, FolderRef]
ROOT = Root()


class InvalidParent(ValueError):
    """parent_id cannot name any entry."""


def parse_parent(value: Any) -> Parent:
    """Map a wire parent_id (None, 0, "0", int or numeric str) to a Parent.

    Raises InvalidParent for values that cannot be an entry id.
    """
    if value is None or value == "" or value == ROOT_ID or value == str(ROOT_ID):
        return ROOT
    if isinstance(value, bool):
        raise InvalidParent(f"Invalid parent id: {value!r}")
    try:
        folder_id = int(value)
    except (TypeError, ValueError):
        raise InvalidParent(f"Invalid parent id: {value!r}")
    if folder_id <= 0:
        raise InvalidParent(f"Invalid parent id: {value!r}")
    return FolderRef(folder_id)


class FileEntry(Base):
    """A folder, file or image in a user's namespace. parent_id NULL means root."""

    __tablename__ = "files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(1024), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    parent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("files.id"), nullable=True, index=True
    )
    # Only for file/image; opaque outside ContentStore
    local_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def parent(self) -> Parent:
        return ROOT if self.parent_id is None else FolderRef(self.parent_id)


# Pydantic schemas for API
class UploadRequest(BaseModel):
    """Upload body. data is base64 content (required unless type is folder)."""

    name: Optional[str] = None
    type: Optional[str] = None
    is_public: bool = False
    parent_id: Optional[Union[int, str]] = None
    data: Optional[str] = None


class FileResponse(BaseModel):
    """Entry metadata as returned by API (never includes local_path)."""

    id: int
    user_id: int
    name: str
    type: str
    is_public: bool
    parent_id: int

    @classmethod
    def from_entry(cls, entry: FileEntry) -> "FileResponse":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            name=entry.name,
            type=entry.type,
            is_public=entry.is_public,
            parent_id=ROOT_ID if entry.parent_id is None else entry.parent_id,
        )
