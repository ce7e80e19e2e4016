"""File entry operations: create, get, list, publish/unpublish, read content.

Every operation is scoped to the caller's user id except ``read_content``,
where public entries are readable by anyone.
"""

import base64
import binascii
import logging
import mimetypes
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from filebox.errors import (
    NotFound,
    folder_has_no_content,
    invalid_data,
    missing_data,
    missing_name,
    missing_type,
    parent_not_folder,
    parent_not_found,
)
from filebox.files.models import (
    ENTRY_TYPES,
    FOLDER,
    IMAGE,
    ROOT,
    FileEntry,
    FolderRef,
    InvalidParent,
    Parent,
    parse_parent,
)
from filebox.files.storage import ContentStore
from filebox.pipeline.queue import JobQueue

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


def _decode_data(data: Optional[str]) -> bytes:
    """Decode base64 content; empty or missing content is MissingData."""
    if not data:
        raise missing_data()
    try:
        content = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise invalid_data()
    if not content:
        raise missing_data()
    return content


def parse_entry_id(value: Any) -> int:
    """Entry id from a path segment; anything that cannot be an id is NotFound."""
    try:
        entry_id = int(value)
    except (TypeError, ValueError):
        raise NotFound()
    if entry_id <= 0:
        raise NotFound()
    return entry_id


async def _check_parent(session: AsyncSession, user_id: int, parent: Parent) -> None:
    if not isinstance(parent, FolderRef):
        return
    result = await session.execute(
        select(FileEntry).where(FileEntry.id == parent.folder_id, FileEntry.user_id == user_id)
    )
    folder = result.scalar_one_or_none()
    if folder is None:
        raise parent_not_found()
    if folder.type != FOLDER:
        raise parent_not_folder()


async def create_entry(
    session: AsyncSession,
    content: ContentStore,
    thumbnail_queue: JobQueue,
    user_id: int,
    name: Optional[str],
    entry_type: Optional[str],
    is_public: bool = False,
    parent_id: Any = None,
    data: Optional[str] = None,
) -> FileEntry:
    """
    Validate and store a new entry. Validation order: name, type, data, parent.
    Content is written before the metadata row; a crash in between leaves an
    unreferenced content file, never a row without content.
    Images get a thumbnail job once the row is committed.
    """
    if not name:
        raise missing_name()
    if not entry_type or entry_type not in ENTRY_TYPES:
        raise missing_type()
    body = None if entry_type == FOLDER else _decode_data(data)
    try:
        parent = parse_parent(parent_id)
    except InvalidParent:
        raise parent_not_found()
    await _check_parent(session, user_id, parent)

    entry = FileEntry(
        user_id=user_id,
        name=name,
        type=entry_type,
        is_public=bool(is_public),
        parent_id=parent.folder_id if isinstance(parent, FolderRef) else None,
    )
    if body is not None:
        entry.local_path = await content.write(body)
    session.add(entry)
    await session.commit()
    log.info(
        "create_entry user_id=%s id=%s type=%s size=%s",
        user_id, entry.id, entry_type, len(body) if body is not None else 0,
    )
    if entry_type == IMAGE:
        await thumbnail_queue.enqueue({"file_id": entry.id, "user_id": user_id})
    return entry


async def get_entry(session: AsyncSession, user_id: int, file_id: int) -> FileEntry:
    """Return the entry if it belongs to user_id, else raise NotFound."""
    result = await session.execute(
        select(FileEntry).where(FileEntry.id == file_id, FileEntry.user_id == user_id)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFound()
    return entry


async def list_entries(
    session: AsyncSession,
    user_id: int,
    parent: Parent = ROOT,
    page: int = 0,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> List[FileEntry]:
    """Caller's entries directly under parent, in insertion order, one page at a time."""
    page = max(page, 0)
    stmt = select(FileEntry).where(FileEntry.user_id == user_id)
    if isinstance(parent, FolderRef):
        stmt = stmt.where(FileEntry.parent_id == parent.folder_id)
    else:
        stmt = stmt.where(FileEntry.parent_id.is_(None))
    stmt = stmt.order_by(FileEntry.id).offset(page * page_size).limit(page_size)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def set_visibility(
    session: AsyncSession, user_id: int, file_id: int, is_public: bool
) -> FileEntry:
    """Publish or unpublish an owned entry. Idempotent."""
    entry = await get_entry(session, user_id, file_id)
    if entry.is_public != is_public:
        entry.is_public = is_public
        await session.commit()
        log.info("set_visibility user_id=%s id=%s is_public=%s", user_id, file_id, is_public)
    return entry


def content_type_for(name: str) -> str:
    mime, _ = mimetypes.guess_type(name)
    return mime or "application/octet-stream"


async def read_content(
    session: AsyncSession,
    content: ContentStore,
    file_id: int,
    user_id: Optional[int] = None,
    size: Optional[int] = None,
    widths: Iterable[int] = (),
) -> Tuple[FileEntry, bytes]:
    """
    Return (entry, bytes) for an entry's content or one of its thumbnails.
    Private entries are visible only to their owner; anyone else gets NotFound.
    """
    entry = await session.get(FileEntry, file_id)
    if entry is None:
        raise NotFound()
    if not entry.is_public and (user_id is None or user_id != entry.user_id):
        raise NotFound()
    if entry.type == FOLDER:
        raise folder_has_no_content()
    if not entry.local_path:
        raise NotFound()
    path = entry.local_path
    if size is not None:
        if size not in set(widths):
            raise NotFound()
        path = content.derived_path(entry.local_path, size)
    return entry, await content.read(path)
