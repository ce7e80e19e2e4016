"""File API routes: upload, show, list, publish/unpublish, content."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from filebox.auth.dependencies import get_current_user, get_optional_user
from filebox.db.session import get_db
from filebox.files.models import FileResponse, InvalidParent, UploadRequest, parse_parent
from filebox.files.service import (
    content_type_for,
    create_entry,
    get_entry,
    list_entries,
    parse_entry_id,
    read_content,
    set_visibility,
)
from filebox.files.storage import ContentStore
from filebox.pipeline.queue import JobQueue
from filebox.users.models import User

router = APIRouter(prefix="/api/files", tags=["files"])
log = logging.getLogger(__name__)


def get_content_store(request: Request) -> ContentStore:
    return request.app.state.content


def get_thumbnail_queue(request: Request) -> JobQueue:
    return request.app.state.thumbnail_queue


@router.post("", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def upload(
    body: UploadRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    content: Annotated[ContentStore, Depends(get_content_store)],
    thumbnail_queue: Annotated[JobQueue, Depends(get_thumbnail_queue)],
) -> FileResponse:
    """
    Create a folder, file or image. Body: name, type, is_public, parent_id (0 = root),
    data (base64, required unless type is folder).
    """
    entry = await create_entry(
        session,
        content,
        thumbnail_queue,
        current_user.id,
        name=body.name,
        entry_type=body.type,
        is_public=body.is_public,
        parent_id=body.parent_id,
        data=body.data,
    )
    return FileResponse.from_entry(entry)


@router.get("", response_model=List[FileResponse])
async def index(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    parent_id: Optional[str] = None,
    page: int = 0,
) -> List[FileResponse]:
    """List the current user's entries under parent_id (default root), 20 per page."""
    try:
        parent = parse_parent(parent_id)
    except InvalidParent:
        # No entry can live under an id that cannot exist
        return []
    page_size = request.app.state.settings.page_size
    entries = await list_entries(session, current_user.id, parent, page, page_size)
    log.debug("list_entries user_id=%s count=%d", current_user.id, len(entries))
    return [FileResponse.from_entry(e) for e in entries]


@router.get("/{file_id}", response_model=FileResponse)
async def show(
    file_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> FileResponse:
    """Return one of the current user's entries."""
    entry = await get_entry(session, current_user.id, parse_entry_id(file_id))
    return FileResponse.from_entry(entry)


@router.put("/{file_id}/publish", response_model=FileResponse)
async def publish(
    file_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> FileResponse:
    """Make an entry public."""
    entry = await set_visibility(session, current_user.id, parse_entry_id(file_id), True)
    return FileResponse.from_entry(entry)


@router.put("/{file_id}/unpublish", response_model=FileResponse)
async def unpublish(
    file_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> FileResponse:
    """Make an entry private."""
    entry = await set_visibility(session, current_user.id, parse_entry_id(file_id), False)
    return FileResponse.from_entry(entry)


@router.get("/{file_id}/data")
async def data(
    request: Request,
    file_id: str,
    user: Annotated[Optional[User], Depends(get_optional_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    content: Annotated[ContentStore, Depends(get_content_store)],
    size: Optional[int] = None,
) -> Response:
    """
    Return raw content (or the thumbnail at width ``size``).
    Public entries need no token; private ones only for their owner.
    """
    widths = request.app.state.settings.thumbnail_widths_list
    entry, body = await read_content(
        session,
        content,
        parse_entry_id(file_id),
        user_id=user.id if user else None,
        size=size,
        widths=widths,
    )
    log.info("read_content id=%s size=%s bytes=%d", entry.id, size, len(body))
    return Response(content=body, media_type=content_type_for(entry.name))
