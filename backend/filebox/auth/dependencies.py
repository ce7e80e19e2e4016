"""FastAPI dependencies for auth."""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from filebox.auth.sessions import SessionManager
from filebox.db.session import get_db
from filebox.errors import Unauthorized
from filebox.users.models import User
from filebox.users.service import get_user_by_id

TOKEN_HEADER = "X-Token"

token_header = APIKeyHeader(name=TOKEN_HEADER, auto_error=False)
log = logging.getLogger(__name__)


def get_sessions(request: Request) -> SessionManager:
    """Session manager built by the app lifespan."""
    return request.app.state.sessions


async def get_optional_user(
    token: Annotated[Optional[str], Depends(token_header)],
    sessions: Annotated[SessionManager, Depends(get_sessions)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[User]:
    """Resolve X-Token to a user; None if missing, expired or the user is gone."""
    user_id = await sessions.resolve(token)
    if user_id is None:
        if token:
            log.debug("Invalid or expired session token")
        return None
    user = await get_user_by_id(session, user_id)
    if user is None:
        log.warning("Session valid but user not found: user_id=%s", user_id)
    return user


async def get_current_user(
    user: Annotated[Optional[User], Depends(get_optional_user)],
) -> User:
    """Require an authenticated user; raise Unauthorized otherwise."""
    if user is None:
        raise Unauthorized()
    return user
