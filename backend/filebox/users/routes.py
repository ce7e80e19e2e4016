"""User routes: connect (login), disconnect (logout), register, me."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from filebox.auth.dependencies import get_current_user, get_sessions, token_header
from filebox.auth.sessions import SessionManager
from filebox.db.session import get_db
from filebox.errors import Unauthorized
from filebox.limiter import limiter
from filebox.pipeline.queue import JobQueue
from filebox.users.models import TokenResponse, User, UserCreate, UserResponse
from filebox.users.service import register_user, verify_credentials

router = APIRouter(prefix="/api", tags=["users"])
log = logging.getLogger(__name__)

basic = HTTPBasic(auto_error=False)


def get_welcome_queue(request: Request) -> JobQueue:
    return request.app.state.welcome_queue


@router.get("/connect", response_model=TokenResponse)
@limiter.limit("10/minute")
async def connect(
    request: Request,
    credentials: Annotated[Optional[HTTPBasicCredentials], Depends(basic)],
    session: Annotated[AsyncSession, Depends(get_db)],
    sessions: Annotated[SessionManager, Depends(get_sessions)],
) -> TokenResponse:
    """Login with Basic email:password; returns a session token valid for 24 hours."""
    if not credentials or not credentials.username or not credentials.password:
        raise Unauthorized()
    user = await verify_credentials(session, credentials.username, credentials.password)
    if not user:
        log.warning("Login failed for email=%s", credentials.username)
        raise Unauthorized()
    token = await sessions.issue(user.id)
    log.info("Login successful for email=%s", user.email)
    return TokenResponse(token=token)


@router.get("/disconnect", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect(
    token: Annotated[Optional[str], Depends(token_header)],
    sessions: Annotated[SessionManager, Depends(get_sessions)],
) -> Response:
    """Revoke the session token; 401 if it does not resolve to a user."""
    user_id = await sessions.resolve(token)
    if user_id is None:
        raise Unauthorized()
    await sessions.revoke(token)
    log.info("Logout user_id=%s", user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def register(
    request: Request,
    payload: UserCreate,
    session: Annotated[AsyncSession, Depends(get_db)],
    welcome_queue: Annotated[JobQueue, Depends(get_welcome_queue)],
) -> UserResponse:
    """Register a new user with email and password."""
    user = await register_user(session, welcome_queue, payload.email, payload.password)
    return UserResponse.model_validate(user)


@router.get("/users/me", response_model=UserResponse)
async def me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserResponse:
    """Return current authenticated user."""
    return UserResponse.model_validate(current_user)
