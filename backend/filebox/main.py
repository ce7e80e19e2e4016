"""FastAPI application entry point and composition root."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import func, select

from filebox.auth.sessions import SessionManager
from filebox.cache import create_redis, redis_alive
from filebox.config import Settings, get_settings
from filebox.db.session import Database
from filebox.errors import FileboxError
from filebox.files.models import FileEntry
from filebox.files.routes import router as files_router
from filebox.files.storage import ContentStore
from filebox.limiter import limiter
from filebox.log import setup_logging
from filebox.pipeline.queue import THUMBNAIL_QUEUE, WELCOME_QUEUE, JobQueue
from filebox.users.models import User
from filebox.users.routes import router as users_router

log = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, redis: Optional[Redis] = None) -> FastAPI:
    """Build the app. Stores and clients are created in the lifespan and kept on app.state.

    A redis client passed in is used as is and not closed on shutdown.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open database and Redis on startup; close them on shutdown."""
        log.info("Startup: initializing database and cache")
        db = Database(settings.db_path)
        await db.init()
        client = redis if redis is not None else create_redis(settings)
        app.state.settings = settings
        app.state.db = db
        app.state.redis = client
        app.state.sessions = SessionManager(client, settings.session_ttl_seconds)
        app.state.content = ContentStore(settings.storage_base_path)
        app.state.thumbnail_queue = JobQueue(client, THUMBNAIL_QUEUE)
        app.state.welcome_queue = JobQueue(client, WELCOME_QUEUE)
        log.info("Startup complete")
        yield
        log.info("Shutdown")
        await db.close()
        if redis is None:
            await client.aclose()

    app = FastAPI(title="Filebox API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        """Add security headers to all responses."""
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.exception_handler(FileboxError)
    async def filebox_error_handler(request: Request, exc: FileboxError):
        """Map expected failures to their status and stable kind."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.kind, "detail": exc.message},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Return generic 500 without leaking stack trace or internals."""
        if isinstance(exc, HTTPException):
            raise exc
        log.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "InternalError", "detail": "Internal server error"},
        )

    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.include_router(users_router)
    app.include_router(files_router)

    @app.get("/health")
    @limiter.exempt
    def health() -> JSONResponse:
        """Health check for Docker. Exempt from rate limiting."""
        return JSONResponse(content={"status": "ok"})

    @app.get("/api/status")
    async def status(request: Request) -> dict:
        """Whether Redis and the database answer."""
        return {
            "redis": await redis_alive(request.app.state.redis),
            "db": await request.app.state.db.ping(),
        }

    @app.get("/api/stats")
    async def stats(request: Request) -> dict:
        """Number of users and file entries."""
        async with request.app.state.db.session() as session:
            users = await session.scalar(select(func.count()).select_from(User))
            files = await session.scalar(select(func.count()).select_from(FileEntry))
        return {"users": users or 0, "files": files or 0}

    return app


app = create_app()
