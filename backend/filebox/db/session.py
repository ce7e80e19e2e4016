"""SQLite engine and sessions, owned by whoever constructs the Database."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()
log = logging.getLogger(__name__)


class Database:
    """Async engine plus session factory for one SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        # SQLAlchemy async needs sqlite+aiosqlite and path as URL
        self._engine = create_async_engine(f"sqlite+aiosqlite:///{self.db_path}", echo=False)
        self._sessionmaker = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

    async def init(self) -> None:
        """Create tables if they do not exist."""
        # Import models so they register with Base
        from filebox.files import models as _files  # noqa: F401
        from filebox.users import models as _users  # noqa: F401

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """True if a trivial query succeeds."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            log.warning("Database ping failed: %s", e)
            return False

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an async session (context manager)."""
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self) -> None:
        await self._engine.dispose()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async session from the app's Database."""
    async with request.app.state.db.session() as session:
        yield session
