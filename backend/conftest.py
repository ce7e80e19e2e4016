"""Pytest configuration: test env, an in-memory Redis double, per-test stores."""

import os
import tempfile
import time
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

# Set before filebox.main is imported so the module-level app uses test values
_tmp = tempfile.mkdtemp(prefix="filebox_test_")
os.environ.setdefault("FILEBOX_DB_PATH", os.path.join(_tmp, "test.db"))
os.environ.setdefault("FILEBOX_STORAGE_BASE_PATH", os.path.join(_tmp, "files"))
os.environ.setdefault("FILEBOX_RATE_LIMIT_ENABLED", "false")


class InMemoryRedis:
    """Async stand-in for the subset of redis.asyncio.Redis that filebox uses.

    Strings with TTL and lists only; values are str (decode_responses=True).
    ``advance(seconds)`` moves the expiry clock forward.
    """

    def __init__(self) -> None:
        self._strings: Dict[str, str] = {}
        self._expires: Dict[str, float] = {}
        self._lists: Dict[str, List[str]] = {}
        self._offset = 0.0
        self.closed = False

    def _now(self) -> float:
        return time.monotonic() + self._offset

    def advance(self, seconds: float) -> None:
        self._offset += seconds

    def _purge(self, key: str) -> None:
        expires = self._expires.get(key)
        if expires is not None and expires <= self._now():
            self._strings.pop(key, None)
            self._expires.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def set(self, key: str, value, ex: Optional[int] = None) -> bool:
        self._strings[key] = str(value)
        if ex is not None:
            self._expires[key] = self._now() + ex
        else:
            self._expires.pop(key, None)
        return True

    async def get(self, key: str) -> Optional[str]:
        self._purge(key)
        return self._strings.get(key)

    async def ttl(self, key: str) -> int:
        self._purge(key)
        if key not in self._strings:
            return -2
        if key not in self._expires:
            return -1
        return int(round(self._expires[key] - self._now()))

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._strings.pop(key, None) is not None:
                removed += 1
            self._expires.pop(key, None)
            if self._lists.pop(key, None) is not None:
                removed += 1
        return removed

    async def rpush(self, key: str, *values: str) -> int:
        items = self._lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def lmove(self, src: str, dest: str, wherefrom: str = "LEFT", whereto: str = "RIGHT"):
        items = self._lists.get(src)
        if not items:
            return None
        value = items.pop(0) if wherefrom == "LEFT" else items.pop()
        target = self._lists.setdefault(dest, [])
        if whereto == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        return value

    async def blmove(self, src: str, dest: str, timeout, wherefrom: str = "LEFT", whereto: str = "RIGHT"):
        # Never blocks: tests drive the worker one step at a time
        return await self.lmove(src, dest, wherefrom, whereto)

    async def lrem(self, key: str, count: int, value: str) -> int:
        items = self._lists.get(key, [])
        removed = 0
        while value in items and (count == 0 or removed < count):
            items.remove(value)
            removed += 1
        return removed

    async def llen(self, key: str) -> int:
        return len(self._lists.get(key, []))

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        items = self._lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fresh database and content root."""
    from filebox.config import Settings

    return Settings(
        db_path=tmp_path / "filebox.db",
        storage_base_path=tmp_path / "files",
        rate_limit_enabled=False,
        thumbnail_attempts=1,
    )


@pytest_asyncio.fixture
async def db(settings):
    """Initialized Database for one test."""
    from filebox.db.session import Database

    database = Database(settings.db_path)
    await database.init()
    yield database
    await database.close()


@pytest.fixture
def content_store(settings):
    from filebox.files.storage import ContentStore

    return ContentStore(settings.storage_base_path)


@pytest.fixture
def thumbnail_queue(fake_redis):
    from filebox.pipeline.queue import THUMBNAIL_QUEUE, JobQueue

    return JobQueue(fake_redis, THUMBNAIL_QUEUE)


@pytest.fixture
def welcome_queue(fake_redis):
    from filebox.pipeline.queue import WELCOME_QUEUE, JobQueue

    return JobQueue(fake_redis, WELCOME_QUEUE)


def png_bytes(width: int = 800, height: int = 600, color=(200, 30, 30)) -> bytes:
    """A real PNG image for thumbnail tests."""
    import io

    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png():
    return png_bytes()
