"""Background worker: thumbnail and welcome job consumers.

Run with ``filebox-worker`` (or ``python -m filebox.pipeline.worker``). The
worker shares the database, Redis and content root with the API but runs in
its own process; several workers may consume the same queues.
"""

import argparse
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

import aiosmtplib
from redis.asyncio import Redis
from sqlalchemy import select

from filebox.cache import create_redis
from filebox.config import Settings, get_settings
from filebox.db.session import Database
from filebox.errors import JobFailure, NotFound
from filebox.files.models import FileEntry
from filebox.files.storage import ContentStore
from filebox.log import setup_logging
from filebox.pipeline.queue import THUMBNAIL_QUEUE, WELCOME_QUEUE, JobQueue
from filebox.pipeline.thumbnails import make_thumbnail
from filebox.users.service import get_user_by_id, send_welcome_email, smtp_configured

log = logging.getLogger(__name__)


class JobStatus(str, enum.Enum):
    ENQUEUED = "enqueued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobResult:
    """Outcome of one job. Failed thumbnail jobs may still have completed widths."""

    queue: str
    payload: Any
    status: JobStatus = JobStatus.PROCESSING
    error: Optional[str] = None
    completed_widths: List[int] = field(default_factory=list)
    failed_widths: List[int] = field(default_factory=list)

    def fail(self, error: JobFailure) -> "JobResult":
        self.status = JobStatus.FAILED
        self.error = error.kind
        return self


def _require(payload: Any, *names: str) -> None:
    if not isinstance(payload, dict):
        raise JobFailure("Malformed job payload", kind="MissingField")
    for name in names:
        if not payload.get(name):
            raise JobFailure(f"Missing {name}", kind="MissingField")


class Worker:
    """Processes thumbnail and welcome jobs against shared stores."""

    def __init__(
        self,
        settings: Settings,
        db: Database,
        redis: Redis,
        content: Optional[ContentStore] = None,
    ) -> None:
        self.settings = settings
        self.db = db
        self.content = content or ContentStore(settings.storage_base_path)
        self.thumbnail_queue = JobQueue(redis, THUMBNAIL_QUEUE)
        self.welcome_queue = JobQueue(redis, WELCOME_QUEUE)

    async def _generate(self, original: bytes, local_path: str, width: int) -> None:
        data = await asyncio.to_thread(make_thumbnail, original, width)
        await self.content.write_derived(local_path, width, data)

    async def process_thumbnail(self, payload: Any) -> JobResult:
        """Write every configured thumbnail width for an image entry.

        Widths are attempted independently, each up to ``thumbnail_attempts``
        times. Regenerating an existing thumbnail overwrites it with the same
        result, so redelivered jobs are harmless.
        """
        result = JobResult(THUMBNAIL_QUEUE, payload)
        try:
            _require(payload, "file_id", "user_id")
            async with self.db.session() as session:
                found = await session.execute(
                    select(FileEntry).where(
                        FileEntry.id == int(payload["file_id"]),
                        FileEntry.user_id == int(payload["user_id"]),
                    )
                )
                entry = found.scalar_one_or_none()
            if entry is None or not entry.local_path:
                raise JobFailure("File not found", kind="FileNotFound")
            try:
                original = await self.content.read(entry.local_path)
            except NotFound:
                raise JobFailure("File content not found", kind="FileNotFound")
        except (TypeError, ValueError):
            return result.fail(JobFailure("Malformed job payload", kind="MissingField"))
        except JobFailure as e:
            return result.fail(e)

        attempts = max(1, self.settings.thumbnail_attempts)
        for width in self.settings.thumbnail_widths_list:
            for attempt in range(1, attempts + 1):
                try:
                    await self._generate(original, entry.local_path, width)
                    result.completed_widths.append(width)
                    break
                except Exception as e:
                    log.warning(
                        "Thumbnail width=%d failed for file_id=%s (attempt %d/%d): %s",
                        width, entry.id, attempt, attempts, e,
                    )
            else:
                result.failed_widths.append(width)

        if result.failed_widths:
            return result.fail(JobFailure("Thumbnail generation failed", kind="ThumbnailFailed"))
        result.status = JobStatus.COMPLETED
        return result

    async def process_welcome(self, payload: Any) -> JobResult:
        """Greet a newly registered user (log line, plus email when SMTP is set)."""
        result = JobResult(WELCOME_QUEUE, payload)
        try:
            _require(payload, "user_id")
            async with self.db.session() as session:
                user = await get_user_by_id(session, int(payload["user_id"]))
            if user is None:
                raise JobFailure("User not found", kind="UserNotFound")
        except (TypeError, ValueError):
            return result.fail(JobFailure("Malformed job payload", kind="MissingField"))
        except JobFailure as e:
            return result.fail(e)

        log.info("Welcome %s", user.email)
        if smtp_configured(self.settings):
            try:
                await send_welcome_email(self.settings, user.email)
            except (aiosmtplib.SMTPException, OSError) as e:
                log.warning("Failed to send welcome email to %s: %s", user.email, e)
                return result.fail(JobFailure("Welcome email failed", kind="NotificationFailed"))
        result.status = JobStatus.COMPLETED
        return result

    async def _run_one(
        self,
        queue: JobQueue,
        handler: Callable[[Any], Awaitable[JobResult]],
        timeout: float,
    ) -> Optional[JobResult]:
        reserved = await queue.reserve(timeout)
        if reserved is None:
            return None
        raw, payload = reserved
        log.debug("Processing job on %s: %s", queue.name, payload)
        try:
            result = await handler(payload)
        except Exception:
            log.exception("Job handler crashed on %s: %s", queue.name, payload)
            result = JobResult(queue.name, payload).fail(
                JobFailure("Job handler crashed", kind="HandlerCrashed")
            )
        finally:
            # Failed and crashed jobs are terminal: ack them too so they are not redelivered
            await queue.ack(raw)
        if result.status is JobStatus.COMPLETED:
            log.info("Job completed on %s: %s", queue.name, payload)
        else:
            log.error(
                "Job failed on %s: %s error=%s completed=%s failed=%s",
                queue.name, payload, result.error, result.completed_widths, result.failed_widths,
            )
        return result

    async def next_thumbnail(self, timeout: float = 0) -> Optional[JobResult]:
        return await self._run_one(self.thumbnail_queue, self.process_thumbnail, timeout)

    async def next_welcome(self, timeout: float = 0) -> Optional[JobResult]:
        return await self._run_one(self.welcome_queue, self.process_welcome, timeout)

    async def drain(self) -> List[JobResult]:
        """Process every job currently queued on both queues, then return."""
        results: List[JobResult] = []
        for step in (self.next_welcome, self.next_thumbnail):
            while True:
                result = await step()
                if result is None:
                    break
                results.append(result)
        return results

    async def _consume(self, step: Callable[[float], Awaitable[Optional[JobResult]]]) -> None:
        while True:
            await step(self.settings.worker_poll_seconds)

    async def run_forever(self) -> None:
        """Recover unacked jobs, then consume both queues concurrently."""
        await self.thumbnail_queue.recover()
        await self.welcome_queue.recover()
        log.info("Worker started")
        await asyncio.gather(
            self._consume(self.next_thumbnail),
            self._consume(self.next_welcome),
        )


async def run_worker(settings: Settings, once: bool = False, redis: Optional[Redis] = None) -> List[JobResult]:
    """Build stores from settings and run the worker; closes what it opened."""
    db = Database(settings.db_path)
    await db.init()
    client = redis or create_redis(settings)
    worker = Worker(settings, db, client)
    try:
        if once:
            return await worker.drain()
        await worker.run_forever()
        return []
    finally:
        await db.close()
        if redis is None:
            await client.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Filebox background worker")
    parser.add_argument("--once", action="store_true", help="drain queued jobs and exit")
    args = parser.parse_args()
    settings = get_settings()
    setup_logging(settings)
    try:
        asyncio.run(run_worker(settings, once=args.once))
    except KeyboardInterrupt:
        log.info("Worker stopped")


if __name__ == "__main__":
    main()
