"""Raw content on local disk, addressed by generated paths under one root."""

import logging
import uuid
from pathlib import Path

import aiofiles
import aiofiles.os

from filebox.errors import NotFound

log = logging.getLogger(__name__)


class ContentStore:
    """Write and read content bytes. Metadata lives elsewhere.

    Paths are unique by uuid4; there is no directory-level locking.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    async def _ensure_root(self) -> None:
        await aiofiles.os.makedirs(self.root, exist_ok=True)

    async def write(self, data: bytes) -> str:
        """Persist data at a new path and return it. OSError propagates (infrastructure failure)."""
        await self._ensure_root()
        target = self.root / uuid.uuid4().hex
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        log.debug("Wrote %d bytes to %s", len(data), target)
        return str(target)

    async def read(self, local_path: str) -> bytes:
        """Return the bytes at local_path. Any I/O error is reported as NotFound."""
        try:
            async with aiofiles.open(local_path, "rb") as f:
                return await f.read()
        except OSError as e:
            log.debug("Content read failed for %s: %s", local_path, e)
            raise NotFound() from e

    async def write_derived(self, local_path: str, width: int, data: bytes) -> str:
        """Write a thumbnail beside its original, replacing any earlier one atomically."""
        await self._ensure_root()
        target = self.derived_path(local_path, width)
        tmp = f"{target}.{uuid.uuid4().hex}.tmp"
        async with aiofiles.open(tmp, "wb") as f:
            await f.write(data)
        await aiofiles.os.replace(tmp, target)
        return target

    @staticmethod
    def derived_path(local_path: str, width: int) -> str:
        """Path of the thumbnail of local_path at width (``<local_path>_<width>``)."""
        return f"{local_path}_{width}"
