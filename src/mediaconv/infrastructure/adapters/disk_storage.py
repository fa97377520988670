"""DiskStorage — local filesystem StoragePort with atomic writes."""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
import aiofiles.os

from mediaconv.domain.errors import StorageError
from mediaconv.domain.ports import ByteSource

if TYPE_CHECKING:
    from mediaconv.domain.ports import StoragePort

logger = logging.getLogger(__name__)

_COPY_CHUNK = 1024 * 1024


class DiskStorage:
    """Store objects as files under a root directory.

    Keys are ``/``-separated relative paths and must resolve inside the root.

    Satisfies the StoragePort protocol.
    """

    if TYPE_CHECKING:
        _protocol_check: StoragePort

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def resolve_key(self, key: str) -> Path:
        """Map a key onto a path under the root. Rejects traversal outside it."""
        if not key or key.endswith("/"):
            raise StorageError(f"Invalid storage key: {key!r}")
        root = self._root.resolve()
        target = (root / key.replace("/", os.sep)).resolve()
        try:
            target.relative_to(root)
        except ValueError:
            raise StorageError(f"Storage key escapes root: {key}") from None
        return target

    async def upload_stream(self, key: str, source: ByteSource) -> int:
        """Copy ``source`` to ``key`` through a temp file, then rename into place."""
        target = self.resolve_key(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.tmp")

        written = 0
        try:
            async with aiofiles.open(tmp, "wb") as f:
                while chunk := await source.read(_COPY_CHUNK):
                    await f.write(chunk)
                    written += len(chunk)
            await aiofiles.os.replace(tmp, target)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        logger.info("Saved to disk: %s (%d bytes)", target, written)
        return written

    async def download(self, key: str, destination: Path) -> Path:
        source = self.resolve_key(key)
        if not source.is_file():
            raise StorageError(f"Object not found: {key}")

        destination.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(source, "rb") as src, aiofiles.open(destination, "wb") as dst:
            while chunk := await src.read(_COPY_CHUNK):
                await dst.write(chunk)
        return destination

    async def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are ignored."""
        target = self.resolve_key(key)
        try:
            await aiofiles.os.remove(target)
        except FileNotFoundError:
            return
        logger.info("Deleted from disk: %s", target)

    async def exists(self, key: str) -> bool:
        return self.resolve_key(key).is_file()
