"""Blob storage on the local filesystem.

Blobs are addressed by a storage key (a file name inside the storage
directory). The store knows nothing about batches or expiry.
"""
import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from filedrop.config import settings

logger = logging.getLogger(__name__)

WRITE_CHUNK_SIZE = 1024 * 1024


def safe_basename(original_name: str | None) -> str:
    """Strip any directory part a client sent along with the file name."""
    name = PurePosixPath((original_name or "").replace("\\", "/")).name
    return name or "unnamed"


class FileStorageService:
    """Handles blob read/write/delete under a single directory."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def new_key(self, original_name: str | None) -> str:
        return f"{uuid.uuid4().hex}_{safe_basename(original_name)}"

    def path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if path.parent != self.base_path.resolve():
            raise ValueError(f"Storage key escapes storage directory: {key!r}")
        return path

    async def save(self, source, original_name: str | None) -> str:
        """Stream ``source`` (anything with ``async read(size)``) into a new blob.

        Returns the storage key. The blob is created exclusively; a partially
        written blob is removed before the error propagates.
        """
        key = self.new_key(original_name)
        path = self.path_for(key)
        created = False
        try:
            async with aiofiles.open(path, "xb") as f:
                created = True
                while chunk := await source.read(WRITE_CHUNK_SIZE):
                    await f.write(chunk)
        except BaseException:
            if created:
                await self.delete(key)
                logger.warning(f"Removed partially written blob {key}")
            raise
        return key

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(key))

    async def size(self, key: str) -> int:
        return (await aiofiles.os.stat(self.path_for(key))).st_size

    async def iter_chunks(self, key: str, chunk_size: int) -> AsyncIterator[bytes]:
        async with aiofiles.open(self.path_for(key), "rb") as f:
            while chunk := await f.read(chunk_size):
                yield chunk

    async def delete(self, key: str) -> bool:
        """Delete a blob. Returns False if it was already gone."""
        try:
            await aiofiles.os.remove(self.path_for(key))
        except FileNotFoundError:
            return False
        return True


file_storage = FileStorageService(settings.FILE_STORAGE_PATH)


def get_file_storage() -> FileStorageService:
    """FastAPI dependency returning the process-wide blob store."""
    return file_storage
