"""Resolve files and batches to blobs and stream them back.

Single files are served straight from the blob path. A batch is served as
a zip archive assembled while it is being sent: entries are compressed
into an in-memory buffer that is drained after every chunk, so no
temporary archive ever touches the disk.
"""
import asyncio
import contextlib
import logging
import uuid
import zipfile
from enum import Enum
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from filedrop.config import settings
from filedrop.models.file_record import FileRecord
from filedrop.services.errors import (
    ArchiveAbortedError,
    BatchNotFoundError,
    BlobNotFoundError,
    RecordNotFoundError,
)
from filedrop.services.file_records import FileRecordStore, parse_id
from filedrop.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)

ARCHIVE_COMPRESSION = zipfile.ZIP_DEFLATED
ARCHIVE_COMPRESS_LEVEL = 9


class ArchiveState(str, Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


class _DrainBuffer:
    """Write-only sink for ZipFile.

    It has no tell()/seek(), so ZipFile treats it as unseekable and writes
    data descriptors after each entry instead of patching local headers.
    """

    def __init__(self):
        self._chunks: list[bytes] = []

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


class BatchArchive:
    """A zip archive of one batch, produced lazily by ``iter_bytes``.

    ``state`` tells whether the stream finished with a complete archive
    or was cut short. A cut-short stream always ends by raising
    ArchiveAbortedError (or re-raising the cancellation), never by
    returning normally, so the response is never closed as if complete.
    """

    def __init__(
        self,
        upload_id: uuid.UUID,
        records: list[FileRecord],
        storage: FileStorageService,
        chunk_size: int | None = None,
    ):
        self.upload_id = upload_id
        self.records = records
        self.storage = storage
        self.chunk_size = chunk_size or settings.DOWNLOAD_CHUNK_SIZE
        self.state = ArchiveState.PENDING
        self.added: list[str] = []
        self.skipped: list[str] = []

    @property
    def download_name(self) -> str:
        return f"upload_batch_{self.upload_id}.zip"

    def _skip(self, record: FileRecord) -> None:
        logger.warning(f"Skipping {record.id} ({record.filename!r}) in batch {self.upload_id}: blob missing")
        self.skipped.append(record.filename)

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        if self.state is not ArchiveState.PENDING:
            raise RuntimeError(f"Archive for batch {self.upload_id} was already streamed")
        self.state = ArchiveState.STREAMING
        buffer = _DrainBuffer()
        try:
            with zipfile.ZipFile(
                buffer, "w", compression=ARCHIVE_COMPRESSION, compresslevel=ARCHIVE_COMPRESS_LEVEL
            ) as archive:
                for record in self.records:
                    async with contextlib.aclosing(
                        self.storage.iter_chunks(record.filepath, self.chunk_size)
                    ) as chunks:
                        # The blob is opened by the first read; a blob deleted
                        # before this point is skipped, not fatal.
                        try:
                            size = await self.storage.size(record.filepath)
                            first = await anext(chunks, b"")
                        except FileNotFoundError:
                            self._skip(record)
                            continue
                        with archive.open(
                            record.filename, "w", force_zip64=size * 1.05 > zipfile.ZIP64_LIMIT
                        ) as entry:
                            chunk = first
                            while chunk:
                                await asyncio.to_thread(entry.write, chunk)
                                data = buffer.drain()
                                if data:
                                    yield data
                                chunk = await anext(chunks, b"")
                    self.added.append(record.filename)
                    data = buffer.drain()
                    if data:
                        yield data
            tail = buffer.drain()
            if tail:
                yield tail
        except (GeneratorExit, asyncio.CancelledError):
            self.state = ArchiveState.ABORTED
            logger.warning(f"Archive for batch {self.upload_id} aborted: client went away")
            raise
        except Exception as e:
            self.state = ArchiveState.ABORTED
            logger.error(f"Archive for batch {self.upload_id} aborted after {len(self.added)} entries: {e}")
            raise ArchiveAbortedError(f"Archive for batch {self.upload_id} aborted: {e}") from e
        self.state = ArchiveState.COMPLETED
        logger.info(
            f"Archive for batch {self.upload_id} completed: "
            f"{len(self.added)} added, {len(self.skipped)} skipped"
        )


class RetrievalService:

    def __init__(self, db: AsyncSession, storage: FileStorageService):
        self.records = FileRecordStore(db)
        self.storage = storage

    async def get_file(self, raw_file_id: str | uuid.UUID) -> FileRecord:
        """Look up a file whose blob is still present."""
        file_id = parse_id(raw_file_id)
        record = await self.records.get(file_id) if file_id else None
        if record is None:
            logger.info(f"Download of unknown file id {raw_file_id!r}")
            raise RecordNotFoundError()
        if not await self.storage.exists(record.filepath):
            logger.warning(f"File {record.id} has a record but its blob {record.filepath} is missing")
            raise BlobNotFoundError()
        return record

    async def open_batch_archive(self, raw_upload_id: str | uuid.UUID) -> BatchArchive:
        upload_id = parse_id(raw_upload_id)
        records = await self.records.find_by_batch(upload_id) if upload_id else []
        if not records:
            raise BatchNotFoundError()
        return BatchArchive(upload_id, records, self.storage)
