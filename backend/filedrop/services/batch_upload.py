"""Batch upload: write every blob, then register the whole batch at once.

The two stores share no transaction, so the upload is a two-phase
operation with compensation:

1. write blobs one by one; on the first failure delete what was written
2. insert all records in one call; on failure delete every written blob

A blob that cannot be removed during compensation is logged with its
storage key so it can be reconciled by hand.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Sequence

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from filedrop.config import settings
from filedrop.models.base import utcnow
from filedrop.models.file_record import FileRecord
from filedrop.services.errors import BatchUploadError, EmptyBatchError, TooManyFilesError
from filedrop.services.file_records import FileRecordStore
from filedrop.services.file_storage import FileStorageService, safe_basename

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedBatch:
    upload_id: uuid.UUID
    records: list[FileRecord]


class BatchUploader:

    def __init__(
        self,
        db: AsyncSession,
        storage: FileStorageService,
        retention: timedelta | None = None,
        max_files: int | None = None,
    ):
        self.records = FileRecordStore(db)
        self.db = db
        self.storage = storage
        self.retention = retention if retention is not None else settings.retention_window
        self.max_files = max_files if max_files is not None else settings.MAX_FILES_PER_UPLOAD

    async def upload(self, files: Sequence[UploadFile] | None) -> UploadedBatch:
        files = list(files or [])
        if not files:
            raise EmptyBatchError()
        if len(files) > self.max_files:
            raise TooManyFilesError(len(files), self.max_files)

        upload_id = uuid.uuid4()
        written = await self._write_blobs(upload_id, files)

        now = utcnow()
        records = [
            FileRecord(
                filename=safe_basename(file.filename),
                filepath=key,
                upload_id=upload_id,
                created_at=now,
                expires_at=now + self.retention,
                mime_type=file.content_type,
                size_bytes=file.size,
            )
            for file, key in zip(files, written)
        ]

        try:
            await self.records.insert_many(records)
        except Exception as e:
            logger.error(f"Metadata insert failed for batch {upload_id}: {e}")
            await self._discard(upload_id, written)
            try:
                await self.db.rollback()
            except Exception as rollback_err:
                logger.error(f"Rollback after failed insert for batch {upload_id} failed: {rollback_err}")
            raise BatchUploadError() from e

        logger.info(f"Stored batch {upload_id} with {len(records)} file(s)")
        return UploadedBatch(upload_id=upload_id, records=records)

    async def _write_blobs(self, upload_id: uuid.UUID, files: Sequence[UploadFile]) -> list[str]:
        written: list[str] = []
        for index, file in enumerate(files, start=1):
            try:
                written.append(await self.storage.save(file, file.filename))
            except Exception as e:
                logger.error(
                    f"Blob write {index}/{len(files)} ({file.filename!r}) failed "
                    f"for batch {upload_id}: {e}"
                )
                await self._discard(upload_id, written)
                raise BatchUploadError() from e
        return written

    async def _discard(self, upload_id: uuid.UUID, keys: list[str]) -> None:
        for key in keys:
            try:
                await self.storage.delete(key)
            except Exception as e:
                logger.error(f"Orphaned blob {key} from batch {upload_id} could not be removed: {e}")
