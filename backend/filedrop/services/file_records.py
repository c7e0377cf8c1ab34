"""Metadata store for FileRecord rows."""
import uuid
from datetime import datetime
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from filedrop.models.file_record import FileRecord


def parse_id(raw: str | uuid.UUID) -> uuid.UUID | None:
    """Parse a client supplied id; None if it is not a UUID."""
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


class FileRecordStore:
    """Queries and mutations on the files table.

    Every mutation commits on its own; no transaction spans more than one call.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert_many(self, records: Iterable[FileRecord]) -> list[FileRecord]:
        records = list(records)
        self.db.add_all(records)
        await self.db.commit()
        return records

    async def get(self, file_id: uuid.UUID) -> FileRecord | None:
        return await self.db.get(FileRecord, file_id)

    async def find_by_batch(self, upload_id: uuid.UUID) -> list[FileRecord]:
        result = await self.db.execute(
            select(FileRecord)
            .where(FileRecord.upload_id == upload_id)
            .order_by(FileRecord.created_at, FileRecord.filename)
        )
        return list(result.scalars().all())

    async def find_expired(self, before: datetime) -> list[FileRecord]:
        result = await self.db.execute(
            select(FileRecord).where(FileRecord.expires_at < before)
        )
        return list(result.scalars().all())

    async def delete(self, file_id: uuid.UUID) -> bool:
        result = await self.db.execute(delete(FileRecord).where(FileRecord.id == file_id))
        await self.db.commit()
        return result.rowcount > 0
