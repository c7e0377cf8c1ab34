"""Expiry reaper.

Periodically removes files whose retention window has passed: blob first,
then the metadata record. Runs as an asyncio task owned by the FastAPI
lifespan; tests call ``sweep()`` directly.

Only one reaper per deployment is expected. A second one would repeat
deletes that are already idempotent, nothing worse.
"""
import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filedrop.models.base import utcnow
from filedrop.services.file_records import FileRecordStore
from filedrop.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: int = 0
    purged: int = 0
    blobs_missing: int = 0
    failed: int = 0


class ExpiryReaper:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: FileStorageService,
        interval_seconds: float,
    ):
        self.session_factory = session_factory
        self.storage = storage
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        """Purge every record that expired strictly before ``now``."""
        now = now or utcnow()
        report = SweepReport()
        async with self.session_factory() as db:
            store = FileRecordStore(db)
            expired = [(r.id, r.filepath) for r in await store.find_expired(now)]
            report.expired = len(expired)

            for file_id, filepath in expired:
                try:
                    if not await self.storage.delete(filepath):
                        report.blobs_missing += 1
                    await store.delete(file_id)
                    report.purged += 1
                except Exception as e:
                    report.failed += 1
                    logger.error(f"Failed to purge expired file {file_id} ({filepath}): {e}")
                    try:
                        await db.rollback()
                    except Exception as rollback_err:
                        logger.error(f"Rollback after failed purge of {file_id} failed: {rollback_err}")

        if report.expired:
            logger.info(
                f"Reaper purged {report.purged}/{report.expired} expired file(s), "
                f"{report.blobs_missing} already without blob, {report.failed} failed"
            )
        return report

    async def _loop(self) -> None:
        logger.info(f"Expiry reaper started (every {self.interval_seconds}s)")
        while True:
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Reaper sweep error: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="expiry-reaper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Expiry reaper stopped")
