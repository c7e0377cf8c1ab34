"""Upload and download API routes."""
import logging

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from filedrop.config import settings
from filedrop.database import get_db
from filedrop.schemas.upload import UploadBatchResponse, UploadedFileResponse
from filedrop.services.batch_upload import BatchUploader
from filedrop.services.errors import FileDropError
from filedrop.services.file_storage import FileStorageService, get_file_storage
from filedrop.services.retrieval import RetrievalService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])


def file_url(file_id) -> str:
    return f"{settings.BACKEND_URL.rstrip('/')}/upload/download/{file_id}"


@router.post("/multiple", response_model=UploadBatchResponse)
async def upload_multiple(
    files: list[UploadFile] | None = File(None),
    db: AsyncSession = Depends(get_db),
    storage: FileStorageService = Depends(get_file_storage),
):
    """Upload up to MAX_FILES_PER_UPLOAD files as one batch."""
    try:
        batch = await BatchUploader(db, storage).upload(files)
    except FileDropError:
        raise
    except Exception as e:
        logger.error(f"File upload error: {e}")
        raise FileDropError("File upload failed!") from e

    return UploadBatchResponse(
        files=[
            UploadedFileResponse(
                file_id=str(record.id),
                filename=record.filename,
                file_url=file_url(record.id),
            )
            for record in batch.records
        ],
        upload_batch_id=str(batch.upload_id),
    )


@router.get("/download/{file_id}")
async def download_file(
    file_id: str,
    db: AsyncSession = Depends(get_db),
    storage: FileStorageService = Depends(get_file_storage),
):
    """Download a single file under its original name."""
    try:
        record = await RetrievalService(db, storage).get_file(file_id)
    except FileDropError:
        raise
    except Exception as e:
        logger.error(f"File download error: {e}")
        raise FileDropError("Error downloading file!") from e

    return FileResponse(
        path=storage.path_for(record.filepath),
        filename=record.filename,
        media_type=record.mime_type or "application/octet-stream",
    )


@router.get("/download-all/{upload_batch_id}")
async def download_batch(
    upload_batch_id: str,
    db: AsyncSession = Depends(get_db),
    storage: FileStorageService = Depends(get_file_storage),
):
    """Stream every file of a batch as one zip archive."""
    try:
        archive = await RetrievalService(db, storage).open_batch_archive(upload_batch_id)
    except FileDropError:
        raise
    except Exception as e:
        logger.error(f"Error preparing archive for batch {upload_batch_id}: {e}")
        raise FileDropError("Error downloading files!") from e

    return StreamingResponse(
        archive.iter_bytes(),
        media_type="application/zip",
        headers={"Content-Disposition": f"attachment; filename={archive.download_name}"},
    )
