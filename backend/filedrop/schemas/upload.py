"""Upload request/response schemas."""
from filedrop.schemas.base import CamelModel


class UploadedFileResponse(CamelModel):
    file_id: str
    filename: str
    file_url: str


class UploadBatchResponse(CamelModel):
    message: str = "Files uploaded successfully!"
    files: list[UploadedFileResponse]
    upload_batch_id: str
