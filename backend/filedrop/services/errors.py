"""Domain errors raised by the file services.

Routes never build error bodies themselves; the handlers installed in
``filedrop.main`` map these onto HTTP status codes.
"""


class FileDropError(Exception):
    """Base class for all service errors."""

    status_code = 500
    message = "Internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ClientError(FileDropError):
    """The request itself is invalid. Nothing was stored."""
    status_code = 400


class EmptyBatchError(ClientError):
    message = "No files uploaded!"


class TooManyFilesError(ClientError):
    def __init__(self, received: int, limit: int):
        super().__init__(f"Too many files! Received {received}, at most {limit} are allowed.")
        self.received = received
        self.limit = limit


class NotFoundError(FileDropError):
    status_code = 404
    message = "Not found"


class RecordNotFoundError(NotFoundError):
    message = "File not found in database!"


class BlobNotFoundError(NotFoundError):
    message = "File not found on server!"


class BatchNotFoundError(NotFoundError):
    message = "No files available for download!"


class BatchUploadError(FileDropError):
    """Upload failed after validation; written blobs have been compensated."""
    message = "File upload failed!"


class ArchiveAbortedError(Exception):
    """A batch archive stream stopped before its central directory was written.

    Raised after response headers are sent. Not a FileDropError, so no
    handler maps it to a JSON body and the server drops the connection
    without ending the chunked response.
    """
