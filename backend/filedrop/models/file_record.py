"""FileRecord model - file metadata (actual bytes live in the blob store)."""
import uuid
from datetime import datetime
from sqlalchemy import String, BigInteger, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from filedrop.models.base import Base, CreatedAtMixin


class FileRecord(Base, CreatedAtMixin):
    __tablename__ = "files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    filepath: Mapped[str] = mapped_column(String(1000), nullable=False)
    upload_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<FileRecord {self.id} {self.filename!r} batch={self.upload_id}>"
