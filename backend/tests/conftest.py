"""
FileDrop - test configuration and fixtures
"""
import io
import os
import tempfile
from typing import AsyncGenerator

import pytest
from fastapi import UploadFile
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Point settings at throwaway locations before the app is imported
_TMP_ROOT = tempfile.mkdtemp(prefix="filedrop-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_ROOT}/app.db"
os.environ["FILE_STORAGE_PATH"] = os.path.join(_TMP_ROOT, "uploads")
os.environ["BACKEND_URL"] = "http://test"

from filedrop.database import get_db
from filedrop.main import app
from filedrop.models import Base
from filedrop.services.file_storage import FileStorageService, get_file_storage


def make_upload(name: str, data: bytes) -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=name, size=len(data))


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path) -> FileStorageService:
    return FileStorageService(tmp_path / "blobs")


@pytest.fixture
async def client(session_factory, storage) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database and blob store overridden."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_storage] = lambda: storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def upload():
    """Factory for in-memory UploadFile objects."""
    return make_upload
