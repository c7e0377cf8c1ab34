import io

import pytest

from filedrop.services.file_storage import FileStorageService, safe_basename


class _BrokenSource:
    def __init__(self):
        self.calls = 0

    async def read(self, size: int) -> bytes:
        self.calls += 1
        if self.calls > 1:
            raise OSError("connection reset")
        return b"partial"


class _AsyncBytes:
    def __init__(self, data: bytes):
        self._buf = io.BytesIO(data)

    async def read(self, size: int) -> bytes:
        return self._buf.read(size)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("report.pdf", "report.pdf"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\notes.txt", "notes.txt"),
        ("", "unnamed"),
        (None, "unnamed"),
    ],
)
def test_safe_basename(raw, expected):
    assert safe_basename(raw) == expected


async def test_save_exists_read_delete(tmp_path):
    store = FileStorageService(tmp_path)
    key = await store.save(_AsyncBytes(b"hello world"), "greeting.txt")

    assert key.endswith("_greeting.txt")
    assert await store.exists(key)
    assert await store.size(key) == 11
    chunks = [c async for c in store.iter_chunks(key, 4)]
    assert b"".join(chunks) == b"hello world"

    assert await store.delete(key) is True
    assert not await store.exists(key)
    # second delete is a no-op
    assert await store.delete(key) is False


async def test_same_name_gets_distinct_keys(tmp_path):
    store = FileStorageService(tmp_path)
    first = await store.save(_AsyncBytes(b"1"), "same.txt")
    second = await store.save(_AsyncBytes(b"2"), "same.txt")
    assert first != second


async def test_failed_write_leaves_no_blob(tmp_path):
    store = FileStorageService(tmp_path)
    with pytest.raises(OSError):
        await store.save(_BrokenSource(), "broken.bin")
    assert list(tmp_path.iterdir()) == []


def test_path_for_rejects_keys_outside_storage(tmp_path):
    store = FileStorageService(tmp_path / "blobs")
    with pytest.raises(ValueError):
        store.path_for("../outside.txt")
