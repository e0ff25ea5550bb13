import io
import os

import pytest

from slenpaste.providers.impl.storage_local_files import LocalFilesStorageProvider
from slenpaste.providers.storage import StorageProvider


def test_satisfies_storage_protocol(storage):
    assert isinstance(storage, StorageProvider)
    assert storage.name == "local"


def test_creates_root_on_first_write(tmp_path):
    root = tmp_path / "a" / "b"
    storage = LocalFilesStorageProvider(str(root))
    assert not root.exists()

    storage.put_object("k.txt", b"v")
    assert root.is_dir()
    assert storage.get_object("k.txt") == b"v"


def test_stream_roundtrip_in_chunks(storage):
    payload = os.urandom(10_000)
    storage.put_stream("blob.bin", io.BytesIO(payload))

    chunks, length = storage.open_stream("blob.bin", chunk_size=4096)
    parts = list(chunks)
    assert length == len(payload)
    assert [len(p) for p in parts] == [4096, 4096, 1808]
    assert b"".join(parts) == payload


def test_stream_closed_before_first_chunk_releases_file(storage):
    storage.put_object("k.txt", b"payload")

    chunks, _ = storage.open_stream("k.txt")
    assert not chunks.closed
    chunks.close()
    assert chunks.closed
    assert list(chunks) == []


def test_exhausted_stream_releases_file(storage):
    storage.put_object("k.txt", b"payload")

    chunks, _ = storage.open_stream("k.txt", chunk_size=4)
    assert list(chunks) == [b"payl", b"oad"]
    assert chunks.closed


def test_failed_write_leaves_no_partial_file(storage):
    class Exploding:
        def __init__(self):
            self.calls = 0

        def readable(self):
            return True

        def read(self, size=-1):
            self.calls += 1
            if self.calls > 1:
                raise IOError("connection reset")
            return b"partial"

    with pytest.raises(IOError):
        storage.put_stream("k.txt", Exploding())

    assert not storage.exists("k.txt")
    assert os.listdir(storage.root) == []


def test_missing_key_raises_file_not_found(storage):
    with pytest.raises(FileNotFoundError):
        storage.get_object("missing.txt")
    with pytest.raises(FileNotFoundError):
        storage.open_stream("missing.txt")


def test_delete_is_idempotent(storage):
    storage.put_object("k.txt", b"v")
    storage.delete_object("k.txt")
    storage.delete_object("k.txt")
    assert not storage.exists("k.txt")


@pytest.mark.parametrize("key", ["", "../x", "a/b", ".hidden", "a\\b"])
def test_rejects_keys_that_escape_the_root(storage, key):
    with pytest.raises(ValueError):
        storage.put_object(key, b"v")
