from __future__ import annotations

import os
import shutil
import tempfile
from typing import BinaryIO, Iterator, Tuple

from slenpaste.providers.storage import StorageProvider

_TMP_PREFIX = ".tmp-"


class _FileChunks:
    """Iterator over an open file; close() releases it even if never started."""

    def __init__(self, f: BinaryIO, chunk_size: int) -> None:
        self._f = f
        self._chunk_size = chunk_size

    @property
    def closed(self) -> bool:
        return self._f.closed

    def __iter__(self) -> "_FileChunks":
        return self

    def __next__(self) -> bytes:
        if self._f.closed:
            raise StopIteration
        chunk = self._f.read(self._chunk_size)
        if not chunk:
            self.close()
            raise StopIteration
        return chunk

    def close(self) -> None:
        self._f.close()


class LocalFilesStorageProvider(StorageProvider):
    """
    Flat directory of files, one per key.

    Writes go to a temp file in the same directory and are renamed into
    place, so a key is either absent or complete. The directory is created
    on demand.
    """

    name = "local"

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)

    def _path(self, key: str) -> str:
        if not key or key.startswith(".") or "/" in key or "\\" in key or "\x00" in key:
            raise ValueError(f"invalid storage key: {key!r}")
        return os.path.join(self.root, key)

    def _write_atomic(self, key: str, copy) -> None:
        path = self._path(key)
        os.makedirs(self.root, exist_ok=True)

        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=_TMP_PREFIX, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                copy(f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            try:
                os.remove(tmp)
            except FileNotFoundError:
                pass
            raise

    def put_stream(
        self,
        key: str,
        stream: BinaryIO,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._write_atomic(key, lambda f: shutil.copyfileobj(stream, f))

    def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._write_atomic(key, lambda f: f.write(data))

    def get_object(self, key: str) -> bytes:
        with open(self._path(key), "rb") as f:
            return f.read()

    def open_stream(self, key: str, chunk_size: int = 64 * 1024) -> Tuple[Iterator[bytes], int]:
        f = open(self._path(key), "rb")
        try:
            length = os.fstat(f.fileno()).st_size
        except BaseException:
            f.close()
            raise

        return _FileChunks(f, chunk_size), length

    def exists(self, key: str) -> bool:
        return os.path.exists(self._path(key))

    def delete_object(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass
