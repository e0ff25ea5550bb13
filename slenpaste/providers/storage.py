from __future__ import annotations

from typing import BinaryIO, Iterator, Protocol, Tuple, runtime_checkable


@runtime_checkable
class StorageProvider(Protocol):
    """
    Key-addressable byte store.

    Missing keys raise FileNotFoundError on reads (every implementation
    normalizes its backend's "no such key" into it); deletes are idempotent.
    """

    name: str

    def put_stream(
        self,
        key: str,
        stream: BinaryIO,
        content_type: str = "application/octet-stream",
    ) -> None: ...

    def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None: ...

    def get_object(self, key: str) -> bytes: ...

    def open_stream(self, key: str, chunk_size: int = 64 * 1024) -> Tuple[Iterator[bytes], int]: ...

    def exists(self, key: str) -> bool: ...

    def delete_object(self, key: str) -> None: ...
