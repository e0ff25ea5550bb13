from __future__ import annotations

import logging
import mimetypes
import threading
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Optional, Set

from slenpaste.core.errors import NotFoundError, StorageError, UploadTooLargeError, ValidationError
from slenpaste.pastes.expiry import ExpiryEvaluator, StoredPaste
from slenpaste.pastes.locators import generate_id, is_valid_locator, metadata_key
from slenpaste.pastes.policy import ExpiryPolicy
from slenpaste.providers.storage import StorageProvider

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CountingReader:
    """File-like wrapper that counts bytes handed out and enforces a ceiling."""

    def __init__(self, stream: BinaryIO, limit: Optional[int]) -> None:
        self._stream = stream
        self._limit = limit
        self.count = 0
        self.exceeded = False

    def read(self, size: int = -1) -> bytes:
        if self._limit is not None and (size is None or size < 0):
            # Never pull an unbounded read from an untrusted stream.
            size = self._limit + 1 - self.count
        data = self._stream.read(size)
        self.count += len(data)
        if self._limit is not None and self.count > self._limit:
            self.exceeded = True
            raise UploadTooLargeError(self._limit)
        return data

    def readable(self) -> bool:
        return True


class PasteStore:
    """
    Content + sidecar expiry records on top of a StorageProvider.

    Content lives at `<locator>`, the policy (only when it is not "never")
    at `<locator>.meta`. The sidecar is written before the content so no
    readable paste ever lacks its expiry rule.
    """

    def __init__(
        self,
        storage: StorageProvider,
        *,
        id_length: int = 6,
        id_attempts: int = 5,
        chunk_size: int = 64 * 1024,
        max_upload_bytes: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.storage = storage
        self.id_length = id_length
        self.id_attempts = max(1, id_attempts)
        self.chunk_size = chunk_size
        self.max_upload_bytes = max_upload_bytes
        self._clock = clock
        self._lock = threading.Lock()
        self._reserved: Set[str] = set()
        self.expiry = ExpiryEvaluator(self)

    def now(self) -> datetime:
        return self._clock()

    # -----------------------------------------------------------------
    # write
    # -----------------------------------------------------------------

    def _taken(self, locator: str) -> bool:
        try:
            return self.storage.exists(locator) or self.storage.exists(metadata_key(locator))
        except Exception as exc:
            raise StorageError(f"existence check failed for {locator}: {exc}") from exc

    def _allocate(self, extension: str) -> str:
        for _ in range(self.id_attempts):
            locator = generate_id(self.id_length) + extension
            with self._lock:
                if locator in self._reserved:
                    continue
                self._reserved.add(locator)
            try:
                taken = self._taken(locator)
            except BaseException:
                self._unreserve(locator)
                raise
            if not taken:
                return locator
            self._unreserve(locator)
            log.info("Locator collision on %s; retrying", locator)
        raise StorageError(f"no free locator after {self.id_attempts} attempts")

    def _unreserve(self, locator: str) -> None:
        with self._lock:
            self._reserved.discard(locator)

    def put(self, stream: BinaryIO, policy: ExpiryPolicy, extension: str = ".txt") -> str:
        """
        Persist `stream` under a fresh locator and return it.

        Raises ValidationError for empty uploads (UploadTooLargeError past the
        configured ceiling) and StorageError for backend failures; in every
        failure case nothing is left behind.
        """
        if not is_valid_locator("x" + extension):
            raise ValidationError(f"Invalid extension: {extension!r}")

        locator = self._allocate(extension)
        reader = _CountingReader(stream, self.max_upload_bytes)
        content_type = mimetypes.guess_type(locator)[0] or "application/octet-stream"
        try:
            if not policy.is_never:
                self.storage.put_object(metadata_key(locator), policy.to_record(), content_type="application/json")
            self.storage.put_stream(locator, reader, content_type=content_type)
        except (ValidationError, StorageError):
            self.discard(locator, reason="failed upload")
            raise
        except Exception as exc:
            self.discard(locator, reason="failed upload")
            if reader.exceeded:
                # Backends may wrap the reader's exception in their own.
                raise UploadTooLargeError(self.max_upload_bytes or 0) from exc
            raise StorageError(f"write failed for {locator}: {exc}") from exc
        finally:
            self._unreserve(locator)

        if reader.count == 0:
            self.discard(locator, reason="empty upload")
            raise ValidationError("Empty upload")

        log.info("Stored paste %s bytes=%d expiry=%s", locator, reader.count, policy.kind.value)
        return locator

    # -----------------------------------------------------------------
    # read / delete
    # -----------------------------------------------------------------

    def get(self, locator: str) -> StoredPaste:
        if not is_valid_locator(locator):
            raise NotFoundError()
        return self.expiry.open(locator)

    def delete(self, locator: str) -> None:
        try:
            self.storage.delete_object(locator)
            self.storage.delete_object(metadata_key(locator))
        except Exception as exc:
            raise StorageError(f"delete failed for {locator}: {exc}") from exc

    def discard(self, locator: str, reason: str) -> bool:
        """Best-effort delete; failures are logged, never raised."""
        try:
            self.delete(locator)
        except StorageError:
            log.exception("Failed to delete paste %s (%s)", locator, reason)
            return False
        log.info("Deleted paste %s (%s)", locator, reason)
        return True
