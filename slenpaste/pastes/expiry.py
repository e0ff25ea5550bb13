from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional, Set

import pydantic

from slenpaste.core.errors import NotFoundError, StorageError
from slenpaste.pastes.locators import metadata_key
from slenpaste.pastes.policy import ExpiryPolicy

if TYPE_CHECKING:
    from slenpaste.pastes.store import PasteStore

log = logging.getLogger(__name__)


@dataclass
class StoredPaste:
    locator: str
    chunks: Iterator[bytes]
    length: int
    policy: Optional[ExpiryPolicy] = None

    def close(self) -> None:
        close = getattr(self.chunks, "close", None)
        if close is not None:
            close()


class ExpiryEvaluator:
    """
    Read-time validity check.

    - no sidecar (or an unreadable one): never expires
    - timed and past its deadline: deleted, reported as not found
    - expire-on-view: served once, deleted when the stream is closed
    """

    def __init__(self, store: "PasteStore") -> None:
        self._store = store
        self._lock = threading.Lock()
        # Locators whose single view has been handed out.
        self._claimed: Set[str] = set()

    def load_policy(self, locator: str) -> Optional[ExpiryPolicy]:
        try:
            raw = self._store.storage.get_object(metadata_key(locator))
        except FileNotFoundError:
            return None
        except Exception as exc:
            raise StorageError(f"metadata read failed for {locator}: {exc}") from exc

        try:
            return ExpiryPolicy.from_record(raw)
        except pydantic.ValidationError:
            log.warning("Unparseable metadata for %s; treating as never-expiring", locator)
            return None

    def _claim(self, locator: str) -> bool:
        with self._lock:
            if locator in self._claimed:
                return False
            self._claimed.add(locator)
            return True

    def _release(self, locator: str) -> None:
        with self._lock:
            self._claimed.discard(locator)

    def open(self, locator: str) -> StoredPaste:
        policy = self.load_policy(locator)

        if policy is not None and policy.is_expired(self._store.now()):
            log.info("Paste %s expired at %s; deleting", locator, policy.expiry.isoformat())
            self._store.discard(locator, reason="expired")
            raise NotFoundError()

        view_once = policy is not None and policy.expire_on_view
        if view_once and not self._claim(locator):
            raise NotFoundError()

        try:
            chunks, length = self._store.storage.open_stream(locator, chunk_size=self._store.chunk_size)
        except FileNotFoundError:
            if view_once:
                self._release(locator)
            raise NotFoundError()
        except Exception as exc:
            if view_once:
                self._release(locator)
            raise StorageError(f"content read failed for {locator}: {exc}") from exc

        if view_once:
            chunks = _ViewOnceStream(self, locator, chunks)
        return StoredPaste(locator=locator, chunks=chunks, length=length, policy=policy)

    def finish_view(self, locator: str) -> None:
        if self._store.discard(locator, reason="viewed"):
            self._release(locator)
        else:
            # Keep the claim so a failed delete never yields a second view.
            log.warning("Paste %s stays claimed after failed view-once delete", locator)


class _ViewOnceStream:
    """
    Chunk iterator that deletes its paste once exhausted or closed.

    Closing before the first chunk still counts as the view.
    """

    def __init__(self, evaluator: ExpiryEvaluator, locator: str, chunks: Iterator[bytes]) -> None:
        self._evaluator = evaluator
        self._locator = locator
        self._chunks = chunks
        self._done = False

    def __iter__(self) -> "_ViewOnceStream":
        return self

    def __next__(self) -> bytes:
        if self._done:
            raise StopIteration
        try:
            return next(self._chunks)
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        if self._done:
            return
        self._done = True
        close = getattr(self._chunks, "close", None)
        if close is not None:
            close()
        self._evaluator.finish_view(self._locator)

    def __del__(self) -> None:
        self.close()
