from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable

Clock = Callable[[], float]


class TokenBucket:
    """
    Token bucket holding up to `capacity` tokens, refilled continuously at
    one token per `refill_seconds`.

    Tracked as a theoretical arrival time (GCRA): `_tat` is when the bucket
    will be full again. A call is admitted while the backlog `_tat - now`
    leaves room for one more token. Nothing is accumulated per call, so the
    refill deadline is exact no matter how often the bucket is polled.
    """

    def __init__(self, capacity: int, refill_seconds: float, clock: Clock) -> None:
        self.capacity = capacity
        self.refill_seconds = refill_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._tat = clock()
        self.last_seen = self._tat

    @property
    def _tolerance(self) -> float:
        return (self.capacity - 1) * self.refill_seconds

    @property
    def tokens(self) -> float:
        with self._lock:
            backlog = max(0.0, self._tat - self._clock())
            return max(0.0, self.capacity - backlog / self.refill_seconds)

    def allow(self) -> bool:
        with self._lock:
            now = self._clock()
            if now < self._tat - self._tolerance:
                return False
            self._tat = max(self._tat, now) + self.refill_seconds
            return True

    def retry_after(self) -> float:
        """Seconds until the next token is available."""
        with self._lock:
            return max(0.0, self._tat - self._tolerance - self._clock())


class AdmissionController:
    """
    Per-client admission gate.

    One instance is built at startup and shared by every request handler.
    The key -> bucket map is guarded by `_lock` for lookup/insert/eviction
    only; each bucket serializes its own token accounting.

    Memory stays bounded: buckets idle for `idle_ttl_seconds` are swept and
    the map never holds more than `max_clients` keys (least recently used
    go first).
    """

    def __init__(
        self,
        capacity: int = 1,
        refill_seconds: float = 5.0,
        max_clients: int = 10000,
        idle_ttl_seconds: float = 600.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if refill_seconds <= 0:
            raise ValueError("refill_seconds must be > 0")

        self.capacity = capacity
        self.refill_seconds = refill_seconds
        self.max_clients = max(1, max_clients)
        # An idle bucket is only dropped once it would have refilled anyway.
        self.idle_ttl_seconds = max(idle_ttl_seconds, capacity * refill_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: "OrderedDict[str, TokenBucket]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _bucket_for(self, client_key: str) -> TokenBucket:
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(client_key)
            if bucket is None:
                self._sweep(now)
                bucket = TokenBucket(self.capacity, self.refill_seconds, self._clock)
                self._buckets[client_key] = bucket
            else:
                self._buckets.move_to_end(client_key)
            bucket.last_seen = now
            return bucket

    def _sweep(self, now: float) -> None:
        # Oldest entries sit at the front of the OrderedDict.
        while self._buckets:
            key, bucket = next(iter(self._buckets.items()))
            if now - bucket.last_seen < self.idle_ttl_seconds:
                break
            del self._buckets[key]
        while len(self._buckets) >= self.max_clients:
            self._buckets.popitem(last=False)

    def allow(self, client_key: str) -> bool:
        return self._bucket_for(client_key).allow()

    def retry_after(self, client_key: str) -> float:
        with self._lock:
            bucket = self._buckets.get(client_key)
        if bucket is None:
            return 0.0
        return bucket.retry_after()
