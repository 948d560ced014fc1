"""
Single-slot TTL cache for the status snapshot.

Fetching the full daemon state on every UI poll is the most expensive call
the bridge makes, so the last successful fetch (together with its stats and
digest) is reused for a short window. The lock only guards reading or
replacing the slot; it is never held while the backend is being called, so
two concurrent misses may both fetch. The last one to store wins.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from .constants import CACHE_LOCK_TIMEOUT, STATUS_CACHE_TTL
from .errors import CacheLockError
from .models import StatusCacheEntry

logger = logging.getLogger(__name__)


class StatusCache:
    def __init__(
        self,
        ttl: float = STATUS_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        lock_timeout: float = CACHE_LOCK_TIMEOUT,
    ):
        self.ttl = ttl
        self._clock = clock
        self._lock_timeout = lock_timeout
        self._lock = threading.Lock()
        self._entry: StatusCacheEntry | None = None

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise CacheLockError("Status cache lock failed")
        try:
            yield
        finally:
            self._lock.release()

    def get(self) -> StatusCacheEntry | None:
        """Return the cached entry if it is at most ``ttl`` seconds old."""
        with self._locked():
            entry = self._entry
            if entry is not None and self._clock() - entry.captured_at <= self.ttl:
                return entry
        return None

    def store(self, payload: dict[str, Any], stats: dict[str, Any], digest: str) -> StatusCacheEntry:
        entry = StatusCacheEntry(
            captured_at=self._clock(), payload=payload, stats=stats, digest=digest
        )
        with self._locked():
            self._entry = entry
        logger.debug("Cached status snapshot %s", digest)
        return entry
