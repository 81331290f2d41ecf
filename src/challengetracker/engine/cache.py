"""Cache of aggregated progress keyed by (user, challenge)."""

import logging
import time
from collections.abc import Callable
from typing import Optional

logger = logging.getLogger(__name__)


class ProgressCache:
    """Explicit recompute cache.

    Values are whatever the compute callback returns (usually a progress
    map). Writers invalidate the affected key; a non-zero TTL also expires
    entries after that many seconds.
    """

    def __init__(self, ttl: float = 0, clock: Callable[[], float] = time.monotonic):
        """Initialize the cache.

        Args:
            ttl: Seconds before an entry expires; 0 keeps entries until invalidated
            clock: Monotonic time source
        """
        self.ttl = ttl
        self._clock = clock
        self._store: dict[tuple[str, str], tuple[float, object]] = {}

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return self.get(*key) is not None

    def get(self, user_id: str, challenge_id: str) -> Optional[object]:
        """Cached value, or None when missing or expired."""
        key = (user_id, challenge_id)
        item = self._store.get(key)
        if item is None:
            return None
        stored_at, value = item
        if self.ttl and self._clock() - stored_at >= self.ttl:
            del self._store[key]
            return None
        return value

    def put(self, user_id: str, challenge_id: str, value: object) -> None:
        self._store[(user_id, challenge_id)] = (self._clock(), value)

    def get_or_compute(self, user_id: str, challenge_id: str, compute: Callable[[], object]):
        """Return the cached value, computing and storing it on a miss."""
        value = self.get(user_id, challenge_id)
        if value is None:
            value = compute()
            self.put(user_id, challenge_id, value)
        return value

    def invalidate(self, user_id: str, challenge_id: str) -> None:
        if self._store.pop((user_id, challenge_id), None) is not None:
            logger.debug("Invalidated progress cache for %s/%s", user_id, challenge_id)

    def invalidate_challenge(self, challenge_id: str) -> None:
        """Drop every user's entry for one challenge."""
        stale = [key for key in self._store if key[1] == challenge_id]
        for key in stale:
            del self._store[key]
        if stale:
            logger.debug("Invalidated %d cached progress maps for %s", len(stale), challenge_id)

    def clear(self) -> None:
        self._store.clear()
