"""Byte-level key/value stores with expiry, backing the artifact cache."""
import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

logger = logging.getLogger(__name__)


class StoreConnectionError(Exception):
    """The backing store could not complete an operation."""


@runtime_checkable
class ArtifactStore(Protocol):
    """Protocol for artifact store backends."""

    def get(self, key: str) -> Optional[bytes]:
        """Get value by key, None when absent or expired."""
        ...

    def set(self, key: str, value: bytes, ttl: int) -> None:
        """Replace value, expiring ttl seconds from now."""
        ...

    def delete(self, key: str) -> None:
        """Delete key. Absent keys are ignored."""
        ...

    def ping(self) -> bool:
        """Check the store is reachable."""
        ...


class RedisArtifactStore:
    """
    Redis-backed artifact store.

    Every write is a single ``SET key value EX ttl`` so a slot is either fully
    replaced or left as it was. Network operations are bounded by the client
    socket timeouts and never retried.
    """

    def __init__(self, url: str, socket_timeout: float = 2.0):
        """
        Initialize Redis store.

        Args:
            url: Redis connection URL (redis://host:port/db)
            socket_timeout: Seconds to wait for connect and for each reply
        """
        self.client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry=Retry(NoBackoff(), 0),
        )
        logger.info("Redis artifact store initialized: %s", url)

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            raise StoreConnectionError(f"redis get failed: {e}") from e

    def set(self, key: str, value: bytes, ttl: int) -> None:
        try:
            self.client.set(key, value, ex=ttl)
        except redis.RedisError as e:
            raise StoreConnectionError(f"redis set failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            raise StoreConnectionError(f"redis delete failed: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


class InMemoryArtifactStore:
    """
    In-process artifact store.

    Used for tests and single-process deployments. Expiry is evaluated lazily
    against ``clock`` (seconds), which tests can replace.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._store: Dict[str, Tuple[bytes, float]] = {}

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: bytes, ttl: int) -> None:
        with self._lock:
            self._store[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._store.values() if now < expires_at)
