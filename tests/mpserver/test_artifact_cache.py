"""Tests for the session-scoped artifact cache."""
from unittest import mock

import numpy as np
import pytest
import redis

from mpserver.data.artifact_cache import ArtifactCache, LookupStatus, WriteStatus
from mpserver.data.artifact_store import (
    InMemoryArtifactStore,
    RedisArtifactStore,
    StoreConnectionError,
)
from mpserver.models.artifact import Artifact


class DownStore:
    """Store whose backend is unreachable."""

    def get(self, key):
        raise StoreConnectionError("connection refused")

    def set(self, key, value, ttl):
        raise StoreConnectionError("connection refused")

    def delete(self, key):
        raise StoreConnectionError("connection refused")

    def ping(self):
        return False


def make_artifact(window: int = 8, n: int = 64) -> Artifact:
    rng = np.random.default_rng(window)
    return Artifact(
        series=rng.normal(size=n),
        distances=rng.uniform(0, 3, size=n - window + 1),
        indices=np.arange(n - window + 1, dtype=np.int64)[::-1].copy(),
        window=window,
    )


class TestArtifactCache:
    """Tests for ArtifactCache."""

    def test_get_on_empty_session_is_miss(self, cache):
        lookup = cache.get("session-a")

        assert lookup.status is LookupStatus.MISS
        assert lookup.artifact is None
        assert not lookup.found

    def test_put_then_get_returns_same_artifact(self, cache):
        artifact = make_artifact()

        write = cache.put("session-a", artifact)
        lookup = cache.get("session-a")

        assert write.ok
        assert write.size > 0
        assert lookup.found
        assert np.array_equal(lookup.artifact.distances, artifact.distances)
        assert np.array_equal(lookup.artifact.indices, artifact.indices)
        assert lookup.artifact.window == artifact.window

    def test_sessions_are_isolated(self, cache):
        cache.put("session-a", make_artifact())

        assert cache.get("session-b").status is LookupStatus.MISS

    def test_put_replaces_single_slot(self, cache, store):
        cache.put("session-a", make_artifact(window=8))
        cache.put("session-a", make_artifact(window=12))

        assert cache.get("session-a").artifact.window == 12
        assert len(store) == 1

    def test_artifact_expires_after_retention(self, cache, clock):
        cache.put("session-a", make_artifact())

        clock.advance(299)
        assert cache.get("session-a").found

        clock.advance(1)
        assert cache.get("session-a").status is LookupStatus.MISS

    def test_reads_do_not_extend_retention(self, cache, clock):
        """Retention counts from the write, however often the slot is read."""
        cache.put("session-a", make_artifact())

        for _ in range(5):
            clock.advance(59)
            assert cache.get("session-a").found

        clock.advance(5)
        assert cache.get("session-a").status is LookupStatus.MISS

    def test_rewrite_restarts_retention(self, cache, clock):
        artifact = make_artifact()
        cache.put("session-a", artifact)
        clock.advance(200)

        cache.put("session-a", artifact.with_annotation("meanstd"))
        clock.advance(200)

        lookup = cache.get("session-a")
        assert lookup.found
        assert lookup.artifact.annotation == "meanstd"

    def test_oversized_artifact_is_rejected(self, store):
        small_cache = ArtifactCache(store=store, retention_period=300, max_blob_bytes=256)

        write = small_cache.put("session-a", make_artifact(n=4096))

        assert write.status is WriteStatus.REJECTED
        assert "exceeding the maximum of 256 bytes" in write.reason
        assert small_cache.get("session-a").status is LookupStatus.MISS

    def test_rejected_write_keeps_previous_artifact(self, store):
        big_cache = ArtifactCache(store=store, retention_period=300, max_blob_bytes=1024 * 1024)
        previous = make_artifact(window=8)
        big_cache.put("session-a", previous)
        oversized = make_artifact(window=8, n=4096)
        limit = len(previous.to_bytes()) + 16
        small_cache = ArtifactCache(store=store, retention_period=300, max_blob_bytes=limit)

        write = small_cache.put("session-a", oversized)

        assert write.status is WriteStatus.REJECTED
        lookup = small_cache.get("session-a")
        assert lookup.found
        assert len(lookup.artifact.series) == len(previous.series)

    def test_unreachable_store_is_not_a_miss(self):
        down_cache = ArtifactCache(store=DownStore(), retention_period=300, max_blob_bytes=1024)

        lookup = down_cache.get("session-a")

        assert lookup.status is LookupStatus.UNAVAILABLE
        assert lookup.artifact is None

    def test_put_to_unreachable_store_reports_unavailable(self):
        down_cache = ArtifactCache(store=DownStore(), retention_period=300, max_blob_bytes=1024 * 1024)

        write = down_cache.put("session-a", make_artifact())

        assert write.status is WriteStatus.UNAVAILABLE
        assert not write.ok

    def test_invalidate_is_idempotent(self, cache):
        cache.put("session-a", make_artifact())

        cache.invalidate("session-a")
        cache.invalidate("session-a")
        cache.invalidate("never-seen")

        assert cache.get("session-a").status is LookupStatus.MISS

    def test_invalidate_tolerates_unreachable_store(self):
        down_cache = ArtifactCache(store=DownStore(), retention_period=300, max_blob_bytes=1024)

        down_cache.invalidate("session-a")

    def test_unreadable_blob_is_treated_as_miss(self, cache, store):
        store.set(cache.prefix + "session-a", b"\x00garbage", 300)

        assert cache.get("session-a").status is LookupStatus.MISS

    def test_keys_are_prefixed(self, store):
        prefixed = ArtifactCache(store=store, retention_period=300, max_blob_bytes=1024 * 1024, prefix="test:")

        prefixed.put("session-a", make_artifact())

        assert store.get("test:session-a") is not None
        assert store.get("session-a") is None


class TestInMemoryArtifactStore:
    """Tests for InMemoryArtifactStore."""

    def test_set_get_delete(self, clock):
        store = InMemoryArtifactStore(clock=clock)

        store.set("k", b"v", ttl=10)
        assert store.get("k") == b"v"

        store.delete("k")
        assert store.get("k") is None

    def test_entry_expires(self, clock):
        store = InMemoryArtifactStore(clock=clock)
        store.set("k", b"v", ttl=10)

        clock.advance(10)

        assert store.get("k") is None
        assert len(store) == 0

    def test_ping(self):
        assert InMemoryArtifactStore().ping() is True


@pytest.mark.parametrize("window", [3, 50])
def test_cache_round_trip_for_window(cache, window):
    artifact = make_artifact(window=window, n=200)

    cache.put("s", artifact)

    assert cache.get("s").artifact.window == window


class TestRedisArtifactStore:
    """Tests for RedisArtifactStore."""

    @pytest.fixture
    def redis_store(self):
        store = RedisArtifactStore("redis://localhost:6379/0", socket_timeout=0.5)
        store.client = mock.Mock()
        return store

    def test_set_writes_value_with_expiry(self, redis_store):
        redis_store.set("mpserver:artifact:s", b"blob", ttl=300)

        redis_store.client.set.assert_called_once_with("mpserver:artifact:s", b"blob", ex=300)

    def test_get_and_delete_pass_through(self, redis_store):
        redis_store.client.get.return_value = b"blob"

        assert redis_store.get("k") == b"blob"
        redis_store.delete("k")

        redis_store.client.get.assert_called_once_with("k")
        redis_store.client.delete.assert_called_once_with("k")

    @pytest.mark.parametrize("operation, args", [
        ("get", ("k",)),
        ("set", ("k", b"v", 300)),
        ("delete", ("k",)),
    ])
    def test_redis_errors_become_connection_errors(self, redis_store, operation, args):
        getattr(redis_store.client, operation).side_effect = redis.TimeoutError("timed out")

        with pytest.raises(StoreConnectionError):
            getattr(redis_store, operation)(*args)

    def test_cache_writes_through_single_expiring_set(self, redis_store):
        redis_cache = ArtifactCache(store=redis_store, retention_period=300, max_blob_bytes=1024 * 1024)
        artifact = make_artifact()

        write = redis_cache.put("session-a", artifact)

        assert write.ok
        (key, blob), kwargs = redis_store.client.set.call_args
        assert key == "mpserver:artifact:session-a"
        assert kwargs == {"ex": 300}
        assert np.array_equal(Artifact.from_bytes(blob).distances, artifact.distances)

    def test_unreachable_server(self):
        """Nothing listens on port 1, so every call fails fast."""
        store = RedisArtifactStore("redis://127.0.0.1:1/0", socket_timeout=0.5)

        assert store.ping() is False
        with pytest.raises(StoreConnectionError):
            store.get("k")
        assert ArtifactCache(store=store, retention_period=300, max_blob_bytes=1024).get(
            "session-a"
        ).status is LookupStatus.UNAVAILABLE
