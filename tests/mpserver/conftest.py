"""Shared fixtures for mpserver tests."""
import json

import numpy as np
import pytest

from mpserver.data.artifact_cache import ArtifactCache
from mpserver.data.artifact_store import InMemoryArtifactStore
from mpserver.data.series_repository import SeriesRepository
from mpserver.services.profile_engine import ProfileEngine
from mpserver.services.query_router import QueryRouter

WEEK_OF_MINUTES = 24 * 60 * 7


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingObserver:
    """RequestObserver keeping every observation."""

    def __init__(self):
        self.calls = []

    def observe(self, method, endpoint, code, duration_ms):
        self.calls.append((method, endpoint, code))


def make_series(n: int, seed: int = 7) -> np.ndarray:
    """Two periodic components plus noise; no flat stretches."""
    rng = np.random.default_rng(seed)
    t = np.arange(n, dtype=np.float64)
    return (
        np.sin(2 * np.pi * t / 300)
        + 0.4 * np.sin(2 * np.pi * t / 37)
        + rng.normal(0, 0.3, n)
    )


def write_series(path, data) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"data": [float(x) for x in data]}, f)


@pytest.fixture(scope="session")
def week_series_file(tmp_path_factory):
    """A JSON series file longer than one week at minute resolution."""
    path = tmp_path_factory.mktemp("series") / "week.json"
    write_series(path, make_series(WEEK_OF_MINUTES + 500))
    return path


@pytest.fixture(scope="session")
def short_series_file(tmp_path_factory):
    """A small JSON series file for fast computations."""
    path = tmp_path_factory.mktemp("series") / "short.json"
    write_series(path, make_series(600))
    return path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryArtifactStore(clock=clock)


@pytest.fixture
def cache(store):
    return ArtifactCache(store=store, retention_period=300, max_blob_bytes=1024 * 1024)


@pytest.fixture(scope="session")
def engine():
    return ProfileEngine(concurrency=2, threading_layer="workqueue")


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def short_repo(short_series_file):
    return SeriesRepository(data_file=short_series_file, smoothing_window=21, series_length=WEEK_OF_MINUTES)


@pytest.fixture
def router(cache, engine, short_repo, observer):
    query_router = QueryRouter(
        cache=cache,
        engine=engine,
        series_repo=short_repo,
        observer=observer,
        request_timeout=60.0,
    )
    yield query_router
    query_router.close()
