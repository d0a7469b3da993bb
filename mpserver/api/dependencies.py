"""FastAPI dependencies for dependency injection."""
from functools import lru_cache

from mpserver.config import settings
from mpserver.data.artifact_cache import ArtifactCache
from mpserver.data.artifact_store import ArtifactStore, InMemoryArtifactStore, RedisArtifactStore
from mpserver.data.series_repository import SeriesRepository
from mpserver.monitoring.metrics import PrometheusMetrics
from mpserver.services.profile_engine import ProfileEngine
from mpserver.services.query_router import QueryRouter


@lru_cache()
def get_series_repository() -> SeriesRepository:
    """Get cached series repository instance."""
    return SeriesRepository(
        data_file=settings.data_file,
        smoothing_window=settings.smoothing_window,
        series_length=settings.series_length,
    )


@lru_cache()
def get_artifact_store() -> ArtifactStore:
    """Get the configured artifact store backend."""
    if settings.cache_backend == "memory":
        return InMemoryArtifactStore()
    return RedisArtifactStore(
        url=settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
    )


@lru_cache()
def get_artifact_cache() -> ArtifactCache:
    """Get cached artifact cache instance."""
    return ArtifactCache(
        store=get_artifact_store(),
        retention_period=settings.retention_period,
        max_blob_bytes=settings.max_blob_bytes,
        prefix=settings.cache_prefix,
    )


@lru_cache()
def get_profile_engine() -> ProfileEngine:
    """Get cached profile engine instance."""
    return ProfileEngine(
        concurrency=settings.mp_concurrency,
        threading_layer=settings.numba_threading_layer,
    )


@lru_cache()
def get_metrics() -> PrometheusMetrics:
    """Get the process-wide Prometheus metrics."""
    return PrometheusMetrics()


@lru_cache()
def get_query_router() -> QueryRouter:
    """Get cached query router instance."""
    return QueryRouter(
        cache=get_artifact_cache(),
        engine=get_profile_engine(),
        series_repo=get_series_repository(),
        observer=get_metrics(),
        request_timeout=settings.request_timeout,
        discord_exclusion_factor=settings.discord_exclusion_factor,
        engine_workers=settings.engine_workers,
        api_prefix=settings.api_prefix,
    )
