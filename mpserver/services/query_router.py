"""Request orchestration over the series, the engine and the artifact cache."""
from concurrent import futures
from contextlib import contextmanager
import logging
import math
import time
from typing import Callable, Iterator, List, Optional

import numpy as np

from mpserver.data.artifact_cache import ArtifactCache, LookupStatus, WriteStatus
from mpserver.data.series_repository import SeriesRepository
from mpserver.errors import (
    CacheExpired,
    CacheWriteRejected,
    ComputationFailed,
    InvalidParameter,
    MPServerError,
    StoreUnavailable,
    Timeout,
)
from mpserver.models.artifact import Artifact, DEFAULT_ANNOTATION
from mpserver.monitoring.metrics import RequestObserver
from mpserver.schemas.profile import (
    AdjustedProfileResponse,
    DiscordResponse,
    MotifGroup,
    MotifResponse,
    SegmentResponse,
)
from mpserver.services.profile_engine import (
    ANNOTATION_VECTORS,
    EngineError,
    ProfileEngine,
    z_normalize,
)

logger = logging.getLogger(__name__)


class Deadline:
    """Point in time by which a request must have finished."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    def check(self, step: str) -> None:
        """Raise Timeout if the deadline passed before step could start."""
        if self.remaining() <= 0:
            raise Timeout(f"request deadline exceeded before {step}")


def _is_int(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


class QueryRouter:
    """
    Handles every matrix profile request for a session.

    ``compute`` builds a new artifact and replaces the session's cached one.
    Motif and discord queries only read the cached artifact, and
    ``set_annotation_vector`` replaces it with a copy using another
    annotation vector. A missing artifact raises ``CacheExpired``; nothing
    here retries on failure.

    The router keeps no per-request state; concurrent writes to the same
    session are resolved by the store, last writer wins.
    """

    def __init__(
        self,
        cache: ArtifactCache,
        engine: ProfileEngine,
        series_repo: SeriesRepository,
        observer: Optional[RequestObserver] = None,
        request_timeout: float = 60.0,
        discord_exclusion_factor: float = 0.5,
        engine_workers: int = 4,
        api_prefix: str = "/api/v1",
    ):
        self.cache = cache
        self.engine = engine
        self.series_repo = series_repo
        self.observer = observer
        self.request_timeout = request_timeout
        self.discord_exclusion_factor = discord_exclusion_factor
        self.api_prefix = api_prefix
        self._executor = futures.ThreadPoolExecutor(
            max_workers=engine_workers, thread_name_prefix="mp-engine",
        )

    def close(self) -> None:
        """Stop accepting engine work. Running computations finish in the background."""
        self._executor.shutdown(wait=False)

    # --- plumbing ---

    @contextmanager
    def _request(self, method: str, endpoint: str) -> Iterator[Deadline]:
        """Time a request, report it to the observer and hand out its deadline."""
        path = f"{self.api_prefix}/{endpoint}"
        start = time.perf_counter()
        code = 200
        try:
            yield Deadline(self.request_timeout)
        except MPServerError as e:
            code = e.status_code
            logger.warning("%s %s failed (%d): %s", method, path, code, e.message)
            raise
        except Exception:
            code = 500
            raise
        finally:
            if self.observer is not None:
                duration_ms = (time.perf_counter() - start) * 1000
                self.observer.observe(method, path, code, duration_ms)

    def _run(self, deadline: Deadline, step: str, fn, *args):
        """Run fn on the engine pool, waiting at most until the deadline."""
        deadline.check(step)
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=deadline.remaining())
        except futures.TimeoutError:
            raise Timeout(f"{step} did not finish within {self.request_timeout}s")

    def _fetch(self, session: str, deadline: Deadline, purpose: str) -> Artifact:
        """Cached artifact for session, or the error explaining its absence."""
        deadline.check("cache read")
        lookup = self.cache.get(session)
        if lookup.status is LookupStatus.UNAVAILABLE:
            raise StoreUnavailable("matrix profile cache is unavailable")
        if lookup.status is LookupStatus.MISS:
            # either the cache expired or nothing was computed yet
            raise CacheExpired(f"matrix profile is not initialized to compute {purpose}")
        return lookup.artifact

    def _store(self, session: str, artifact: Artifact, deadline: Deadline) -> None:
        """Replace the session slot; skipped entirely once the deadline passed."""
        deadline.check("cache write")
        write = self.cache.put(session, artifact)
        if write.status is WriteStatus.REJECTED:
            raise CacheWriteRejected(write.reason, data={"size": write.size})
        if write.status is WriteStatus.UNAVAILABLE:
            raise StoreUnavailable("matrix profile cache is unavailable")

    def _normalized(self, artifact: Artifact, indices: List[int]) -> List[List[float]]:
        return [z_normalize(artifact.subsequence(idx)).tolist() for idx in indices]

    # --- operations ---

    def get_data(self) -> List[float]:
        """The series every computation runs on."""
        with self._request("GET", "data") as deadline:
            series = self._run(deadline, "series load", self.series_repo.load_series)
            return series.tolist()

    def compute(self, session: str, m) -> SegmentResponse:
        """
        Compute the matrix profile with window m and cache it for session.

        Returns the corrected arc curve of the new profile. The previous
        artifact of the session is replaced only once everything succeeded.
        """
        with self._request("POST", "calculate") as deadline:
            if not _is_int(m) or m < 1:
                raise InvalidParameter(f"window length must be a positive integer, got {m!r}")

            series = self._run(deadline, "series load", self.series_repo.load_series)
            if m >= len(series):
                raise InvalidParameter(
                    f"window length {m} must be smaller than the series length {len(series)}"
                )

            try:
                artifact = self._run(deadline, "matrix profile computation", self.engine.compute, series, m)
                cac = self._run(deadline, "segmentation", self.engine.corrected_arc_curve, artifact)
            except EngineError as e:
                raise ComputationFailed(str(e), cause=e) from e

            self._store(session, artifact, deadline)
            return SegmentResponse(cac=cac.tolist())

    def top_k_motifs(self, session: str, k, r) -> MotifResponse:
        """Top-k motif groups of the cached profile, members z-normalized."""
        with self._request("GET", "topkmotifs") as deadline:
            if not _is_int(k) or k < 1:
                raise InvalidParameter(f"k must be a positive integer, got {k!r}")
            if isinstance(r, bool) or not isinstance(r, (int, float)) or not math.isfinite(r) or r <= 0:
                raise InvalidParameter(f"r must be a positive number, got {r!r}")

            artifact = self._fetch(session, deadline, "motifs")
            try:
                groups = self._run(deadline, "motif search", self.engine.top_k_motifs, artifact, k, float(r))
                series = [self._normalized(artifact, g.idx) for g in groups]
            except EngineError as e:
                raise ComputationFailed(str(e), cause=e) from e

            return MotifResponse(
                groups=[MotifGroup(idx=g.idx, min_dist=g.min_dist) for g in groups],
                series=series,
            )

    def top_k_discords(self, session: str, k) -> DiscordResponse:
        """Top-k discords of the cached profile, subsequences z-normalized."""
        with self._request("GET", "topkdiscords") as deadline:
            if not _is_int(k) or k < 1:
                raise InvalidParameter(f"k must be a positive integer, got {k!r}")

            artifact = self._fetch(session, deadline, "discords")
            exclusion_zone = int(artifact.window * self.discord_exclusion_factor)
            try:
                discords = self._run(
                    deadline, "discord search", self.engine.top_k_discords, artifact, k, exclusion_zone,
                )
                series = self._normalized(artifact, discords)
            except EngineError as e:
                raise ComputationFailed(str(e), cause=e) from e

            return DiscordResponse(groups=discords, series=series)

    def set_annotation_vector(self, session: str, name: str) -> AdjustedProfileResponse:
        """
        Switch the cached profile to another annotation vector.

        The replaced artifact is written back before anything is computed,
        so later motif and discord queries use the new vector.
        """
        with self._request("POST", "mp") as deadline:
            kind = name or DEFAULT_ANNOTATION
            if not isinstance(kind, str) or kind not in ANNOTATION_VECTORS:
                raise InvalidParameter(f"invalid annotation vector name {name!r}")

            artifact = self._fetch(session, deadline, "the annotation vector").with_annotation(kind)
            self._store(session, artifact, deadline)

            try:
                av = self._run(deadline, "annotation vector", self.engine.annotation_vector, artifact)
                adjusted = self._run(deadline, "adjusted profile", self.engine.adjusted_profile, artifact, av)
            except EngineError as e:
                raise ComputationFailed(str(e), cause=e) from e

            return AdjustedProfileResponse(
                annotation_vector=av.tolist(),
                adjusted_mp=adjusted.tolist(),
            )
