"""Matrix profile computations: STOMP, segmentation, motifs, discords."""
import logging
import threading
from typing import Callable, Dict, List, Optional

from attrs import define
import numba
import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
import stumpy

from mpserver.models.artifact import Artifact, DEFAULT_ANNOTATION

logger = logging.getLogger(__name__)

CAC_EXCLUSION_FACTOR = 5

# Held around every stumpy call: numba's thread pool is process-wide and
# must not be entered from two threads at once.
_NUMBA_LOCK = threading.Lock()


class EngineError(ValueError):
    """The engine cannot produce a result for the given inputs."""


@define
class MotifGroup:
    """Start indices of mutually similar subsequences."""

    idx: List[int]
    min_dist: float


def _windows(artifact: Artifact) -> np.ndarray:
    return sliding_window_view(artifact.series, artifact.window)


def _min_max_scale(values: np.ndarray) -> np.ndarray:
    """Scale to [0, 1]; constant input scales to zeros."""
    lo, hi = values.min(), values.max()
    if hi == lo:
        return np.zeros_like(values, dtype=np.float64)
    return (values - lo) / (hi - lo)


def default_av(artifact: Artifact) -> np.ndarray:
    """No bias: every subsequence weighted equally."""
    return np.ones(len(artifact.distances), dtype=np.float64)


def complexity_av(artifact: Artifact) -> np.ndarray:
    """Favour subsequences with a high complexity estimate."""
    ce = np.sqrt(np.sum(np.diff(_windows(artifact), axis=1) ** 2, axis=1))
    if ce.max() == ce.min():
        return np.ones_like(ce)
    return _min_max_scale(ce)


def mean_std_av(artifact: Artifact) -> np.ndarray:
    """Favour subsequences whose std is below the mean std."""
    std = _windows(artifact).std(axis=1)
    return (std < std.mean()).astype(np.float64)


def clipping_av(artifact: Artifact) -> np.ndarray:
    """Penalise subsequences touching the series' global min or max."""
    series = artifact.series
    windows = _windows(artifact)
    clipped = ((windows == series.min()) | (windows == series.max())).sum(axis=1)
    return 1.0 - _min_max_scale(clipped.astype(np.float64))


ANNOTATION_VECTORS: Dict[str, Callable[[Artifact], np.ndarray]] = {
    DEFAULT_ANNOTATION: default_av,
    "complexity": complexity_av,
    "meanstd": mean_std_av,
    "clipping": clipping_av,
}


def z_normalize(values: np.ndarray) -> np.ndarray:
    """Zero mean, unit variance copy of values."""
    values = np.asarray(values, dtype=np.float64)
    std = values.std()
    if not np.isfinite(std) or std == 0:
        raise EngineError("cannot z-normalize a subsequence with zero standard deviation")
    return (values - values.mean()) / std


def _exclude(profile: np.ndarray, idx: int, zone: int, fill: float) -> None:
    """Overwrite the zone around idx, inclusive on both sides."""
    profile[max(0, idx - zone):min(len(profile), idx + zone + 1)] = fill


class ProfileEngine:
    """Matrix profile engine backed by stumpy."""

    def __init__(self, concurrency: int = 2, threading_layer: Optional[str] = None):
        """
        Initialize engine.

        Args:
            concurrency: Threads used by one STOMP computation
            threading_layer: numba threading layer to use, taking effect only
                before the first parallel computation of the process
        """
        self.concurrency = concurrency
        if threading_layer:
            numba.config.THREADING_LAYER = threading_layer

    def compute(self, series: np.ndarray, m: int) -> Artifact:
        """Self-join matrix profile of series with window m."""
        series = np.asarray(series, dtype=np.float64)
        try:
            with _NUMBA_LOCK:
                numba.set_num_threads(max(1, min(self.concurrency, numba.config.NUMBA_NUM_THREADS)))
                mp = stumpy.stump(series, m)
        except ValueError as e:
            raise EngineError(str(e)) from e

        logger.info("Computed matrix profile: n=%d m=%d", len(series), m)
        return Artifact(
            series=series,
            distances=np.asarray(mp[:, 0], dtype=np.float64),
            indices=np.asarray(mp[:, 1], dtype=np.int64),
            window=m,
        )

    def corrected_arc_curve(self, artifact: Artifact) -> np.ndarray:
        """Corrected arc curve of the index profile, one value per subsequence."""
        try:
            with _NUMBA_LOCK:
                cac, _ = stumpy.fluss(
                    artifact.indices,
                    L=artifact.window,
                    n_regimes=2,
                    excl_factor=CAC_EXCLUSION_FACTOR,
                )
        except ValueError as e:
            raise EngineError(f"cannot segment a profile with window {artifact.window}: {e}") from e
        return np.asarray(cac, dtype=np.float64)

    def annotation_vector(self, artifact: Artifact) -> np.ndarray:
        """Annotation vector named by the artifact's active annotation kind."""
        try:
            build = ANNOTATION_VECTORS[artifact.annotation]
        except KeyError:
            raise EngineError(f"unknown annotation vector {artifact.annotation!r}")
        return build(artifact)

    def adjusted_profile(self, artifact: Artifact, av: np.ndarray = None) -> np.ndarray:
        """
        Matrix profile biased by the annotation vector.

        ``adjusted = distances + (1 - av) * max(distances)`` so subsequences
        with a low annotation value are pushed away from being motifs.
        """
        if av is None:
            av = self.annotation_vector(artifact)
        distances = artifact.distances
        finite = distances[np.isfinite(distances)]
        max_dist = finite.max() if len(finite) else 0.0
        return distances + (1.0 - av) * max_dist

    def top_k_motifs(self, artifact: Artifact, k: int, radius: float) -> List[MotifGroup]:
        """
        Find the k best motif groups.

        Each group is seeded by the lowest remaining adjusted profile value
        and its nearest neighbour. Every subsequence within ``radius`` times
        the seed distance joins the group. No two reported members, within a
        group or across groups, overlap by more than half a window.
        """
        zone = artifact.window // 2
        n_subseq = len(artifact.distances)
        profile = self.adjusted_profile(artifact)
        profile[~np.isfinite(profile)] = np.inf

        groups: List[MotifGroup] = []
        for _ in range(k):
            if not np.isfinite(profile).any():
                raise EngineError(
                    f"only {len(groups)} motifs could be found, {k} were requested"
                )
            seed = int(np.argmin(profile))
            motif_dist = float(artifact.distances[seed])

            with _NUMBA_LOCK:
                dist_profile = np.array(
                    stumpy.mass(artifact.subsequence(seed), artifact.series),
                    dtype=np.float64,
                )
            # members of earlier groups are never reported again
            for group in groups:
                for idx in group.idx:
                    _exclude(dist_profile, idx, zone, np.inf)

            members = {seed}
            partner = int(artifact.indices[seed])
            if 0 <= partner < n_subseq and np.isfinite(dist_profile[partner]):
                members.add(partner)
            for idx in members:
                _exclude(dist_profile, idx, zone, np.inf)

            threshold = motif_dist * radius
            for idx in np.argsort(dist_profile, kind="stable"):
                if not dist_profile[idx] < threshold:
                    if np.isinf(dist_profile[idx]):
                        continue
                    break
                members.add(int(idx))
                _exclude(dist_profile, int(idx), zone, np.inf)

            groups.append(MotifGroup(idx=sorted(members), min_dist=motif_dist))
            for idx in members:
                _exclude(profile, idx, zone, np.inf)

        return groups

    def top_k_discords(self, artifact: Artifact, k: int, exclusion_zone: int) -> List[int]:
        """Start indices of the k largest adjusted profile values, spaced apart."""
        profile = self.adjusted_profile(artifact)
        profile[~np.isfinite(profile)] = -np.inf

        discords: List[int] = []
        for _ in range(k):
            if not np.isfinite(profile).any():
                raise EngineError(
                    f"only {len(discords)} discords could be found, {k} were requested"
                )
            idx = int(np.argmax(profile))
            discords.append(idx)
            _exclude(profile, idx, exclusion_zone, -np.inf)

        return discords
