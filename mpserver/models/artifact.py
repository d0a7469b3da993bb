"""Cached matrix profile artifact."""
import io
from attrs import define, evolve
import numpy as np

DEFAULT_ANNOTATION = "default"


@define(frozen=True, eq=False)
class Artifact:
    """Matrix profile of a series, plus the active annotation vector kind.

    The artifact is the only thing cached per session. Changing the
    annotation vector produces a new artifact that replaces the cached one.
    """

    series: np.ndarray  # analysed series (float64)
    distances: np.ndarray  # matrix profile, length n - m + 1
    indices: np.ndarray  # nearest-neighbour index profile (int64)
    window: int
    annotation: str = DEFAULT_ANNOTATION

    def with_annotation(self, annotation: str) -> "Artifact":
        """Return a copy using a different annotation vector kind."""
        return evolve(self, annotation=annotation)

    def subsequence(self, idx: int) -> np.ndarray:
        """Window of the series starting at idx."""
        return self.series[idx:idx + self.window]

    def to_bytes(self) -> bytes:
        """Serialize to a compressed .npz blob."""
        buf = io.BytesIO()
        np.savez_compressed(
            buf,
            series=np.asarray(self.series, dtype=np.float64),
            distances=np.asarray(self.distances, dtype=np.float64),
            indices=np.asarray(self.indices, dtype=np.int64),
            window=np.int64(self.window),
            annotation=np.str_(self.annotation),
        )
        return buf.getvalue()

    @classmethod
    def from_bytes(cls, blob: bytes) -> "Artifact":
        """Rebuild an artifact from ``to_bytes`` output."""
        with np.load(io.BytesIO(blob), allow_pickle=False) as data:
            return cls(
                series=data["series"],
                distances=data["distances"],
                indices=data["indices"],
                window=int(data["window"]),
                annotation=str(data["annotation"]),
            )
