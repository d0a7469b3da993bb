"""Repository for the analysed time series."""
import json
from pathlib import Path
from typing import Optional
import numpy as np
import pandas as pd

from mpserver.config import settings
from mpserver.errors import SeriesUnavailable


def smooth(data: np.ndarray, window: int) -> np.ndarray:
    """
    Non-causal moving average.

    Each point becomes the mean of the ``window // 2`` points on either side
    of it; near the edges only the points that exist are averaged.
    """
    span = 2 * (window // 2) + 1
    series = pd.Series(data, dtype=np.float64)
    return series.rolling(window=span, center=True, min_periods=1).mean().to_numpy()


class SeriesRepository:
    """Repository for the JSON series file served to clients."""

    def __init__(
        self,
        data_file: Path = None,
        smoothing_window: int = None,
        series_length: int = None,
    ):
        self.data_file = Path(data_file or settings.data_file)
        self.smoothing_window = smoothing_window or settings.smoothing_window
        self.series_length = series_length or settings.series_length
        self._series: Optional[np.ndarray] = None

    def _load(self) -> np.ndarray:
        """Read ``{"data": [...]}``, smooth and truncate."""
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                payload = json.load(f)
            raw = np.asarray(payload["data"], dtype=np.float64)
        except FileNotFoundError as e:
            raise SeriesUnavailable(f"series file not found: {self.data_file}", cause=e) from e
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise SeriesUnavailable(f"failed to read series file {self.data_file}: {e}", cause=e) from e

        if raw.ndim != 1 or len(raw) == 0:
            raise SeriesUnavailable(f"series file {self.data_file} holds no data points")

        return smooth(raw, self.smoothing_window)[:self.series_length]

    def load_series(self) -> np.ndarray:
        """Get the prepared series. Loaded once, then served from memory."""
        if self._series is None:
            self._series = self._load()
        return self._series
