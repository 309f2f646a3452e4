"""
Peak picking over the autocorrelation sums.

A sharp peak of ``sums[s]`` at some ``s > 0`` reveals a periodic component of
length ``s`` samples.  Index 0 (the self term) is never a candidate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.signal import find_peaks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeriodPeak:
    period:     int      # index into the sums, > 0
    value:      float
    prominence: float


def find_dominant_period(
    sums: np.ndarray,
    min_prominence: Optional[float] = None,
) -> Optional[PeriodPeak]:
    """
    Return the most prominent local maximum of ``sums[1:]``.

    Parameters
    ----------
    sums:
        Autocorrelation sums, index 0 included.
    min_prominence:
        Peaks less prominent than this are ignored.  Defaults to zero.

    Returns ``None`` when there is no interior peak.
    """
    values = np.asarray(sums, dtype=np.float64)[1:]
    if values.size < 3:
        return None

    peaks, props = find_peaks(values, prominence=min_prominence or 0.0)
    if peaks.size == 0:
        return None

    best = int(np.argmax(props["prominences"]))
    peak = PeriodPeak(
        period     = int(peaks[best]) + 1,
        value      = float(values[peaks[best]]),
        prominence = float(props["prominences"][best]),
    )
    logger.debug("Dominant period %d (value %.2f, prominence %.2f)",
                 peak.period, peak.value, peak.prominence)
    return peak
