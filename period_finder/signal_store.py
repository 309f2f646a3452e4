"""
Host-side signal and result storage.

:class:`SignalStore` owns the two host arrays of a run: the ``N``-sample input
signal (read-only once loaded) and the ``P`` autocorrelation sums that the
accelerator writes back exactly once.  It owns no device resources.

File formats
------------
binary
    ``N`` little-endian IEEE-754 float32 values, no header.
ascii
    ``N`` whitespace-separated decimal floats (one per line when written here).
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from period_finder import SignalFileError

logger = logging.getLogger(__name__)

# Defaults of the classic run: a 1M-sample signal, 100 candidate periods.
NUM_ELEMENTS: int = 1 * 1024 * 1024
MAX_PERIODS: int  = 100

_BINARY_DTYPE = np.dtype("<f4")


class SignalStore:
    """
    Host buffers of one run.

    Parameters
    ----------
    n_elements:
        Signal length ``N``.
    n_periods:
        Number of candidate periods ``P`` (index 0 is the lag-0 self term).
    """

    def __init__(
        self,
        n_elements: int = NUM_ELEMENTS,
        n_periods: int = MAX_PERIODS,
    ) -> None:
        if n_elements <= 0:
            raise ValueError(f"n_elements must be positive, got {n_elements}")
        if n_periods <= 0:
            raise ValueError(f"n_periods must be positive, got {n_periods}")
        if n_periods > n_elements:
            raise ValueError(
                f"n_periods ({n_periods}) cannot exceed n_elements ({n_elements})"
            )

        self.n_elements = n_elements
        self.n_periods  = n_periods

        self._signal      = np.zeros(n_elements, dtype=np.float32)
        self._period_sums = np.zeros(n_periods, dtype=np.float32)
        self._loaded      = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def signal(self) -> np.ndarray:
        return self._signal

    @property
    def period_sums(self) -> np.ndarray:
        return self._period_sums

    @property
    def loaded(self) -> bool:
        return self._loaded

    def set_signal(self, values: np.ndarray) -> None:
        """Adopt *values* as the signal and freeze it."""
        values = np.asarray(values, dtype=np.float32)
        if values.shape != (self.n_elements,):
            raise ValueError(
                f"signal must have shape ({self.n_elements},), got {values.shape}"
            )
        signal = values.copy()
        signal.flags.writeable = False
        self._signal = signal
        self._loaded = True

    def store_period_sums(self, sums: np.ndarray) -> None:
        sums = np.asarray(sums, dtype=np.float32)
        if sums.shape != (self.n_periods,):
            raise ValueError(
                f"period sums must have shape ({self.n_periods},), got {sums.shape}"
            )
        self._period_sums[:] = sums

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_binary(self, path: str | Path) -> np.ndarray:
        """Read ``N`` little-endian float32 values from *path*."""
        path = Path(path)
        try:
            data = np.fromfile(path, dtype=_BINARY_DTYPE, count=self.n_elements)
        except OSError as exc:
            raise SignalFileError(f"Cannot open data file '{path}': {exc}") from exc
        except ValueError as exc:
            raise SignalFileError(f"Cannot parse data file '{path}': {exc}") from exc

        if data.size < self.n_elements:
            raise SignalFileError(
                f"Data file '{path}' holds {data.size} floats, "
                f"expected {self.n_elements}"
            )
        self.set_signal(data.astype(np.float32))
        logger.info("Loaded %d binary samples from %s", self.n_elements, path)
        return self._signal

    def load_ascii(self, path: str | Path) -> np.ndarray:
        """Read ``N`` whitespace-separated floats from *path*."""
        path = Path(path)
        try:
            text = path.read_text()
        except OSError as exc:
            raise SignalFileError(f"Cannot open data file '{path}': {exc}") from exc

        try:
            data = np.array(text.split()[: self.n_elements], dtype=np.float32)
        except ValueError as exc:
            raise SignalFileError(f"Cannot parse data file '{path}': {exc}") from exc

        if data.size < self.n_elements:
            raise SignalFileError(
                f"Data file '{path}' holds {data.size} floats, "
                f"expected {self.n_elements}"
            )
        self.set_signal(data)
        logger.info("Loaded %d ascii samples from %s", self.n_elements, path)
        return self._signal


# ---------------------------------------------------------------------------
# Writing / synthesis
# ---------------------------------------------------------------------------

def write_binary(path: str | Path, signal: np.ndarray) -> None:
    """Write *signal* as little-endian float32, no header."""
    np.asarray(signal, dtype=_BINARY_DTYPE).tofile(Path(path))


def write_ascii(path: str | Path, signal: np.ndarray) -> None:
    """Write *signal* one value per line with float32 round-trip precision."""
    values = np.asarray(signal, dtype=np.float32)
    np.savetxt(Path(path), values, fmt="%.9g")


def synthesize_signal(
    n_elements: int = NUM_ELEMENTS,
    period: int = 48,
    amplitude: float = 1.0,
    noise: float = 2.0,
    seed: int = 0,
) -> np.ndarray:
    """
    Return a noisy sine with a hidden period of *period* samples.

    The noise is Gaussian with standard deviation *noise*; a fixed *seed*
    always produces the same signal.
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    rng = np.random.default_rng(seed)
    t = np.arange(n_elements, dtype=np.float64)
    clean = amplitude * np.sin(2.0 * np.pi * t / period)
    noisy = clean + noise * rng.standard_normal(n_elements)
    return noisy.astype(np.float32)
