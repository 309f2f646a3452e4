"""
Wall-clock timing and throughput of the autocorrelation launch.

The timed interval is exactly launch → completion; the host → device transfer
and the program build happen before it, the readback after it.  Throughput is
reported in mega multiply-accumulates per second: every one of the ``N`` work
items contributes one product to each of the ``P`` period sums.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


def throughput(n_elements: int, n_periods: int, seconds: float) -> float:
    """Mega multiply-accumulates per second."""
    if seconds <= 0.0:
        raise ValueError(f"elapsed time must be positive, got {seconds}")
    return float(n_elements) * float(n_periods) / seconds / 1_000_000.0


@dataclass(frozen=True)
class PerformanceReport:
    n_elements:      int
    n_periods:       int
    elapsed_seconds: float
    device_seconds:  float | None = None

    @property
    def mega_mults_per_second(self) -> float:
        return throughput(self.n_elements, self.n_periods, self.elapsed_seconds)

    def line(self) -> str:
        return (
            f"{self.n_elements:10d} elements, "
            f"{self.mega_mults_per_second:9.2f} mega-multiplies computed per second"
        )

    def csv_row(self) -> str:
        return (
            f"{self.n_elements},{self.n_periods},"
            f"{self.elapsed_seconds:.6f},{self.mega_mults_per_second:.2f}"
        )


class PerformanceReporter:
    """
    Times a callable and derives throughput.

    Parameters
    ----------
    clock:
        Monotonic seconds source; :func:`time.perf_counter` by default.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock

    def measure(self, fn: Callable[..., Any], *args: Any,
                **kwargs: Any) -> tuple[Any, float]:
        """Call ``fn(*args, **kwargs)``; return ``(result, elapsed_seconds)``."""
        t0 = self._clock()
        result = fn(*args, **kwargs)
        t1 = self._clock()
        return result, t1 - t0

    def report(
        self,
        n_elements: int,
        n_periods: int,
        elapsed_seconds: float,
        device_seconds: float | None = None,
    ) -> PerformanceReport | None:
        """Build and log the report; ``None`` when the interval is unusable."""
        if elapsed_seconds <= 0.0:
            logger.warning("Elapsed time %.3g s is not positive; "
                           "no throughput reported.", elapsed_seconds)
            return None
        report = PerformanceReport(n_elements, n_periods,
                                   elapsed_seconds, device_seconds)
        logger.info("%s", report.line())
        if device_seconds is not None:
            logger.debug("Kernel time: wall %.6f s, device %.6f s",
                         elapsed_seconds, device_seconds)
        return report
