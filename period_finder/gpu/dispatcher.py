"""
Autocorrelation dispatch: launch shape, kernel launch, and readback.

One work item per signal sample, grouped ``local_size`` at a time.  Each group
accumulates its items' products in ``__local`` scratch and stores one row of
``P`` partial sums; a second kernel folds the rows into the final ``P`` sums in
fixed group order, so the result never depends on how the device schedules
groups.

:class:`HostDispatcher` computes the same sums with NumPy, following the same
group-then-fold reduction shape.  It is used with ``--cpu-fallback`` and by the
test-suite when no OpenCL runtime is present.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from period_finder.gpu.kernels import KERNEL_FOLD_SUMS, KERNEL_LOCAL_FOURIER
from period_finder.performance import PerformanceReporter

if TYPE_CHECKING:
    from period_finder.gpu.session import AcceleratorSession, OpResult
    from period_finder.signal_store import SignalStore

logger = logging.getLogger(__name__)

LOCAL_SIZE: int = 32


# ---------------------------------------------------------------------------
# Launch shape
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkPartition:
    """
    Parallel-execution shape of one launch.

    ``global_size`` is ``n_elements`` rounded up to a whole number of groups;
    the padding items contribute zero.
    """
    n_elements: int
    n_periods:  int
    local_size: int = LOCAL_SIZE

    def __post_init__(self) -> None:
        if self.n_elements <= 0:
            raise ValueError(f"n_elements must be positive, got {self.n_elements}")
        if not 0 < self.n_periods <= self.n_elements:
            raise ValueError(
                f"n_periods must be in 1..{self.n_elements}, got {self.n_periods}"
            )
        ls = self.local_size
        if ls <= 0 or ls & (ls - 1):
            raise ValueError(f"local_size must be a power of two, got {ls}")

    @classmethod
    def for_store(cls, store: "SignalStore",
                  local_size: int = LOCAL_SIZE) -> "WorkPartition":
        return cls(store.n_elements, store.n_periods, local_size)

    @property
    def n_groups(self) -> int:
        return math.ceil(self.n_elements / self.local_size)

    @property
    def global_size(self) -> int:
        return self.n_groups * self.local_size

    @property
    def padded(self) -> bool:
        return self.global_size != self.n_elements

    @property
    def scratch_bytes(self) -> int:
        """Size of the per-group ``__local`` scratch (float32)."""
        return self.local_size * self.n_periods * 4

    def pad(self, signal: np.ndarray) -> np.ndarray:
        """Return a float32 copy of *signal* zero-extended to ``global_size``."""
        out = np.zeros(self.global_size, dtype=np.float32)
        out[: self.n_elements] = signal
        return out


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------

@dataclass
class DispatchOutcome:
    period_sums:     np.ndarray
    elapsed_seconds: float
    results:         list["OpResult"] = field(default_factory=list)
    device_seconds:  float | None = None

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)


# ---------------------------------------------------------------------------
# NumPy reference
# ---------------------------------------------------------------------------

def numpy_period_sums(
    signal: np.ndarray,
    n_periods: int,
    local_size: int = LOCAL_SIZE,
) -> np.ndarray:
    """
    Circular autocorrelation sums ``sums[p] = Σ x[i]·x[(i+p) mod N]``.

    Products are summed per group of *local_size* samples, then the group
    rows are folded in ascending group order, as the OpenCL kernels do.
    """
    signal = np.asarray(signal, dtype=np.float32)
    part = WorkPartition(signal.size, n_periods, local_size)

    group_sums = np.empty((part.n_groups, n_periods), dtype=np.float32)
    prods = np.zeros(part.global_size, dtype=np.float32)
    for p in range(n_periods):
        np.multiply(signal, np.roll(signal, -p), out=prods[: part.n_elements])
        group_sums[:, p] = prods.reshape(part.n_groups, local_size).sum(
            axis=1, dtype=np.float32
        )

    # cumsum folds strictly left to right
    return np.cumsum(group_sums, axis=0, dtype=np.float32)[-1].copy()


# ---------------------------------------------------------------------------
# Dispatchers
# ---------------------------------------------------------------------------

class AutocorrelationDispatcher:
    """
    Bind kernel arguments, launch, time, and read back on an open session.

    Parameters
    ----------
    session:
        An opened :class:`~period_finder.gpu.session.AcceleratorSession`.
    reporter:
        Times the launch-to-completion interval.
    """

    def __init__(
        self,
        session: "AcceleratorSession",
        reporter: PerformanceReporter | None = None,
    ) -> None:
        self.session   = session
        self.partition = session.partition
        self.reporter  = reporter or PerformanceReporter()

    def run(self, store: "SignalStore") -> DispatchOutcome:
        session = self.session
        cl   = session.cl
        part = self.partition
        first = len(session.results)

        # Positional arguments: signal, local scratch, per-group rows.
        session.attempt(
            "set_kernel_arg(0)",
            lambda: session.kernel_fourier.set_arg(0, session.d_signal),
            requires=("kernel_fourier", "d_signal"),
        )
        session.attempt(
            "set_kernel_arg(1)",
            lambda: session.kernel_fourier.set_arg(
                1, cl.LocalMemory(part.scratch_bytes)
            ),
            requires=("kernel_fourier",),
        )
        session.attempt(
            "set_kernel_arg(2)",
            lambda: session.kernel_fourier.set_arg(2, session.d_group_sums),
            requires=("kernel_fourier", "d_group_sums"),
        )
        session.attempt(
            f"set_kernel_args({KERNEL_FOLD_SUMS})",
            lambda: session.kernel_fold.set_args(session.d_group_sums,
                                                 session.d_period_sums),
            requires=("kernel_fold", "d_group_sums", "d_period_sums"),
        )

        session.wait()
        events, elapsed = self.reporter.measure(self._launch)

        host_sums = np.empty(part.n_periods, dtype=np.float32)
        result, _ = session.attempt(
            "enqueue_read_buffer(period_sums)",
            lambda: cl.enqueue_copy(session.queue, host_sums,
                                    session.d_period_sums, is_blocking=True),
            requires=("queue", "d_period_sums"),
        )
        if result.ok:
            store.store_period_sums(host_sums)

        return DispatchOutcome(
            period_sums     = store.period_sums.copy(),
            elapsed_seconds = elapsed,
            results         = session.results[first:],
            device_seconds  = self._device_seconds(events),
        )

    def _launch(self) -> list:
        session = self.session
        cl   = session.cl
        part = self.partition

        _, evt_local = session.attempt(
            f"enqueue_nd_range_kernel({KERNEL_LOCAL_FOURIER})",
            lambda: cl.enqueue_nd_range_kernel(
                session.queue, session.kernel_fourier,
                (part.global_size,), (part.local_size,),
            ),
            requires=("queue", "kernel_fourier"),
        )
        _, evt_fold = session.attempt(
            f"enqueue_nd_range_kernel({KERNEL_FOLD_SUMS})",
            lambda: cl.enqueue_nd_range_kernel(
                session.queue, session.kernel_fold, (part.n_periods,), None,
            ),
            requires=("queue", "kernel_fold"),
        )
        session.wait()
        return [evt for evt in (evt_local, evt_fold) if evt is not None]

    def _device_seconds(self, events: list) -> float | None:
        """Sum of device-side kernel times from the profiling counters."""
        if not events:
            return None
        cl = self.session.cl
        try:
            nanos = sum(evt.profile.end - evt.profile.start for evt in events)
        except cl.Error as exc:
            logger.debug("Kernel profiling info unavailable: %s", exc)
            return None
        return nanos * 1e-9


class HostDispatcher:
    """NumPy stand-in for :class:`AutocorrelationDispatcher`."""

    def __init__(
        self,
        partition: WorkPartition,
        reporter: PerformanceReporter | None = None,
    ) -> None:
        self.partition = partition
        self.reporter  = reporter or PerformanceReporter()

    def run(self, store: "SignalStore") -> DispatchOutcome:
        part = self.partition
        sums, elapsed = self.reporter.measure(
            numpy_period_sums, store.signal, part.n_periods, part.local_size
        )
        store.store_period_sums(sums)
        logger.info("Host fallback computed %d period sums.", part.n_periods)
        return DispatchOutcome(
            period_sums     = store.period_sums.copy(),
            elapsed_seconds = elapsed,
        )
