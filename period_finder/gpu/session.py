"""
Accelerator session: the OpenCL resources of one autocorrelation run.

Architecture
------------

:class:`AcceleratorSession` owns, for the lifetime of one run, the context,
the in-order command queue, the device buffers, and the compiled program.
:meth:`AcceleratorSession.open` walks the set-up steps in order:

.. code-block:: text

    create_context
       │
    create_command_queue           (profiling enabled)
       │
    create_buffer × 3              signal (read-only), group rows, sums (write-only)
       │
    enqueue_write_buffer(signal)   non-blocking H→D copy
       │
    wait                           marker + wait: transfer complete
       │
    build_program                  -D sizes; build log logged on failure
       │
    create_kernel × 2              DoLocalFourier, FoldPeriodSums

Every step yields an :class:`OpResult`.  A failed step is logged with its
operation name and OpenCL status code and the session carries on; steps whose
prerequisite is missing are recorded as skipped.  Whether a failure aborts the
run is the caller's decision (see ``session.ok`` / ``session.failures``).

Resources are released by :meth:`close`, which the context-manager protocol
calls on every exit path.

Thread safety
-------------
Not thread-safe.  One session per run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

import numpy as np

from period_finder import AcceleratorUnavailableError
from period_finder.gpu.device_selector import DeviceInfo, resolve_cl_device
from period_finder.gpu.dispatcher import WorkPartition
from period_finder.gpu.kernels import (
    KERNEL_FOLD_SUMS,
    KERNEL_LOCAL_FOURIER,
    build_options,
)
from period_finder.signal_store import SignalStore

logger = logging.getLogger(__name__)

CL_SUCCESS = 0


# ---------------------------------------------------------------------------
# Operation outcome
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OpResult:
    operation: str
    ok:        bool
    code:      int | None = CL_SUCCESS   # None when the step was skipped
    detail:    str = ""

    def __str__(self) -> str:
        if self.ok:
            return f"{self.operation}: ok"
        code = "n/a" if self.code is None else str(self.code)
        return f"{self.operation} failed (code={code}): {self.detail}"


def _status_code(exc: Exception) -> int:
    """Extract the numeric OpenCL status from a ``pyopencl.Error``."""
    record = exc.args[0] if exc.args else None
    code = getattr(record, "code", None)
    if callable(code):
        code = code()
    return int(code) if isinstance(code, int) else -1


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class AcceleratorSession:
    """
    OpenCL resources of one run.

    Parameters
    ----------
    device:
        The selected device record.
    store:
        Host buffers; the signal must already be loaded.
    partition:
        Launch shape; fixes the buffer sizes and the ``-D`` build options.
    kernel_source:
        Full text of the kernel source artifact.
    cl_device:
        Live ``pyopencl.Device``.  Looked up from *device* when omitted.
    """

    def __init__(
        self,
        device: DeviceInfo,
        store: SignalStore,
        partition: WorkPartition,
        kernel_source: str,
        cl_device: Any = None,
    ) -> None:
        self.device        = device
        self.store         = store
        self.partition     = partition
        self.kernel_source = kernel_source

        self.results: list[OpResult] = []
        self.build_log: str = ""

        self.cl = None
        self.cl_device = cl_device
        self.context   = None
        self.queue     = None
        self.program   = None

        self.d_signal      = None
        self.d_group_sums  = None
        self.d_period_sums = None

        self.kernel_fourier = None
        self.kernel_fold    = None

        # Host staging copy; must outlive the non-blocking upload.
        self._h_signal: np.ndarray | None = None

    # ------------------------------------------------------------------
    # Outcome bookkeeping
    # ------------------------------------------------------------------

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> list[OpResult]:
        return [r for r in self.results if not r.ok]

    def _record(self, result: OpResult) -> OpResult:
        self.results.append(result)
        if result.ok:
            logger.debug("%s", result)
        else:
            logger.error("%s", result)
        return result

    def attempt(
        self,
        operation: str,
        fn: Callable[[], Any],
        requires: Iterable[str] = (),
    ) -> tuple[OpResult, Any]:
        """
        Run one fallible OpenCL call and record its outcome.

        Returns ``(result, value)``; *value* is ``None`` on failure.  Any
        attribute named in *requires* that is still ``None`` marks the step as
        skipped without calling *fn*.
        """
        for name in requires:
            if getattr(self, name) is None:
                reason = f"skipped: {name.lstrip('_')} unavailable"
                return self._record(OpResult(operation, False, None, reason)), None

        try:
            value = fn()
        except self.cl.Error as exc:
            return self._record(
                OpResult(operation, False, _status_code(exc), str(exc).strip())
            ), None

        return self._record(OpResult(operation, True)), value

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> bool:
        """
        Create every OpenCL resource of the run.

        Returns ``True`` when all steps succeeded.

        Raises
        ------
        AcceleratorUnavailableError
            When pyopencl cannot be imported.
        """
        try:
            import pyopencl as cl
        except ImportError as exc:
            raise AcceleratorUnavailableError("pyopencl not installed.") from exc
        self.cl = cl
        mf = cl.mem_flags
        part = self.partition

        if self.cl_device is None:
            _, self.cl_device = self.attempt(
                "get_device", lambda: resolve_cl_device(self.device)
            )

        _, self.context = self.attempt(
            "create_context",
            lambda: cl.Context([self.cl_device]),
            requires=("cl_device",),
        )
        _, self.queue = self.attempt(
            "create_command_queue",
            lambda: cl.CommandQueue(
                self.context,
                properties=cl.command_queue_properties.PROFILING_ENABLE,
            ),
            requires=("context",),
        )

        _, self.d_signal = self.attempt(
            "create_buffer(signal)",
            lambda: cl.Buffer(self.context, mf.READ_ONLY,
                              size=part.global_size * 4),
            requires=("context",),
        )
        _, self.d_group_sums = self.attempt(
            "create_buffer(group_sums)",
            lambda: cl.Buffer(self.context, mf.READ_WRITE,
                              size=part.n_groups * part.n_periods * 4),
            requires=("context",),
        )
        _, self.d_period_sums = self.attempt(
            "create_buffer(period_sums)",
            lambda: cl.Buffer(self.context, mf.WRITE_ONLY,
                              size=part.n_periods * 4),
            requires=("context",),
        )

        self._h_signal = part.pad(self.store.signal)
        self.attempt(
            "enqueue_write_buffer(signal)",
            lambda: cl.enqueue_copy(self.queue, self.d_signal, self._h_signal,
                                    is_blocking=False),
            requires=("queue", "d_signal"),
        )
        self.wait()

        self.build()

        _, self.kernel_fourier = self.attempt(
            f"create_kernel({KERNEL_LOCAL_FOURIER})",
            lambda: cl.Kernel(self.program, KERNEL_LOCAL_FOURIER),
            requires=("program",),
        )
        _, self.kernel_fold = self.attempt(
            f"create_kernel({KERNEL_FOLD_SUMS})",
            lambda: cl.Kernel(self.program, KERNEL_FOLD_SUMS),
            requires=("program",),
        )

        if self.ok:
            logger.info(
                "OpenCL session open on %s: %d groups × %d items, %d periods",
                self.device.device_name or self.device.vendor,
                part.n_groups, part.local_size, part.n_periods,
            )
        else:
            logger.warning("OpenCL session opened with %d failed step(s).",
                           len(self.failures))
        return self.ok

    def build(self) -> OpResult:
        """Compile the kernel source for the selected device."""
        cl = self.cl
        part = self.partition
        options = build_options(part.n_elements, part.n_periods,
                                part.n_groups, part.local_size)

        _, source_program = self.attempt(
            "create_program_with_source",
            lambda: cl.Program(self.context, self.kernel_source),
            requires=("context",),
        )
        if source_program is None:
            return self.results[-1]

        result, built = self.attempt(
            "build_program",
            lambda: source_program.build(options=options,
                                         devices=[self.cl_device]),
        )
        if result.ok:
            self.program = built
        else:
            self.build_log = self._fetch_build_log(source_program) or result.detail
            logger.error("clBuildProgram failed:\n%s", self.build_log)
        return result

    def _fetch_build_log(self, program: Any) -> str:
        cl = self.cl
        try:
            log = program.get_build_info(self.cl_device,
                                         cl.program_build_info.LOG)
        except cl.Error as exc:
            logger.debug("Build log unavailable: %s", exc)
            return ""
        return log.strip()

    def wait(self, operation: str = "wait") -> OpResult:
        """Block until everything enqueued so far has completed."""
        result, _ = self.attempt(
            operation,
            lambda: self.cl.enqueue_marker(self.queue).wait(),
            requires=("queue",),
        )
        return result

    def close(self) -> None:
        """Release the device buffers, queue, and context."""
        cl = self.cl
        if cl is None:
            return

        if self.queue is not None:
            try:
                self.queue.finish()
            except cl.Error as exc:
                logger.warning("Queue finish failed on close: %s", exc)

        for attr in ("d_signal", "d_group_sums", "d_period_sums"):
            buf = getattr(self, attr)
            if buf is not None:
                try:
                    buf.release()
                except cl.Error as exc:
                    logger.warning("Releasing %s failed: %s", attr, exc)
            setattr(self, attr, None)

        self.kernel_fourier = self.kernel_fold = None
        self.program   = None
        self.queue     = None
        self.context   = None
        self._h_signal = None
        logger.info("OpenCL session closed.")

    def __enter__(self) -> "AcceleratorSession":
        return self

    def __exit__(self, *_) -> None:
        self.close()
