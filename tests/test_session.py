"""
Orchestration tests for AcceleratorSession and AutocorrelationDispatcher.

The ``pyopencl`` stand-in from ``fake_opencl`` is installed in ``sys.modules``
so the set-up order, the skipped-step bookkeeping, build-log reporting, and
argument binding can be checked without an OpenCL runtime.

Run with:  pytest tests/test_session.py -v
"""

from __future__ import annotations

import sys
import types

import numpy as np
import pytest

from period_finder.gpu.device_selector import (
    CL_DEVICE_TYPE_GPU,
    ID_NVIDIA,
    DeviceInfo,
)
from period_finder.gpu.dispatcher import (
    AutocorrelationDispatcher,
    WorkPartition,
    numpy_period_sums,
)
from period_finder.gpu.kernels import load_kernel_source
from period_finder.gpu.session import AcceleratorSession, OpResult, _status_code
from period_finder.signal_store import SignalStore, synthesize_signal

from fake_opencl import FakeCLError, make_fake_cl


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_DEVICE = DeviceInfo(
    platform_index=0,
    device_index=0,
    device_type=CL_DEVICE_TYPE_GPU,
    vendor_id=ID_NVIDIA,
    device_name="Fake GPU",
)


def _store(n: int = 1000, periods: int = 12) -> SignalStore:
    store = SignalStore(n_elements=n, n_periods=periods)
    store.set_signal(synthesize_signal(n_elements=n, period=6, seed=1))
    return store


def _session(monkeypatch, store: SignalStore, **fake_kwargs):
    cl = make_fake_cl(**fake_kwargs)
    monkeypatch.setitem(sys.modules, "pyopencl", cl)
    part = WorkPartition.for_store(store)
    session = AcceleratorSession(_DEVICE, store, part, load_kernel_source(),
                                 cl_device=object())
    return session, cl


def _ops(results: list[OpResult]) -> list[str]:
    return [r.operation for r in results]


# ---------------------------------------------------------------------------
# OpResult / attempt
# ---------------------------------------------------------------------------

class TestOpResult:

    def test_status_code_from_error_record(self):
        assert _status_code(FakeCLError(-5, "x")) == -5

    def test_status_code_unknown(self):
        assert _status_code(FakeCLError.__new__(FakeCLError)) == -1

    def test_str(self):
        assert str(OpResult("create_context", True)) == "create_context: ok"
        failed = OpResult("create_context", False, -6, "boom")
        assert str(failed) == "create_context failed (code=-6): boom"
        skipped = OpResult("create_kernel", False, None, "skipped")
        assert "code=n/a" in str(skipped)

    def test_attempt_records_and_skips(self):
        store = _store()
        session = AcceleratorSession(_DEVICE, store,
                                     WorkPartition.for_store(store), "")
        session.cl = types.SimpleNamespace(Error=FakeCLError)

        ok, value = session.attempt("one", lambda: 5)
        assert ok.ok and value == 5

        def fail():
            raise FakeCLError(-30, "INVALID_VALUE")

        bad, value = session.attempt("two", fail)
        assert not bad.ok and bad.code == -30 and value is None

        skipped, _ = session.attempt("three", lambda: 1, requires=("queue",))
        assert skipped.code is None
        assert skipped.detail == "skipped: queue unavailable"

        assert not session.ok
        assert _ops(session.failures) == ["two", "three"]

    def test_close_without_open_is_noop(self):
        store = _store()
        session = AcceleratorSession(_DEVICE, store,
                                     WorkPartition.for_store(store), "")
        session.close()
        assert session.context is None


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------

class TestAcceleratorSession:

    def test_open_success_order(self, monkeypatch):
        store = _store()
        session, cl = _session(monkeypatch, store)
        assert session.open()
        assert _ops(session.results) == [
            "create_context",
            "create_command_queue",
            "create_buffer(signal)",
            "create_buffer(group_sums)",
            "create_buffer(period_sums)",
            "enqueue_write_buffer(signal)",
            "wait",
            "create_program_with_source",
            "build_program",
            "create_kernel(DoLocalFourier)",
            "create_kernel(FoldPeriodSums)",
        ]
        # signal buffer holds the padded copy
        assert session.d_signal.data.shape == (1024,)
        np.testing.assert_array_equal(session.d_signal.data[:1000], store.signal)
        assert session.queue.properties == cl.command_queue_properties.PROFILING_ENABLE

    def test_build_options_carry_sizes(self, monkeypatch):
        store = _store(n=1000, periods=12)
        session, _ = _session(monkeypatch, store)
        session.open()
        assert session.kernel_fourier.defines == {
            "NUM_ELEMENTS": 1000,
            "MAX_PERIODS":  12,
            "NUM_GROUPS":   32,
            "LOCAL_SIZE":   32,
        }

    def test_build_failure_logs_full_build_log(self, monkeypatch, caplog):
        store = _store()
        session, _ = _session(monkeypatch, store, build_error=True)
        with caplog.at_level("ERROR"):
            assert not session.open()
        assert "undeclared identifier 'prodz'" in session.build_log
        assert "undeclared identifier 'prodz'" in caplog.text
        assert _ops(session.failures) == [
            "build_program",
            "create_kernel(DoLocalFourier)",
            "create_kernel(FoldPeriodSums)",
        ]
        assert session.failures[0].code == -11

    def test_context_failure_skips_dependents(self, monkeypatch):
        store = _store()
        session, _ = _session(monkeypatch, store, context_error=True)
        assert not session.open()
        assert session.results[0].code == -6
        assert all(r.code is None for r in session.failures[1:])

    def test_close_releases_buffers(self, monkeypatch):
        store = _store()
        session, cl = _session(monkeypatch, store)
        with session:
            session.open()
            queue = session.queue
        assert len(cl.released) == 3
        assert queue.finished
        assert session.d_signal is None and session.context is None


# ---------------------------------------------------------------------------
# Dispatcher on the fake runtime
# ---------------------------------------------------------------------------

class TestAutocorrelationDispatcher:

    def test_run_binds_launches_and_reads_back(self, monkeypatch):
        store = _store(n=1000, periods=12)
        session, cl = _session(monkeypatch, store)
        with session:
            session.open()
            outcome = AutocorrelationDispatcher(session).run(store)

        assert outcome.ok
        assert cl.launches == [
            ("DoLocalFourier", (1024,), (32,)),
            ("FoldPeriodSums", (12,), None),
        ]
        assert outcome.device_seconds == pytest.approx(10_000e-9)
        np.testing.assert_array_equal(outcome.period_sums, store.period_sums)
        np.testing.assert_allclose(
            store.period_sums, numpy_period_sums(store.signal, 12), rtol=1e-6
        )
        assert int(np.argmax(store.period_sums)) == 0

    def test_run_after_build_failure_continues(self, monkeypatch):
        store = _store()
        session, cl = _session(monkeypatch, store, build_error=True)
        with session:
            session.open()
            outcome = AutocorrelationDispatcher(session).run(store)

        assert not outcome.ok
        assert cl.launches == []
        assert outcome.device_seconds is None
        assert not store.period_sums.any()
        assert outcome.results[-1].operation == "enqueue_read_buffer(period_sums)"
        assert outcome.results[-1].ok
