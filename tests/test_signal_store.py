"""
Unit tests for SignalStore and the signal file formats.
Run with:  pytest tests/test_signal_store.py
"""

from __future__ import annotations

import numpy as np
import pytest

from period_finder import SignalFileError
from period_finder.signal_store import (
    SignalStore,
    synthesize_signal,
    write_ascii,
    write_binary,
)


class TestSignalStore:

    def test_initial_arrays(self):
        store = SignalStore(n_elements=64, n_periods=8)
        assert store.signal.shape == (64,)
        assert store.period_sums.shape == (8,)
        assert store.period_sums.dtype == np.float32
        assert not store.loaded

    def test_invalid_sizes(self):
        with pytest.raises(ValueError):
            SignalStore(n_elements=0, n_periods=1)
        with pytest.raises(ValueError):
            SignalStore(n_elements=8, n_periods=0)
        with pytest.raises(ValueError):
            SignalStore(n_elements=8, n_periods=9)

    def test_signal_read_only_after_set(self):
        store = SignalStore(n_elements=16, n_periods=4)
        store.set_signal(np.arange(16, dtype=np.float32))
        assert store.loaded
        with pytest.raises(ValueError):
            store.signal[0] = 1.0

    def test_set_signal_wrong_shape(self):
        store = SignalStore(n_elements=16, n_periods=4)
        with pytest.raises(ValueError):
            store.set_signal(np.zeros(15))

    def test_store_period_sums(self):
        store = SignalStore(n_elements=16, n_periods=3)
        store.store_period_sums(np.array([3.0, 2.0, 1.0]))
        np.testing.assert_array_equal(store.period_sums, [3.0, 2.0, 1.0])
        with pytest.raises(ValueError):
            store.store_period_sums(np.zeros(4))


class TestSignalFiles:

    def test_binary_round_trip_bit_exact(self, tmp_path):
        values = np.array(
            [0.0, -0.0, 1.0, -1.5, 3.4028235e38, 1.4e-45, 1e-30, 123.456],
            dtype=np.float32,
        )
        path = tmp_path / "signal.bin"
        write_binary(path, values)
        assert path.stat().st_size == values.size * 4

        store = SignalStore(n_elements=values.size, n_periods=2)
        loaded = store.load_binary(path)
        assert loaded.tobytes() == values.tobytes()

    def test_binary_is_little_endian(self, tmp_path):
        path = tmp_path / "one.bin"
        write_binary(path, np.array([1.0, 2.0], dtype=np.float32))
        assert path.read_bytes()[:4] == b"\x00\x00\x80\x3f"

    def test_ascii_round_trip(self, tmp_path):
        values = synthesize_signal(n_elements=256, period=16, seed=3)
        path = tmp_path / "signal.txt"
        write_ascii(path, values)

        store = SignalStore(n_elements=256, n_periods=4)
        loaded = store.load_ascii(path)
        np.testing.assert_array_equal(loaded, values)

    def test_binary_reads_only_n_values(self, tmp_path):
        path = tmp_path / "long.bin"
        write_binary(path, np.arange(32, dtype=np.float32))
        store = SignalStore(n_elements=8, n_periods=2)
        np.testing.assert_array_equal(store.load_binary(path), np.arange(8))

    def test_missing_binary_file(self, tmp_path):
        store = SignalStore(n_elements=8, n_periods=2)
        with pytest.raises(SignalFileError):
            store.load_binary(tmp_path / "nope.bin")

    def test_missing_ascii_file(self, tmp_path):
        store = SignalStore(n_elements=8, n_periods=2)
        with pytest.raises(SignalFileError):
            store.load_ascii(tmp_path / "nope.txt")

    def test_short_binary_file(self, tmp_path):
        path = tmp_path / "short.bin"
        write_binary(path, np.zeros(4, dtype=np.float32))
        store = SignalStore(n_elements=8, n_periods=2)
        with pytest.raises(SignalFileError):
            store.load_binary(path)

    def test_bad_ascii_value(self, tmp_path):
        path = tmp_path / "bad.txt"
        path.write_text("1.0\n2.0\nabc\n4.0\n")
        store = SignalStore(n_elements=4, n_periods=2)
        with pytest.raises(SignalFileError):
            store.load_ascii(path)


class TestSynthesizeSignal:

    def test_deterministic_for_seed(self):
        a = synthesize_signal(n_elements=512, seed=7)
        b = synthesize_signal(n_elements=512, seed=7)
        np.testing.assert_array_equal(a, b)

    def test_dtype_and_length(self):
        sig = synthesize_signal(n_elements=100)
        assert sig.dtype == np.float32
        assert sig.shape == (100,)

    def test_noise_free_is_periodic(self):
        sig = synthesize_signal(n_elements=200, period=20, noise=0.0)
        np.testing.assert_allclose(sig[:180], sig[20:], atol=1e-5)

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            synthesize_signal(n_elements=10, period=0)
