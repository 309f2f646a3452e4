#!/usr/bin/env python3
"""
Period Finder – main entry point.

Reads a large noisy signal, computes the circular autocorrelation sums for
``P`` candidate periods on an OpenCL device, prints the throughput, writes the
sums to a plot file, and reports the strongest period found.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --signal PATH         Signal file        (default: bigsignal.bin / .txt)
    --ascii               Read the signal as whitespace-separated text
    --kernel PATH         OpenCL source file (default: bundled fourier.cl)
    --plot PATH           Output plot file   (default: plot.csv)
    --elements INT        Signal length N    (default: 1048576)
    --periods INT         Candidate periods P (default: 100)
    --local-size INT      Work-group size    (default: 32)
    --cpu-fallback        Compute on the host with NumPy (no OpenCL)
    --strict              Exit 1 on the first failed OpenCL operation
    --csv                 No device banner; print one CSV row on stdout
    --info                List OpenCL devices and exit
    --verbose             Debug logging
    --generate            Write a synthetic signal to --signal and exit
        --secret-period INT   hidden period (default: 48)
        --amplitude FLOAT     sine amplitude (default: 1.0)
        --noise FLOAT         noise std-dev (default: 2.0)
        --seed INT            RNG seed (default: 0)

Exit status is 0 once the run reaches the export stage, even when individual
OpenCL calls failed and were only logged (unless --strict).  It is 1 when
OpenCL is unavailable, the kernel or signal file cannot be read, or no device
is found.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from period_finder import PeriodFinderError
from period_finder.analysis import find_dominant_period
from period_finder.exporter import write_plot
from period_finder.gpu.device_selector import (
    enumerate_devices,
    rank_devices,
    select_opencl_device,
)
from period_finder.gpu.dispatcher import (
    LOCAL_SIZE,
    AutocorrelationDispatcher,
    HostDispatcher,
    WorkPartition,
)
from period_finder.gpu.kernels import load_kernel_source
from period_finder.gpu.session import AcceleratorSession
from period_finder.performance import PerformanceReporter
from period_finder.signal_store import (
    MAX_PERIODS,
    NUM_ELEMENTS,
    SignalStore,
    synthesize_signal,
    write_ascii,
    write_binary,
)

logger = logging.getLogger("period_finder")

BIG_SIGNAL_FILE_BIN   = Path("bigsignal.bin")
BIG_SIGNAL_FILE_ASCII = Path("bigsignal.txt")
CSV_PLOT_FILE         = Path("plot.csv")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Hidden-period finder – OpenCL autocorrelation sums",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--signal",        type=Path,  default=None,
                   help="Signal file (bigsignal.bin, or bigsignal.txt with --ascii)")
    p.add_argument("--ascii",         action="store_true",
                   help="Signal file is whitespace-separated text")
    p.add_argument("--kernel",        type=Path,  default=None,
                   help="OpenCL source file (bundled fourier.cl when omitted)")
    p.add_argument("--plot",          type=Path,  default=CSV_PLOT_FILE)
    p.add_argument("--elements",      type=int,   default=NUM_ELEMENTS)
    p.add_argument("--periods",       type=int,   default=MAX_PERIODS)
    p.add_argument("--local-size",    type=int,   default=LOCAL_SIZE)
    p.add_argument("--cpu-fallback",  action="store_true",
                   help="Disable OpenCL; compute the sums with NumPy")
    p.add_argument("--strict",        action="store_true",
                   help="Stop with exit status 1 on any failed OpenCL call")
    p.add_argument("--csv",           action="store_true",
                   help="Machine-readable output: no banner, CSV row on stdout")
    p.add_argument("--info",          action="store_true",
                   help="List OpenCL devices, best first, and exit")
    p.add_argument("--verbose",       action="store_true")

    g = p.add_argument_group("signal generation")
    g.add_argument("--generate",      action="store_true",
                   help="Write a synthetic signal to --signal and exit")
    g.add_argument("--secret-period", type=int,   default=48)
    g.add_argument("--amplitude",     type=float, default=1.0)
    g.add_argument("--noise",         type=float, default=2.0)
    g.add_argument("--seed",          type=int,   default=0)

    args = p.parse_args(argv)

    if args.elements <= 0:
        p.error("--elements must be positive")
    if not 0 < args.periods <= args.elements:
        p.error("--periods must be between 1 and --elements")
    ls = args.local_size
    if ls <= 0 or ls & (ls - 1):
        p.error("--local-size must be a power of two")
    if args.signal is None:
        args.signal = BIG_SIGNAL_FILE_ASCII if args.ascii else BIG_SIGNAL_FILE_BIN
    return args


# ---------------------------------------------------------------------------
# Sub-commands
# ---------------------------------------------------------------------------

def _generate(args: argparse.Namespace) -> int:
    signal = synthesize_signal(
        n_elements = args.elements,
        period     = args.secret_period,
        amplitude  = args.amplitude,
        noise      = args.noise,
        seed       = args.seed,
    )
    try:
        if args.ascii:
            write_ascii(args.signal, signal)
        else:
            write_binary(args.signal, signal)
    except OSError as exc:
        logger.error("Cannot write data file '%s': %s", args.signal, exc)
        return 1
    logger.info("Wrote %d samples (secret period %d) to %s",
                args.elements, args.secret_period, args.signal)
    return 0


def _info() -> int:
    try:
        devices = enumerate_devices()
    except PeriodFinderError as exc:
        logger.error("%s", exc)
        return 1
    for rank, dev in enumerate(rank_devices(devices)):
        print(f"{rank}: {dev}")
    return 0 if devices else 1


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    if args.generate:
        return _generate(args)
    if args.info:
        return _info()

    store = SignalStore(args.elements, args.periods)
    partition = WorkPartition.for_store(store, args.local_size)
    reporter = PerformanceReporter()

    # Pre-flight: every failure here is fatal.
    try:
        if not args.cpu_fallback:
            kernel_source = load_kernel_source(args.kernel)
            device = select_opencl_device(show_banner=not args.csv)
        if args.ascii:
            store.load_ascii(args.signal)
        else:
            store.load_binary(args.signal)
    except PeriodFinderError as exc:
        logger.error("%s", exc)
        return 1

    if partition.padded:
        logger.info("Signal length %d padded to %d work items.",
                    partition.n_elements, partition.global_size)

    if args.cpu_fallback:
        outcome = HostDispatcher(partition, reporter).run(store)
    else:
        try:
            with AcceleratorSession(device, store, partition,
                                    kernel_source) as session:
                if not session.open() and args.strict:
                    logger.error("Stopping: %d OpenCL operation(s) failed.",
                                 len(session.failures))
                    return 1
                outcome = AutocorrelationDispatcher(session, reporter).run(store)
        except PeriodFinderError as exc:
            logger.error("%s", exc)
            return 1
        if not outcome.ok:
            if args.strict:
                logger.error("Stopping: kernel dispatch failed.")
                return 1
            logger.warning("Dispatch finished with failures; "
                           "period sums may be meaningless.")

    report = reporter.report(store.n_elements, store.n_periods,
                             outcome.elapsed_seconds, outcome.device_seconds)
    if args.csv and report is not None:
        print(report.csv_row())

    write_plot(args.plot, store.period_sums)

    peak = find_dominant_period(store.period_sums)
    if peak is None:
        logger.info("No periodic component stands out.")
    else:
        logger.info("Strongest period: %d samples (sum %.2f, prominence %.2f)",
                    peak.period, peak.value, peak.prominence)
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
