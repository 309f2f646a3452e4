"""
Kernel source artifact handling.

The OpenCL program lives in a plain text file (``fourier.cl`` ships inside
this package) and is compiled at runtime for the selected device.

Kernel overview
---------------

``DoLocalFourier``
    1-D kernel: global_size = padded signal length, local_size = LOCAL_SIZE.
    Arguments: signal buffer, ``__local`` scratch of LOCAL_SIZE × MAX_PERIODS
    floats, per-group output rows.

``FoldPeriodSums``
    1-D kernel: global_size = MAX_PERIODS.
    Folds the per-group rows into the final MAX_PERIODS sums.

The sizes are baked in with ``-D`` build options (see :func:`build_options`).
"""

from __future__ import annotations

from pathlib import Path

from period_finder import KernelSourceError

KERNEL_LOCAL_FOURIER = "DoLocalFourier"
KERNEL_FOLD_SUMS     = "FoldPeriodSums"

DEFAULT_KERNEL_PATH: Path = Path(__file__).with_name("fourier.cl")


def load_kernel_source(path: str | Path | None = None) -> str:
    """
    Read the kernel source artifact in full.

    Raises
    ------
    KernelSourceError
        When the file cannot be opened or read.
    """
    path = DEFAULT_KERNEL_PATH if path is None else Path(path)
    try:
        return path.read_text()
    except (OSError, UnicodeDecodeError) as exc:
        raise KernelSourceError(
            f"Cannot open OpenCL source file '{path}': {exc}"
        ) from exc


def build_options(
    n_elements: int,
    n_periods: int,
    n_groups: int,
    local_size: int,
) -> list[str]:
    return [
        f"-DNUM_ELEMENTS={n_elements}",
        f"-DMAX_PERIODS={n_periods}",
        f"-DNUM_GROUPS={n_groups}",
        f"-DLOCAL_SIZE={local_size}",
    ]
