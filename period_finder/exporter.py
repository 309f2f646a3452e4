"""
Plot-file export of the autocorrelation sums.

One line per period index ``1 .. P-1`` formatted ``"%6d , %10.2f"``.  Index 0
is the lag-0 self term, always the largest value, and is left out.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)


def format_plot_lines(sums: Sequence[float]) -> list[str]:
    return [f"{s:6d} , {float(sums[s]):10.2f}\n" for s in range(1, len(sums))]


def write_plot(path: str | Path, sums: Sequence[float]) -> bool:
    """
    Write the plot file.

    Returns ``False`` (after logging) when *path* cannot be written.
    """
    path = Path(path)
    try:
        with path.open("w", encoding="utf-8") as fp:
            fp.writelines(format_plot_lines(sums))
    except OSError as exc:
        logger.error("Cannot write to plot file '%s': %s", path, exc)
        return False
    logger.info("Wrote %d periods to %s", max(len(sums) - 1, 0), path)
    return True
