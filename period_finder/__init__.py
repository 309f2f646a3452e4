"""
Period Finder — hidden-periodicity detection in a large noisy 1-D signal.

The bulk multiply-accumulate work of the circular autocorrelation is offloaded
to an OpenCL device (see :mod:`period_finder.gpu`); a NumPy host path computes
the same sums when no accelerator is wanted.
"""

__version__ = "0.1.0"
__author__ = "period_finder"


class PeriodFinderError(Exception):
    """Base class for the fatal, pre-flight failures of a run."""


class AcceleratorUnavailableError(PeriodFinderError):
    """pyopencl cannot be imported or no OpenCL platform is installed."""


class NoDeviceError(PeriodFinderError):
    """Enumeration found zero compute devices."""


class KernelSourceError(PeriodFinderError):
    """The kernel source artifact cannot be opened."""


class SignalFileError(PeriodFinderError):
    """The signal artifact is missing, unreadable or too short."""
