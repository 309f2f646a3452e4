"""
period_finder.gpu – OpenCL orchestration for the autocorrelation sums.

Device selection, the per-run accelerator session, and the kernel dispatcher
live here.  Nothing in this sub-package touches files other than the kernel
source artifact.
"""
