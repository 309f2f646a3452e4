"""
OpenCL device enumeration and selection.

Enumerates every OpenCL platform and device reachable through the installed
ICDs, tags each one with a :class:`DeviceClass`, and picks the device the
autocorrelation run will use.

Selection policy
----------------
Devices are ranked once, best first:

* discrete GPU   – any GPU whose vendor is not Intel (first one seen wins)
* integrated GPU – an Intel GPU (the *last* one seen wins)
* CPU            – first one seen wins
* other          – accelerators, custom devices; first one seen wins

The integrated-GPU tie-break mirrors the historical replacement rule "a held
Intel GPU is replaced by any GPU found after it".  That rule assumes the later
GPU is the bigger one and never measures it, so two Intel GPUs resolve to the
later of the two regardless of capability.

The ranking is a pure function over :class:`DeviceInfo` records, so it can be
exercised without any OpenCL runtime installed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable

from period_finder import AcceleratorUnavailableError, NoDeviceError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Vendor ids / device types
# ---------------------------------------------------------------------------

ID_AMD    = 0x1002
ID_INTEL  = 0x8086
ID_NVIDIA = 0x10DE

_VENDOR_NAMES: dict[int, str] = {
    ID_AMD:    "AMD",
    ID_INTEL:  "Intel",
    ID_NVIDIA: "NVIDIA",
}

# Raw CL_DEVICE_TYPE_* bit values, so records can be built without pyopencl.
CL_DEVICE_TYPE_CPU         = 1 << 1
CL_DEVICE_TYPE_GPU         = 1 << 2
CL_DEVICE_TYPE_ACCELERATOR = 1 << 3

_TYPE_NAMES: dict[int, str] = {
    CL_DEVICE_TYPE_CPU:         "CL_DEVICE_TYPE_CPU",
    CL_DEVICE_TYPE_GPU:         "CL_DEVICE_TYPE_GPU",
    CL_DEVICE_TYPE_ACCELERATOR: "CL_DEVICE_TYPE_ACCELERATOR",
}


class DeviceClass(IntEnum):
    """Selection tier; lower value ranks higher."""
    DISCRETE_GPU   = 0
    INTEGRATED_GPU = 1
    CPU            = 2
    OTHER          = 3


def vendor_name(vendor_id: int) -> str:
    return _VENDOR_NAMES.get(vendor_id, "Unknown")


def type_name(device_type: int) -> str:
    # Some ICDs also set the DEFAULT bit; report the first concrete type.
    for bit, name in _TYPE_NAMES.items():
        if device_type & bit:
            return name
    return "Unknown"


def classify(device_type: int, vendor_id: int) -> DeviceClass:
    """Map a raw OpenCL device type and vendor id onto a selection tier."""
    if device_type & CL_DEVICE_TYPE_GPU:
        if vendor_id == ID_INTEL:
            return DeviceClass.INTEGRATED_GPU
        return DeviceClass.DISCRETE_GPU
    if device_type & CL_DEVICE_TYPE_CPU:
        return DeviceClass.CPU
    return DeviceClass.OTHER


# ---------------------------------------------------------------------------
# Device record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeviceInfo:
    platform_index: int
    device_index:   int
    device_type:    int          # raw CL_DEVICE_TYPE_* bits
    vendor_id:      int          # CL_DEVICE_VENDOR_ID
    device_name:    str = ""
    platform_name:  str = ""
    max_work_group: int = 0
    local_mem_kb:   int = 0

    @property
    def device_class(self) -> DeviceClass:
        return classify(self.device_type, self.vendor_id)

    @property
    def vendor(self) -> str:
        return vendor_name(self.vendor_id)

    def __str__(self) -> str:
        return (
            f"[{self.platform_index}:{self.device_index}] "
            f"{self.device_class.name} | {self.device_name} | "
            f"{self.platform_name} | vendor={self.vendor} "
            f"WGmax={self.max_work_group} lmem={self.local_mem_kb} KB"
        )


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def rank_devices(devices: Iterable[DeviceInfo]) -> list[DeviceInfo]:
    """
    Return *devices* ordered best first.

    The sort is stable over enumeration order.  Integrated GPUs are keyed on
    the negated position so the last one enumerated comes first within its
    tier.
    """
    indexed = list(enumerate(devices))

    def key(item: tuple[int, DeviceInfo]) -> tuple[int, int]:
        position, dev = item
        tier = dev.device_class
        if tier == DeviceClass.INTEGRATED_GPU:
            return (tier, -position)
        return (tier, position)

    return [dev for _, dev in sorted(indexed, key=key)]


def select_best_device(devices: Iterable[DeviceInfo]) -> DeviceInfo:
    """
    Choose the device to run on.

    Raises
    ------
    NoDeviceError
        When *devices* is empty.
    """
    ranked = rank_devices(devices)
    if not ranked:
        raise NoDeviceError("I found no OpenCL devices!")
    return ranked[0]


def selection_banner(device: DeviceInfo) -> str:
    return (
        f"Selected Platform #{device.platform_index}, "
        f"Device #{device.device_index}: "
        f"Vendor = {device.vendor}, Type = {type_name(device.device_type)}"
    )


# ---------------------------------------------------------------------------
# OpenCL enumeration
# ---------------------------------------------------------------------------

def enumerate_devices() -> list[DeviceInfo]:
    """
    Return all OpenCL devices, platform by platform, in enumeration order.

    Raises
    ------
    AcceleratorUnavailableError
        When pyopencl is not installed or no OpenCL platform is registered.
    """
    try:
        import pyopencl as cl
    except ImportError as exc:
        raise AcceleratorUnavailableError(
            "pyopencl not installed – OpenCL unavailable."
        ) from exc

    try:
        platforms = cl.get_platforms()
    except cl.Error as exc:
        raise AcceleratorUnavailableError(
            f"OpenCL platform enumeration failed: {exc}"
        ) from exc

    devices: list[DeviceInfo] = []
    for p_idx, platform in enumerate(platforms):
        try:
            cl_devices = platform.get_devices(device_type=cl.device_type.ALL)
        except cl.Error as exc:
            logger.warning("Cannot list devices on platform %s: %s",
                           platform.name, exc)
            continue

        for d_idx, dev in enumerate(cl_devices):
            try:
                info = DeviceInfo(
                    platform_index = p_idx,
                    device_index   = d_idx,
                    device_type    = int(dev.type),
                    vendor_id      = int(dev.vendor_id),
                    device_name    = dev.name.strip(),
                    platform_name  = platform.name.strip(),
                    max_work_group = int(dev.max_work_group_size),
                    local_mem_kb   = int(dev.local_mem_size // 1024),
                )
            except cl.Error as exc:
                logger.warning("Error reading device %d on platform %d: %s",
                               d_idx, p_idx, exc)
                continue
            devices.append(info)

    return devices


def resolve_cl_device(info: DeviceInfo):
    """Return the live ``pyopencl.Device`` described by *info*."""
    import pyopencl as cl

    platform = cl.get_platforms()[info.platform_index]
    return platform.get_devices(device_type=cl.device_type.ALL)[info.device_index]


def select_opencl_device(show_banner: bool = True) -> DeviceInfo:
    """Enumerate, log every device found, and return the best one.

    With *show_banner* off (machine-readable runs) the per-device lines drop
    to DEBUG along with the banner.
    """
    level = logging.INFO if show_banner else logging.DEBUG
    devices = enumerate_devices()
    for dev in devices:
        logger.log(level, "OpenCL device found: %s", dev)

    chosen = select_best_device(devices)
    if show_banner:
        logger.info("%s", selection_banner(chosen))
    return chosen
