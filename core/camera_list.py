"""
Enumerate cameras and pick the one to capture from. On Windows uses DirectShow
(pygrabber) for exact names; same device order as OpenCV with CAP_DSHOW.

Enumeration runs once at setup. Devices plugged in later are not seen.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

import cv2

from core.errors import NoDeviceAvailable

logger = logging.getLogger(__name__)

_FRONT_HINTS = ("front", "user", "facetime", "integrated", "built-in", "selfie")
_BACK_HINTS = ("back", "rear", "environment", "world")


class Facing(str, Enum):
    FRONT = "front"
    BACK = "back"
    UNSPECIFIED = "unspecified"


@dataclass(frozen=True)
class DeviceCapabilities:
    width: int = 0
    height: int = 0
    fps: float = 0.0


@dataclass(frozen=True)
class Device:
    identifier: int
    name: str
    facing: Facing = Facing.UNSPECIFIED
    capabilities: DeviceCapabilities = DeviceCapabilities()


def facing_from_name(name: str) -> Facing:
    """Best-effort facing from the driver's display name."""
    lowered = name.lower()
    if any(h in lowered for h in _BACK_HINTS):
        return Facing.BACK
    if any(h in lowered for h in _FRONT_HINTS):
        return Facing.FRONT
    return Facing.UNSPECIFIED


def open_camera(index: int) -> cv2.VideoCapture:
    if sys.platform == "win32":
        return cv2.VideoCapture(index, cv2.CAP_DSHOW)
    return cv2.VideoCapture(index)


def _probe_opencv(names: dict[int, str], max_cameras: int) -> set[Device]:
    """Open indices 0..max_cameras-1 and record the ones that respond."""
    found: set[Device] = set()
    for i in range(max_cameras):
        cap = open_camera(i)
        try:
            if not cap.isOpened():
                continue
            caps = DeviceCapabilities(
                width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
                height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
                fps=float(cap.get(cv2.CAP_PROP_FPS)),
            )
        finally:
            cap.release()
        name = names.get(i, f"Camera {i}")
        found.add(Device(i, name, facing_from_name(name), caps))
    return found


def _directshow_names() -> dict[int, str]:
    if sys.platform != "win32":
        return {}
    try:
        from pygrabber.dshow_graph import FilterGraph
    except ImportError:
        return {}
    return dict(enumerate(FilterGraph().get_input_devices()))


def list_devices(max_cameras: int = 8) -> set[Device]:
    """Return the capture devices available right now."""
    names = _directshow_names()
    devices = _probe_opencv(names, max(max_cameras, len(names)))
    logger.info(
        "Found %d camera(s): %s",
        len(devices),
        ", ".join(f"{d.name} ({d.facing.value})" for d in sorted(devices, key=lambda d: d.identifier)),
    )
    return devices


def select_default(devices: Iterable[Device]) -> Device:
    """Prefer a front-facing camera, else the lowest-index device."""
    ordered = sorted(devices, key=lambda d: d.identifier)
    if not ordered:
        raise NoDeviceAvailable()
    for device in ordered:
        if device.facing is Facing.FRONT:
            return device
    return ordered[0]
