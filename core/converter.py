"""
Frame converter: captured still -> upright pixel plane -> model input.
"""

from __future__ import annotations

import logging

import cv2
import mediapipe as mp
import numpy as np

from core.config import FrameFormat
from core.errors import UnsupportedPixelFormat
from core.models import CapturedFrame, ImageInputSpec, ModelInput, Orientation

logger = logging.getLogger(__name__)

_ROTATIONS = {
    Orientation.RIGHT: cv2.ROTATE_90_CLOCKWISE,
    Orientation.DOWN: cv2.ROTATE_180,
    Orientation.LEFT: cv2.ROTATE_90_COUNTERCLOCKWISE,
}

# capture format -> model format -> cvtColor code (None = already in layout)
_COLOR_CONVERSIONS: dict[str, dict[str, int | None]] = {
    "BGR": {"RGB": cv2.COLOR_BGR2RGB, "BGR": None, "GRAY": cv2.COLOR_BGR2GRAY},
    "GRAY": {"RGB": cv2.COLOR_GRAY2RGB, "BGR": cv2.COLOR_GRAY2BGR, "GRAY": None},
}

# BGR planes are stored as three-channel SRGB images; ModelInput.pixel_format
# records the real channel order.
_MP_FORMATS = {
    "RGB": mp.ImageFormat.SRGB,
    "BGR": mp.ImageFormat.SRGB,
    "GRAY": mp.ImageFormat.GRAY8,
}


class FrameConverter:
    """Deterministic conversion bound to one capture format and one model input."""

    def __init__(self, frame_format: FrameFormat, input_spec: ImageInputSpec | None = None) -> None:
        self._format = frame_format
        self._input_spec = input_spec

    @property
    def input_spec(self) -> ImageInputSpec | None:
        return self._input_spec

    def _decode(self, frame: CapturedFrame) -> np.ndarray:
        if frame.pixel_format != self._format.pixel_format:
            raise self._unsupported(
                f"frame is {frame.pixel_format}, session produces {self._format.pixel_format}"
            )
        buf = np.frombuffer(frame.data, dtype=np.uint8)
        plane = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED) if buf.size else None
        if plane is None:
            raise self._unsupported(f"cannot decode {frame.codec} data ({len(frame.data)} bytes)")
        expected_channels = 1 if frame.pixel_format == "GRAY" else 3
        channels = 1 if plane.ndim == 2 else plane.shape[2]
        if channels != expected_channels or plane.dtype != np.uint8:
            raise self._unsupported(
                f"decoded plane has {channels} channel(s) of {plane.dtype}, "
                f"expected {expected_channels} for {frame.pixel_format}"
            )
        return plane

    @staticmethod
    def _unsupported(reason: str) -> UnsupportedPixelFormat:
        logger.error("Pixel format mismatch between capture output and converter: %s", reason)
        return UnsupportedPixelFormat(reason)

    def upright(self, frame: CapturedFrame) -> np.ndarray:
        """Decoded plane rotated to the canonical upright orientation."""
        plane = self._decode(frame)
        rotation = _ROTATIONS.get(frame.orientation)
        if rotation is not None:
            plane = cv2.rotate(plane, rotation)
        return plane

    def to_model_input(self, frame: CapturedFrame) -> ModelInput:
        """Upright plane in the model's pixel format and input dimensions."""
        spec = self._input_spec
        if spec is None:
            raise RuntimeError("FrameConverter has no model input spec")
        conversion = _COLOR_CONVERSIONS.get(frame.pixel_format, {})
        if spec.pixel_format not in conversion or spec.pixel_format not in _MP_FORMATS:
            raise self._unsupported(
                f"no mapping from {frame.pixel_format} to model format {spec.pixel_format}"
            )
        plane = self.upright(frame)
        code = conversion[spec.pixel_format]
        if code is not None:
            plane = cv2.cvtColor(plane, code)
        if plane.shape[1] != spec.width or plane.shape[0] != spec.height:
            plane = cv2.resize(plane, (spec.width, spec.height), interpolation=cv2.INTER_AREA)
        plane = np.ascontiguousarray(plane)
        image = mp.Image(image_format=_MP_FORMATS[spec.pixel_format], data=plane)
        return ModelInput(image=image, pixel_format=spec.pixel_format)
