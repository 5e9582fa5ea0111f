"""
Shared data models: capture requests, captured frames, model input and results.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import mediapipe as mp
    import numpy as np


class Orientation(Enum):
    """Clockwise rotation (degrees) that brings an image upright."""

    UP = 0
    RIGHT = 90
    DOWN = 180
    LEFT = 270

    @classmethod
    def parse(cls, value: Any) -> Orientation:
        if isinstance(value, Orientation):
            return value
        if isinstance(value, str) and not value.strip().lstrip("-").isdigit():
            return cls[value.strip().upper()]
        return cls(int(value) % 360)


@dataclass(frozen=True)
class CaptureRequest:
    request_id: int
    issued_at: float


@dataclass(frozen=True)
class CapturedFrame:
    """One encoded still as delivered by the photo output."""

    data: bytes
    codec: str
    pixel_format: str
    orientation: Orientation
    width: int
    height: int
    timestamp_s: float


@dataclass(frozen=True)
class ModelInput:
    """Pixel plane in the model's layout. Channel order is `pixel_format`."""

    image: mp.Image
    pixel_format: str

    def array(self) -> np.ndarray:
        return self.image.numpy_view()


@dataclass(frozen=True)
class ImageInputSpec:
    name: str
    width: int
    height: int
    pixel_format: str = "RGB"
    # "[0,1]", "[-1,1]", or None for raw 0..255 values
    normalize: str | None = "[0,1]"
    scale: float | None = None
    bias: tuple[float, ...] | None = None

    @property
    def channels(self) -> int:
        return 1 if self.pixel_format == "GRAY" else 3


@dataclass(frozen=True)
class OutputSpec:
    name: str


@dataclass(frozen=True)
class BundleManifest:
    name: str
    version: str
    model_file: str
    quantized: bool
    input: ImageInputSpec
    outputs: tuple[OutputSpec, ...]

    @property
    def output_names(self) -> tuple[str, ...]:
        return tuple(o.name for o in self.outputs)


class InferenceResult(Mapping[str, float]):
    """Read-only mapping of output name to scalar value."""

    def __init__(self, values: Mapping[str, float]) -> None:
        self._values = {str(k): float(v) for k, v in values.items()}

    def __getitem__(self, key: str) -> float:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"InferenceResult({self._values!r})"
