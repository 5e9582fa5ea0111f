"""
Pipeline configuration loaded from YAML.

`FrameFormat` is the contract shared by the photo output (what it produces)
and the frame converter (what it accepts).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from core.models import Orientation

SUPPORTED_CODECS = {"jpeg": ".jpg", "png": ".png"}
SUPPORTED_CAPTURE_FORMATS = ("BGR", "GRAY")


@dataclass(frozen=True)
class FrameFormat:
    pixel_format: str = "BGR"
    codec: str = "jpeg"
    jpeg_quality: int = 95
    # Rotation the sensor image needs to become upright.
    sensor_orientation: Orientation = Orientation.UP


@dataclass
class PipelineConfig:
    bundle: str = "phenomenal-face.tiobundle"
    frame_format: FrameFormat = field(default_factory=FrameFormat)
    session_preset: tuple[int, int] = (1280, 720)
    max_cameras: int = 8
    capture_timeout_s: float = 5.0
    inference_timeout_s: float = 10.0
    log_level: str = "INFO"


def load_config(path: str | Path | None) -> PipelineConfig:
    """Read a YAML config file. A missing file yields the defaults."""
    data: dict = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            data = {}
    defaults = PipelineConfig()
    fmt = data.get("frame_format") or {}
    frame_format = FrameFormat(
        pixel_format=str(fmt.get("pixel_format", "BGR")).upper(),
        codec=str(fmt.get("codec", "jpeg")).lower(),
        jpeg_quality=int(fmt.get("jpeg_quality", 95)),
        sensor_orientation=Orientation.parse(fmt.get("sensor_orientation", "up")),
    )
    return PipelineConfig(
        bundle=str(data.get("bundle", defaults.bundle)),
        frame_format=frame_format,
        session_preset=tuple(data.get("session_preset", list(defaults.session_preset))),
        max_cameras=int(data.get("max_cameras", defaults.max_cameras)),
        capture_timeout_s=float(data.get("capture_timeout_s", defaults.capture_timeout_s)),
        inference_timeout_s=float(
            data.get("inference_timeout_s", defaults.inference_timeout_s)
        ),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
    )
