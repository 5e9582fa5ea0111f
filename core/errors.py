"""
Failure kinds raised by the capture-to-inference pipeline.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class. `reason` is a short human-readable description."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason or self.__class__.__name__)
        self.reason = reason


# Setup failures: reported once, disable the camera or inference feature.


class NoDeviceAvailable(PipelineError):
    def __init__(self, reason: str = "no capture device found") -> None:
        super().__init__(reason)


class AttachmentFailed(PipelineError):
    pass


class LoadFailed(PipelineError):
    pass


# Per-request failures: recoverable, the user may capture again.


class CaptureFailed(PipelineError):
    pass


class UnsupportedPixelFormat(PipelineError):
    pass


class InferenceFailed(PipelineError):
    pass


class Timeout(PipelineError):
    """Bounded wait expired. `stage` is "capture" or "inference"."""

    def __init__(self, stage: str, seconds: float | None = None) -> None:
        msg = f"{stage} timed out"
        if seconds is not None:
            msg += f" after {seconds:.1f}s"
        super().__init__(msg)
        self.stage = stage


# Caller errors.


class SessionStateError(PipelineError):
    pass


class CaptureInProgress(PipelineError):
    def __init__(self, reason: str = "a capture is already in flight") -> None:
        super().__init__(reason)
