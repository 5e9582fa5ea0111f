"""
Capture session: one camera as input, one photo output, and the run state.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

import cv2
import numpy as np
from PySide6.QtCore import QObject, Signal, Slot

from core.camera_list import Device, open_camera
from core.config import SUPPORTED_CAPTURE_FORMATS, SUPPORTED_CODECS, FrameFormat
from core.errors import (
    AttachmentFailed,
    CaptureFailed,
    CaptureInProgress,
    PipelineError,
    SessionStateError,
)
from core.models import CapturedFrame
from core.runner import PreviewRunner

logger = logging.getLogger(__name__)

# completion(frame, error): exactly one of the two is None
PhotoCompletion = Callable[[Optional[CapturedFrame], Optional[PipelineError]], None]


class SessionState(Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    RUNNING = "running"
    STOPPED = "stopped"


class PhotoOutput:
    """
    Still-image sink. capture_photo() registers one pending request; the
    preview thread fulfils it with the next frame via offer() and invokes the
    completion on that thread.
    """

    def __init__(self, frame_format: FrameFormat) -> None:
        if frame_format.codec not in SUPPORTED_CODECS:
            raise AttachmentFailed(f"unsupported photo codec {frame_format.codec!r}")
        if frame_format.pixel_format not in SUPPORTED_CAPTURE_FORMATS:
            raise AttachmentFailed(
                f"unsupported capture pixel format {frame_format.pixel_format!r}"
            )
        self._format = frame_format
        self._lock = threading.Lock()
        self._pending: PhotoCompletion | None = None
        self._armed = False

    @property
    def frame_format(self) -> FrameFormat:
        return self._format

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def arm(self) -> None:
        self._armed = True

    def disarm(self) -> None:
        # A pending request is not cancelled; it completes on the next frame
        # after re-arming unless its receiver cancels it.
        self._armed = False

    def cancel(self) -> bool:
        """
        Forget the pending request, if any. A completion the preview thread has
        already taken still fires; the receiver discards it by request id.
        """
        with self._lock:
            dropped, self._pending = self._pending is not None, None
        return dropped

    def capture_photo(self, completion: PhotoCompletion) -> None:
        with self._lock:
            if self._pending is not None:
                raise CaptureInProgress("photo output already has a pending request")
            self._pending = completion

    def offer(self, frame_bgr: np.ndarray) -> None:
        """Called for every preview frame; completes the pending request if any."""
        if not self._armed:
            return
        with self._lock:
            completion, self._pending = self._pending, None
        if completion is None:
            return
        try:
            captured = self._encode(frame_bgr)
        except CaptureFailed as exc:
            logger.warning("Photo capture failed: %s", exc.reason)
            completion(None, exc)
            return
        completion(captured, None)

    def _encode(self, frame_bgr: np.ndarray) -> CapturedFrame:
        fmt = self._format
        frame = frame_bgr
        params: list[int] = []
        if fmt.codec == "jpeg":
            params = [cv2.IMWRITE_JPEG_QUALITY, int(fmt.jpeg_quality)]
        try:
            if fmt.pixel_format == "GRAY" and frame.ndim == 3:
                frame = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
            ok, buf = cv2.imencode(SUPPORTED_CODECS[fmt.codec], frame, params)
        except cv2.error as exc:
            raise CaptureFailed(f"encoding failure: {exc}") from exc
        if not ok:
            raise CaptureFailed("encoding failure")
        h, w = frame.shape[:2]
        return CapturedFrame(
            data=buf.tobytes(),
            codec=fmt.codec,
            pixel_format=fmt.pixel_format,
            orientation=fmt.sensor_orientation,
            width=w,
            height=h,
            timestamp_s=time.time(),
        )


class CaptureSession(QObject):
    """Owns the camera input, the photo output and the preview runner."""

    state_changed = Signal(object)
    # Emit (frame_bgr, fps) on the UI thread; rendering only
    preview_frame = Signal(object, float)
    error_occurred = Signal(str)

    def __init__(
        self,
        frame_format: FrameFormat,
        session_preset: tuple[int, int] | None = None,
        source_factory: Callable[[int], Any] = open_camera,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._format = frame_format
        self._preset = session_preset
        self._source_factory = source_factory
        self._state = SessionState.UNCONFIGURED
        self._device: Device | None = None
        self._source: Any = None
        self._photo_output: PhotoOutput | None = None
        self._runner: PreviewRunner | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def device(self) -> Device | None:
        return self._device

    @property
    def photo_output(self) -> PhotoOutput | None:
        return self._photo_output

    @property
    def frame_format(self) -> FrameFormat:
        return self._format

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.debug("Session %s -> %s", self._state.value, state.value)
        self._state = state
        self.state_changed.emit(state)

    def configure(self, device: Device) -> CaptureSession:
        """Attach `device` as input and a photo output. Raises AttachmentFailed."""
        if self._state is not SessionState.UNCONFIGURED:
            raise SessionStateError(f"cannot configure a {self._state.value} session")
        source = self._source_factory(device.identifier)
        if source is None or not source.isOpened():
            if source is not None:
                source.release()
            raise AttachmentFailed(
                f"cannot open {device.name!r} (index {device.identifier}): busy or unavailable"
            )
        if self._preset is not None:
            w, h = self._preset
            source.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            source.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        try:
            output = PhotoOutput(self._format)
        except AttachmentFailed:
            source.release()
            raise
        self._device = device
        self._source = source
        self._photo_output = output
        logger.info("Session configured with %s (index %d)", device.name, device.identifier)
        self._set_state(SessionState.CONFIGURED)
        return self

    def start(self) -> None:
        """Begin preview delivery and arm the photo output. No-op if running."""
        if self._state is SessionState.RUNNING:
            return
        if self._state not in (SessionState.CONFIGURED, SessionState.STOPPED):
            raise SessionStateError(f"cannot start a {self._state.value} session")
        runner = PreviewRunner(self._source, self._photo_output)
        runner.frame_ready.connect(self._on_frame_ready)
        runner.error_occurred.connect(self._on_runner_error)
        runner.stopped.connect(self._on_runner_stopped)
        self._runner = runner
        self._photo_output.arm()
        runner.start()
        logger.info("Session started")
        self._set_state(SessionState.RUNNING)

    def stop(self) -> None:
        """Halt frame delivery. An in-flight photo request is not cancelled."""
        if self._state is not SessionState.RUNNING:
            return
        if self._photo_output is not None:
            self._photo_output.disarm()
        self._shutdown_runner()
        logger.info("Session stopped")
        self._set_state(SessionState.STOPPED)

    def release(self) -> None:
        """Stop and close the device; the session cannot be reused."""
        self.stop()
        if self._source is not None:
            self._source.release()
            self._source = None

    def _shutdown_runner(self) -> None:
        if self._runner is None:
            return
        self._runner.stop()
        self._runner.finish_thread()
        self._runner = None

    @Slot(object, float)
    def _on_frame_ready(self, frame: np.ndarray, fps: float) -> None:
        self.preview_frame.emit(frame, fps)

    @Slot(str)
    def _on_runner_error(self, message: str) -> None:
        logger.error("Preview error: %s", message)
        self.error_occurred.emit(message)

    @Slot()
    def _on_runner_stopped(self) -> None:
        # Only an unrequested exit of the current runner changes state here.
        if self.sender() is not self._runner or self._state is not SessionState.RUNNING:
            return
        if self._photo_output is not None:
            self._photo_output.disarm()
        self._shutdown_runner()
        logger.warning("Preview loop exited; session stopped")
        self._set_state(SessionState.STOPPED)
