"""
Capture-to-inference pipeline: wires registry, session, coordinator,
converter and engine, and hands (image, result) to a result sink.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

import numpy as np
from PySide6.QtCore import QObject, Signal, Slot

from core.camera_list import list_devices, open_camera, select_default
from core.capture import CaptureSession
from core.config import PipelineConfig
from core.converter import FrameConverter
from core.coordinator import CaptureCoordinator
from core.errors import (
    AttachmentFailed,
    InferenceFailed,
    LoadFailed,
    NoDeviceAvailable,
    PipelineError,
    SessionStateError,
    Timeout,
    UnsupportedPixelFormat,
)
from core.inference import InferenceEngine
from core.model_loader import get_bundle_path
from core.models import CapturedFrame, CaptureRequest, InferenceResult
from core.utils import ThreadAffinity

logger = logging.getLogger(__name__)

FEATURE_CAMERA = "camera"
FEATURE_INFERENCE = "inference"


class ResultSink(Protocol):
    """Presentation side. Called on the UI thread with both values at once."""

    def present(self, image: np.ndarray | None, result: InferenceResult | None) -> None:
        ...


class CapturePipeline(QObject):
    # Emit (feature, reason) once per setup failure
    feature_disabled = Signal(str, str)
    # Emit reason for a per-request failure; the sink is not touched
    capture_failed = Signal(str)

    def __init__(
        self,
        config: PipelineConfig,
        sink: ResultSink,
        source_factory: Callable[[int], Any] = open_camera,
        device_lister: Callable[[int], Any] = list_devices,
        engine_loader: Callable[[Any], Any] = InferenceEngine.load,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._config = config
        self._sink = sink
        self._source_factory = source_factory
        self._device_lister = device_lister
        self._engine_loader = engine_loader
        self._affinity = ThreadAffinity()
        self._engine: InferenceEngine | None = None
        self._converter = FrameConverter(config.frame_format)
        self._session: CaptureSession | None = None
        self._coordinator: CaptureCoordinator | None = None
        self._disabled: dict[str, str] = {}

    @property
    def session(self) -> CaptureSession | None:
        return self._session

    @property
    def coordinator(self) -> CaptureCoordinator | None:
        return self._coordinator

    @property
    def camera_available(self) -> bool:
        return self._coordinator is not None

    @property
    def inference_available(self) -> bool:
        return self._engine is not None

    @property
    def disabled_features(self) -> dict[str, str]:
        return dict(self._disabled)

    def setup(self) -> None:
        """Load the model bundle, then select, configure and start the camera."""
        self._load_engine()
        self._setup_camera()

    def _disable(self, feature: str, error: PipelineError) -> None:
        self._disabled[feature] = error.reason
        logger.error("%s disabled: %s", feature.capitalize(), error.reason)
        self.feature_disabled.emit(feature, error.reason)

    def _load_engine(self) -> None:
        path = get_bundle_path(self._config.bundle)
        try:
            self._engine = self._engine_loader(path)
        except LoadFailed as e:
            self._disable(FEATURE_INFERENCE, e)
            return
        self._converter = FrameConverter(self._config.frame_format, self._engine.input_spec)

    def _setup_camera(self) -> None:
        session = CaptureSession(
            self._config.frame_format,
            session_preset=self._config.session_preset,
            source_factory=self._source_factory,
            parent=self,
        )
        self._session = session
        try:
            device = select_default(self._device_lister(self._config.max_cameras))
            session.configure(device)
        except (NoDeviceAvailable, AttachmentFailed) as e:
            self._disable(FEATURE_CAMERA, e)
            return
        coordinator = CaptureCoordinator(session, self._config.capture_timeout_s, parent=self)
        coordinator.capture_completed.connect(self._on_capture_completed)
        coordinator.capture_failed.connect(self._on_capture_failed)
        self._coordinator = coordinator
        session.start()

    def capture(self) -> CaptureRequest:
        """User action: take one photo. Raises SessionStateError / CaptureInProgress."""
        if self._coordinator is None:
            reason = self._disabled.get(FEATURE_CAMERA, "pipeline not set up")
            raise SessionStateError(f"camera unavailable: {reason}")
        return self._coordinator.request_capture()

    @Slot(object, object)
    def _on_capture_completed(self, request: CaptureRequest, frame: CapturedFrame) -> None:
        self._affinity.check("capture result handling")
        try:
            image = self._converter.upright(frame)
            result: InferenceResult | None = None
            if self._engine is not None:
                model_input = self._converter.to_model_input(frame)
                result = self._engine.run(model_input, timeout_s=self._config.inference_timeout_s)
        except (UnsupportedPixelFormat, InferenceFailed, Timeout) as e:
            self._on_capture_failed(request, e)
            return
        logger.info(
            "Capture %d: %dx%d image, %s",
            request.request_id,
            image.shape[1],
            image.shape[0],
            dict(result) if result is not None else "no inference",
        )
        self._sink.present(image, result)

    @Slot(object, object)
    def _on_capture_failed(self, request: CaptureRequest, error: PipelineError) -> None:
        logger.warning("Capture %d failed: %s", request.request_id, error.reason)
        self.capture_failed.emit(error.reason)

    def shutdown(self) -> None:
        """Stop the camera and release the model; the pipeline is discarded."""
        if self._session is not None:
            self._session.release()
        if self._engine is not None:
            self._engine.close()
