"""
Camera window: live preview, capture button, logs. Shows a result sheet for
each completed capture.
"""

from __future__ import annotations

import logging

import numpy as np
from PySide6.QtCore import Qt, Slot
from PySide6.QtWidgets import QHBoxLayout, QLabel, QPushButton, QVBoxLayout, QWidget

from core.models import InferenceResult
from core.pipeline import FEATURE_CAMERA, CapturePipeline
from ui.panels import LogsPanel, QtLogHandler, ResultSheet, to_pixmap


class CameraWindow(QWidget):
    """Main window. Acts as the pipeline's result sink."""

    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("Photo Inference")
        self._pipeline: CapturePipeline | None = None
        self._sheet = ResultSheet(self)

        layout = QHBoxLayout(self)
        left = QVBoxLayout()
        self._video_label = QLabel()
        self._video_label.setMinimumSize(480, 640)
        self._video_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._video_label.setStyleSheet("background-color: #1e1e1e; color: #888;")
        self._video_label.setText("No video")
        left.addWidget(self._video_label, stretch=1)
        self._fps_label = QLabel("FPS: —")
        left.addWidget(self._fps_label)
        self._capture_btn = QPushButton("Capture")
        self._capture_btn.setEnabled(False)
        self._capture_btn.clicked.connect(self._on_capture)
        left.addWidget(self._capture_btn)
        layout.addLayout(left, stretch=1)

        self._logs_panel = LogsPanel()
        self._logs_panel.setMinimumWidth(360)
        layout.addWidget(self._logs_panel)

        self._log_handler = QtLogHandler()
        self._log_handler.bridge.record_emitted.connect(self._logs_panel.append)
        logging.getLogger().addHandler(self._log_handler)
        self.resize(1000, 700)

    def attach(self, pipeline: CapturePipeline) -> None:
        """Bind to a pipeline before its setup() runs."""
        self._pipeline = pipeline
        pipeline.feature_disabled.connect(self._on_feature_disabled)
        pipeline.capture_failed.connect(self._on_capture_failed)

    def bind_session(self) -> None:
        """Call after pipeline.setup(): hook up preview and enable capture."""
        if self._pipeline is None:
            return
        session = self._pipeline.session
        if session is not None:
            session.preview_frame.connect(self._on_preview_frame)
        self._capture_btn.setEnabled(self._pipeline.camera_available)

    # ResultSink
    def present(self, image: np.ndarray | None, result: InferenceResult | None) -> None:
        self._capture_btn.setEnabled(True)
        self._sheet.show_result(image, result)
        self._sheet.show()
        self._sheet.raise_()

    @Slot()
    def _on_capture(self) -> None:
        if self._pipeline is None:
            return
        try:
            self._pipeline.capture()
        except Exception as e:  # noqa: BLE001
            self._logs_panel.append(f"Capture not possible: {e}")
            return
        self._capture_btn.setEnabled(False)

    @Slot(object, float)
    def _on_preview_frame(self, frame: np.ndarray, fps: float) -> None:
        self._video_label.setPixmap(to_pixmap(frame).scaled(
            self._video_label.size(),
            Qt.AspectRatioMode.KeepAspectRatio,
            Qt.TransformationMode.SmoothTransformation,
        ))
        self._fps_label.setText(f"FPS: {fps:.1f}")

    @Slot(str, str)
    def _on_feature_disabled(self, feature: str, reason: str) -> None:
        if feature == FEATURE_CAMERA:
            self._capture_btn.setEnabled(False)
            self._video_label.setText(f"Camera unavailable\n{reason}")

    @Slot(str)
    def _on_capture_failed(self, reason: str) -> None:
        self._capture_btn.setEnabled(True)
        self._logs_panel.append(f"Nothing captured, try again ({reason}).")

    def closeEvent(self, event) -> None:
        logging.getLogger().removeHandler(self._log_handler)
        if self._pipeline is not None:
            self._pipeline.shutdown()
        event.accept()
