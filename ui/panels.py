"""
Logs panel, Qt logging bridge and the result sheet shown after a capture.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

import numpy as np
from PySide6.QtCore import QObject, Qt, Signal
from PySide6.QtGui import QImage, QPixmap
from PySide6.QtWidgets import (
    QDialog,
    QLabel,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)


def to_pixmap(frame_bgr: np.ndarray) -> QPixmap:
    """BGR or grayscale numpy image -> QPixmap (copied)."""
    h, w = frame_bgr.shape[:2]
    if frame_bgr.ndim == 2:
        qimg = QImage(frame_bgr.data, w, h, w, QImage.Format.Format_Grayscale8)
    else:
        qimg = QImage(frame_bgr.data, w, h, 3 * w, QImage.Format.Format_BGR888)
    return QPixmap.fromImage(qimg.copy())


class LogsPanel(QWidget):
    """Shows application log messages and errors."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        self._text = QPlainTextEdit(self)
        self._text.setReadOnly(True)
        self._text.setMaximumBlockCount(500)
        layout.addWidget(self._text)

    def append(self, message: str) -> None:
        self._text.appendPlainText(message)
        # Auto-scroll to bottom
        scrollbar = self._text.verticalScrollBar()
        scrollbar.setValue(scrollbar.maximum())

    def clear(self) -> None:
        self._text.clear()


class _LogBridge(QObject):
    record_emitted = Signal(str)


class QtLogHandler(logging.Handler):
    """Forwards log records through a signal so any thread can log to the UI."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.bridge = _LogBridge()
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.bridge.record_emitted.emit(self.format(record))
        except RuntimeError:
            # Qt side already deleted during shutdown
            pass


class ResultSheet(QDialog):
    """Captured image plus one line per output value."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Result")
        layout = QVBoxLayout(self)
        self._image_label = QLabel("No image")
        self._image_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._image_label.setMinimumWidth(250)
        layout.addWidget(self._image_label)
        self._values_label = QLabel("No inference")
        self._values_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.addWidget(self._values_label)
        close_btn = QPushButton("Close")
        close_btn.clicked.connect(self.accept)
        layout.addWidget(close_btn)

    def show_result(self, image: np.ndarray | None, result: Mapping[str, float] | None) -> None:
        if image is None:
            self._image_label.setPixmap(QPixmap())
            self._image_label.setText("No image")
        else:
            pixmap = to_pixmap(image)
            self._image_label.setPixmap(
                pixmap.scaledToWidth(250, Qt.TransformationMode.SmoothTransformation)
            )
        if result is None:
            self._values_label.setText("No inference")
        else:
            self._values_label.setText(
                "\n".join(f"{name} {value:g}" for name, value in result.items())
            )
