"""
Preview runner: reads frames on a worker thread, fulfils pending photo requests
and emits frames for the live preview.
Uses QThread + signals so the UI never blocks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from PySide6.QtCore import QObject, QThread, Signal

from core.utils import FPSCounter

if TYPE_CHECKING:
    from core.capture import PhotoOutput

logger = logging.getLogger(__name__)


class PreviewRunner(QObject):
    """Worker that grabs frames from an opened source until stopped."""

    # Emit (frame_bgr, fps)
    frame_ready = Signal(object, float)
    # Emit error message
    error_occurred = Signal(str)
    # Emit when the loop has exited
    stopped = Signal()

    def __init__(
        self,
        source: Any,
        photo_output: PhotoOutput,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._source = source
        self._photo_output = photo_output
        self._running = False
        self._thread: QThread | None = None
        self._fps_counter = FPSCounter()

    def start(self) -> None:
        """Start reading in a background thread."""
        if self._running:
            return
        self._running = True
        self._thread = QThread()
        self.moveToThread(self._thread)
        self._thread.started.connect(self._run_loop)
        self._thread.start()

    def stop(self) -> None:
        """Request stop; run loop will exit and thread will finish."""
        self._running = False

    def _run_loop(self) -> None:
        """Runs in worker thread: read frame -> offer to photo output -> emit."""
        self._fps_counter.reset()
        while self._running:
            ok, frame = self._source.read()
            if not ok or frame is None:
                if self._running:
                    self.error_occurred.emit("Camera stopped delivering frames.")
                break
            try:
                self._photo_output.offer(frame)
                self.frame_ready.emit(frame, self._fps_counter.tick())
            except Exception as e:  # noqa: BLE001
                logger.exception("Preview loop failed")
                self.error_occurred.emit(str(e))
                break
        self._running = False
        self.stopped.emit()

    def finish_thread(self) -> None:
        """Call after stop(): quit and wait for thread."""
        if self._thread is not None and self._thread.isRunning():
            self._thread.quit()
            self._thread.wait(2000)
        self._thread = None
