"""
Capture coordinator: issues one photo request at a time and delivers its
completion on the UI thread.

The photo output completes on the preview thread. The coordinator publishes
that completion into a queued signal it owns, so the handler always runs on
the thread the coordinator lives on (the UI thread).
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from PySide6.QtCore import QObject, Qt, QTimer, Signal, Slot

from core.capture import CaptureSession, SessionState
from core.errors import (
    CaptureFailed,
    CaptureInProgress,
    PipelineError,
    SessionStateError,
    Timeout,
)
from core.models import CapturedFrame, CaptureRequest
from core.utils import ThreadAffinity

logger = logging.getLogger(__name__)

_ACCEPTING = (SessionState.CONFIGURED, SessionState.RUNNING)


class CaptureCoordinator(QObject):
    """Single in-flight capture. Signals are emitted on the UI thread only."""

    # Emit (request, frame)
    capture_completed = Signal(object, object)
    # Emit (request, PipelineError)
    capture_failed = Signal(object, object)

    # Cross-thread channel: (request_id, frame, error)
    _completion = Signal(int, object, object)

    def __init__(
        self,
        session: CaptureSession,
        timeout_s: float | None = 5.0,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._session = session
        self._affinity = ThreadAffinity()
        self._next_id = 1
        self._in_flight: CaptureRequest | None = None
        self._timeout_s = timeout_s
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._on_timeout)
        self._completion.connect(self._on_completion, Qt.ConnectionType.QueuedConnection)
        session.state_changed.connect(self._on_session_state)

    @property
    def in_flight(self) -> CaptureRequest | None:
        return self._in_flight

    def request_capture(self) -> CaptureRequest:
        """Ask the photo output for one still. Raises if not possible right now."""
        self._affinity.check("request_capture")
        state = self._session.state
        if state not in _ACCEPTING or self._session.photo_output is None:
            raise SessionStateError(f"session is {state.value}; cannot capture")
        if self._in_flight is not None:
            raise CaptureInProgress()
        request = CaptureRequest(request_id=self._next_id, issued_at=time.time())
        self._next_id += 1
        rid = request.request_id
        self._session.photo_output.capture_photo(
            lambda frame, error: self._publish(rid, frame, error)
        )
        self._in_flight = request
        if self._timeout_s is not None:
            self._timer.start(int(self._timeout_s * 1000))
        logger.debug("Capture request %d issued", rid)
        return request

    def _publish(
        self,
        request_id: int,
        frame: Optional[CapturedFrame],
        error: Optional[PipelineError],
    ) -> None:
        """Any thread. Hands the completion to the UI thread."""
        self._completion.emit(request_id, frame, error)

    def _take(self, request_id: int) -> CaptureRequest | None:
        request = self._in_flight
        if request is None or request.request_id != request_id:
            return None
        self._in_flight = None
        self._timer.stop()
        return request

    @Slot(int, object, object)
    def _on_completion(
        self,
        request_id: int,
        frame: Optional[CapturedFrame],
        error: Optional[PipelineError],
    ) -> None:
        self._affinity.check("capture completion")
        request = self._take(request_id)
        if request is None:
            logger.info("Discarding completion of abandoned capture request %d", request_id)
            return
        if error is not None or frame is None:
            failure = error if isinstance(error, CaptureFailed) else CaptureFailed(
                str(error) if error is not None else "no frame delivered"
            )
            logger.warning("Capture request %d failed: %s", request_id, failure.reason)
            self.capture_failed.emit(request, failure)
            return
        logger.debug("Capture request %d completed (%dx%d)", request_id, frame.width, frame.height)
        self.capture_completed.emit(request, frame)

    def _abandon(self, failure: PipelineError) -> None:
        request = self._in_flight
        if request is None:
            return
        self._take(request.request_id)
        output = self._session.photo_output
        if output is not None:
            output.cancel()
        logger.warning("Capture request %d abandoned: %s", request.request_id, failure.reason)
        self.capture_failed.emit(request, failure)

    @Slot()
    def _on_timeout(self) -> None:
        self._abandon(Timeout("capture", self._timeout_s))

    @Slot(object)
    def _on_session_state(self, state: SessionState) -> None:
        if state in _ACCEPTING:
            return
        self._abandon(CaptureFailed(f"session {state.value} before the photo was taken"))
