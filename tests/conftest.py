"""
Pytest configuration and shared fixtures.
"""

import os
import time

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtCore import QCoreApplication

import core.inference
from fakes import FakeInterpreter


@pytest.fixture(scope="session")
def qapp():
    """One Qt application for queued signals and timers."""
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def wait_until(qapp):
    """Spin the Qt event loop until predicate() is true or the timeout passes."""

    def _wait(predicate, timeout: float = 3.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            qapp.processEvents()
            if predicate():
                return True
            time.sleep(0.005)
        qapp.processEvents()
        return predicate()

    return _wait


@pytest.fixture
def interpreter(monkeypatch):
    """Replace the TFLite interpreter with a FakeInterpreter; returns it."""
    fake = FakeInterpreter()
    built = []

    def _build(model_path):
        built.append(model_path)
        return fake

    monkeypatch.setattr(core.inference, "build_interpreter", _build)
    fake.built = built
    return fake
