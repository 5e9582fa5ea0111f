"""
Tests for device enumeration and default selection.
"""
import itertools

import cv2
import pytest

import core.camera_list as camera_list
from core.camera_list import Device, DeviceCapabilities, Facing, facing_from_name, select_default
from core.errors import NoDeviceAvailable
from fakes import FakeVideoCapture

ALL_DEVICES = [
    Device(0, "Rear Camera", Facing.BACK),
    Device(1, "FaceTime HD Camera", Facing.FRONT),
    Device(2, "USB Camera", Facing.UNSPECIFIED),
    Device(3, "Camera 3", Facing.UNSPECIFIED),
]


class TestSelectDefault:

    def test_prefers_front_camera(self):
        assert select_default(set(ALL_DEVICES)).identifier == 1

    def test_falls_back_to_lowest_index(self):
        devices = {ALL_DEVICES[3], ALL_DEVICES[2], ALL_DEVICES[0]}
        assert select_default(devices).identifier == 0

    def test_only_front(self):
        assert select_default({ALL_DEVICES[1]}) == ALL_DEVICES[1]

    def test_empty_set_raises(self):
        with pytest.raises(NoDeviceAvailable):
            select_default(set())

    def test_never_fails_on_non_empty_sets(self):
        for n in range(1, len(ALL_DEVICES) + 1):
            for subset in itertools.combinations(ALL_DEVICES, n):
                chosen = select_default(set(subset))
                assert chosen in subset
                assert chosen.facing in (Facing.FRONT, Facing.BACK, Facing.UNSPECIFIED)

    def test_accepts_any_iterable(self):
        assert select_default(iter(ALL_DEVICES)).identifier == 1


@pytest.mark.parametrize(
    "name,facing",
    [
        ("FaceTime HD Camera", Facing.FRONT),
        ("Integrated Webcam", Facing.FRONT),
        ("Front Camera", Facing.FRONT),
        ("Back Camera", Facing.BACK),
        ("Rear Camera", Facing.BACK),
        ("Logitech C920", Facing.UNSPECIFIED),
        ("Camera 0", Facing.UNSPECIFIED),
    ],
)
def test_facing_from_name(name, facing):
    assert facing_from_name(name) is facing


class TestListDevices:

    def test_probes_indices_and_names_devices(self, monkeypatch):
        opened = []

        def fake_open(index):
            cap = FakeVideoCapture(opened=index in (0, 2))
            cap.props = {
                cv2.CAP_PROP_FRAME_WIDTH: 640.0,
                cv2.CAP_PROP_FRAME_HEIGHT: 480.0,
                cv2.CAP_PROP_FPS: 30.0,
            }
            opened.append(cap)
            return cap

        monkeypatch.setattr(camera_list, "open_camera", fake_open)
        monkeypatch.setattr(camera_list, "_directshow_names", lambda: {0: "Integrated Camera"})

        devices = camera_list.list_devices(max_cameras=4)

        assert devices == {
            Device(0, "Integrated Camera", Facing.FRONT, DeviceCapabilities(640, 480, 30.0)),
            Device(2, "Camera 2", Facing.UNSPECIFIED, DeviceCapabilities(640, 480, 30.0)),
        }
        assert len(opened) == 4
        assert all(cap.released for cap in opened)

    def test_no_cameras(self, monkeypatch):
        monkeypatch.setattr(camera_list, "open_camera", lambda i: FakeVideoCapture(opened=False))
        monkeypatch.setattr(camera_list, "_directshow_names", lambda: {})
        assert camera_list.list_devices(max_cameras=3) == set()
