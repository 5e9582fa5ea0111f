"""
Tests for orientation correction, pixel layout conversion and model input sizing.
"""
from dataclasses import replace

import numpy as np
import pytest

from core.config import FrameFormat
from core.converter import FrameConverter
from core.errors import UnsupportedPixelFormat
from core.models import ImageInputSpec, Orientation
from fakes import encode_frame, make_frame

RGB_32x24 = ImageInputSpec(name="image", width=32, height=24, pixel_format="RGB")


@pytest.fixture
def converter():
    return FrameConverter(FrameFormat(pixel_format="BGR"), RGB_32x24)


class TestUpright:

    def test_upright_frame_unchanged(self, converter):
        plane = make_frame()
        out = converter.upright(encode_frame(plane))
        assert np.array_equal(out, plane)

    @pytest.mark.parametrize(
        "orientation,k",
        [(Orientation.RIGHT, -1), (Orientation.DOWN, 2), (Orientation.LEFT, 1)],
    )
    def test_rotation_to_upright(self, converter, orientation, k):
        plane = make_frame(64, 48)
        out = converter.upright(encode_frame(plane, orientation=orientation))
        assert np.array_equal(out, np.rot90(plane, k=k))

    def test_quarter_turn_swaps_dimensions(self, converter):
        out = converter.upright(encode_frame(make_frame(64, 48), orientation=Orientation.RIGHT))
        assert out.shape == (64, 48, 3)


class TestToModelInput:

    def test_model_dimensions_and_channel_order(self, converter):
        plane = np.full((48, 64, 3), (10, 20, 30), dtype=np.uint8)
        model_input = converter.to_model_input(encode_frame(plane))
        arr = model_input.array()
        assert arr.shape == (24, 32, 3)
        assert model_input.pixel_format == "RGB"
        assert (arr == np.array([30, 20, 10], dtype=np.uint8)).all()

    def test_orientation_applied_before_resize(self):
        spec = ImageInputSpec(name="image", width=48, height=64, pixel_format="BGR")
        converter = FrameConverter(FrameFormat(pixel_format="BGR"), spec)
        plane = make_frame(64, 48)
        arr = converter.to_model_input(encode_frame(plane, orientation=Orientation.RIGHT)).array()
        assert np.array_equal(arr, np.rot90(plane, k=-1))

    def test_deterministic(self, converter):
        frame = encode_frame(make_frame(), codec="jpeg")
        first = converter.to_model_input(frame).array().tobytes()
        for _ in range(5):
            assert converter.to_model_input(frame).array().tobytes() == first

    def test_gray_capture_to_rgb_model(self):
        converter = FrameConverter(FrameFormat(pixel_format="GRAY"), RGB_32x24)
        gray = np.full((48, 64), 77, dtype=np.uint8)
        arr = converter.to_model_input(encode_frame(gray, pixel_format="GRAY")).array()
        assert arr.shape == (24, 32, 3)
        assert (arr == 77).all()

    def test_requires_input_spec(self):
        converter = FrameConverter(FrameFormat())
        with pytest.raises(RuntimeError):
            converter.to_model_input(encode_frame(make_frame()))


class TestUnsupportedPixelFormat:

    def test_frame_format_differs_from_contract(self, converter):
        frame = replace(encode_frame(make_frame()), pixel_format="GRAY")
        with pytest.raises(UnsupportedPixelFormat):
            converter.to_model_input(frame)

    def test_decoded_plane_does_not_match_declared_format(self, converter):
        gray = np.zeros((48, 64), dtype=np.uint8)
        frame = encode_frame(gray, pixel_format="BGR")
        with pytest.raises(UnsupportedPixelFormat):
            converter.upright(frame)

    def test_undecodable_data(self, converter):
        frame = replace(encode_frame(make_frame()), data=b"not an image")
        with pytest.raises(UnsupportedPixelFormat):
            converter.upright(frame)

    def test_empty_data(self, converter):
        frame = replace(encode_frame(make_frame()), data=b"")
        with pytest.raises(UnsupportedPixelFormat):
            converter.upright(frame)

    def test_model_format_without_mapping(self):
        spec = ImageInputSpec(name="image", width=8, height=8, pixel_format="YUV")
        converter = FrameConverter(FrameFormat(), spec)
        with pytest.raises(UnsupportedPixelFormat):
            converter.to_model_input(encode_frame(make_frame()))

    def test_mismatch_is_logged(self, converter, caplog):
        frame = replace(encode_frame(make_frame()), pixel_format="GRAY")
        with pytest.raises(UnsupportedPixelFormat):
            converter.upright(frame)
        assert any(r.levelname == "ERROR" for r in caplog.records)
