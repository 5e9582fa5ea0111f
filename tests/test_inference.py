"""
Tests for model bundle parsing and the inference engine.
"""
import json
import threading

import mediapipe as mp
import numpy as np
import pytest

import core.inference
from core.errors import InferenceFailed, LoadFailed, Timeout
from core.inference import InferenceEngine
from core.model_loader import MODELS_DIR, get_bundle_path, load_manifest
from core.models import InferenceResult, ModelInput
from fakes import OUTPUT_NAMES, FakeInterpreter, write_bundle


def rgb_input(size=32, value=255):
    data = np.full((size, size, 3), value, dtype=np.uint8)
    return ModelInput(image=mp.Image(image_format=mp.ImageFormat.SRGB, data=data), pixel_format="RGB")


def use_interpreter(monkeypatch, fake):
    monkeypatch.setattr(core.inference, "build_interpreter", lambda path: fake)
    return fake


class TestManifest:

    def test_parses_bundle(self, tmp_path):
        manifest = load_manifest(write_bundle(tmp_path))
        assert manifest.name == "Test Model"
        assert manifest.model_file == "model.tflite"
        assert manifest.output_names == OUTPUT_NAMES
        assert (manifest.input.width, manifest.input.height) == (32, 32)
        assert manifest.input.pixel_format == "RGB"
        assert manifest.input.normalize == "[0,1]"

    def test_scale_and_bias_normalization(self, tmp_path):
        bundle = write_bundle(tmp_path, normalize={"scale": 0.5, "bias": {"r": 1, "g": 2, "b": 3}})
        spec = load_manifest(bundle).input
        assert spec.normalize is None
        assert spec.scale == 0.5
        assert spec.bias == (1.0, 2.0, 3.0)

    def test_missing_bundle(self, tmp_path):
        with pytest.raises(LoadFailed):
            load_manifest(tmp_path / "nope.tiobundle")

    def test_missing_manifest(self, tmp_path):
        bundle = write_bundle(tmp_path)
        (bundle / "model.json").unlink()
        with pytest.raises(LoadFailed):
            load_manifest(bundle)

    def test_malformed_json(self, tmp_path):
        bundle = write_bundle(tmp_path)
        (bundle / "model.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(LoadFailed):
            load_manifest(bundle)

    def test_missing_model_file(self, tmp_path):
        bundle = write_bundle(tmp_path)
        (bundle / "model.tflite").unlink()
        with pytest.raises(LoadFailed):
            load_manifest(bundle)

    def test_non_scalar_output(self, tmp_path):
        bundle = write_bundle(tmp_path)
        data = json.loads((bundle / "model.json").read_text())
        data["outputs"][0]["shape"] = [10]
        (bundle / "model.json").write_text(json.dumps(data))
        with pytest.raises(LoadFailed):
            load_manifest(bundle)

    def test_bad_input_shape_value(self, tmp_path):
        bundle = write_bundle(tmp_path)
        data = json.loads((bundle / "model.json").read_text())
        data["inputs"][0]["shape"] = ["wide", 32, 3]
        (bundle / "model.json").write_text(json.dumps(data))
        with pytest.raises(LoadFailed):
            load_manifest(bundle)

    def test_duplicate_output_names(self, tmp_path):
        bundle = write_bundle(tmp_path, outputs=("Age", "Age"))
        with pytest.raises(LoadFailed):
            load_manifest(bundle)

    def test_bundle_path_resolution(self, tmp_path):
        assert get_bundle_path("face.tiobundle") == MODELS_DIR / "face.tiobundle"
        assert get_bundle_path(tmp_path) == tmp_path

    def test_shipped_manifest_declares_four_outputs(self):
        data = json.loads((MODELS_DIR / "phenomenal-face.tiobundle" / "model.json").read_text())
        assert [o["name"] for o in data["outputs"]] == ["Weight", "Height", "Age", "Sex"]


class TestLoad:

    def test_load_validates_and_builds_once(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path))
        assert engine.output_names == OUTPUT_NAMES
        assert engine.input_spec.width == 32
        assert len(interpreter.built) == 1
        assert interpreter.built[0].name == "model.tflite"

    def test_output_count_mismatch(self, tmp_path, monkeypatch):
        use_interpreter(monkeypatch, FakeInterpreter(output_names=("a", "b", "c"), output_values=(1, 2, 3)))
        with pytest.raises(LoadFailed):
            InferenceEngine.load(write_bundle(tmp_path))

    def test_input_shape_mismatch(self, tmp_path, monkeypatch):
        use_interpreter(monkeypatch, FakeInterpreter(input_shape=(1, 64, 64, 3)))
        with pytest.raises(LoadFailed):
            InferenceEngine.load(write_bundle(tmp_path))

    def test_interpreter_error_becomes_load_failed(self, tmp_path, monkeypatch):
        def broken(path):
            raise ValueError("Could not open model.tflite")

        monkeypatch.setattr(core.inference, "build_interpreter", broken)
        with pytest.raises(LoadFailed):
            InferenceEngine.load(write_bundle(tmp_path))

    def test_missing_bundle_never_builds_interpreter(self, tmp_path, interpreter):
        with pytest.raises(LoadFailed):
            InferenceEngine.load(tmp_path / "missing.tiobundle")
        assert interpreter.built == []


class TestRun:

    def test_returns_exactly_declared_outputs(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path))
        result = engine.run(rgb_input())
        assert isinstance(result, InferenceResult)
        assert set(result) == set(OUTPUT_NAMES)
        assert len(result) == 4
        assert result["Weight"] == pytest.approx(70.2)
        assert result["Height"] == pytest.approx(175.0)
        assert result["Age"] == pytest.approx(30.0)
        assert result["Sex"] == pytest.approx(1.0)
        assert all(isinstance(v, float) for v in result.values())

    def test_input_normalized_and_batched(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path))
        engine.run(rgb_input(value=255))
        assert interpreter.last_input.shape == (1, 32, 32, 3)
        assert interpreter.last_input.dtype == np.float32
        assert np.allclose(interpreter.last_input, 1.0)

    def test_minus_one_to_one_normalization(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path, normalize={"standard": "[-1,1]"}))
        engine.run(rgb_input(value=0))
        assert np.allclose(interpreter.last_input, -1.0)

    def test_unknown_key_is_key_error(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path))
        result = engine.run(rgb_input())
        with pytest.raises(KeyError):
            result["BMI"]

    def test_quantized_outputs_dequantized(self, tmp_path, monkeypatch):
        use_interpreter(
            monkeypatch,
            FakeInterpreter(
                output_values=(150, 100, 30, 12),
                output_dtype=np.uint8,
                output_quantization=(0.5, 10),
            ),
        )
        engine = InferenceEngine.load(write_bundle(tmp_path))
        result = engine.run(rgb_input())
        assert result["Weight"] == pytest.approx(70.0)
        assert result["Sex"] == pytest.approx(1.0)

    def test_wrong_input_shape_fails(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path))
        with pytest.raises(InferenceFailed):
            engine.run(rgb_input(size=16))

    def test_failure_is_recoverable(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path))
        interpreter.error = "delegate crashed"
        with pytest.raises(InferenceFailed):
            engine.run(rgb_input())
        interpreter.error = None
        assert len(engine.run(rgb_input())) == 4

    def test_timeout(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path))
        interpreter.delay_s = 0.5
        with pytest.raises(Timeout) as info:
            engine.run(rgb_input(), timeout_s=0.05)
        assert info.value.stage == "inference"
        engine.close()

    def test_concurrent_runs_are_serialized(self, tmp_path, interpreter):
        engine = InferenceEngine.load(write_bundle(tmp_path))
        interpreter.delay_s = 0.01
        results = []
        threads = [threading.Thread(target=lambda: results.append(engine.run(rgb_input()))) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(results) == 6
        assert interpreter.max_concurrent == 1
        assert interpreter.invocations == 6
