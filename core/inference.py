"""
Inference engine: loads a model bundle once and runs single forward passes.

The TFLite interpreter is not reentrant, so every run goes through one
single-worker executor; that also gives run() its bounded wait.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import Any

import numpy as np

from core.errors import InferenceFailed, LoadFailed, Timeout
from core.model_loader import load_manifest
from core.models import BundleManifest, ImageInputSpec, InferenceResult, ModelInput

logger = logging.getLogger(__name__)


def build_interpreter(model_path: Path) -> Any:
    import tensorflow as tf

    interpreter = tf.lite.Interpreter(model_path=str(model_path))
    interpreter.allocate_tensors()
    return interpreter


class InferenceEngine:
    """Immutable after construction; safe to share across captures."""

    def __init__(self, manifest: BundleManifest, interpreter: Any) -> None:
        self._manifest = manifest
        self._interpreter = interpreter
        self._input = self._validate_input(interpreter.get_input_details())
        self._outputs = self._match_outputs(interpreter.get_output_details())
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")

    @classmethod
    def load(cls, bundle_path: str | Path) -> InferenceEngine:
        """Parse the bundle and build the interpreter. Raises LoadFailed."""
        path = Path(bundle_path)
        manifest = load_manifest(path)
        try:
            interpreter = build_interpreter(path / manifest.model_file)
        except Exception as e:  # noqa: BLE001
            raise LoadFailed(f"cannot load {manifest.model_file}: {e}") from e
        engine = cls(manifest, interpreter)
        logger.info(
            "Loaded model %s %s (input %dx%d %s, outputs %s)",
            manifest.name,
            manifest.version,
            manifest.input.width,
            manifest.input.height,
            manifest.input.pixel_format,
            ", ".join(manifest.output_names),
        )
        return engine

    @property
    def manifest(self) -> BundleManifest:
        return self._manifest

    @property
    def input_spec(self) -> ImageInputSpec:
        return self._manifest.input

    @property
    def output_names(self) -> tuple[str, ...]:
        return self._manifest.output_names

    def _validate_input(self, details: list[dict[str, Any]]) -> dict[str, Any]:
        if len(details) != 1:
            raise LoadFailed(f"model has {len(details)} inputs, bundle declares one")
        spec = self._manifest.input
        shape = [int(v) for v in details[0]["shape"]]
        accepted = [[1, spec.height, spec.width, spec.channels]]
        if spec.channels == 1:
            accepted.append([1, spec.height, spec.width])
        if shape not in accepted:
            raise LoadFailed(
                f"model input shape {shape} does not match bundle "
                f"{spec.height}x{spec.width}x{spec.channels}"
            )
        return details[0]

    def _match_outputs(self, details: list[dict[str, Any]]) -> list[tuple[str, dict[str, Any]]]:
        """Pair declared output names with tensors: by tensor name, else by order."""
        names = self._manifest.output_names
        if len(details) != len(names):
            raise LoadFailed(
                f"model has {len(details)} outputs, bundle declares {len(names)}"
            )
        for d in details:
            if int(np.prod(d["shape"])) != 1:
                raise LoadFailed(f"output tensor {d['name']!r} is not a scalar")
        by_name = {d["name"]: d for d in details}
        if all(n in by_name for n in names):
            return [(n, by_name[n]) for n in names]
        return list(zip(names, details))

    def _prepare(self, model_input: ModelInput) -> np.ndarray:
        spec = self._manifest.input
        if model_input.pixel_format != spec.pixel_format:
            raise InferenceFailed(
                f"input is {model_input.pixel_format}, model expects {spec.pixel_format}"
            )
        arr = model_input.array()
        if arr.ndim == 2:
            arr = arr[..., np.newaxis]
        if arr.shape != (spec.height, spec.width, spec.channels):
            raise InferenceFailed(
                f"input shape {arr.shape} != {(spec.height, spec.width, spec.channels)}"
            )
        x = arr.astype(np.float32)
        if spec.normalize == "[0,1]":
            x = x / 255.0
        elif spec.normalize == "[-1,1]":
            x = x / 127.5 - 1.0
        elif spec.scale is not None:
            bias = np.asarray(spec.bias or (0.0, 0.0, 0.0), dtype=np.float32)
            if spec.pixel_format == "BGR":
                bias = bias[::-1]
            x = x * spec.scale + bias[: spec.channels]

        dtype = np.dtype(self._input["dtype"])
        if dtype.kind != "f":
            scale, zero_point = self._input.get("quantization", (0.0, 0))
            if scale:
                x = np.round(x / scale + zero_point)
            info = np.iinfo(dtype)
            x = np.clip(x, info.min, info.max)
        return x.astype(dtype).reshape(tuple(int(v) for v in self._input["shape"]))

    def _invoke(self, tensor: np.ndarray) -> dict[str, float]:
        self._interpreter.set_tensor(self._input["index"], tensor)
        self._interpreter.invoke()
        values: dict[str, float] = {}
        for name, detail in self._outputs:
            raw = np.asarray(self._interpreter.get_tensor(detail["index"])).reshape(-1)[0]
            value = float(raw)
            if np.dtype(detail["dtype"]).kind != "f":
                scale, zero_point = detail.get("quantization", (0.0, 0))
                if scale:
                    value = (value - zero_point) * scale
            values[name] = value
        return values

    def run(self, model_input: ModelInput, timeout_s: float | None = None) -> InferenceResult:
        """One forward pass. Raises InferenceFailed or Timeout."""
        tensor = self._prepare(model_input)
        future = self._executor.submit(self._invoke, tensor)
        try:
            values = future.result(timeout=timeout_s)
        except FutureTimeout as e:
            raise Timeout("inference", timeout_s) from e
        except Exception as e:  # noqa: BLE001
            raise InferenceFailed(str(e)) from e
        return InferenceResult(values)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
