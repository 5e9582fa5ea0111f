"""
Resolves model bundles shipped with the app and parses their model.json.

A bundle is a directory (conventionally `<name>.tiobundle`) holding:
  model.json   -- name, version, model file, one image input, scalar outputs
  <model file> -- the TFLite flatbuffer named by model.json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from core.errors import LoadFailed
from core.models import BundleManifest, ImageInputSpec, OutputSpec

# Directory for bundled models (next to project root)
MODELS_DIR = Path(__file__).resolve().parent.parent / "models"

MANIFEST_NAME = "model.json"
_STANDARD_RANGES = ("[0,1]", "[-1,1]")


def get_bundle_path(name: str | Path) -> Path:
    """Return the bundle path: `name` as given if it exists, else under models/."""
    path = Path(name).expanduser()
    if path.exists() or path.is_absolute():
        return path
    return MODELS_DIR / path


def _parse_normalize(raw: Any) -> tuple[str | None, float | None, tuple[float, ...] | None]:
    if raw is None:
        return None, None, None
    if not isinstance(raw, dict):
        raise LoadFailed(f"input normalize must be an object, got {raw!r}")
    if "standard" in raw:
        standard = str(raw["standard"]).replace(" ", "")
        if standard not in _STANDARD_RANGES:
            raise LoadFailed(f"unknown normalize standard {raw['standard']!r}")
        return standard, None, None
    if "scale" in raw:
        bias = raw.get("bias") or {}
        if isinstance(bias, dict):
            bias_values = tuple(float(bias.get(c, 0.0)) for c in ("r", "g", "b"))
        else:
            bias_values = (float(bias),) * 3
        return None, float(raw["scale"]), bias_values
    raise LoadFailed(f"normalize needs 'standard' or 'scale': {raw!r}")


def _parse_input(raw: dict[str, Any]) -> ImageInputSpec:
    if raw.get("type", "image") != "image":
        raise LoadFailed(f"input {raw.get('name')!r} is not an image input")
    shape = raw.get("shape")
    if not isinstance(shape, list) or len(shape) != 3:
        raise LoadFailed(f"image input shape must be [height, width, channels], got {shape!r}")
    height, width, channels = (int(v) for v in shape)
    pixel_format = str(raw.get("format", "RGB")).upper()
    if pixel_format not in ("RGB", "BGR", "GRAY"):
        raise LoadFailed(f"unsupported input format {pixel_format!r}")
    expected = 1 if pixel_format == "GRAY" else 3
    if channels != expected:
        raise LoadFailed(f"{pixel_format} input declares {channels} channels")
    normalize, scale, bias = _parse_normalize(raw.get("normalize"))
    return ImageInputSpec(
        name=str(raw.get("name", "image")),
        width=width,
        height=height,
        pixel_format=pixel_format,
        normalize=normalize,
        scale=scale,
        bias=bias,
    )


def load_manifest(bundle_path: str | Path) -> BundleManifest:
    """Parse and validate model.json. Raises LoadFailed."""
    path = Path(bundle_path)
    if not path.is_dir():
        raise LoadFailed(f"model bundle not found: {path}")
    manifest_path = path / MANIFEST_NAME
    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise LoadFailed(f"{MANIFEST_NAME} missing in {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise LoadFailed(f"cannot read {manifest_path}: {e}") from e
    if not isinstance(data, dict):
        raise LoadFailed(f"{manifest_path} must contain an object")
    try:
        return _build_manifest(path, data)
    except (AttributeError, TypeError, ValueError) as e:
        raise LoadFailed(f"malformed {manifest_path}: {e}") from e


def _build_manifest(path: Path, data: dict[str, Any]) -> BundleManifest:
    model = data.get("model") or {}
    model_file = model.get("file")
    if not model_file:
        raise LoadFailed("model.json has no model.file")
    if not (path / model_file).is_file():
        raise LoadFailed(f"model file {model_file!r} missing in {path}")

    inputs = data.get("inputs") or []
    if len(inputs) != 1:
        raise LoadFailed(f"expected exactly one input, found {len(inputs)}")
    outputs = data.get("outputs") or []
    if not outputs:
        raise LoadFailed("model.json declares no outputs")
    names = [str(o.get("name", "")) for o in outputs]
    if any(not n for n in names) or len(set(names)) != len(names):
        raise LoadFailed(f"output names must be non-empty and unique: {names}")
    for o in outputs:
        shape = o.get("shape", [1])
        if [int(v) for v in shape] != [1]:
            raise LoadFailed(f"output {o.get('name')!r} is not a scalar (shape {shape})")

    return BundleManifest(
        name=str(data.get("name", path.stem)),
        version=str(data.get("version", "")),
        model_file=str(model_file),
        quantized=bool(model.get("quantized", False)),
        input=_parse_input(inputs[0]),
        outputs=tuple(OutputSpec(n) for n in names),
    )
