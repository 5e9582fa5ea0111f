# Core: device registry, capture session, coordinator, converter, inference

from core.camera_list import Device, Facing, list_devices, select_default
from core.capture import CaptureSession, PhotoOutput, SessionState
from core.config import FrameFormat, PipelineConfig, load_config
from core.converter import FrameConverter
from core.coordinator import CaptureCoordinator
from core.inference import InferenceEngine
from core.models import CapturedFrame, InferenceResult, ModelInput, Orientation
from core.pipeline import CapturePipeline, ResultSink

__all__ = [
    "Device",
    "Facing",
    "list_devices",
    "select_default",
    "CaptureSession",
    "PhotoOutput",
    "SessionState",
    "FrameFormat",
    "PipelineConfig",
    "load_config",
    "FrameConverter",
    "CaptureCoordinator",
    "InferenceEngine",
    "CapturedFrame",
    "InferenceResult",
    "ModelInput",
    "Orientation",
    "CapturePipeline",
    "ResultSink",
]
