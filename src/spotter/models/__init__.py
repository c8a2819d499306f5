"""
Typed models for detection results, video frames and configuration.
"""

from .geometry import BoundingBox, ImageSize
from .detection import DetectedObject, DetectionResult
from .frame import FrameMetadata, VideoFrame, VideoDetectionProgress
from .config import (
    ComputeUnits,
    Config,
    DetectionConfiguration,
    FrameErrorPolicy,
    ModelConfig,
    VideoConfig,
)

__all__ = [
    "BoundingBox",
    "ImageSize",
    "DetectedObject",
    "DetectionResult",
    "FrameMetadata",
    "VideoFrame",
    "VideoDetectionProgress",
    "ComputeUnits",
    "Config",
    "DetectionConfiguration",
    "FrameErrorPolicy",
    "ModelConfig",
    "VideoConfig",
]
