"""
spotter: object detection on still images and sampled video frames.

Quick use:
    result = await spotter.detect_image(image)

    stream = await spotter.detect_video("clip.mp4", fps=5)
    async with stream:
        async for progress in stream:
            ...
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .detection.service import DEFAULT_MODEL_NAME, DetectionService
from .errors import CancelledOperation, SpotterError
from .inference.model_cache import ModelCache
from .inference.model_loader import ModelLoader
from .models import (
    BoundingBox,
    DetectedObject,
    DetectionConfiguration,
    DetectionResult,
    FrameMetadata,
    ImageSize,
    VideoDetectionProgress,
    VideoFrame,
)
from .observation.extractor import VideoFrameExtractor
from .pipeline.video import DEFAULT_FPS, VideoDetectionService
from .runtime.stream import TaskStream

__version__ = "0.1.0"


async def detect_image(
    image: np.ndarray,
    configuration: DetectionConfiguration = DetectionConfiguration.DEFAULT,
    loader: Optional[ModelLoader] = None,
) -> DetectionResult:
    """Load the default model and detect objects in one image."""
    service = await DetectionService.create(configuration, loader, DEFAULT_MODEL_NAME)
    return await service.detect(image)


async def detect_video(
    video_path: str,
    fps: int = DEFAULT_FPS,
    configuration: DetectionConfiguration = DetectionConfiguration.DEFAULT,
    loader: Optional[ModelLoader] = None,
) -> TaskStream[VideoDetectionProgress]:
    """Load the default model and return the progress stream for one video."""
    service = await VideoDetectionService.create(configuration, loader, DEFAULT_MODEL_NAME)
    return service.detect(video_path, fps=fps)


__all__ = [
    "BoundingBox",
    "CancelledOperation",
    "DetectedObject",
    "DetectionConfiguration",
    "DetectionResult",
    "DetectionService",
    "FrameMetadata",
    "ImageSize",
    "ModelCache",
    "ModelLoader",
    "SpotterError",
    "TaskStream",
    "VideoDetectionProgress",
    "VideoDetectionService",
    "VideoFrame",
    "VideoFrameExtractor",
    "detect_image",
    "detect_video",
]
