"""
Observation layer: reading frames out of video files.
"""

from .video_reader import OpenCVVideoReader, VideoReader
from .extractor import DEFAULT_INTERVAL, SamplingSchedule, VideoFrameExtractor, limit_resolution

__all__ = [
    "OpenCVVideoReader",
    "VideoReader",
    "DEFAULT_INTERVAL",
    "SamplingSchedule",
    "VideoFrameExtractor",
    "limit_resolution",
]
