"""
Streaming video detection pipeline.
"""

from .video import DEFAULT_FPS, VideoDetectionService

__all__ = ["DEFAULT_FPS", "VideoDetectionService"]
