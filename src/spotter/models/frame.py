"""
Video frame models.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np

from .detection import DetectionResult


@dataclass(frozen=True)
class FrameMetadata:
    """
    Metadata fixed when a frame is extracted.

    Attributes:
        index: 0-based frame index, increasing within one extraction run.
        timestamp: Presentation time of the decoded frame, in seconds. Readers
            snap sample times to native frames, so this can differ slightly
            from the time that was sampled.
        duration: Total media duration in seconds.
    """
    index: int
    timestamp: float
    duration: float

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "timestamp": self.timestamp, "duration": self.duration}


@dataclass(frozen=True)
class VideoFrame:
    """
    An extracted image paired with its metadata.

    Attributes:
        image: The frame as a numpy array (BGR format).
        metadata: Index and timing information.
    """
    image: np.ndarray
    metadata: FrameMetadata

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        h, w = self.image.shape[:2]
        return (w, h)


@dataclass(frozen=True)
class VideoDetectionProgress:
    """
    One step of a streaming video detection run.

    Attributes:
        current_frame: 0-based index of the processed frame.
        total_frames: Estimated number of frames the run will produce.
        result: Detection result for this frame.
        frame_metadata: Metadata of the frame the result belongs to.
    """
    current_frame: int
    total_frames: int
    result: DetectionResult
    frame_metadata: FrameMetadata

    @property
    def percentage(self) -> float:
        """Fraction of the run completed, in [0, 1] when the estimate holds."""
        if self.total_frames <= 0:
            return 0.0
        return (self.current_frame + 1) / self.total_frames
