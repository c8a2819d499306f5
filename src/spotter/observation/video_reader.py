"""
VideoReader interface for random access to frames of a video file.

The frame extractor asks for frames by timestamp; readers translate that into
whatever seeking their container library supports.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import cv2
import numpy as np


class VideoReader(ABC):
    """
    Abstract base class for video readers.

    Lifecycle:
        1. Create instance with a file path
        2. Call open() to load the container and its duration
        3. Call frame_at() for each timestamp
        4. Call close() to release resources

    Can also be used as a context manager:
        with OpenCVVideoReader(path) as reader:
            image, actual_time = reader.frame_at(1.5)
    """

    def __init__(self, path: str):
        self._path = path
        self._is_open = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    @abstractmethod
    def duration(self) -> float:
        """Total media duration in seconds. Valid after open()."""

    @abstractmethod
    def open(self) -> None:
        """
        Open the container and load its duration.

        Raises:
            RuntimeError: If the file cannot be opened or has no usable duration.
        """

    @abstractmethod
    def frame_at(self, seconds: float) -> Tuple[np.ndarray, float]:
        """
        Decode the frame shown at `seconds`.

        Returns:
            The frame as a BGR numpy array, and the presentation time in
            seconds of the frame that was actually decoded. That time can
            differ from `seconds` when it falls between native frames.

        Raises:
            RuntimeError: If the frame cannot be decoded.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the container. Safe to call multiple times."""

    def __enter__(self) -> "VideoReader":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class OpenCVVideoReader(VideoReader):
    """
    cv2.VideoCapture-backed reader.

    Timestamps map to the nearest frame index at the container's native rate.
    Forward requests close to the current position are served by grabbing
    frames instead of seeking, which keeps in-order sampling cheap.
    """

    # Beyond this many frames ahead a seek is cheaper than grabbing.
    max_grab_ahead = 90

    def __init__(self, path: str):
        super().__init__(path)
        self._cap: Optional[cv2.VideoCapture] = None
        self._fps = 0.0
        self._frame_count = 0
        self._duration = 0.0
        self._position = 0

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def native_fps(self) -> float:
        return self._fps

    def open(self) -> None:
        if self._is_open:
            return

        cap = cv2.VideoCapture(self._path)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Failed to open video {self._path}")

        if hasattr(cv2, "CAP_PROP_ORIENTATION_AUTO"):
            cap.set(cv2.CAP_PROP_ORIENTATION_AUTO, 1)

        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        if not fps or fps <= 0 or math.isnan(fps) or frame_count <= 0:
            cap.release()
            raise RuntimeError(
                f"Video has no usable duration (fps={fps}, frames={frame_count}): {self._path}"
            )

        self._cap = cap
        self._fps = float(fps)
        self._frame_count = frame_count
        self._duration = frame_count / self._fps
        self._position = 0
        self._is_open = True

        logging.info(
            f"Video opened: {self._path}, duration={self._duration:.2f}s, "
            f"fps={self._fps:.2f}, frames={frame_count}"
        )

    def frame_at(self, seconds: float) -> Tuple[np.ndarray, float]:
        if not self._is_open or self._cap is None:
            raise RuntimeError("Reader must be open before reading frames")

        target = min(int(round(seconds * self._fps)), self._frame_count - 1)
        target = max(target, 0)

        ahead = target - self._position
        if ahead < 0 or ahead > self.max_grab_ahead:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, target)
        else:
            for _ in range(ahead):
                if not self._cap.grab():
                    raise RuntimeError(f"Failed to advance to frame {target}")

        ret, frame = self._cap.read()
        if not ret or frame is None:
            raise RuntimeError(f"Failed to decode frame {target} ({seconds:.3f}s)")

        self._position = target + 1
        return frame, target / self._fps

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._is_open = False
