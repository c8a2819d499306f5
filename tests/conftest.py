"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import threading
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from spotter.inference.backend import ClassLabel, Observation  # noqa: E402
from spotter.models.config import ComputeUnits  # noqa: E402
from spotter.models.geometry import BoundingBox  # noqa: E402
from spotter.observation.video_reader import VideoReader  # noqa: E402


def make_observation(
    x: float, y: float, w: float, h: float, confidence: float, label: Optional[str] = "car"
) -> Observation:
    """Observation with a normalized, bottom-left origin box."""
    labels = [ClassLabel(label, confidence)] if label is not None else []
    return Observation(BoundingBox(x, y, w, h), confidence, labels)


class FakeBackend:
    """Backend returning a fixed list of observations, recording each call."""

    def __init__(self, observations: Sequence[Observation] = (), error: Optional[Exception] = None):
        self.compute_units = ComputeUnits.CPU_ONLY
        self.observations = list(observations)
        self.error = error
        self.calls: List[np.ndarray] = []
        self._lock = threading.Lock()

    def predict(self, pixel_buffer: np.ndarray) -> List[Observation]:
        with self._lock:
            self.calls.append(pixel_buffer)
        if self.error is not None:
            raise self.error
        return list(self.observations)


class FakeVideoReader(VideoReader):
    """
    In-memory reader.

    Each frame is a solid image whose pixel value encodes the decoded
    timestamp, so tests can check which frame was delivered. With
    `native_fps` set, requested times snap to the nearest native frame.
    """

    def __init__(
        self,
        path: str,
        duration: float = 2.0,
        size=(64, 48),
        fail_at: Sequence[float] = (),
        open_error: Optional[Exception] = None,
        native_fps: Optional[float] = None,
    ):
        super().__init__(path)
        self._native_fps = native_fps
        self._duration = duration
        self._size = size
        self._fail_at = [round(t, 6) for t in fail_at]
        self._open_error = open_error
        self.requested: List[float] = []
        self.closed = False

    @property
    def duration(self) -> float:
        return self._duration

    def open(self) -> None:
        if self._open_error is not None:
            raise self._open_error
        self._is_open = True

    def frame_at(self, seconds: float) -> Tuple[np.ndarray, float]:
        self.requested.append(seconds)
        if round(seconds, 6) in self._fail_at:
            raise RuntimeError(f"corrupt frame at {seconds:.3f}")
        w, h = self._size
        actual = seconds
        if self._native_fps:
            actual = round(seconds * self._native_fps) / self._native_fps
        value = int(round(actual * 10, 6)) % 256
        return np.full((h, w, 3), value, dtype=np.uint8), actual

    def close(self) -> None:
        self._is_open = False
        self.closed = True


def reader_factory(readers: List[FakeVideoReader], **kwargs):
    """Factory for VideoFrameExtractor that remembers every reader it built."""

    def factory(path: str) -> FakeVideoReader:
        reader = FakeVideoReader(path, **kwargs)
        readers.append(reader)
        return reader

    return factory


@pytest.fixture
def video_path(tmp_path):
    """An existing file path; contents are never decoded by the fake reader."""
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00")
    return str(path)


@pytest.fixture
def bgr_image():
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
model:
  name: "yolo11n"
  directory: "models"
  compute_units: "all"

detection:
  confidence_threshold: 0.5
  iou_threshold: 0.45
  max_detections: 100
  input_size: [640, 640]

video:
  fps: 5
  on_frame_error: "abort"

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "model": {
            "name": "yolo11n",
            "directory": "models",
            "compute_units": "cpu_only",
            "backend": "onnx",
        },
        "detection": {
            "confidence_threshold": 0.4,
            "iou_threshold": 0.5,
            "max_detections": 20,
            "input_size": [320, 320],
        },
        "video": {
            "fps": 2,
            "max_resolution": [1280, 720],
            "on_frame_error": "skip",
            "buffer_size": 2,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
