"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional

from .geometry import ImageSize


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))


class ComputeUnits(str, Enum):
    """Compute-unit preference handed to the inference backend."""
    ALL = "all"
    CPU_AND_GPU = "cpu_and_gpu"
    CPU_ONLY = "cpu_only"


class FrameErrorPolicy(str, Enum):
    """What the frame extractor does when a single frame cannot be decoded."""
    ABORT = "abort"
    SKIP = "skip"


@dataclass(frozen=True)
class DetectionConfiguration:
    """
    Inference and postprocessing parameters.

    Values are clamped once, at construction:
    - confidence_threshold and iou_threshold into [0, 1]
    - max_detections to at least 1

    Attributes:
        confidence_threshold: Detections scoring below this are dropped.
        iou_threshold: Overlap at or above which NMS suppresses the weaker box.
        max_detections: Maximum number of objects returned per image.
        input_size: Size the image is stretched to before inference.
    """
    confidence_threshold: float = 0.5
    iou_threshold: float = 0.45
    max_detections: int = 100
    input_size: ImageSize = field(default_factory=lambda: ImageSize(640, 640))

    DEFAULT: ClassVar["DetectionConfiguration"]
    STRICT: ClassVar["DetectionConfiguration"]
    RELAXED: ClassVar["DetectionConfiguration"]

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence_threshold", _clamp(self.confidence_threshold, 0.0, 1.0))
        object.__setattr__(self, "iou_threshold", _clamp(self.iou_threshold, 0.0, 1.0))
        object.__setattr__(self, "max_detections", max(1, int(self.max_detections)))

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfiguration":
        input_size = d.get("input_size", [640, 640])
        return cls(
            confidence_threshold=d.get("confidence_threshold", 0.5),
            iou_threshold=d.get("iou_threshold", 0.45),
            max_detections=d.get("max_detections", 100),
            input_size=ImageSize(width=input_size[0], height=input_size[1]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confidence_threshold": self.confidence_threshold,
            "iou_threshold": self.iou_threshold,
            "max_detections": self.max_detections,
            "input_size": [self.input_size.width, self.input_size.height],
        }


# Balanced, general purpose.
DetectionConfiguration.DEFAULT = DetectionConfiguration(
    confidence_threshold=0.5, iou_threshold=0.45, max_detections=100
)
# Few false positives, aggressive deduplication.
DetectionConfiguration.STRICT = DetectionConfiguration(
    confidence_threshold=0.75, iou_threshold=0.3, max_detections=50
)
# High recall, lenient deduplication.
DetectionConfiguration.RELAXED = DetectionConfiguration(
    confidence_threshold=0.25, iou_threshold=0.6, max_detections=200
)


@dataclass
class ModelConfig:
    """Model artifact configuration."""
    name: str = "yolo11n"
    directory: str = "models"
    compute_units: ComputeUnits = ComputeUnits.ALL
    backend: str = "onnx"  # onnx | ultralytics

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModelConfig":
        return cls(
            name=d.get("name", "yolo11n"),
            directory=d.get("directory", "models"),
            compute_units=ComputeUnits(d.get("compute_units", "all")),
            backend=d.get("backend", "onnx"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "directory": self.directory,
            "compute_units": self.compute_units.value,
            "backend": self.backend,
        }


@dataclass
class VideoConfig:
    """Video streaming configuration."""
    fps: int = 5
    max_resolution: Optional[ImageSize] = None
    on_frame_error: FrameErrorPolicy = FrameErrorPolicy.ABORT
    buffer_size: int = 1

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "VideoConfig":
        max_res = d.get("max_resolution")
        return cls(
            fps=d.get("fps", 5),
            max_resolution=ImageSize(width=max_res[0], height=max_res[1]) if max_res else None,
            on_frame_error=FrameErrorPolicy(d.get("on_frame_error", "abort")),
            buffer_size=d.get("buffer_size", 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "fps": self.fps,
            "on_frame_error": self.on_frame_error.value,
            "buffer_size": self.buffer_size,
        }
        if self.max_resolution is not None:
            d["max_resolution"] = [self.max_resolution.width, self.max_resolution.height]
        return d


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    model: ModelConfig = field(default_factory=ModelConfig)
    detection: DetectionConfiguration = field(default_factory=DetectionConfiguration)
    video: VideoConfig = field(default_factory=VideoConfig)
    log_path: str = "logs/spotter.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            model=ModelConfig.from_dict(d.get("model", {}) or {}),
            detection=DetectionConfiguration.from_dict(d.get("detection", {}) or {}),
            video=VideoConfig.from_dict(d.get("video", {}) or {}),
            log_path=d.get("log_path", "logs/spotter.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "model": self.model.to_dict(),
            "detection": self.detection.to_dict(),
            "video": self.video.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
