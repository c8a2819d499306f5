"""
Detection models for object detection results.

Coordinate convention for everything in this module:
- origin at the top-left corner of the source image
- units are pixels
- x grows to the right, y grows downwards
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Tuple

from .geometry import BoundingBox, ImageSize


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class DetectedObject:
    """
    A single object found in an image.

    Attributes:
        label: Class label, e.g. "person" or "car".
        confidence: Detection confidence score (0-1 when produced by the pipeline).
        bounding_box: Box in pixel coordinates, top-left origin.
        id: Opaque unique identifier, fresh per detection event. Not part of
            equality so two detections of the same thing compare equal.
    """
    label: str
    confidence: float
    bounding_box: BoundingBox
    id: str = field(default_factory=_new_id, compare=False)

    @property
    def center(self) -> Tuple[float, float]:
        return self.bounding_box.center

    @property
    def area(self) -> float:
        return self.bounding_box.area

    @property
    def aspect_ratio(self) -> float:
        """Width / height, or 0 if the box has no height."""
        if self.bounding_box.height <= 0:
            return 0.0
        return self.bounding_box.width / self.bounding_box.height

    @property
    def formatted_confidence(self) -> str:
        """Confidence as a percentage string, e.g. "95.5%"."""
        return f"{self.confidence * 100:.1f}%"

    def iou(self, other: "DetectedObject") -> float:
        """IoU of the two bounding boxes."""
        return self.bounding_box.iou(other.bounding_box)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "confidence": self.confidence,
            "bounding_box": self.bounding_box.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectedObject":
        return cls(
            id=d.get("id") or _new_id(),
            label=d["label"],
            confidence=float(d["confidence"]),
            bounding_box=BoundingBox.from_dict(d["bounding_box"]),
        )


@dataclass(frozen=True, eq=False)
class DetectionResult:
    """
    Output of one pipeline run over one image.

    Attributes:
        objects: Detected objects in pipeline output order (NMS selection order).
        image_size: Size of the source image.
        processing_time: Wall-clock duration of the run in seconds.
        timestamp: Video frame timestamp in seconds; 0 for standalone images.
        id: Unique identifier. Equality and hashing use it exclusively.
    """
    image_size: ImageSize
    processing_time: float
    objects: List[DetectedObject] = field(default_factory=list)
    timestamp: float = 0.0
    id: str = field(default_factory=_new_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DetectionResult):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def object_count(self) -> int:
        return len(self.objects)

    @property
    def has_objects(self) -> bool:
        return bool(self.objects)

    @property
    def unique_labels(self) -> List[str]:
        return sorted({obj.label for obj in self.objects})

    @property
    def formatted_processing_time(self) -> str:
        """e.g. "15 ms" below one second, "1.20 s" otherwise."""
        if self.processing_time < 1:
            return f"{self.processing_time * 1000:.0f} ms"
        return f"{self.processing_time:.2f} s"

    def objects_with_label(self, label: str) -> List[DetectedObject]:
        return [obj for obj in self.objects if obj.label == label]

    def objects_with_confidence_above(self, threshold: float) -> List[DetectedObject]:
        """Objects whose confidence is >= threshold."""
        return [obj for obj in self.objects if obj.confidence >= threshold]

    def sorted_by_confidence(self, ascending: bool = False) -> List[DetectedObject]:
        return sorted(self.objects, key=lambda obj: obj.confidence, reverse=not ascending)

    def with_timestamp(self, timestamp: float) -> "DetectionResult":
        """Copy of this result stamped with a video timestamp (keeps the id)."""
        return replace(self, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "objects": [obj.to_dict() for obj in self.objects],
            "image_size": self.image_size.to_dict(),
            "processing_time": self.processing_time,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionResult":
        return cls(
            id=d.get("id") or _new_id(),
            objects=[DetectedObject.from_dict(o) for o in d.get("objects", [])],
            image_size=ImageSize.from_dict(d["image_size"]),
            processing_time=float(d.get("processing_time", 0.0)),
            timestamp=float(d.get("timestamp", 0.0)),
        )
