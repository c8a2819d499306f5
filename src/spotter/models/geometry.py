"""
Geometry value types shared by every pipeline stage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class ImageSize:
    """Image dimensions in pixels."""
    width: float
    height: float

    @classmethod
    def from_image(cls, image: np.ndarray) -> "ImageSize":
        """Create from a numpy image of shape (H, W[, C])."""
        h, w = image.shape[:2]
        return cls(width=float(w), height=float(h))

    def as_int_tuple(self) -> Tuple[int, int]:
        """Return as integer (width, height) tuple."""
        return (int(self.width), int(self.height))

    def to_dict(self) -> Dict[str, float]:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ImageSize":
        return cls(width=float(d["width"]), height=float(d["height"]))


@dataclass(frozen=True)
class BoundingBox:
    """
    An axis-aligned rectangle.

    Attributes:
        x: Left edge (pixel space) or origin x (normalized space).
        y: Top edge (pixel space, top-left origin) or bottom edge
           (normalized space, bottom-left origin).
        width: Rectangle width.
        height: Rectangle height.
    """
    x: float
    y: float
    width: float
    height: float

    @property
    def x1(self) -> float:
        return self.x

    @property
    def y1(self) -> float:
        return self.y

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def intersection(self, other: "BoundingBox") -> Optional["BoundingBox"]:
        """Overlapping rectangle, or None when the boxes do not overlap."""
        x1 = max(self.x1, other.x1)
        y1 = max(self.y1, other.y1)
        x2 = min(self.x2, other.x2)
        y2 = min(self.y2, other.y2)
        if x2 <= x1 or y2 <= y1:
            return None
        return BoundingBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    def iou(self, other: "BoundingBox") -> float:
        """
        Calculate Intersection over Union (IoU) with another box.

        Returns:
            IoU value between 0 and 1; 0 when disjoint or the union is empty.
        """
        inter = self.intersection(other)
        if inter is None:
            return 0.0

        intersection = inter.area
        union = self.area + other.area - intersection
        if union <= 0:
            return 0.0

        return intersection / union

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return as (x, y, width, height) tuple."""
        return (self.x, self.y, self.width, self.height)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2) tuple."""
        return (self.x1, self.y1, self.x2, self.y2)

    def as_int_xyxy(self) -> Tuple[int, int, int, int]:
        """Return as integer (x1, y1, x2, y2) tuple."""
        return (int(self.x1), int(self.y1), int(self.x2), int(self.y2))

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        """Create from corner coordinates."""
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BoundingBox":
        return cls(
            x=float(d["x"]),
            y=float(d["y"]),
            width=float(d["width"]),
            height=float(d["height"]),
        )
