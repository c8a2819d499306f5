"""
Postprocessing of raw backend observations.

Order is fixed:
1. confidence filtering
2. coordinate conversion (normalized, bottom-left -> pixel, top-left)
3. non-maximum suppression
4. capping at max_detections
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional

from ..inference.backend import Observation
from ..models.config import DetectionConfiguration
from ..models.detection import DetectedObject
from ..models.geometry import ImageSize
from .coordinates import vision_to_pixel
from .nms import NMSProcessor

UNKNOWN_LABEL = "Unknown"


def _is_finite(obs: Observation) -> bool:
    values = (obs.confidence,) + obs.bounding_box.as_tuple()
    return all(math.isfinite(v) for v in values)


class DetectionPostProcessor:
    """Turns backend observations into the final list of DetectedObject."""

    def __init__(self, configuration: DetectionConfiguration):
        self.confidence_threshold = configuration.confidence_threshold
        self.max_detections = configuration.max_detections
        self.nms = NMSProcessor(iou_threshold=configuration.iou_threshold)

    def _to_detected_object(
        self, obs: Observation, image_size: ImageSize
    ) -> Optional[DetectedObject]:
        if not _is_finite(obs):
            logging.debug(f"Dropping malformed observation: {obs}")
            return None
        if obs.confidence < self.confidence_threshold:
            return None

        return DetectedObject(
            label=obs.top_label or UNKNOWN_LABEL,
            confidence=float(obs.confidence),
            bounding_box=vision_to_pixel(obs.bounding_box, image_size),
        )

    def process(
        self, observations: Iterable[Observation], image_size: ImageSize
    ) -> List[DetectedObject]:
        candidates = []
        for obs in observations:
            obj = self._to_detected_object(obs, image_size)
            if obj is not None:
                candidates.append(obj)

        kept = self.nms.apply(candidates)
        return kept[: self.max_detections]
