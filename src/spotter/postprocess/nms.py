"""
Greedy non-maximum suppression.
"""

from __future__ import annotations

from typing import Iterable, List

from ..models.detection import DetectedObject


class NMSProcessor:
    """
    Removes lower-confidence duplicates overlapping a stronger detection.

    Candidates are sorted by confidence, descending. The sort is stable, so
    detections with equal confidence keep their input order. The strongest
    remaining candidate is kept and every other candidate whose IoU with it
    is >= iou_threshold is discarded, until nothing remains.

    O(n^2) in the number of candidates, fine for per-frame counts in the tens.
    """

    def __init__(self, iou_threshold: float = 0.45):
        self.iou_threshold = iou_threshold

    def apply(self, detections: Iterable[DetectedObject]) -> List[DetectedObject]:
        remaining = sorted(detections, key=lambda d: d.confidence, reverse=True)
        selected: List[DetectedObject] = []

        while remaining:
            current = remaining.pop(0)
            selected.append(current)
            remaining = [
                d for d in remaining
                if current.bounding_box.iou(d.bounding_box) < self.iou_threshold
            ]

        return selected
