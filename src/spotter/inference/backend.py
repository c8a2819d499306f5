"""
Inference backend interface.

Backends receive a fixed-size pixel buffer (see preprocess.image) and return
raw observations. Observation boxes are normalized to [0, 1] with a
bottom-left origin; postprocess.coordinates converts them to pixel space.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import numpy as np

from ..models.config import ComputeUnits
from ..models.geometry import BoundingBox


@dataclass(frozen=True)
class ClassLabel:
    identifier: str
    confidence: float = 1.0


@dataclass(frozen=True)
class Observation:
    """
    A single raw candidate from the backend.

    Attributes:
        bounding_box: Normalized box, bottom-left origin.
        confidence: Score of the candidate.
        labels: Candidate labels ordered by likelihood; only the first is used.
    """
    bounding_box: BoundingBox
    confidence: float
    labels: List[ClassLabel] = field(default_factory=list)

    @property
    def top_label(self) -> Optional[str]:
        return self.labels[0].identifier if self.labels else None


class InferenceBackend(Protocol):
    compute_units: ComputeUnits

    def predict(self, pixel_buffer: np.ndarray) -> List[Observation]:
        ...
