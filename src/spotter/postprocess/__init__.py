"""
Postprocessing: coordinate conversion, NMS and result capping.
"""

from .coordinates import pixel_to_vision, vision_to_pixel
from .nms import NMSProcessor
from .processor import UNKNOWN_LABEL, DetectionPostProcessor

__all__ = [
    "pixel_to_vision",
    "vision_to_pixel",
    "NMSProcessor",
    "DetectionPostProcessor",
    "UNKNOWN_LABEL",
]
