"""
Single-image detection service.
"""

from .service import DEFAULT_MODEL_NAME, DetectionService

__all__ = ["DEFAULT_MODEL_NAME", "DetectionService"]
