"""
Image preprocessing for inference.
"""

from .image import ImagePreprocessor, PixelFormat, to_nchw_float

__all__ = ["ImagePreprocessor", "PixelFormat", "to_nchw_float"]
