"""
Image preprocessing into the fixed-size pixel buffer the backend consumes.

Input images follow the OpenCV convention: uint8 arrays shaped (H, W) for
grayscale, (H, W, 3) for BGR or (H, W, 4) for BGRA.

Output buffer layout (default PixelFormat.BGRA):
- shape (target_h, target_w, 4), dtype uint8, C-contiguous, rows top to bottom
- bytes per pixel in memory order: B, G, R, A
- alpha is premultiplied: each color byte equals round(c * a / 255)
- opaque sources (gray, BGR) get A = 255

A pure red source pixel therefore becomes [0, 0, 255, 255]. The other
formats are channel selections of the same premultiplied BGRA values, e.g.
RGBA stores it as [255, 0, 0, 255] and RGB as [255, 0, 0].

The source is stretched to the target size (aspect ratio is not preserved).
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Tuple

import cv2
import numpy as np

from ..errors import (
    DrawingContextError,
    InvalidImageDataError,
    PixelBufferAllocationError,
    PixelBufferLockError,
)
from ..models.geometry import ImageSize

Allocator = Callable[[Tuple[int, int, int]], np.ndarray]


class PixelFormat(str, Enum):
    BGRA = "bgra"
    RGBA = "rgba"
    BGR = "bgr"
    RGB = "rgb"

    @property
    def channels(self) -> int:
        return len(self.value)

    @property
    def channel_order(self) -> Tuple[int, ...]:
        """Indices into a BGRA pixel, in output byte order."""
        index = {"b": 0, "g": 1, "r": 2, "a": 3}
        return tuple(index[c] for c in self.value)


def _default_allocator(shape: Tuple[int, int, int]) -> np.ndarray:
    return np.empty(shape, dtype=np.uint8)


def _premultiply(bgra: np.ndarray) -> np.ndarray:
    alpha = bgra[..., 3:4].astype(np.uint16)
    if np.all(alpha == 255):
        return bgra
    color = (bgra[..., :3].astype(np.uint16) * alpha + 127) // 255
    out = bgra.copy()
    out[..., :3] = color.astype(np.uint8)
    return out


class ImagePreprocessor:
    """
    Stretches an image into a pixel buffer of fixed size and format.

    Example:
        pre = ImagePreprocessor(target_size=ImageSize(640, 640))
        buffer = pre.process(cv2.imread("street.jpg"))
    """

    def __init__(
        self,
        target_size: ImageSize = ImageSize(640, 640),
        pixel_format: PixelFormat = PixelFormat.BGRA,
        allocator: Allocator = _default_allocator,
    ):
        self.target_size = target_size
        self.pixel_format = pixel_format
        self._allocator = allocator

    def process(self, image: np.ndarray) -> np.ndarray:
        """
        Convert an image to a pixel buffer.

        Raises:
            InvalidImageDataError: The image has no usable pixel data.
            PixelBufferAllocationError: The buffer could not be allocated.
            PixelBufferLockError: No writable view of the buffer is available.
            DrawingContextError: Resampling into the buffer failed.
        """
        self._validate(image)

        width, height = self.target_size.as_int_tuple()
        buffer = self._allocate(width, height)
        view = self._lock(buffer)

        try:
            bgra = self._to_bgra(image)
            resized = cv2.resize(bgra, (width, height), interpolation=cv2.INTER_LINEAR)
            view[...] = resized[..., list(self.pixel_format.channel_order)]
        except (cv2.error, ValueError) as e:
            raise DrawingContextError(e) from e

        return buffer

    def _validate(self, image: np.ndarray) -> None:
        if not isinstance(image, np.ndarray):
            raise InvalidImageDataError(f"expected numpy array, got {type(image).__name__}")
        if image.size == 0:
            raise InvalidImageDataError("image is empty")
        if image.dtype != np.uint8:
            raise InvalidImageDataError(f"expected uint8 pixels, got {image.dtype}")
        if image.ndim == 3 and image.shape[2] in (1, 3, 4):
            return
        if image.ndim == 2:
            return
        raise InvalidImageDataError(f"unsupported image shape {image.shape}")

    def _allocate(self, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            raise PixelBufferAllocationError(
                ValueError(f"target size must be positive, got {width}x{height}")
            )
        shape = (height, width, self.pixel_format.channels)
        try:
            buffer = self._allocator(shape)
        except (MemoryError, ValueError) as e:
            raise PixelBufferAllocationError(e) from e
        if buffer is None or buffer.shape != shape or buffer.dtype != np.uint8:
            raise PixelBufferAllocationError(
                ValueError(f"allocator returned an unusable buffer for shape {shape}")
            )
        return buffer

    @staticmethod
    def _lock(buffer: np.ndarray) -> np.ndarray:
        view = buffer.view()
        if not view.flags.writeable:
            raise PixelBufferLockError("buffer is read-only")
        if not view.flags.c_contiguous:
            raise PixelBufferLockError("buffer is not C-contiguous")
        return view

    @staticmethod
    def _to_bgra(image: np.ndarray) -> np.ndarray:
        if image.ndim == 2 or image.shape[2] == 1:
            return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
        if image.shape[2] == 3:
            return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
        return _premultiply(np.ascontiguousarray(image))


def to_nchw_float(buffer: np.ndarray, pixel_format: PixelFormat = PixelFormat.BGRA) -> np.ndarray:
    """
    Convert a pixel buffer to a float32 (1, 3, H, W) RGB tensor in [0, 1].

    Used by backends that take a YOLO-style input tensor.
    """
    order = pixel_format.value
    rgb = buffer[..., [order.index("r"), order.index("g"), order.index("b")]]
    tensor = rgb.transpose((2, 0, 1)).astype(np.float32) / 255.0
    return np.ascontiguousarray(tensor[np.newaxis, ...])
