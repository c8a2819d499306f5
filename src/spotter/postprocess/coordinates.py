"""
Conversion between normalized backend coordinates and pixel coordinates.

Backend space: origin bottom-left, both axes normalized to [0, 1].
Pixel space: origin top-left, pixel units.
"""

from __future__ import annotations

from ..models.geometry import BoundingBox, ImageSize


def vision_to_pixel(normalized_box: BoundingBox, image_size: ImageSize) -> BoundingBox:
    """
    Map a normalized bottom-left-origin box to a pixel top-left-origin box.

    The normalized y is the distance of the box's bottom edge from the bottom
    of the image, so the top edge in pixel space is (1 - y - h) * H.
    Inputs outside [0, 1] pass through arithmetically.
    """
    return BoundingBox(
        x=normalized_box.x * image_size.width,
        y=(1.0 - normalized_box.y - normalized_box.height) * image_size.height,
        width=normalized_box.width * image_size.width,
        height=normalized_box.height * image_size.height,
    )


def pixel_to_vision(pixel_box: BoundingBox, image_size: ImageSize) -> BoundingBox:
    """Inverse of vision_to_pixel."""
    w = image_size.width
    h = image_size.height
    norm_h = pixel_box.height / h if h else 0.0
    return BoundingBox(
        x=pixel_box.x / w if w else 0.0,
        y=1.0 - (pixel_box.y / h if h else 0.0) - norm_h,
        width=pixel_box.width / w if w else 0.0,
        height=norm_h,
    )
