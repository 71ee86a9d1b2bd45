"""
Bounding box geometry utilities.

All functions are pure and operate on BoundingBox values (top-left corner plus
width and height, in pixels).
"""

import math

from .types import BoundingBox


def center_distance(a: BoundingBox, b: BoundingBox) -> float:
    """Euclidean distance between the centres of two boxes."""
    ax, ay = a.center
    bx, by = b.center
    return math.hypot(ax - bx, ay - by)


def _fit_span(start: float, length: float, limit: float) -> tuple[float, float]:
    """Move a 1-D span inside [0, limit], keeping its length where possible.

    Overflow past one edge is pushed back towards the opposite side; only a
    span longer than the limit itself is shortened.
    """
    length = min(length, limit)
    if start < 0:
        start = 0.0
    if start + length > limit:
        start = limit - length
    return start, length


def expand_bbox(
    bbox: BoundingBox,
    percent: float,
    image_width: int,
    image_height: int,
) -> BoundingBox:
    """Grow a box by a percentage of its own size and clamp it to the image.

    The box grows by percent/2 of its width on the left and on the right (and
    likewise vertically). A side that ends up outside the image has its
    overflow moved to the opposite side, so the expanded box keeps its
    requested size unless it is larger than the image.

    Args:
        bbox: Box to expand.
        percent: Growth as a percentage of the box size (25 grows by 25%).
        image_width: Image width in pixels.
        image_height: Image height in pixels.

    Returns:
        Expanded box lying within the image bounds.
    """
    grow_x = bbox.width * percent / 100
    grow_y = bbox.height * percent / 100

    x, width = _fit_span(bbox.x - grow_x / 2, bbox.width + grow_x, image_width)
    y, height = _fit_span(bbox.y - grow_y / 2, bbox.height + grow_y, image_height)
    return BoundingBox(x=x, y=y, width=width, height=height)


def clamp_bbox(bbox: BoundingBox, image_width: int, image_height: int) -> tuple[int, int, int, int]:
    """Clamp a box to the image and round it to integer pixels.

    Negative origins become zero and width/height are cut so the box never
    extends past the image.

    Returns:
        Tuple of (x, y, width, height) in integer pixels. Width or height may be
        zero when the box lies entirely outside the image.
    """
    x = min(max(0, int(round(bbox.x))), image_width)
    y = min(max(0, int(round(bbox.y))), image_height)
    right = min(image_width, int(round(bbox.x + bbox.width)))
    bottom = min(image_height, int(round(bbox.y + bbox.height)))
    return x, y, max(0, right - x), max(0, bottom - y)
