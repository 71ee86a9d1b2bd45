"""
Region extraction for candidate bib boxes.

Crops are clamped to the image bounds and rounded to integer pixels so that
a detector box partially outside the photo still yields a usable region.
"""

import numpy as np

from config import REGION_EXPANSION_PERCENT
from preprocessing import encode_image

from .bbox import clamp_bbox, expand_bbox
from .types import BoundingBox


def extract_region(
    image: np.ndarray,
    x: float,
    y: float,
    width: float,
    height: float,
) -> np.ndarray:
    """Crop a rectangle out of an image.

    Negative origins are clamped to zero and width/height are cut so the crop
    never exceeds the image. All coordinates are rounded to integer pixels.

    Raises:
        ValueError: If the clamped region is empty.
    """
    img_height, img_width = image.shape[:2]
    left, top, w, h = clamp_bbox(BoundingBox(x, y, width, height), img_width, img_height)
    if w <= 0 or h <= 0:
        raise ValueError(
            f"Region ({x}, {y}, {width}, {height}) lies outside the "
            f"{img_width}x{img_height} image"
        )
    return image[top:top + h, left:left + w].copy()


def extract_candidate_region(
    image: np.ndarray,
    bbox: BoundingBox,
    expansion_percent: float = REGION_EXPANSION_PERCENT,
) -> tuple[bytes, BoundingBox]:
    """Expand a candidate box, crop it and encode the crop as PNG.

    A box that does not overlap the image is rejected, never expanded into it.

    Returns:
        Tuple of (encoded region, expanded box actually cropped).

    Raises:
        ValueError: If the box lies outside the image.
    """
    img_height, img_width = image.shape[:2]
    _, _, visible_width, visible_height = clamp_bbox(bbox, img_width, img_height)
    if visible_width <= 0 or visible_height <= 0:
        raise ValueError(f"Candidate box {bbox.to_dict()} lies outside the {img_width}x{img_height} image")
    expanded = expand_bbox(bbox, expansion_percent, img_width, img_height)
    region = extract_region(image, expanded.x, expanded.y, expanded.width, expanded.height)
    return encode_image(region, "PNG"), expanded
