"""Conversion between encoded image bytes and numpy arrays."""

from __future__ import annotations

import io

import numpy as np
from PIL import Image, ImageOps

from config import ENCODE_JPEG_QUALITY

# Formats we re-encode in; anything else comes back as PNG
_PASSTHROUGH_FORMATS = {"JPEG", "PNG"}

_EXIF_ORIENTATION_TAG = 0x0112


def decode_image(data: bytes) -> tuple[np.ndarray, str]:
    """Decode image bytes into a uint8 array.

    EXIF orientation is applied so coordinates match what a viewer shows.
    Grayscale inputs stay 2D; everything else is converted to RGB.

    Returns:
        Tuple of (array, format) where format is the PIL format name
        ("JPEG", "PNG", ...) or "PNG" when unknown.

    Raises:
        ValueError: If the bytes are not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format or "PNG"
            image = ImageOps.exif_transpose(image)
            if image.mode != "L":
                image = image.convert("RGB")
            return np.asarray(image).copy(), image_format
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Cannot decode image: {e}") from e


def encode_image(img: np.ndarray, image_format: str = "PNG") -> bytes:
    """Encode a uint8 array as JPEG or PNG bytes."""
    if image_format not in _PASSTHROUGH_FORMATS:
        image_format = "PNG"
    image = Image.fromarray(img)
    buffer = io.BytesIO()
    if image_format == "JPEG":
        image.save(buffer, format="JPEG", quality=ENCODE_JPEG_QUALITY)
    else:
        image.save(buffer, format="PNG")
    return buffer.getvalue()


def exif_orientation(data: bytes) -> int:
    """Return the EXIF orientation of encoded image bytes (1 when absent)."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return int(image.getexif().get(_EXIF_ORIENTATION_TAG, 1))
    except OSError as e:
        raise ValueError(f"Cannot read image metadata: {e}") from e


def upright_image(data: bytes) -> bytes:
    """Return bytes whose pixels are laid out the way decode_image() sees them.

    Photos without an EXIF rotation come back unchanged (same object); rotated
    or mirrored ones are re-encoded upright, without the orientation tag.
    """
    if exif_orientation(data) == 1:
        return data
    img, image_format = decode_image(data)
    return encode_image(img, image_format)


def image_size(data: bytes) -> tuple[int, int]:
    """Return (width, height) of encoded image bytes without a full decode."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image = ImageOps.exif_transpose(image)
            return image.size
    except OSError as e:
        raise ValueError(f"Cannot read image size: {e}") from e
