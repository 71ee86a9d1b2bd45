"""
Image normalization and adjustment functions for enhancement.

All functions are pure: they take an input and return a new output without
mutating the original array. Images are uint8 numpy arrays, either 2D
grayscale or 3D RGB.
"""

import numpy as np
import cv2


def _validate_image(img: np.ndarray) -> None:
    if not isinstance(img, np.ndarray):
        raise TypeError(f"Expected numpy.ndarray, got {type(img).__name__}")

    if img.ndim < 2 or img.ndim > 3:
        raise ValueError(
            f"Image must be 2D or 3D array, got {img.ndim}D array with shape {img.shape}"
        )

    if img.size == 0:
        raise ValueError("Image array is empty")


def to_grayscale(img: np.ndarray) -> np.ndarray:
    """Convert an image to a 2D uint8 grayscale array.

    Handles RGB, RGBA, single-channel and already-grayscale images.

    Raises:
        ValueError: If input is not a valid image array.
        TypeError: If img is not a numpy array.
    """
    _validate_image(img)

    if img.ndim == 2:
        return img.copy()

    channels = img.shape[2]
    if channels == 1:
        return img[:, :, 0].copy()
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_RGB2GRAY)
    if channels == 4:
        return cv2.cvtColor(img[:, :, :3], cv2.COLOR_RGB2GRAY)
    raise ValueError(
        f"Unsupported number of channels: {channels}. "
        "Expected 1, 3 (RGB), or 4 (RGBA)."
    )


def resize_to_max_dimension(
    img: np.ndarray,
    max_dimension: int,
    interpolation: int = cv2.INTER_AREA,
) -> tuple[np.ndarray, float]:
    """Shrink an image so its longer side is at most max_dimension.

    Aspect ratio is preserved and images are never enlarged.

    Returns:
        Tuple of:
        - Resized image (a copy when no resizing was needed)
        - Scale factor (original size / new size) for mapping coordinates back

    Examples:
        >>> img = np.zeros((1000, 4000, 3), dtype=np.uint8)
        >>> resized, scale = resize_to_max_dimension(img, 2000)
        >>> resized.shape
        (500, 2000, 3)
        >>> scale
        2.0
    """
    _validate_image(img)
    if max_dimension <= 0:
        raise ValueError(f"max_dimension must be positive, got {max_dimension}")

    height, width = img.shape[:2]
    longest = max(height, width)
    if longest <= max_dimension:
        return img.copy(), 1.0

    scale_factor = longest / max_dimension
    new_width = max(1, int(round(width / scale_factor)))
    new_height = max(1, int(round(height / scale_factor)))
    resized = cv2.resize(img, (new_width, new_height), interpolation=interpolation)
    return resized, scale_factor


def upscale_to_min_dimension(img: np.ndarray, min_dimension: int) -> tuple[np.ndarray, float]:
    """Enlarge an image so its shorter side is at least min_dimension.

    Uses Lanczos interpolation, which keeps digit edges crisp.

    Returns:
        Tuple of (image, factor) where factor is new size / original size.
    """
    _validate_image(img)
    height, width = img.shape[:2]
    shortest = min(height, width)
    if shortest >= min_dimension:
        return img.copy(), 1.0

    factor = min_dimension / shortest
    if width <= height:
        new_width, new_height = min_dimension, max(min_dimension, int(round(height * factor)))
    else:
        new_width, new_height = max(min_dimension, int(round(width * factor))), min_dimension
    upscaled = cv2.resize(img, (new_width, new_height), interpolation=cv2.INTER_LANCZOS4)
    return upscaled, factor


def adjust_contrast(img: np.ndarray, factor: float) -> np.ndarray:
    """Linear contrast around mid-gray: out = factor * in + (128 - 128 * factor)."""
    _validate_image(img)
    offset = 128.0 - 128.0 * factor
    result = img.astype(np.float32) * factor + offset
    return np.clip(result, 0, 255).astype(np.uint8)


def adjust_brightness(img: np.ndarray, factor: float) -> np.ndarray:
    """Scale pixel intensities by factor."""
    _validate_image(img)
    result = img.astype(np.float32) * factor
    return np.clip(result, 0, 255).astype(np.uint8)


def sharpen(img: np.ndarray, sigma: float = 1.0, amount: float = 1.0) -> np.ndarray:
    """Unsharp mask: add back the difference between the image and its blur."""
    _validate_image(img)
    blurred = cv2.GaussianBlur(img, (0, 0), sigma)
    return cv2.addWeighted(img, 1.0 + amount, blurred, -amount, 0)


def normalize_range(
    img: np.ndarray,
    percentiles: tuple[float, float] = (1.0, 99.0),
) -> np.ndarray:
    """Stretch intensities so the given percentiles map to 0 and 255.

    A flat image (no spread between the percentiles) is returned unchanged.
    """
    _validate_image(img)
    low, high = np.percentile(img, percentiles)
    if high <= low:
        return img.copy()
    result = (img.astype(np.float32) - low) * (255.0 / (high - low))
    return np.clip(result, 0, 255).astype(np.uint8)


def invert(img: np.ndarray) -> np.ndarray:
    """Invert intensities (light digits on dark bibs become dark on light)."""
    _validate_image(img)
    return 255 - img
