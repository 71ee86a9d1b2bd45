"""
Configuration for the enhancement pipeline.

Every enhancement run is parameterized through an EnhancementConfig. Two
presets exist, one per purpose: whole photos sent to the object detector and
cropped regions sent to OCR.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from config import (
    DETECTION_BRIGHTNESS,
    DETECTION_CONTRAST,
    DETECTION_GRAYSCALE,
    DETECTION_MAX_DIMENSION,
    DETECTION_NORMALIZE,
    DETECTION_SHARPEN,
    RECOGNITION_BRIGHTNESS,
    RECOGNITION_CONTRAST,
    RECOGNITION_GRAYSCALE,
    RECOGNITION_NORMALIZE,
    RECOGNITION_SHARPEN,
    SHARPEN_AMOUNT,
    SHARPEN_SIGMA,
)
from errors import ValidationError


class EnhancementPurpose(str, Enum):
    DETECTION = "detection"
    RECOGNITION = "recognition"


@dataclass(frozen=True)
class EnhancementConfig:
    """Parameters for one enhancement run.

    Attributes:
        contrast: Linear contrast factor around mid-gray (1.0 leaves it unchanged).
        brightness: Intensity multiplier (1.0 leaves it unchanged).
        sharpen: Whether to apply an unsharp mask.
        sharpen_sigma: Gaussian sigma of the unsharp mask.
        sharpen_amount: Weight of the sharpening edges.
        normalize: Whether to stretch intensities to the full range.
        grayscale: Whether to drop colour.
        invert: Whether to invert intensities (for light-on-dark bibs).
        max_dimension: Longest side after resizing, None to keep the size.
            Images are never enlarged.
    """

    contrast: float = 1.0
    brightness: float = 1.0
    sharpen: bool = False
    sharpen_sigma: float = SHARPEN_SIGMA
    sharpen_amount: float = SHARPEN_AMOUNT
    normalize: bool = False
    grayscale: bool = False
    invert: bool = False
    max_dimension: Optional[int] = None

    def validate(self) -> None:
        """Validate configuration parameters.

        Raises:
            ValidationError: If any parameter is invalid.
        """
        if self.contrast <= 0:
            raise ValidationError(f"contrast must be positive, got {self.contrast}")
        if self.brightness <= 0:
            raise ValidationError(f"brightness must be positive, got {self.brightness}")
        if self.sharpen_sigma <= 0:
            raise ValidationError(f"sharpen_sigma must be positive, got {self.sharpen_sigma}")
        if self.sharpen_amount < 0:
            raise ValidationError(
                f"sharpen_amount must be non-negative, got {self.sharpen_amount}"
            )
        if self.max_dimension is not None and self.max_dimension <= 0:
            raise ValidationError(
                f"max_dimension must be positive, got {self.max_dimension}"
            )

    def with_overrides(self, overrides: dict[str, Any] | None) -> EnhancementConfig:
        """Return a copy with the given fields replaced (None values are ignored)."""
        if not overrides:
            return self
        changes = {key: value for key, value in overrides.items() if value is not None}
        try:
            return replace(self, **changes)
        except TypeError as e:
            raise ValidationError(f"Unknown enhancement option: {e}") from e


DETECTION_ENHANCEMENT = EnhancementConfig(
    contrast=DETECTION_CONTRAST,
    brightness=DETECTION_BRIGHTNESS,
    sharpen=DETECTION_SHARPEN,
    normalize=DETECTION_NORMALIZE,
    grayscale=DETECTION_GRAYSCALE,
    max_dimension=DETECTION_MAX_DIMENSION,
)

RECOGNITION_ENHANCEMENT = EnhancementConfig(
    contrast=RECOGNITION_CONTRAST,
    brightness=RECOGNITION_BRIGHTNESS,
    sharpen=RECOGNITION_SHARPEN,
    normalize=RECOGNITION_NORMALIZE,
    grayscale=RECOGNITION_GRAYSCALE,
)

PRESETS = {
    EnhancementPurpose.DETECTION: DETECTION_ENHANCEMENT,
    EnhancementPurpose.RECOGNITION: RECOGNITION_ENHANCEMENT,
}


def config_for(
    purpose: EnhancementPurpose | str,
    overrides: dict[str, Any] | None = None,
) -> EnhancementConfig:
    """Return the preset for a purpose with optional field overrides applied."""
    return PRESETS[EnhancementPurpose(purpose)].with_overrides(overrides)
