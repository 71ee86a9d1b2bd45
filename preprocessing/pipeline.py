"""
Enhancement pipeline that applies all configured steps in order.

Two entry points:
1. run_enhancement() - array in, EnhancementResult out; raises on bad input
2. enhance_image() - encoded bytes in, encoded bytes out; never raises

Step order: resize -> grayscale -> contrast -> brightness -> sharpen ->
normalize -> invert. Steps that are disabled in the config are left out.

Enhancement failures never block detection: enhance_image() logs the error
and hands back the original bytes unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np

from config import OCR_MIN_REGION_DIMENSION

from .codec import decode_image, encode_image
from .config import EnhancementConfig, EnhancementPurpose, config_for
from .steps import (
    BrightnessStep,
    ContrastStep,
    GrayscaleStep,
    InvertStep,
    NormalizeStep,
    Pipeline,
    PreprocessStep,
    ResizeStep,
    SharpenStep,
    UpscaleStep,
)

logger = logging.getLogger(__name__)


@dataclass
class EnhancementResult:
    """Output of an enhancement run.

    Attributes:
        image: Enhanced image array.
        scale_factor: Original size / enhanced size (1.0 when not resized).
        config: Configuration used.
        steps: Names of the steps that ran, in order.
    """

    image: np.ndarray
    scale_factor: float
    config: EnhancementConfig
    steps: list[str]


def build_pipeline(config: EnhancementConfig) -> Pipeline:
    """Build a Pipeline from an EnhancementConfig."""
    steps: list[PreprocessStep] = []

    if config.max_dimension is not None:
        steps.append(ResizeStep(max_dimension=config.max_dimension))
    if config.grayscale:
        steps.append(GrayscaleStep())
    if config.contrast != 1.0:
        steps.append(ContrastStep(factor=config.contrast))
    if config.brightness != 1.0:
        steps.append(BrightnessStep(factor=config.brightness))
    if config.sharpen:
        steps.append(SharpenStep(sigma=config.sharpen_sigma, amount=config.sharpen_amount))
    if config.normalize:
        steps.append(NormalizeStep())
    if config.invert:
        steps.append(InvertStep())

    return Pipeline(steps=steps)


def run_enhancement(img: np.ndarray, config: EnhancementConfig) -> EnhancementResult:
    """Apply an enhancement configuration to an image array.

    Raises:
        ValidationError: If the configuration is invalid.
        ValueError / TypeError: If the image cannot be processed.
    """
    config.validate()
    pipeline_result = build_pipeline(config).run(img)
    return EnhancementResult(
        image=pipeline_result.final,
        scale_factor=pipeline_result.scale_factor,
        config=config,
        steps=pipeline_result.step_names,
    )


def enhance_image(
    data: bytes,
    purpose: EnhancementPurpose | str = EnhancementPurpose.DETECTION,
    overrides: dict[str, Any] | None = None,
) -> bytes:
    """Enhance encoded image bytes for detection or recognition.

    Args:
        data: Encoded image (JPEG, PNG, ...).
        purpose: Which preset to start from.
        overrides: Optional EnhancementConfig field values replacing the preset's.

    Returns:
        Enhanced image bytes, or the original bytes if anything fails.
    """
    try:
        config = config_for(purpose, overrides)
        img, image_format = decode_image(data)
        result = run_enhancement(img, config)
        return encode_image(result.image, image_format)
    except Exception as e:
        logger.warning("Enhancement (%s) failed, using original image: %s", purpose, e)
        return data


def enhance_for_detection(data: bytes, overrides: dict[str, Any] | None = None) -> bytes:
    return enhance_image(data, EnhancementPurpose.DETECTION, overrides)


def enhance_for_recognition(data: bytes, overrides: dict[str, Any] | None = None) -> bytes:
    return enhance_image(data, EnhancementPurpose.RECOGNITION, overrides)


def upscale_for_recognition(
    data: bytes,
    min_dimension: int = OCR_MIN_REGION_DIMENSION,
) -> bytes:
    """Enlarge a small region so its shorter side reaches min_dimension.

    Regions already large enough, and regions that fail to decode, are
    returned unchanged.
    """
    try:
        img, _ = decode_image(data)
        if min(img.shape[:2]) >= min_dimension:
            return data
        upscaled = UpscaleStep(min_dimension=min_dimension).apply(img)
        return encode_image(upscaled, "PNG")
    except Exception as e:
        logger.warning("Region upscale failed, using original region: %s", e)
        return data
