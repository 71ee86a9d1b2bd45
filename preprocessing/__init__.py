"""
Image enhancement module for bib detection and recognition.

This module provides deterministic transforms applied before an image is sent
to the object detector (whole photo) or to OCR (cropped bib region). All
array functions are pure: input -> output with no mutation of the original.

Key components:
- config: EnhancementConfig dataclass and the per-purpose presets
- pipeline: enhance_image() bytes API and run_enhancement() array API
- steps: Class-based steps with a common PreprocessStep interface
- normalization: Pure array transforms (grayscale, resize, contrast, ...)
- codec: Encoded bytes <-> numpy arrays
"""

from .codec import decode_image, encode_image, exif_orientation, image_size, upright_image
from .config import (
    DETECTION_ENHANCEMENT,
    RECOGNITION_ENHANCEMENT,
    EnhancementConfig,
    EnhancementPurpose,
    config_for,
)
from .normalization import (
    adjust_brightness,
    adjust_contrast,
    invert,
    normalize_range,
    resize_to_max_dimension,
    sharpen,
    to_grayscale,
    upscale_to_min_dimension,
)
from .pipeline import (
    EnhancementResult,
    build_pipeline,
    enhance_for_detection,
    enhance_for_recognition,
    enhance_image,
    run_enhancement,
    upscale_for_recognition,
)
from .steps import (
    BrightnessStep,
    ContrastStep,
    GrayscaleStep,
    InvertStep,
    NormalizeStep,
    Pipeline,
    PipelineStepResults,
    PreprocessStep,
    ResizeStep,
    SharpenStep,
    StepResult,
    UpscaleStep,
)

__all__ = [
    # Config
    "EnhancementConfig",
    "EnhancementPurpose",
    "DETECTION_ENHANCEMENT",
    "RECOGNITION_ENHANCEMENT",
    "config_for",
    # Bytes API
    "enhance_image",
    "enhance_for_detection",
    "enhance_for_recognition",
    "upscale_for_recognition",
    "decode_image",
    "encode_image",
    "image_size",
    "exif_orientation",
    "upright_image",
    # Array API
    "run_enhancement",
    "build_pipeline",
    "EnhancementResult",
    "to_grayscale",
    "resize_to_max_dimension",
    "upscale_to_min_dimension",
    "adjust_contrast",
    "adjust_brightness",
    "sharpen",
    "normalize_range",
    "invert",
    # Class-based API
    "PreprocessStep",
    "GrayscaleStep",
    "ResizeStep",
    "UpscaleStep",
    "ContrastStep",
    "BrightnessStep",
    "SharpenStep",
    "NormalizeStep",
    "InvertStep",
    "Pipeline",
    "PipelineStepResults",
    "StepResult",
]
