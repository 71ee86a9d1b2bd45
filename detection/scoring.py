"""
Combined confidence scoring.

Each detection method merges the detector and OCR confidences differently:

- detector_only: the detector confidence alone
- ocr_verified: mean of both plus a bonus for agreement, capped at 1
- ocr_corrected: weighted towards OCR, capped at 1
"""

from config import (
    CORRECTED_DETECTOR_WEIGHT,
    CORRECTED_OCR_WEIGHT,
    VERIFIED_CONFIDENCE_BONUS,
)

from .types import DetectionMethod


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def combined_confidence(
    method: DetectionMethod,
    detector_confidence: float,
    ocr_confidence: float | None = None,
) -> float:
    """Compute the combined confidence for a detection.

    Args:
        method: How the bib number was decided.
        detector_confidence: Detector confidence in [0, 1].
        ocr_confidence: OCR confidence in [0, 1]; required unless detector_only.

    Returns:
        Combined confidence in [0, 1].

    Raises:
        ValueError: If an OCR-based method is scored without an OCR confidence.
    """
    if method == DetectionMethod.DETECTOR_ONLY:
        return _clamp_unit(detector_confidence)

    if ocr_confidence is None:
        raise ValueError(f"{method.value} requires an OCR confidence")

    if method == DetectionMethod.OCR_VERIFIED:
        score = (detector_confidence + ocr_confidence) / 2 + VERIFIED_CONFIDENCE_BONUS
    else:
        score = (
            detector_confidence * CORRECTED_DETECTOR_WEIGHT
            + ocr_confidence * CORRECTED_OCR_WEIGHT
        )
    return _clamp_unit(score)
