"""
Multi-strategy bib recognition for a single cropped region.

recognize() runs, in order:
1. Upscale the region when its shorter side is too small for reliable OCR.
2. Try each preprocessing variant through the local engine, keeping the
   highest-confidence result that contains a bib; stop early once one
   exceeds the early-exit cutoff.
3. If a cloud engine is configured, always ask it too; a bib it finds
   replaces the local result.
4. Attach single-digit-substitution alternatives to a weak local result.

A failing local engine call only loses that attempt. Cloud engine outages
raise ServiceError: the photo is retried rather than silently downgraded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from config import (
    OCR_ALTERNATIVES_RAW_THRESHOLD,
    OCR_EARLY_EXIT_CONFIDENCE,
    OCR_MIN_REGION_DIMENSION,
    OCR_PREPROCESSING_VARIANTS,
)
from errors import ServiceError
from preprocessing import enhance_for_recognition, upscale_for_recognition

from .engines import OCREngine
from .text import extract_cloud_bib, extract_local_bib, generate_alternatives
from .types import OCRResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecognitionVariant:
    """Enhancement overrides applied to a region before one local OCR attempt."""

    contrast: float
    brightness: float
    sharpen_amount: float
    invert: bool = False

    def overrides(self) -> dict:
        return {
            "contrast": self.contrast,
            "brightness": self.brightness,
            "sharpen": True,
            "sharpen_amount": self.sharpen_amount,
            "invert": self.invert,
        }


DEFAULT_VARIANTS = tuple(
    RecognitionVariant(contrast, brightness, amount)
    for contrast, brightness, amount in OCR_PREPROCESSING_VARIANTS
) + (RecognitionVariant(2.5, 1.2, 1.0, invert=True),)


class BibRecognizer:
    """Reads a bib number from a cropped region.

    Args:
        local_engine: Shared local OCR engine.
        cloud_engine: Optional cloud engine; its results override local ones.
        variants: Ordered preprocessing variants for the local engine.
        early_exit_confidence: Stop trying variants once a result exceeds this (0-1).
        alternatives_threshold: Raw local score (0-100 scale) below which
            alternatives are generated.
        min_region_dimension: Shorter-side size regions are upscaled to.
    """

    def __init__(
        self,
        local_engine: OCREngine,
        cloud_engine: OCREngine | None = None,
        variants: tuple[RecognitionVariant, ...] = DEFAULT_VARIANTS,
        early_exit_confidence: float = OCR_EARLY_EXIT_CONFIDENCE,
        alternatives_threshold: float = OCR_ALTERNATIVES_RAW_THRESHOLD,
        min_region_dimension: int = OCR_MIN_REGION_DIMENSION,
    ):
        self.local_engine = local_engine
        self.cloud_engine = cloud_engine
        self.variants = variants
        self.early_exit_confidence = early_exit_confidence
        self.alternatives_threshold = alternatives_threshold
        self.min_region_dimension = min_region_dimension

    def recognize(self, region_data: bytes) -> OCRResult | None:
        """Read a bib number from an encoded region image.

        Returns:
            The best OCRResult, or None when no engine produced a bib.

        Raises:
            ServiceError: If the cloud engine is unreachable or rejects the call.
        """
        region = upscale_for_recognition(region_data, self.min_region_dimension)

        best_local, best_raw = self._recognize_local(region)
        result = best_local

        if self.cloud_engine is not None:
            cloud_result = self._recognize_cloud(region)
            if cloud_result is not None:
                if best_local is not None and best_local.bib_number != cloud_result.bib_number:
                    logger.debug(
                        "Cloud OCR %s overrides local %s",
                        cloud_result.bib_number, best_local.bib_number,
                    )
                return cloud_result

        if result is not None and best_raw < self.alternatives_threshold:
            result.alternatives = generate_alternatives(result.bib_number)
        return result

    def _recognize_local(self, region: bytes) -> tuple[OCRResult | None, float]:
        best: OCRResult | None = None
        best_raw = 0.0

        for index, variant in enumerate(self.variants):
            enhanced = enhance_for_recognition(region, variant.overrides())
            try:
                reading = self.local_engine.read(enhanced)
            except Exception as e:
                logger.warning("Local OCR failed on variant %d: %s", index, e)
                continue

            bib = extract_local_bib(reading.text)
            if bib is None:
                continue

            confidence = reading.confidence / 100.0
            if best is None or confidence > best.confidence:
                best = OCRResult(
                    bib_number=bib,
                    confidence=confidence,
                    raw_text=reading.text,
                    method=self.local_engine.name,
                )
                best_raw = reading.confidence

            if confidence > self.early_exit_confidence:
                logger.debug("Local OCR early exit on variant %d (%.2f)", index, confidence)
                break

        return best, best_raw

    def _recognize_cloud(self, region: bytes) -> OCRResult | None:
        try:
            reading = self.cloud_engine.read(region)
        except ServiceError:
            raise
        except Exception as e:
            logger.warning("Cloud OCR returned an unusable response: %s", e)
            return None

        bib = extract_cloud_bib(reading.text)
        if bib is None:
            return None
        return OCRResult(
            bib_number=bib,
            confidence=reading.confidence,
            raw_text=reading.text,
            method=self.cloud_engine.name,
        )

    def close(self) -> None:
        """Release both engines."""
        self.local_engine.close()
        if self.cloud_engine is not None:
            self.cloud_engine.close()
