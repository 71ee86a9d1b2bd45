"""
Main bib number detection orchestration.

This module ties together all detection components: enhancement, the remote
object detector, region extraction, OCR cross-checking, validation, scoring
and deduplication. An opt-in whole-photo OCR pass recovers a bib the detector
missed.

Each candidate is processed on its own and yields a CandidateOutcome, either
a detection or the reason it was dropped, so one bad candidate never costs
the rest of the photo. Detector and cloud OCR outages (ServiceError) are the
exception: they abort the photo so the job can be retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np

from config import (
    ALTERNATIVE_ADOPTION_CONFIDENCE,
    FULL_IMAGE_DETECTOR_CONFIDENCE,
    FULL_IMAGE_MIN_BIB_LENGTH,
    OCR_TRIGGER_CONFIDENCE,
)
from errors import ServiceError, ValidationError
from ocr.types import OCRResult
from preprocessing import decode_image, enhance_for_detection, image_size, upright_image

from .client import ObjectDetector
from .filtering import deduplicate_by_bib, filter_by_confidence
from .regions import extract_candidate_region
from .scoring import combined_confidence
from .types import (
    BoundingBox,
    Candidate,
    CandidateOutcome,
    Detection,
    DetectionMethod,
    DetectionOptions,
)
from .validation import bib_from_label, is_valid_bib_number, looks_like_year, validate_bib_number

logger = logging.getLogger(__name__)


class Recognizer(Protocol):
    def recognize(self, region_data: bytes) -> OCRResult | None:
        ...


@dataclass
class DetectionRunResult:
    """Everything produced by one detection run over a photo.

    Attributes:
        detections: Final deduplicated detections.
        outcomes: One outcome per candidate that passed the confidence filter.
        candidate_count: Candidates returned by the detector before filtering.
        scale_factor: Original size / size sent to the detector.
    """

    detections: list[Detection]
    outcomes: list[CandidateOutcome] = field(default_factory=list)
    candidate_count: int = 0
    scale_factor: float = 1.0

    @property
    def dropped(self) -> list[CandidateOutcome]:
        return [o for o in self.outcomes if not o.ok]


def should_run_ocr(detector_confidence: float, options: DetectionOptions) -> bool:
    """OCR runs when enabled and either the detector is unsure or fallback is on."""
    return options.use_ocr and (
        detector_confidence < OCR_TRIGGER_CONFIDENCE or options.ocr_fallback
    )


def decide_bib(
    label_bib: str,
    detector_confidence: float,
    ocr_result: OCRResult | None,
    options: DetectionOptions,
) -> tuple[str, DetectionMethod]:
    """Choose the final bib number for a candidate and how it was decided.

    - A label without a valid bib takes any valid OCR bib, whatever its
      confidence.
    - Confident OCR that disagrees with the label corrects it.
    - Confident OCR that agrees verifies it.
    - A weak detector with OCR alternatives adopts the first alternative.
    - Otherwise the detector label stands.
    """
    if (
        not is_valid_bib_number(label_bib)
        and ocr_result is not None
        and is_valid_bib_number(ocr_result.bib_number)
    ):
        return ocr_result.bib_number, DetectionMethod.OCR_CORRECTED

    if ocr_result is not None and ocr_result.confidence >= options.min_ocr_confidence:
        if ocr_result.bib_number != label_bib:
            return ocr_result.bib_number, DetectionMethod.OCR_CORRECTED
        return label_bib, DetectionMethod.OCR_VERIFIED

    if (
        detector_confidence < ALTERNATIVE_ADOPTION_CONFIDENCE
        and ocr_result is not None
        and ocr_result.alternatives
    ):
        return ocr_result.alternatives[0], DetectionMethod.OCR_CORRECTED

    return label_bib, DetectionMethod.DETECTOR_ONLY


def process_candidate(
    candidate: Candidate,
    image: np.ndarray,
    recognizer: Recognizer | None,
    options: DetectionOptions,
) -> CandidateOutcome:
    """Turn one candidate (in original-image coordinates) into an outcome.

    Raises:
        ServiceError: Only for remote service outages; every other failure is
            returned as an outcome with an error.
    """
    try:
        region_data, region_box = extract_candidate_region(image, candidate.bbox)
        label_bib = bib_from_label(candidate.label)

        ocr_result = None
        if recognizer is not None and should_run_ocr(candidate.confidence, options):
            ocr_result = recognizer.recognize(region_data)

        bib_number, method = decide_bib(label_bib, candidate.confidence, ocr_result, options)
        validate_bib_number(bib_number)

        ocr_confidence = ocr_result.confidence if ocr_result is not None else None
        detection = Detection(
            bib_number=bib_number,
            confidence=combined_confidence(method, candidate.confidence, ocr_confidence),
            detector_confidence=candidate.confidence,
            ocr_confidence=ocr_confidence,
            method=method,
            bbox=candidate.bbox,
            raw_metadata={
                "label": candidate.label,
                "class_id": candidate.class_id,
                "detection_id": candidate.detection_id,
                "region": region_box.to_dict(),
            },
            ocr_metadata=ocr_result.to_metadata() if ocr_result is not None else None,
        )
        return CandidateOutcome(candidate=candidate, detection=detection)
    except ServiceError:
        raise
    except ValidationError as e:
        logger.info("Dropping candidate %s: %s", candidate.detection_id, e)
        return CandidateOutcome(candidate=candidate, error=str(e))
    except Exception as e:
        logger.warning("Candidate %s failed: %s", candidate.detection_id, e)
        return CandidateOutcome(candidate=candidate, error=str(e))


def needs_full_image_scan(detections: list[Detection]) -> bool:
    """True when no candidate produced a bib of at least three digits."""
    return all(len(d.bib_number) < FULL_IMAGE_MIN_BIB_LENGTH for d in detections)


def scan_full_image(
    photo_data: bytes,
    image: np.ndarray,
    recognizer: Recognizer,
    options: DetectionOptions,
    known_bibs: set[str],
) -> Detection | None:
    """Read a bib from the whole photo when the detector came up short.

    The result must be a valid, non-year bib not already found and meet the
    OCR confidence threshold. Its box covers the centre half of the photo,
    since the reading carries no position.

    Raises:
        ServiceError: If the cloud OCR engine fails.
    """
    try:
        result = recognizer.recognize(photo_data)
    except ServiceError:
        raise
    except Exception as e:
        logger.warning("Full-image OCR failed: %s", e)
        return None

    if result is None:
        return None
    bib = result.bib_number
    if not is_valid_bib_number(bib) or looks_like_year(bib):
        logger.info("Full-image OCR read %r, not a bib number", result.raw_text)
        return None
    if bib in known_bibs or result.confidence < options.min_ocr_confidence:
        return None

    height, width = image.shape[:2]
    logger.info("Full-image OCR found bib %s (confidence %.2f)", bib, result.confidence)
    return Detection(
        bib_number=bib,
        confidence=combined_confidence(
            DetectionMethod.OCR_CORRECTED, FULL_IMAGE_DETECTOR_CONFIDENCE, result.confidence,
        ),
        detector_confidence=FULL_IMAGE_DETECTOR_CONFIDENCE,
        ocr_confidence=result.confidence,
        method=DetectionMethod.OCR_CORRECTED,
        bbox=BoundingBox(x=width * 0.25, y=height * 0.25, width=width * 0.5, height=height * 0.5),
        raw_metadata={
            "label": None,
            "class_id": None,
            "detection_id": f"ocr-full-{bib}",
            "source": "full_image",
        },
        ocr_metadata=result.to_metadata(),
    )


def run_detection(
    image_data: bytes,
    detector: ObjectDetector,
    recognizer: Recognizer | None = None,
    options: DetectionOptions | None = None,
) -> DetectionRunResult:
    """Detect bib numbers in a photo, keeping per-candidate outcomes.

    Args:
        image_data: Encoded photo.
        detector: Object detection client.
        recognizer: OCR recognizer; None disables OCR regardless of options.
        options: Detection options (defaults if None).

    Returns:
        DetectionRunResult with deduplicated detections in original-image
        coordinates.

    Raises:
        ValidationError: If options are invalid or the photo cannot be decoded.
        ServiceError: If the detector (or cloud OCR) fails.
    """
    options = options or DetectionOptions()
    options.validate()

    try:
        image, _ = decode_image(image_data)
        # Boxes come back in the coordinates of the decoded (EXIF-rotated) array
        photo_data = upright_image(image_data)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    detector_input = enhance_for_detection(photo_data) if options.enhance_image else photo_data
    scale_factor = 1.0
    if detector_input is not photo_data:
        sent_width, _ = image_size(detector_input)
        scale_factor = image.shape[1] / sent_width

    candidates = detector.detect(detector_input)
    kept = filter_by_confidence(candidates, options.min_detection_confidence)
    logger.info(
        "Detector found %d candidates, %d with confidence >= %.2f",
        len(candidates), len(kept), options.min_detection_confidence,
    )

    outcomes = []
    for candidate in kept:
        if scale_factor != 1.0:
            candidate = candidate.with_bbox(candidate.bbox.scale(scale_factor))
        outcomes.append(process_candidate(candidate, image, recognizer, options))

    found = [o.detection for o in outcomes if o.ok]
    if (
        options.full_image_ocr
        and options.use_ocr
        and recognizer is not None
        and needs_full_image_scan(found)
    ):
        extra = scan_full_image(
            photo_data, image, recognizer, options, {d.bib_number for d in found},
        )
        if extra is not None:
            found.append(extra)

    detections = deduplicate_by_bib(found)
    return DetectionRunResult(
        detections=detections,
        outcomes=outcomes,
        candidate_count=len(candidates),
        scale_factor=scale_factor,
    )


def detect_bib_numbers(
    image_data: bytes,
    detector: ObjectDetector,
    recognizer: Recognizer | None = None,
    options: DetectionOptions | None = None,
) -> list[Detection]:
    """Detect bib numbers in a photo. See run_detection()."""
    return run_detection(image_data, detector, recognizer, options).detections
