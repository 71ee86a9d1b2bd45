"""
Type definitions for the detection module.

This module defines the core data structures used throughout the detection
pipeline: detector candidates, final detections and orchestration options.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from config import MIN_DETECTION_CONFIDENCE, MIN_OCR_CONFIDENCE
from errors import ValidationError


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in pixel coordinates, (x, y) is the top-left corner."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def scale(self, factor: float) -> BoundingBox:
        """Return a new box with every coordinate multiplied by factor."""
        return BoundingBox(
            x=self.x * factor,
            y=self.y * factor,
            width=self.width * factor,
            height=self.height * factor,
        )

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, d: dict) -> BoundingBox:
        return cls(x=d["x"], y=d["y"], width=d["width"], height=d["height"])


@dataclass(frozen=True)
class Candidate:
    """An unvalidated box proposal returned by the object detector.

    Attributes:
        bbox: Box in the coordinates of the image sent to the detector.
        label: Class label reported by the detector (may hold the bib digits).
        confidence: Detector confidence between 0 and 1.
        detection_id: Identifier assigned by the detection service.
        class_id: Numeric class index, when the service reports one.
    """

    bbox: BoundingBox
    label: str
    confidence: float
    detection_id: str | None = None
    class_id: int | None = None

    def with_bbox(self, bbox: BoundingBox) -> Candidate:
        return Candidate(
            bbox=bbox,
            label=self.label,
            confidence=self.confidence,
            detection_id=self.detection_id,
            class_id=self.class_id,
        )


class DetectionMethod(str, Enum):
    """How the final bib number of a detection was decided."""

    DETECTOR_ONLY = "detector_only"
    OCR_VERIFIED = "ocr_verified"
    OCR_CORRECTED = "ocr_corrected"


@dataclass
class Detection:
    """A validated bib number finding for one photo.

    Attributes:
        bib_number: Final bib number, always 1-4 digits.
        confidence: Combined confidence in [0, 1].
        detector_confidence: Confidence reported by the detector.
        ocr_confidence: Confidence of the OCR result (None when OCR did not run
            or returned nothing).
        method: How the bib number was decided.
        bbox: Box in original-image coordinates.
        raw_metadata: Detector metadata (label, class_id, detection_id).
        ocr_metadata: OCR metadata (raw_text, alternatives, engine) or None.
        photo_id: Owning photo, set once persisted.
        id: Database id, set once persisted.
    """

    bib_number: str
    confidence: float
    detector_confidence: float
    ocr_confidence: float | None
    method: DetectionMethod
    bbox: BoundingBox
    raw_metadata: dict = field(default_factory=dict)
    ocr_metadata: dict | None = None
    photo_id: str | None = None
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "photo_id": self.photo_id,
            "bib_number": self.bib_number,
            "confidence": self.confidence,
            "detector_confidence": self.detector_confidence,
            "ocr_confidence": self.ocr_confidence,
            "method": self.method.value,
            "bbox": self.bbox.to_dict(),
            "raw_metadata": self.raw_metadata,
            "ocr_metadata": self.ocr_metadata,
        }

    @classmethod
    def from_dict(cls, d: dict) -> Detection:
        return cls(
            bib_number=d["bib_number"],
            confidence=d["confidence"],
            detector_confidence=d["detector_confidence"],
            ocr_confidence=d.get("ocr_confidence"),
            method=DetectionMethod(d["method"]),
            bbox=BoundingBox.from_dict(d["bbox"]),
            raw_metadata=d.get("raw_metadata") or {},
            ocr_metadata=d.get("ocr_metadata"),
            photo_id=d.get("photo_id"),
            id=d.get("id"),
        )


@dataclass(frozen=True)
class DetectionOptions:
    """Options for one detection run over a photo.

    full_image_ocr adds a whole-photo OCR pass when the detector found nothing
    usable (no candidates, or only labels shorter than three digits).
    """

    min_detection_confidence: float = MIN_DETECTION_CONFIDENCE
    min_ocr_confidence: float = MIN_OCR_CONFIDENCE
    use_ocr: bool = True
    enhance_image: bool = True
    ocr_fallback: bool = True
    full_image_ocr: bool = False

    def validate(self) -> None:
        """Raise ValidationError if a threshold lies outside [0, 1]."""
        for name in ("min_detection_confidence", "min_ocr_confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be within [0, 1], got {value}")


@dataclass
class CandidateOutcome:
    """Result of processing one candidate: a detection or the reason it was dropped."""

    candidate: Candidate
    detection: Detection | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.detection is not None
