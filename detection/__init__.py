"""
Bib number detection module.

This module turns a photo into validated, deduplicated bib number detections.
It follows the same design philosophy as the preprocessing module: pure
functions where possible, early validation, and clear separation of concerns.

Key components:
- types: Core data structures (Candidate, Detection, DetectionOptions, ...)
- bbox: Bounding box geometry (expansion, clamping, centre distance)
- regions: Region extraction clamped to image bounds
- validation: Bib number validation and label parsing
- client: Remote object detector client
- scoring: Combined confidence per detection method
- filtering: Confidence filter, bib deduplication, proximity merge
- detector: Main detection orchestration

The main entry point is `detect_bib_numbers()`; `run_detection()` also
returns per-candidate outcomes for debugging.
"""

from .bbox import center_distance, clamp_bbox, expand_bbox
from .client import ObjectDetector, RoboflowDetectorClient, parse_predictions
from .detector import (
    DetectionRunResult,
    decide_bib,
    detect_bib_numbers,
    needs_full_image_scan,
    process_candidate,
    run_detection,
    scan_full_image,
    should_run_ocr,
)
from .filtering import deduplicate_by_bib, filter_by_confidence, merge_nearby_detections
from .regions import extract_candidate_region, extract_region
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

__all__ = [
    "BoundingBox",
    "Candidate",
    "CandidateOutcome",
    "Detection",
    "DetectionMethod",
    "DetectionOptions",
    "DetectionRunResult",
    "ObjectDetector",
    "RoboflowDetectorClient",
    "parse_predictions",
    "detect_bib_numbers",
    "run_detection",
    "process_candidate",
    "decide_bib",
    "should_run_ocr",
    "needs_full_image_scan",
    "scan_full_image",
    "combined_confidence",
    "filter_by_confidence",
    "deduplicate_by_bib",
    "merge_nearby_detections",
    "extract_region",
    "extract_candidate_region",
    "expand_bbox",
    "clamp_bbox",
    "center_distance",
    "is_valid_bib_number",
    "validate_bib_number",
    "looks_like_year",
    "bib_from_label",
]
