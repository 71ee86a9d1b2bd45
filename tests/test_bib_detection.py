"""Tests for bib validation, confidence scoring and detection filtering."""

import pytest

from detection import (
    BoundingBox,
    Candidate,
    Detection,
    DetectionMethod,
    bib_from_label,
    combined_confidence,
    deduplicate_by_bib,
    filter_by_confidence,
    is_valid_bib_number,
    looks_like_year,
    merge_nearby_detections,
    validate_bib_number,
)
from errors import ValidationError


def _candidate(confidence: float, label: str = "1") -> Candidate:
    return Candidate(bbox=BoundingBox(0, 0, 10, 10), label=label, confidence=confidence)


def _detection(
    bib: str,
    confidence: float,
    bbox: BoundingBox | None = None,
    detector_confidence: float | None = None,
    ocr_confidence: float | None = None,
    method: DetectionMethod = DetectionMethod.DETECTOR_ONLY,
) -> Detection:
    return Detection(
        bib_number=bib,
        confidence=confidence,
        detector_confidence=confidence if detector_confidence is None else detector_confidence,
        ocr_confidence=ocr_confidence,
        method=method,
        bbox=bbox or BoundingBox(0, 0, 10, 10),
    )


class TestBibValidation:
    """Tests for bib number validation."""

    @pytest.mark.parametrize("text", ["1", "42", "353", "9999", "0"])
    def test_valid_bib_numbers(self, text):
        assert is_valid_bib_number(text)

    @pytest.mark.parametrize("text", ["", None, "12345", "12a", " 12", "12.5", "-1"])
    def test_invalid_bib_numbers(self, text):
        assert not is_valid_bib_number(text)

    def test_validate_returns_value(self):
        assert validate_bib_number("77") == "77"

    def test_validate_raises(self):
        with pytest.raises(ValidationError, match="Invalid bib number"):
            validate_bib_number("abc")

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_bib_number("")


class TestLooksLikeYear:
    @pytest.mark.parametrize("digits", ["2000", "2024", "2099", "20000", "20999"])
    def test_years(self, digits):
        assert looks_like_year(digits)

    @pytest.mark.parametrize("digits", ["1999", "2100", "345", "21000", "abc"])
    def test_not_years(self, digits):
        assert not looks_like_year(digits)


class TestBibFromLabel:
    def test_label_already_a_bib(self):
        assert bib_from_label("345") == "345"

    def test_year_is_skipped(self):
        assert bib_from_label("bib_2024_345") == "345"

    def test_longest_isolated_run_wins(self):
        assert bib_from_label("bib 12 4567") == "4567"

    def test_no_digits_gives_empty(self):
        assert bib_from_label("bib") == ""
        assert bib_from_label(None) == ""

    def test_whitespace_stripped(self):
        assert bib_from_label(" 88 ") == "88"


class TestCombinedConfidence:
    def test_detector_only_uses_detector_confidence(self):
        assert combined_confidence(DetectionMethod.DETECTOR_ONLY, 0.9) == pytest.approx(0.9)

    def test_ocr_verified_adds_bonus(self):
        score = combined_confidence(DetectionMethod.OCR_VERIFIED, 0.6, 0.8)
        assert score == pytest.approx(0.8)

    def test_ocr_verified_is_capped(self):
        assert combined_confidence(DetectionMethod.OCR_VERIFIED, 0.95, 1.0) == 1.0

    def test_ocr_corrected_weights(self):
        score = combined_confidence(DetectionMethod.OCR_CORRECTED, 0.4, 0.75)
        assert score == pytest.approx(0.645)

    def test_ocr_method_without_ocr_confidence_raises(self):
        with pytest.raises(ValueError, match="requires an OCR confidence"):
            combined_confidence(DetectionMethod.OCR_CORRECTED, 0.4)

    @pytest.mark.parametrize("method", list(DetectionMethod))
    @pytest.mark.parametrize("detector,ocr", [(0.0, 0.0), (1.0, 1.0), (0.3, 0.99), (1.0, 0.0)])
    def test_always_within_unit_interval(self, method, detector, ocr):
        score = combined_confidence(method, detector, ocr)
        assert 0.0 <= score <= 1.0


class TestFilterByConfidence:
    def test_threshold_is_inclusive(self):
        kept = filter_by_confidence([_candidate(0.3), _candidate(0.29), _candidate(0.8)], 0.3)
        assert [c.confidence for c in kept] == [0.3, 0.8]

    def test_nothing_below_threshold_survives(self):
        candidates = [_candidate(c / 10) for c in range(11)]
        kept = filter_by_confidence(candidates, 0.55)
        assert all(c.confidence >= 0.55 for c in kept)
        assert len(kept) == 5


class TestDeduplicateByBib:
    def test_keeps_highest_confidence_per_bib(self):
        result = deduplicate_by_bib([
            _detection("77", 0.6),
            _detection("12", 0.5),
            _detection("77", 0.8),
        ])
        assert sorted((d.bib_number, d.confidence) for d in result) == [("12", 0.5), ("77", 0.8)]

    def test_tie_keeps_first(self):
        first = _detection("5", 0.7, bbox=BoundingBox(1, 1, 1, 1))
        second = _detection("5", 0.7, bbox=BoundingBox(2, 2, 2, 2))
        assert deduplicate_by_bib([first, second]) == [first]

    def test_empty(self):
        assert deduplicate_by_bib([]) == []


class TestMergeNearbyDetections:
    def test_close_same_bib_is_merged(self):
        a = _detection("42", 0.8, BoundingBox(0, 0, 20, 20), ocr_confidence=0.6)
        b = _detection("42", 0.6, BoundingBox(10, 0, 20, 20), ocr_confidence=0.8)
        [merged] = merge_nearby_detections([a, b])
        assert merged.bbox == BoundingBox(5, 0, 20, 20)
        assert merged.detector_confidence == pytest.approx(0.7)
        assert merged.ocr_confidence == pytest.approx(0.7)
        assert merged.confidence == pytest.approx(0.8)
        assert merged.raw_metadata["merged_count"] == 2

    def test_far_apart_not_merged(self):
        a = _detection("42", 0.8, BoundingBox(0, 0, 20, 20))
        b = _detection("42", 0.6, BoundingBox(500, 500, 20, 20))
        assert merge_nearby_detections([a, b]) == [a, b]

    def test_different_bibs_not_merged(self):
        a = _detection("42", 0.8)
        b = _detection("43", 0.6)
        assert merge_nearby_detections([a, b]) == [a, b]

    def test_distance_threshold_is_exclusive(self):
        a = _detection("1", 0.5, BoundingBox(0, 0, 10, 10))
        b = _detection("1", 0.5, BoundingBox(50, 0, 10, 10))
        assert len(merge_nearby_detections([a, b], distance_threshold=50)) == 2

    def test_merged_confidence_capped(self):
        a = _detection("9", 1.0, ocr_confidence=1.0)
        b = _detection("9", 1.0, ocr_confidence=1.0)
        [merged] = merge_nearby_detections([a, b])
        assert merged.confidence == 1.0

    def test_input_not_modified(self):
        detections = [_detection("3", 0.5), _detection("3", 0.6)]
        merge_nearby_detections(detections)
        assert len(detections) == 2
        assert "merged_count" not in detections[0].raw_metadata
