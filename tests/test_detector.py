"""Tests for detection orchestration over a whole photo."""

import io

import pytest
from PIL import Image

from detection import (
    BoundingBox,
    Candidate,
    DetectionMethod,
    DetectionOptions,
    decide_bib,
    detect_bib_numbers,
    run_detection,
    should_run_ocr,
)
from errors import ServiceError, ValidationError
from ocr import OCRResult


def _photo(width: int = 400, height: int = 300) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(90, 120, 150)).save(buffer, format="PNG")
    return buffer.getvalue()


def _rotated_jpeg(width: int = 400, height: int = 300) -> bytes:
    exif = Image.Exif()
    exif[0x0112] = 6
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(90, 120, 150)).save(buffer, format="JPEG", exif=exif)
    return buffer.getvalue()


def _candidate(label, confidence, bbox=None, detection_id=None):
    return Candidate(
        bbox=bbox or BoundingBox(100, 100, 60, 40),
        label=label,
        confidence=confidence,
        detection_id=detection_id,
    )


class FakeDetector:
    def __init__(self, candidates=None, error=None):
        self.candidates = candidates or []
        self.error = error
        self.inputs = []

    def detect(self, image_data):
        self.inputs.append(image_data)
        if self.error is not None:
            raise self.error
        return list(self.candidates)

    def close(self):
        pass


class FakeRecognizer:
    """Returns results in order; an Exception entry is raised instead."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def recognize(self, region_data):
        self.calls += 1
        result = self.results.pop(0) if self.results else None
        if isinstance(result, Exception):
            raise result
        return result


PLAIN = dict(enhance_image=False)


class TestScenarios:
    def test_confident_detector_skips_ocr(self):
        recognizer = FakeRecognizer(OCRResult("999", 0.99, "999"))
        detector = FakeDetector([_candidate("345", 0.9)])
        options = DetectionOptions(use_ocr=True, ocr_fallback=False, **PLAIN)

        [detection] = detect_bib_numbers(_photo(), detector, recognizer, options)

        assert recognizer.calls == 0
        assert detection.method == DetectionMethod.DETECTOR_ONLY
        assert detection.bib_number == "345"
        assert detection.confidence == pytest.approx(0.9)
        assert detection.ocr_confidence is None

    def test_ocr_corrects_weak_detector_label(self):
        recognizer = FakeRecognizer(OCRResult("128", 0.75, "128"))
        detector = FakeDetector([_candidate("120", 0.4)])
        options = DetectionOptions(min_ocr_confidence=0.6, **PLAIN)

        [detection] = detect_bib_numbers(_photo(), detector, recognizer, options)

        assert detection.method == DetectionMethod.OCR_CORRECTED
        assert detection.bib_number == "128"
        assert detection.confidence == pytest.approx(0.645)
        assert detection.ocr_metadata["raw_text"] == "128"

    def test_duplicate_bib_keeps_higher_confidence(self):
        detector = FakeDetector([
            _candidate("77", 0.6, BoundingBox(10, 10, 50, 50)),
            _candidate("77", 0.8, BoundingBox(200, 100, 50, 50)),
        ])
        options = DetectionOptions(use_ocr=False, **PLAIN)

        [detection] = detect_bib_numbers(_photo(), detector, None, options)

        assert detection.bib_number == "77"
        assert detection.confidence == pytest.approx(0.8)
        assert detection.bbox == BoundingBox(200, 100, 50, 50)


class TestRunDetection:
    def test_ocr_verifies_matching_label(self):
        recognizer = FakeRecognizer(OCRResult("42", 0.8, "42"))
        detector = FakeDetector([_candidate("42", 0.6)])

        [detection] = detect_bib_numbers(_photo(), detector, recognizer, DetectionOptions(**PLAIN))

        assert detection.method == DetectionMethod.OCR_VERIFIED
        assert detection.confidence == pytest.approx(0.8)

    def test_candidates_below_threshold_are_discarded(self):
        detector = FakeDetector([_candidate("1", 0.29), _candidate("2", 0.3)])
        result = run_detection(
            _photo(), detector, None, DetectionOptions(min_detection_confidence=0.3, **PLAIN),
        )
        assert result.candidate_count == 2
        assert [d.bib_number for d in result.detections] == ["2"]

    def test_invalid_label_without_ocr_is_dropped_not_fatal(self):
        detector = FakeDetector([_candidate("bib", 0.9, detection_id="bad"), _candidate("12", 0.9)])
        result = run_detection(_photo(), detector, None, DetectionOptions(**PLAIN))

        assert [d.bib_number for d in result.detections] == ["12"]
        [dropped] = result.dropped
        assert dropped.candidate.detection_id == "bad"
        assert "Invalid bib number" in dropped.error

    def test_candidate_outside_image_is_dropped(self):
        detector = FakeDetector([
            _candidate("5", 0.9, BoundingBox(5000, 5000, 10, 10)),
            _candidate("6", 0.9),
        ])
        result = run_detection(_photo(), detector, None, DetectionOptions(use_ocr=False, **PLAIN))
        assert [d.bib_number for d in result.detections] == ["6"]
        assert len(result.dropped) == 1

    def test_recognizer_crash_only_drops_its_candidate(self):
        recognizer = FakeRecognizer(RuntimeError("boom"), OCRResult("9", 0.9, "9"))
        detector = FakeDetector([_candidate("8", 0.5), _candidate("9", 0.5)])
        result = run_detection(_photo(), detector, recognizer, DetectionOptions(**PLAIN))
        assert [d.bib_number for d in result.detections] == ["9"]
        assert result.dropped[0].error == "boom"

    def test_cloud_outage_aborts_photo(self):
        recognizer = FakeRecognizer(ServiceError("Cloud OCR unreachable"))
        detector = FakeDetector([_candidate("8", 0.5)])
        with pytest.raises(ServiceError):
            run_detection(_photo(), detector, recognizer, DetectionOptions(**PLAIN))

    def test_detector_outage_propagates(self):
        detector = FakeDetector(error=ServiceError("Detection service unreachable"))
        with pytest.raises(ServiceError):
            detect_bib_numbers(_photo(), detector)

    def test_undecodable_photo_is_validation_error(self):
        with pytest.raises(ValidationError, match="Cannot decode"):
            detect_bib_numbers(b"not an image", FakeDetector())

    def test_invalid_options_rejected(self):
        with pytest.raises(ValidationError, match="min_detection_confidence"):
            detect_bib_numbers(_photo(), FakeDetector(), None, DetectionOptions(min_detection_confidence=1.5))

    def test_no_recognizer_disables_ocr(self):
        detector = FakeDetector([_candidate("31", 0.4)])
        [detection] = detect_bib_numbers(_photo(), detector, None, DetectionOptions(**PLAIN))
        assert detection.method == DetectionMethod.DETECTOR_ONLY

    def test_unenhanced_photo_sent_as_is(self):
        detector = FakeDetector()
        data = _photo()
        detect_bib_numbers(data, detector, None, DetectionOptions(**PLAIN))
        assert detector.inputs == [data]

    def test_rotated_photo_sent_upright(self):
        # Box only fits inside the photo once its EXIF rotation is applied
        detector = FakeDetector([_candidate("7", 0.9, BoundingBox(10, 300, 50, 50))])
        result = run_detection(
            _rotated_jpeg(400, 300), detector, None, DetectionOptions(use_ocr=False, **PLAIN),
        )

        [sent] = detector.inputs
        assert Image.open(io.BytesIO(sent)).size == (300, 400)
        assert result.scale_factor == 1.0
        [detection] = result.detections
        assert detection.bbox == BoundingBox(10, 300, 50, 50)

    def test_label_without_bib_adopts_weak_ocr(self):
        recognizer = FakeRecognizer(OCRResult("345", 0.4, "345"))
        detector = FakeDetector([_candidate("bib", 0.8)])

        result = run_detection(_photo(), detector, recognizer, DetectionOptions(**PLAIN))

        assert result.dropped == []
        [detection] = result.detections
        assert detection.bib_number == "345"
        assert detection.method == DetectionMethod.OCR_CORRECTED
        assert detection.confidence == pytest.approx(0.52)
        assert detection.raw_metadata["label"] == "bib"

    def test_boxes_scaled_back_to_original_coordinates(self):
        detector = FakeDetector([_candidate("3", 0.9, BoundingBox(100, 10, 50, 20))])
        result = run_detection(
            _photo(3840, 200), detector, None, DetectionOptions(use_ocr=False, enhance_image=True),
        )
        assert result.scale_factor == pytest.approx(2.0)
        [detection] = result.detections
        assert detection.bbox == BoundingBox(200, 20, 100, 40)
        assert detection.raw_metadata["label"] == "3"

    def test_every_detection_is_valid_and_unique(self):
        detector = FakeDetector([
            _candidate("12", 0.9), _candidate("12", 0.5), _candidate("x", 0.9),
            _candidate("bib-2024", 0.9), _candidate("4", 0.35),
        ])
        detections = detect_bib_numbers(_photo(), detector, None, DetectionOptions(**PLAIN))
        bibs = [d.bib_number for d in detections]
        assert sorted(bibs) == ["12", "4"]
        assert all(0.0 <= d.confidence <= 1.0 for d in detections)


class TestDecisionHelpers:
    def test_should_run_ocr(self):
        assert should_run_ocr(0.5, DetectionOptions(ocr_fallback=False))
        assert not should_run_ocr(0.7, DetectionOptions(ocr_fallback=False))
        assert should_run_ocr(0.95, DetectionOptions(ocr_fallback=True))
        assert not should_run_ocr(0.1, DetectionOptions(use_ocr=False))

    def test_weak_ocr_keeps_label(self):
        options = DetectionOptions()
        ocr = OCRResult("99", 0.2, "99")
        assert decide_bib("12", 0.8, ocr, options) == ("12", DetectionMethod.DETECTOR_ONLY)

    def test_weak_detector_adopts_first_alternative(self):
        options = DetectionOptions()
        ocr = OCRResult("10", 0.3, "10", alternatives=["70", "40"])
        assert decide_bib("10", 0.4, ocr, options) == ("70", DetectionMethod.OCR_CORRECTED)

    def test_confident_detector_ignores_alternatives(self):
        options = DetectionOptions()
        ocr = OCRResult("10", 0.3, "10", alternatives=["70"])
        assert decide_bib("10", 0.6, ocr, options) == ("10", DetectionMethod.DETECTOR_ONLY)

    def test_label_without_bib_takes_any_valid_ocr(self):
        options = DetectionOptions()
        ocr = OCRResult("345", 0.1, "345")
        assert decide_bib("", 0.9, ocr, options) == ("345", DetectionMethod.OCR_CORRECTED)

    def test_label_without_bib_ignores_weak_invalid_ocr(self):
        options = DetectionOptions()
        ocr = OCRResult("12345", 0.2, "12345")
        assert decide_bib("", 0.9, ocr, options) == ("", DetectionMethod.DETECTOR_ONLY)


class TestFullImageOcr:
    FULL = dict(full_image_ocr=True, **PLAIN)

    def test_no_candidates_scans_whole_photo(self):
        recognizer = FakeRecognizer(OCRResult("345", 0.8, "345"))
        result = run_detection(_photo(), FakeDetector(), recognizer, DetectionOptions(**self.FULL))

        [detection] = result.detections
        assert recognizer.calls == 1
        assert detection.bib_number == "345"
        assert detection.method == DetectionMethod.OCR_CORRECTED
        assert detection.confidence == pytest.approx(0.65)
        assert detection.bbox == BoundingBox(100, 75, 200, 150)
        assert detection.raw_metadata["source"] == "full_image"

    def test_only_invalid_labels_scans_whole_photo(self):
        recognizer = FakeRecognizer(None, OCRResult("345", 0.8, "345"))
        detector = FakeDetector([_candidate("bib", 0.9)])

        result = run_detection(_photo(), detector, recognizer, DetectionOptions(**self.FULL))

        assert len(result.dropped) == 1
        assert [d.bib_number for d in result.detections] == ["345"]

    def test_short_labels_are_kept_alongside(self):
        recognizer = FakeRecognizer(None, OCRResult("345", 0.8, "345"))
        detector = FakeDetector([_candidate("12", 0.9)])

        detections = detect_bib_numbers(_photo(), detector, recognizer, DetectionOptions(**self.FULL))

        assert sorted(d.bib_number for d in detections) == ["12", "345"]

    def test_good_candidate_skips_scan(self):
        recognizer = FakeRecognizer(OCRResult("345", 0.9, "345"), OCRResult("678", 0.9, "678"))
        detector = FakeDetector([_candidate("345", 0.9)])

        detections = detect_bib_numbers(_photo(), detector, recognizer, DetectionOptions(**self.FULL))

        assert recognizer.calls == 1
        assert [d.bib_number for d in detections] == ["345"]

    def test_off_by_default(self):
        recognizer = FakeRecognizer(OCRResult("345", 0.8, "345"))
        assert detect_bib_numbers(_photo(), FakeDetector(), recognizer, DetectionOptions(**PLAIN)) == []
        assert recognizer.calls == 0

    @pytest.mark.parametrize("reading", [
        OCRResult("2024", 0.9, "2024"),
        OCRResult("345", 0.2, "345"),
        OCRResult("12345", 0.9, "12345"),
        None,
    ])
    def test_unusable_reading_adds_nothing(self, reading):
        recognizer = FakeRecognizer(reading)
        assert detect_bib_numbers(_photo(), FakeDetector(), recognizer, DetectionOptions(**self.FULL)) == []

    def test_bib_already_found_is_not_duplicated(self):
        recognizer = FakeRecognizer(None, OCRResult("12", 0.95, "12"))
        detector = FakeDetector([_candidate("12", 0.9)])

        [detection] = detect_bib_numbers(_photo(), detector, recognizer, DetectionOptions(**self.FULL))

        assert recognizer.calls == 2
        assert detection.method == DetectionMethod.DETECTOR_ONLY

    def test_recognizer_crash_keeps_candidates(self):
        recognizer = FakeRecognizer(None, RuntimeError("boom"))
        detector = FakeDetector([_candidate("12", 0.9)])

        detections = detect_bib_numbers(_photo(), detector, recognizer, DetectionOptions(**self.FULL))

        assert [d.bib_number for d in detections] == ["12"]

    def test_cloud_outage_during_scan_aborts_photo(self):
        recognizer = FakeRecognizer(ServiceError("Cloud OCR unreachable"))
        with pytest.raises(ServiceError):
            run_detection(_photo(), FakeDetector(), recognizer, DetectionOptions(**self.FULL))
