"""Tests for OCR text cleaning, bib extraction and alternative generation."""

import pytest

from ocr import OCRResult, clean_text, extract_cloud_bib, extract_local_bib, generate_alternatives


class TestCleanText:
    @pytest.mark.parametrize("raw,expected", [
        ("BIB1234FINISH", "1234"),
        ("  12 34 ", "1234"),
        ("no digits", ""),
        ("", ""),
        (None, ""),
        ("4-5.6", "456"),
    ])
    def test_strips_non_digits(self, raw, expected):
        assert clean_text(raw) == expected

    @pytest.mark.parametrize("raw", ["BIB1234FINISH", "a1b2c3", "", "2024 run 77", "\n\t9"])
    def test_idempotent(self, raw):
        once = clean_text(raw)
        assert clean_text(once) == once


class TestExtractLocalBib:
    def test_reads_bib_from_noisy_text(self):
        assert extract_local_bib("BIB1234FINISH") == "1234"

    def test_takes_first_four_digits_of_long_run(self):
        assert extract_local_bib("123456") == "1234"

    def test_no_digits(self):
        assert extract_local_bib("abc") is None
        assert extract_local_bib(None) is None


class TestExtractCloudBib:
    def test_scenario_bib_in_text(self):
        assert extract_cloud_bib("BIB1234FINISH") == "1234"

    def test_skips_years(self):
        assert extract_cloud_bib("MARATHON 2024 No 517") == "517"

    def test_rejects_short_and_long_runs(self):
        assert extract_cloud_bib("12 and 123456") is None

    def test_longest_run_wins(self):
        assert extract_cloud_bib("345 then 6789") == "6789"

    def test_earliest_wins_on_tie(self):
        assert extract_cloud_bib("345 678") == "345"

    def test_nothing(self):
        assert extract_cloud_bib("") is None
        assert extract_cloud_bib("FINISH") is None


class TestGenerateAlternatives:
    def test_single_digit_substitutions(self):
        assert generate_alternatives("10") == ["70", "40", "18", "16", "19"]

    def test_respects_limit(self):
        assert len(generate_alternatives("888", limit=3)) == 3

    def test_never_contains_original(self):
        assert "1234" not in generate_alternatives("1234", limit=50)

    def test_all_differ_by_one_digit(self):
        for alt in generate_alternatives("506", limit=50):
            assert len(alt) == 3
            assert sum(a != b for a, b in zip(alt, "506")) == 1


def test_ocr_result_metadata():
    result = OCRResult(bib_number="12", confidence=0.4, raw_text="12", alternatives=["72"])
    assert result.to_metadata() == {"raw_text": "12", "alternatives": ["72"], "engine": "local"}
