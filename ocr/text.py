"""
OCR text cleaning and bib extraction.

All functions are pure. Extraction differs per engine: the local engine reads
a single tight crop, so its first digit run is trusted; the cloud engine reads
everything in the region (sponsor text, dates, ...) so its runs are filtered.
"""

import re

from config import CLOUD_BIB_MAX_LENGTH, CLOUD_BIB_MIN_LENGTH, OCR_MAX_ALTERNATIVES
from detection.validation import looks_like_year

_NON_DIGITS_RE = re.compile(r"\D+")
_DIGIT_RUN_RE = re.compile(r"\d+")
_LOCAL_BIB_RE = re.compile(r"\d{1,4}")

# Digits an OCR engine commonly confuses with each other
DIGIT_CONFUSIONS = {
    "0": ("8", "6", "9"),
    "1": ("7", "4"),
    "2": ("7", "3"),
    "3": ("8", "2"),
    "4": ("1", "9"),
    "5": ("6", "3"),
    "6": ("5", "8", "0"),
    "7": ("1", "2"),
    "8": ("3", "0", "6"),
    "9": ("4", "0"),
}


def clean_text(text: str | None) -> str:
    """Strip everything but digits. Idempotent."""
    if not text:
        return ""
    return _NON_DIGITS_RE.sub("", text)


def extract_local_bib(text: str | None) -> str | None:
    """Return the first 1-4 digit run of the cleaned text, or None."""
    match = _LOCAL_BIB_RE.search(clean_text(text))
    return match.group(0) if match else None


def extract_cloud_bib(text: str | None) -> str | None:
    """Pick the most plausible bib number from free text read by the cloud engine.

    Digit runs are taken from the raw text. Runs shorter or longer than the
    allowed range and runs that look like years are discarded; the longest
    remaining run wins, the earliest one on ties.

    Examples:
        >>> extract_cloud_bib("BIB1234FINISH")
        '1234'
        >>> extract_cloud_bib("MARATHON 2024 No 517")
        '517'
    """
    if not text:
        return None
    runs = [
        run for run in _DIGIT_RUN_RE.findall(text)
        if CLOUD_BIB_MIN_LENGTH <= len(run) <= CLOUD_BIB_MAX_LENGTH
        and not looks_like_year(run)
    ]
    if not runs:
        return None
    return max(runs, key=len)


def generate_alternatives(bib_number: str, limit: int = OCR_MAX_ALTERNATIVES) -> list[str]:
    """Generate bib numbers that differ from bib_number by one confused digit.

    Positions are walked left to right and substitutions taken in confusion
    order; the first `limit` distinct results are returned.
    """
    alternatives: list[str] = []
    for position, digit in enumerate(bib_number):
        for replacement in DIGIT_CONFUSIONS.get(digit, ()):
            candidate = bib_number[:position] + replacement + bib_number[position + 1:]
            if candidate != bib_number and candidate not in alternatives:
                alternatives.append(candidate)
            if len(alternatives) >= limit:
                return alternatives
    return alternatives
