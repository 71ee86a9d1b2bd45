"""
Bib number validation and parsing.

Functions for validating whether text represents a bib number and for pulling
a bib number out of a detector class label.
"""

import re

from config import BIB_PATTERN, EXTENDED_YEAR_RANGE, YEAR_RANGE
from errors import ValidationError

_BIB_RE = re.compile(BIB_PATTERN)
_ISOLATED_RUN_RE = re.compile(r"\b\d{1,4}\b")
_ANY_RUN_RE = re.compile(r"\d{1,4}")


def is_valid_bib_number(text: str | None) -> bool:
    """Check if text is a bib number: 1 to 4 digits, nothing else."""
    if not text:
        return False
    return _BIB_RE.match(text) is not None


def validate_bib_number(text: str | None) -> str:
    """Return text unchanged if it is a valid bib number.

    Raises:
        ValidationError: If text does not match the bib pattern.
    """
    if not is_valid_bib_number(text):
        raise ValidationError(f"Invalid bib number: {text!r}")
    return text


def looks_like_year(digits: str) -> bool:
    """Check if a digit run reads as a calendar year (2000-2099 or 20000-20999)."""
    if not digits.isdigit():
        return False
    value = int(digits)
    if len(digits) == 4:
        return YEAR_RANGE[0] <= value <= YEAR_RANGE[1]
    if len(digits) == 5:
        return EXTENDED_YEAR_RANGE[0] <= value <= EXTENDED_YEAR_RANGE[1]
    return False


def _longest_first(runs: list[str]) -> str:
    # max() keeps the earliest run among equal lengths
    return max(runs, key=len)


def bib_from_label(label: str | None) -> str:
    """Extract a bib number from a detector class label.

    A label that is already a bib number is returned as is. Otherwise the
    longest isolated 1-4 digit run that is not a year wins, falling back to any
    1-4 digit run. Labels without digits (e.g. "bib") give an empty string.

    Examples:
        >>> bib_from_label("345")
        '345'
        >>> bib_from_label("bib_2024_345")
        '345'
        >>> bib_from_label("bib")
        ''
    """
    if not label:
        return ""
    label = label.strip()
    if is_valid_bib_number(label):
        return label

    for pattern in (_ISOLATED_RUN_RE, _ANY_RUN_RE):
        runs = [run for run in pattern.findall(label) if not looks_like_year(run)]
        if runs:
            return _longest_first(runs)
    return ""
