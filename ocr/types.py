"""Type definitions for the OCR subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class EngineReading:
    """Raw output of one OCR engine call.

    Attributes:
        text: Text as read by the engine, before cleaning.
        confidence: Confidence on the engine's own scale (0-100 for the local
            engine, 0-1 heuristic for the cloud engine).
        annotations: Number of text annotations the engine returned.
    """

    text: str
    confidence: float
    annotations: int = 1


@dataclass
class OCRResult:
    """A bib number read from a region.

    Attributes:
        bib_number: Extracted digits.
        confidence: Confidence in [0, 1].
        raw_text: Text as read by the engine.
        alternatives: Single-digit-substitution candidates for low-confidence reads.
        method: Name of the engine that produced the result.
    """

    bib_number: str
    confidence: float
    raw_text: str
    alternatives: list[str] = field(default_factory=list)
    method: str = "local"

    def to_metadata(self) -> dict:
        """Metadata stored alongside a persisted detection."""
        return {
            "raw_text": self.raw_text,
            "alternatives": list(self.alternatives),
            "engine": self.method,
        }
