"""
Candidate and detection filtering functions.

- filter_by_confidence: drop detector candidates below a threshold
- deduplicate_by_bib: keep one detection per bib number (default strategy)
- merge_nearby_detections: average same-bib detections that sit close
  together (alternative strategy, not used by the default detection flow)
"""

from __future__ import annotations

from config import MERGE_DISTANCE_THRESHOLD, VERIFIED_CONFIDENCE_BONUS

from .bbox import center_distance
from .types import BoundingBox, Candidate, Detection


def filter_by_confidence(candidates: list[Candidate], threshold: float) -> list[Candidate]:
    """Return candidates whose confidence is at least threshold, in input order."""
    return [c for c in candidates if c.confidence >= threshold]


def deduplicate_by_bib(detections: list[Detection]) -> list[Detection]:
    """Keep only the highest-confidence detection for each bib number.

    On equal confidence the detection seen first is kept.
    """
    best: dict[str, Detection] = {}
    for det in detections:
        current = best.get(det.bib_number)
        if current is None or det.confidence > current.confidence:
            best[det.bib_number] = det
    return list(best.values())


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


def _merge_group(group: list[Detection]) -> Detection:
    """Collapse a group of same-bib detections into one.

    The highest-confidence member provides method and metadata; box and
    confidences are averaged.
    """
    base = max(group, key=lambda d: d.confidence)
    detector_avg = _mean([d.detector_confidence for d in group])
    ocr_values = [d.ocr_confidence for d in group if d.ocr_confidence is not None]
    ocr_avg = _mean(ocr_values) if ocr_values else 0.0
    bbox = BoundingBox(
        x=_mean([d.bbox.x for d in group]),
        y=_mean([d.bbox.y for d in group]),
        width=_mean([d.bbox.width for d in group]),
        height=_mean([d.bbox.height for d in group]),
    )
    return Detection(
        bib_number=base.bib_number,
        confidence=min(1.0, (detector_avg + ocr_avg) / 2 + VERIFIED_CONFIDENCE_BONUS),
        detector_confidence=detector_avg,
        ocr_confidence=ocr_avg if ocr_values else None,
        method=base.method,
        bbox=bbox,
        raw_metadata=dict(base.raw_metadata, merged_count=len(group)),
        ocr_metadata=base.ocr_metadata,
        photo_id=base.photo_id,
    )


def merge_nearby_detections(
    detections: list[Detection],
    distance_threshold: float = MERGE_DISTANCE_THRESHOLD,
) -> list[Detection]:
    """Merge detections that share a bib number and sit close together.

    Each detection, in order, collects every later unclaimed detection with
    the same bib number whose box centre lies strictly within
    distance_threshold pixels of its own. Groups of one pass through
    unchanged; larger groups are merged (see _merge_group).

    Args:
        detections: Detections of one photo.
        distance_threshold: Maximum centre distance in pixels.

    Returns:
        New list of detections; the input is not modified.
    """
    merged: list[Detection] = []
    claimed: set[int] = set()

    for i, det in enumerate(detections):
        if i in claimed:
            continue
        group = [det]
        for j in range(i + 1, len(detections)):
            if j in claimed:
                continue
            other = detections[j]
            if (
                other.bib_number == det.bib_number
                and center_distance(det.bbox, other.bbox) < distance_threshold
            ):
                group.append(other)
                claimed.add(j)
        claimed.add(i)
        merged.append(_merge_group(group) if len(group) > 1 else det)

    return merged
