"""Owned, long-lived pipeline resources.

The detector client, the local OCR engine and the optional cloud engine are
expensive or hold connections. They are built once per process, handed to the
service and worker by reference, and closed at shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from detection import ObjectDetector, RoboflowDetectorClient
from ocr import BibRecognizer, EasyOCREngine, create_cloud_engine

logger = logging.getLogger(__name__)


@dataclass
class PipelineResources:
    """Detector and recognizer shared by every job in this process."""

    detector: ObjectDetector
    recognizer: BibRecognizer | None = None

    def close(self) -> None:
        logger.info("Releasing pipeline resources")
        self.detector.close()
        if self.recognizer is not None:
            self.recognizer.close()

    def __enter__(self) -> PipelineResources:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_resources(use_ocr: bool = True) -> PipelineResources:
    """Build resources from configuration.

    The local OCR model is not loaded here; it loads on the first region read.
    """
    detector = RoboflowDetectorClient()
    recognizer = None
    if use_ocr:
        recognizer = BibRecognizer(
            local_engine=EasyOCREngine(),
            cloud_engine=create_cloud_engine(),
        )
    return PipelineResources(detector=detector, recognizer=recognizer)
