"""
OCR engine backends.

Two engines are available:

- EasyOCREngine: local digit-only reader. The underlying model is expensive to
  load, so it is created lazily on first use and shared by every caller that
  holds the engine. Calls are serialized with a lock; the reader is not safe
  to drive from several threads at once.
- GoogleVisionEngine: optional cloud engine, enabled by configuring a
  service-account credentials file.

Engines take encoded image bytes and return an EngineReading.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Protocol

from config import (
    CLOUD_OCR_ENABLED,
    CLOUD_OCR_MULTI_ANNOTATION_CONFIDENCE,
    CLOUD_OCR_SINGLE_ANNOTATION_CONFIDENCE,
    GOOGLE_VISION_CREDENTIALS_PATH,
    OCR_ALLOWLIST,
    OCR_LANGUAGES,
    OCR_USE_GPU,
)
from errors import ServiceError
from preprocessing import decode_image
from warnings_utils import suppress_ocr_runtime_warnings

from .types import EngineReading

logger = logging.getLogger(__name__)


class OCREngine(Protocol):
    name: str

    def read(self, image_data: bytes) -> EngineReading:
        ...

    def close(self) -> None:
        ...


def _default_reader_factory(languages: list[str], gpu: bool) -> Any:
    import easyocr

    suppress_ocr_runtime_warnings()
    return easyocr.Reader(languages, gpu=gpu)


class EasyOCREngine:
    """Local OCR engine restricted to digits, reading a region as one line.

    Text boxes returned by the reader are joined left to right and their
    confidences averaged, then reported on a 0-100 scale.

    Args:
        languages: Reader languages.
        gpu: Whether the reader may use a GPU.
        allowlist: Characters the reader may emit.
        reader_factory: Callable building the reader; tests pass a fake.
    """

    name = "easyocr"

    def __init__(
        self,
        languages: list[str] | None = None,
        gpu: bool = OCR_USE_GPU,
        allowlist: str = OCR_ALLOWLIST,
        reader_factory: Callable[[list[str], bool], Any] | None = None,
    ):
        self.languages = list(languages or OCR_LANGUAGES)
        self.gpu = gpu
        self.allowlist = allowlist
        self._reader_factory = reader_factory or _default_reader_factory
        self._reader: Any | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def is_loaded(self) -> bool:
        return self._reader is not None

    def _get_reader(self) -> Any:
        # Caller holds self._lock
        if self._closed:
            raise RuntimeError("OCR engine has been closed")
        if self._reader is None:
            logger.info("Loading EasyOCR reader (languages=%s, gpu=%s)", self.languages, self.gpu)
            self._reader = self._reader_factory(self.languages, self.gpu)
        return self._reader

    def read(self, image_data: bytes) -> EngineReading:
        image, _ = decode_image(image_data)
        with self._lock:
            reader = self._get_reader()
            results = reader.readtext(
                image,
                allowlist=self.allowlist,
                detail=1,
                paragraph=False,
            )

        if not results:
            return EngineReading(text="", confidence=0.0, annotations=0)

        ordered = sorted(results, key=lambda r: min(point[0] for point in r[0]))
        text = "".join(str(r[1]) for r in ordered)
        confidence = sum(float(r[2]) for r in ordered) / len(ordered)
        return EngineReading(text=text, confidence=confidence * 100.0, annotations=len(ordered))

    def close(self) -> None:
        with self._lock:
            self._reader = None
            self._closed = True


class GoogleVisionEngine:
    """Cloud OCR engine backed by Google Cloud Vision text detection.

    The first text annotation holds the full text of the region. Vision reports
    no confidence for text detection, so a heuristic is used: more than one
    annotation (the full text plus individual words) suggests a clean read.

    Args:
        credentials_path: Service-account JSON file.
        client: Optional pre-built ImageAnnotatorClient (tests pass a fake).
    """

    name = "google_vision"

    def __init__(self, credentials_path: str | None = None, client: Any | None = None):
        if client is None:
            if not credentials_path:
                raise ServiceError("Cloud OCR credentials are not configured")
            from google.cloud import vision

            client = vision.ImageAnnotatorClient.from_service_account_json(credentials_path)
        self._client = client

    def read(self, image_data: bytes) -> EngineReading:
        """Run text detection on a region.

        Raises:
            ServiceError: If the API is unreachable or rejects the request.
        """
        from google.api_core import exceptions as google_exceptions
        from google.cloud import vision

        try:
            response = self._client.text_detection(image=vision.Image(content=image_data))
        except google_exceptions.GoogleAPIError as e:
            raise ServiceError(f"Cloud OCR unreachable: {e}") from e

        if response.error.message:
            raise ServiceError(f"Cloud OCR rejected request: {response.error.message}")

        annotations = list(response.text_annotations)
        if not annotations:
            return EngineReading(text="", confidence=0.0, annotations=0)

        confidence = (
            CLOUD_OCR_MULTI_ANNOTATION_CONFIDENCE
            if len(annotations) > 1
            else CLOUD_OCR_SINGLE_ANNOTATION_CONFIDENCE
        )
        return EngineReading(
            text=annotations[0].description or "",
            confidence=confidence,
            annotations=len(annotations),
        )

    def close(self) -> None:
        transport = getattr(self._client, "transport", None)
        if transport is not None and hasattr(transport, "close"):
            transport.close()


def create_cloud_engine(
    credentials_path: str | None = GOOGLE_VISION_CREDENTIALS_PATH,
    enabled: bool = CLOUD_OCR_ENABLED,
) -> GoogleVisionEngine | None:
    """Build the cloud engine if it is configured and enabled, else None."""
    if not enabled or not credentials_path:
        logger.info("Cloud OCR disabled (no credentials configured)")
        return None
    logger.info("Cloud OCR enabled (credentials: %s)", credentials_path)
    return GoogleVisionEngine(credentials_path=credentials_path)
