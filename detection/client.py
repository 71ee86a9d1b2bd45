"""
Client for the remote object detection service.

The service receives a base64-encoded image and answers with box predictions.
Boxes come back as centre coordinates and are converted to top-left based
BoundingBox values here, so the rest of the pipeline never sees the wire
format.
"""

from __future__ import annotations

import base64
import logging
from typing import Protocol

import requests

from config import (
    DETECTOR_TIMEOUT_SECONDS,
    ROBOFLOW_API_KEY,
    ROBOFLOW_API_URL,
    ROBOFLOW_MODEL_ID,
    ROBOFLOW_MODEL_VERSION,
)
from errors import ServiceError

from .types import BoundingBox, Candidate

logger = logging.getLogger(__name__)


class ObjectDetector(Protocol):
    def detect(self, image_data: bytes) -> list[Candidate]:
        ...

    def close(self) -> None:
        ...


def parse_prediction(prediction: dict) -> Candidate:
    """Convert one wire prediction into a Candidate.

    Raises:
        KeyError / TypeError / ValueError: If required fields are missing or
            not numeric.
    """
    width = float(prediction["width"])
    height = float(prediction["height"])
    center_x = float(prediction["x"])
    center_y = float(prediction["y"])
    class_id = prediction.get("class_id")
    detection_id = prediction.get("detection_id")
    return Candidate(
        bbox=BoundingBox(
            x=center_x - width / 2,
            y=center_y - height / 2,
            width=width,
            height=height,
        ),
        label=str(prediction.get("class", "")),
        confidence=float(prediction["confidence"]),
        detection_id=str(detection_id) if detection_id is not None else None,
        class_id=int(class_id) if class_id is not None else None,
    )


def parse_predictions(payload: dict) -> list[Candidate]:
    """Parse a detection service response body.

    Raises:
        ServiceError: If the payload does not have the expected shape.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("predictions"), list):
        raise ServiceError("Detection service returned a malformed payload (no predictions list)")
    try:
        return [parse_prediction(p) for p in payload["predictions"]]
    except (KeyError, TypeError, ValueError) as e:
        raise ServiceError(f"Detection service returned a malformed prediction: {e}") from e


class RoboflowDetectorClient:
    """Object detector backed by a Roboflow hosted model.

    Args:
        api_key: Roboflow API key.
        model_id: Model identifier.
        version: Model version.
        api_url: Base URL of the inference service.
        timeout: Per-request timeout in seconds; None waits indefinitely.
        session: Optional requests session (one is created if omitted).
    """

    def __init__(
        self,
        api_key: str = ROBOFLOW_API_KEY,
        model_id: str = ROBOFLOW_MODEL_ID,
        version: str = ROBOFLOW_MODEL_VERSION,
        api_url: str = ROBOFLOW_API_URL,
        timeout: float | None = DETECTOR_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.api_key = api_key
        self.model_id = model_id
        self.version = version
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/{self.model_id}/{self.version}"

    def detect(self, image_data: bytes) -> list[Candidate]:
        """Send an image to the detection service and return its candidates.

        All candidates are returned; confidence filtering is the caller's job.

        Raises:
            ServiceError: On connection errors, timeouts, non-2xx responses or
                malformed payloads.
        """
        if not self.api_key:
            raise ServiceError("Detection service API key is not configured")

        body = base64.b64encode(image_data).decode("ascii")
        try:
            response = self._session.post(
                self.endpoint,
                params={"api_key": self.api_key},
                data=body,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ServiceError(f"Detection service unreachable: {e}") from e

        if not 200 <= response.status_code < 300:
            raise ServiceError(
                f"Detection service rejected request: HTTP {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ServiceError(f"Detection service returned invalid JSON: {e}") from e

        candidates = parse_predictions(payload)
        logger.debug("Detector returned %d candidates", len(candidates))
        return candidates

    def close(self) -> None:
        self._session.close()
