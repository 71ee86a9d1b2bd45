"""Central configuration for the bib detection and photo processing pipeline.

All tunable parameters are defined here with descriptive names. Values that
depend on the deployment (credentials, paths, ports) are read from the
environment so the same code runs in the worker, the API and the tests.
"""

import os
from pathlib import Path


def _env_float(name: str, default: float | None) -> float | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return int(value)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# STORAGE
# =============================================================================

# SQLite database holding photos, detections and queued jobs
DB_PATH = Path(os.environ.get("BIBFLOW_DB_PATH", Path(__file__).parent / "bibflow.db"))

# Seconds a connection waits on a locked database before giving up
DB_BUSY_TIMEOUT_SECONDS = 30.0

# =============================================================================
# ENHANCEMENT (DETECTION PURPOSE)
# =============================================================================

DETECTION_CONTRAST = 1.2
DETECTION_BRIGHTNESS = 1.0
DETECTION_SHARPEN = True
DETECTION_NORMALIZE = True
DETECTION_GRAYSCALE = False

# Longest side after resizing; images are never upscaled
DETECTION_MAX_DIMENSION = 1920

# =============================================================================
# ENHANCEMENT (RECOGNITION PURPOSE)
# =============================================================================

RECOGNITION_CONTRAST = 1.5
RECOGNITION_BRIGHTNESS = 1.1
RECOGNITION_SHARPEN = True
RECOGNITION_NORMALIZE = True
RECOGNITION_GRAYSCALE = True

# Unsharp mask parameters (gaussian sigma, edge weight)
SHARPEN_SIGMA = 1.0
SHARPEN_AMOUNT = 1.0

# JPEG quality used when the enhanced image is re-encoded as JPEG
ENCODE_JPEG_QUALITY = 95

# =============================================================================
# OBJECT DETECTION SERVICE
# =============================================================================

ROBOFLOW_API_URL = os.environ.get("ROBOFLOW_API_URL", "https://detect.roboflow.com")
ROBOFLOW_API_KEY = os.environ.get("ROBOFLOW_API_KEY", "")
ROBOFLOW_MODEL_ID = os.environ.get("ROBOFLOW_MODEL_ID", "bib-number")
ROBOFLOW_MODEL_VERSION = os.environ.get("ROBOFLOW_MODEL_VERSION", "1")

# No per-call timeout unless configured; queue retries bound the total time
DETECTOR_TIMEOUT_SECONDS = _env_float("DETECTOR_TIMEOUT_SECONDS", None)

# =============================================================================
# DETECTION ORCHESTRATION
# =============================================================================

MIN_DETECTION_CONFIDENCE = 0.3
MIN_OCR_CONFIDENCE = 0.5

# Detector confidence below which OCR always runs (when OCR is enabled)
OCR_TRIGGER_CONFIDENCE = 0.7

# Detector confidence below which an OCR alternative may replace the label
ALTERNATIVE_ADOPTION_CONFIDENCE = 0.5

# Bonus added when OCR agrees with the detector label
VERIFIED_CONFIDENCE_BONUS = 0.1

# Weights for the detector and OCR confidences when OCR corrected the label
CORRECTED_DETECTOR_WEIGHT = 0.3
CORRECTED_OCR_WEIGHT = 0.7

# Whole-photo OCR pass when no candidate yields a bib of 3+ digits (opt-in)
FULL_IMAGE_MIN_BIB_LENGTH = 3

# Detector confidence assigned to a bib found by the whole-photo OCR pass
FULL_IMAGE_DETECTOR_CONFIDENCE = 0.3

# Each candidate box grows by this percentage before its region is cropped
REGION_EXPANSION_PERCENT = 25

# Centre distance (pixels) under which same-bib detections are merged
MERGE_DISTANCE_THRESHOLD = 50.0

# Bib numbers are 1-4 digits
BIB_PATTERN = r"^\d{1,4}$"

# Digit runs in this range are treated as calendar years, not bibs
YEAR_RANGE = (2000, 2099)
EXTENDED_YEAR_RANGE = (20000, 20999)

# =============================================================================
# OCR
# =============================================================================

# Regions with a smaller side below this are upscaled before recognition
OCR_MIN_REGION_DIMENSION = 200

# Stop trying preprocessing variants once a result exceeds this (0-1 scale)
OCR_EARLY_EXIT_CONFIDENCE = 0.70

# Alternatives are generated when the best local result is below this
# threshold, compared against the engine's raw 0-100 score
OCR_ALTERNATIVES_RAW_THRESHOLD = 0.80

OCR_MAX_ALTERNATIVES = 5

# Characters the local engine may emit
OCR_ALLOWLIST = "0123456789"

OCR_LANGUAGES = ["en"]
OCR_USE_GPU = False

# Ordered (contrast, brightness, sharpen_amount) variants tried per region
OCR_PREPROCESSING_VARIANTS = (
    (1.5, 1.1, 1.0),
    (2.0, 1.2, 1.0),
    (2.5, 1.2, 1.5),
    (3.5, 1.1, 2.0),
    (4.0, 1.0, 2.0),
)

# Cloud OCR is configured only when a credentials file is given
GOOGLE_VISION_CREDENTIALS_PATH = os.environ.get("GOOGLE_VISION_CREDENTIALS_PATH") or None
CLOUD_OCR_ENABLED = _env_flag("CLOUD_OCR_ENABLED", True)

# Heuristic confidence for cloud results (the API reports none for text)
CLOUD_OCR_MULTI_ANNOTATION_CONFIDENCE = 0.9
CLOUD_OCR_SINGLE_ANNOTATION_CONFIDENCE = 0.5

# Cloud bib candidates are digit runs of this length range
CLOUD_BIB_MIN_LENGTH = 3
CLOUD_BIB_MAX_LENGTH = 5

# =============================================================================
# JOB QUEUE / WORKER
# =============================================================================

WORKER_CONCURRENCY = _env_int("WORKER_CONCURRENCY", 3)
JOB_MAX_ATTEMPTS = 3
JOB_BACKOFF_SECONDS = 2.0

# Seconds an idle worker sleeps before polling the queue again
WORKER_POLL_INTERVAL_SECONDS = 1.0

# Finished jobs kept for inspection
JOB_KEEP_COMPLETED = 100
JOB_KEEP_FAILED = 500

# =============================================================================
# SOURCES
# =============================================================================

DOWNLOAD_TIMEOUT_SECONDS = 30
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

# =============================================================================
# HTTP API
# =============================================================================

API_HOST = os.environ.get("BIBFLOW_HOST", "127.0.0.1")
API_PORT = _env_int("BIBFLOW_PORT", 30001)
