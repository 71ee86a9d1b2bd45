"""Pydantic schemas for API request bodies and response models.

Domain types (Photo, Detection, Job) live in photo.py, detection/ and jobs/.
These schemas define the exact wire format accepted / returned by each endpoint.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Photos
# ---------------------------------------------------------------------------

class RegisterPhotoRequest(BaseModel):
    """Body for POST /api/photos."""
    storage_ref: str = Field(min_length=1)
    race_id: str | None = None
    uploader_id: str | None = None


class RegisterBatchRequest(BaseModel):
    """Body for POST /api/photos/batch. Each photo gets its own job."""
    storage_refs: list[str] = Field(min_length=1)
    race_id: str | None = None
    uploader_id: str | None = None


class PhotoOut(BaseModel):
    id: str
    storage_ref: str
    processing_status: str
    is_processed: bool
    processed_at: str | None = None
    processing_error: str | None = None
    race_id: str | None = None
    uploader_id: str | None = None
    created_at: str | None = None


class JobOut(BaseModel):
    id: int
    photo_id: str
    state: str
    attempts_made: int
    max_attempts: int
    run_after: float
    last_error: str | None = None


class SubmittedPhotoResponse(BaseModel):
    """A registered photo and the job queued for it."""
    photo: PhotoOut
    job: JobOut


class SubmittedBatchResponse(BaseModel):
    photos: list[SubmittedPhotoResponse]


class ProcessingStatusResponse(BaseModel):
    """Response for GET /api/photos/{id}/status."""
    status: str
    error: str | None = None
    is_processed: bool
    processed_at: str | None = None


class PhotoMatchOut(PhotoOut):
    """A processed photo found by bib number."""
    detection_confidence: float
    detection_method: str


class PhotoSearchResponse(BaseModel):
    bib_number: str
    race_id: str | None = None
    photos: list[PhotoMatchOut]


# ---------------------------------------------------------------------------
# Detections
# ---------------------------------------------------------------------------

class BoundingBoxOut(BaseModel):
    x: float
    y: float
    width: float
    height: float


class DetectionOut(BaseModel):
    id: int | None = None
    photo_id: str | None = None
    bib_number: str
    confidence: float
    detector_confidence: float
    ocr_confidence: float | None = None
    method: str
    bbox: BoundingBoxOut
    raw_metadata: dict = Field(default_factory=dict)
    ocr_metadata: dict | None = None


class DetectionsResponse(BaseModel):
    detections: list[DetectionOut]


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

class StatsResponse(BaseModel):
    total_photos: int
    by_status: dict[str, int]
    total_detections: int


class QueueStatsResponse(BaseModel):
    waiting: int
    active: int
    completed: int
    failed: int
    cancelled: int
    delayed: int
