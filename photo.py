"""
Core photo types for the processing pipeline.

This module defines the Photo record and its processing state machine:

    pending -> processing -> completed
                          -> failed

Cancellation moves pending/processing photos to failed with a fixed message.
completed is final. failed is final except for the worker retrying the same
job after a pipeline error; a cancelled photo is never picked up again.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

CANCELLED_MESSAGE = "cancelled by user"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Statuses a cancellation request is accepted from
CANCELLABLE_STATUSES = (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING)

# Statuses a worker may start processing from. PROCESSING covers a job
# redelivered after a worker crash.
STARTABLE_STATUSES = (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING)
RETRY_STARTABLE_STATUSES = STARTABLE_STATUSES + (ProcessingStatus.FAILED,)


def new_photo_id() -> str:
    """Return a fresh opaque photo identifier."""
    return uuid.uuid4().hex


def utc_now() -> str:
    """Current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def startable_statuses(retry: bool) -> tuple[ProcessingStatus, ...]:
    """Statuses a processing attempt may begin from."""
    return RETRY_STARTABLE_STATUSES if retry else STARTABLE_STATUSES


def is_cancelled(status: ProcessingStatus | str, error: str | None) -> bool:
    return ProcessingStatus(status) == ProcessingStatus.FAILED and error == CANCELLED_MESSAGE


@dataclass
class Photo:
    """A photo registered for bib detection.

    Photos are created by the upload workflow. The pipeline only mutates the
    processing fields.

    Attributes:
        id: Opaque identifier.
        storage_ref: URL or local path the image bytes are fetched from.
        processing_status: Current state in the processing state machine.
        is_processed: True iff processing_status is completed.
        processed_at: When processing completed (None until then).
        processing_error: Last human-readable error (None unless failed).
        race_id: Race the photo belongs to.
        uploader_id: Photographer who uploaded it.
        created_at: Registration timestamp.
    """

    id: str
    storage_ref: str
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    is_processed: bool = False
    processed_at: str | None = None
    processing_error: str | None = None
    race_id: str | None = None
    uploader_id: str | None = None
    created_at: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return is_cancelled(self.processing_status, self.processing_error)

    def status_dict(self) -> dict:
        """Return the caller-facing processing status."""
        return {
            "status": self.processing_status.value,
            "error": self.processing_error,
            "is_processed": self.is_processed,
            "processed_at": self.processed_at,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "storage_ref": self.storage_ref,
            "processing_status": self.processing_status.value,
            "is_processed": self.is_processed,
            "processed_at": self.processed_at,
            "processing_error": self.processing_error,
            "race_id": self.race_id,
            "uploader_id": self.uploader_id,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: dict) -> Photo:
        """Build a Photo from a database row mapping."""
        return cls(
            id=row["id"],
            storage_ref=row["storage_ref"],
            processing_status=ProcessingStatus(row["processing_status"]),
            is_processed=bool(row["is_processed"]),
            processed_at=row["processed_at"],
            processing_error=row["processing_error"],
            race_id=row["race_id"],
            uploader_id=row["uploader_id"],
            created_at=row["created_at"],
        )
