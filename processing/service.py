"""Photo processing service entrypoints for reuse across the worker, API and CLI.

process_photo() drives one photo through the state machine in photo.py:

1. Move the photo to processing (fails if it was cancelled or already final).
2. Fetch its bytes and run bib detection.
3. Move it to completed. This flip is committed before the detection rows so
   callers polling the status see the result as early as possible.
4. Replace the photo's detection rows in one transaction.

A cancellation that lands while step 2 runs is honoured: the completion flip
is conditional on the photo still being in processing, and the results are
discarded when it is not.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Callable

import db
from detection import Detection, DetectionOptions, detect_bib_numbers
from errors import CancellationError, InvalidTransitionError, PersistenceError, PhotoNotFoundError
from photo import (
    CANCELLABLE_STATUSES,
    CANCELLED_MESSAGE,
    Photo,
    ProcessingStatus,
    startable_statuses,
)
from sources import fetch_image

from .resources import PipelineResources

logger = logging.getLogger(__name__)

# Options used when a queued photo is processed
DEFAULT_PROCESSING_OPTIONS = DetectionOptions(
    min_detection_confidence=0.3,
    min_ocr_confidence=0.5,
    use_ocr=True,
    enhance_image=True,
    ocr_fallback=True,
)


def error_message(exc: BaseException) -> str:
    """Human-readable message stored on a failed photo (no traceback)."""
    return str(exc) or exc.__class__.__name__


class PhotoProcessingService:
    """Runs bib detection for photos and owns their processing status.

    Args:
        resources: Shared detector and recognizer.
        db_path: Database path (defaults to config.DB_PATH).
        fetcher: Callable returning photo bytes for a storage reference.
        options: Detection options used by process_photo().
    """

    def __init__(
        self,
        resources: PipelineResources,
        db_path: Path | str | None = None,
        fetcher: Callable[[str], bytes] = fetch_image,
        options: DetectionOptions = DEFAULT_PROCESSING_OPTIONS,
    ):
        self.resources = resources
        self.db_path = db_path
        self.fetcher = fetcher
        self.options = options

    # -------------------------------------------------------------------------
    # Photos
    # -------------------------------------------------------------------------

    def register_photo(
        self,
        storage_ref: str,
        race_id: str | None = None,
        uploader_id: str | None = None,
    ) -> Photo:
        """Register an uploaded photo in the pending state."""
        try:
            with db.connection(self.db_path) as conn:
                photo_id = db.insert_photo(conn, storage_ref, race_id, uploader_id)
                return Photo.from_row(db.get_photo(conn, photo_id))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to register photo: {e}") from e

    def get_photo(self, photo_id: str) -> Photo:
        with db.connection(self.db_path) as conn:
            row = db.get_photo(conn, photo_id)
        if row is None:
            raise PhotoNotFoundError(f"Photo {photo_id} not found")
        return Photo.from_row(row)

    def list_photos(
        self,
        status: ProcessingStatus | None = None,
        limit: int | None = None,
    ) -> list[Photo]:
        """Registered photos, newest first, optionally only those in one status."""
        with db.connection(self.db_path) as conn:
            rows = db.list_photos(conn, status.value if status else None, limit)
        return [Photo.from_row(row) for row in rows]

    def get_processing_status(self, photo_id: str) -> dict:
        """Return {status, error, is_processed, processed_at} for a photo."""
        return self.get_photo(photo_id).status_dict()

    def get_detections(self, photo_id: str) -> list[Detection]:
        self.get_photo(photo_id)
        with db.connection(self.db_path) as conn:
            return db.get_bib_detections(conn, photo_id)

    def find_photos_by_bib(self, bib_number: str, race_id: str | None = None) -> list[dict]:
        """Processed photos containing a bib number, newest first."""
        with db.connection(self.db_path) as conn:
            return db.get_photos_by_bib(conn, bib_number, race_id)

    def get_stats(self) -> dict:
        with db.connection(self.db_path) as conn:
            counts = db.get_status_counts(conn)
            detections = db.count_detections(conn)
        return {
            "total_photos": sum(counts.values()),
            "by_status": counts,
            "total_detections": detections,
        }

    # -------------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------------

    def _transition(
        self,
        photo_id: str,
        status: ProcessingStatus,
        error: str | None = None,
        from_statuses=None,
        exclude_error: str | None = None,
    ) -> bool:
        try:
            with db.connection(self.db_path) as conn:
                updated = db.update_processing_status(
                    conn,
                    photo_id,
                    status,
                    error=error,
                    from_statuses=from_statuses,
                    exclude_error=exclude_error,
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to set photo {photo_id} to {status.value}: {e}") from e
        if updated:
            logger.info("Photo %s -> %s", photo_id, status.value)
        return updated

    def mark_processing(self, photo_id: str, retry: bool = False) -> None:
        """Move a photo to processing and clear its error.

        Raises:
            CancellationError: If the photo was cancelled.
            InvalidTransitionError: If the photo is already final.
            PhotoNotFoundError: If the photo does not exist.
        """
        if self._transition(
            photo_id,
            ProcessingStatus.PROCESSING,
            from_statuses=startable_statuses(retry),
            exclude_error=CANCELLED_MESSAGE,
        ):
            return
        photo = self.get_photo(photo_id)
        if photo.is_cancelled:
            raise CancellationError(f"Photo {photo_id} was cancelled")
        raise InvalidTransitionError(photo_id, photo.processing_status.value, "processing")

    def mark_completed(self, photo_id: str) -> bool:
        """Move a processing photo to completed. Returns False if it was not processing."""
        return self._transition(
            photo_id,
            ProcessingStatus.COMPLETED,
            from_statuses=(ProcessingStatus.PROCESSING,),
        )

    def mark_failed(self, photo_id: str, message: str) -> bool:
        """Move a processing photo to failed. Returns False if it was not processing."""
        return self._transition(
            photo_id,
            ProcessingStatus.FAILED,
            error=message,
            from_statuses=(ProcessingStatus.PROCESSING,),
        )

    def cancel_processing(self, photo_id: str) -> None:
        """Cancel a pending or processing photo.

        In-flight detection is not interrupted; its results are discarded.

        Raises:
            InvalidTransitionError: If the photo is completed or failed.
            PhotoNotFoundError: If the photo does not exist.
        """
        if self._transition(
            photo_id,
            ProcessingStatus.FAILED,
            error=CANCELLED_MESSAGE,
            from_statuses=CANCELLABLE_STATUSES,
        ):
            return
        photo = self.get_photo(photo_id)
        raise InvalidTransitionError(photo_id, photo.processing_status.value, "cancelled")

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def detect_bib_numbers(
        self,
        image_data: bytes,
        options: DetectionOptions | None = None,
    ) -> list[Detection]:
        """Run bib detection on raw image bytes without touching the database."""
        return detect_bib_numbers(
            image_data,
            self.resources.detector,
            self.resources.recognizer,
            options or self.options,
        )

    def _save_detections(self, photo_id: str, detections: list[Detection]) -> None:
        try:
            with db.connection(self.db_path) as conn:
                db.replace_bib_detections(conn, photo_id, detections)
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to save detections for photo {photo_id}: {e}") from e
        logger.info("Saved %d detections for photo %s", len(detections), photo_id)

    def _fail(self, photo_id: str, exc: BaseException) -> None:
        message = error_message(exc)
        try:
            if not self.mark_failed(photo_id, message):
                logger.info("Photo %s no longer processing, keeping its status", photo_id)
        except PersistenceError as e:
            logger.error("Could not record failure for photo %s: %s", photo_id, e)

    def process_photo(self, photo_id: str, retry: bool = False) -> list[Detection]:
        """Fetch a photo, detect its bib numbers and persist the results.

        A photo that is already completed (a redelivered or retried job whose
        earlier attempt got past the status flip) is re-detected and its rows
        replaced without touching its status.

        Args:
            photo_id: Photo to process.
            retry: True when this is a retry of a failed attempt; allows a
                failed (but not cancelled) photo to be picked up again.

        Returns:
            The persisted detections.

        Raises:
            CancellationError: If the photo was cancelled before or during the run.
            InvalidTransitionError: If the photo cannot be processed from its status.
            PhotoNotFoundError: If the photo does not exist.
            ServiceError / ValidationError / PersistenceError: On pipeline
                failure; the photo is marked failed with the message first.
        """
        photo = self.get_photo(photo_id)

        if photo.processing_status == ProcessingStatus.COMPLETED:
            logger.info("Photo %s already completed, rebuilding its detections", photo_id)
            detections = self.detect_bib_numbers(self.fetcher(photo.storage_ref))
            self._save_detections(photo_id, detections)
            return detections

        if photo.is_cancelled:
            raise CancellationError(f"Photo {photo_id} was cancelled")

        self.mark_processing(photo_id, retry=retry)

        try:
            image_data = self.fetcher(photo.storage_ref)
            detections = self.detect_bib_numbers(image_data)
        except Exception as e:
            logger.warning("Processing photo %s failed: %s", photo_id, e)
            self._fail(photo_id, e)
            raise

        if not self.mark_completed(photo_id):
            current = self.get_photo(photo_id)
            if current.is_cancelled:
                logger.info(
                    "Photo %s was cancelled during processing, discarding %d detections",
                    photo_id, len(detections),
                )
                raise CancellationError(f"Photo {photo_id} was cancelled")
            raise InvalidTransitionError(photo_id, current.processing_status.value, "completed")

        self._save_detections(photo_id, detections)
        return detections
