"""Register photos and enqueue their processing jobs.

Shared by the HTTP API and the CLI so both surfaces follow the same rule:
every photo gets its own job, a batch never becomes a single job.
"""

from __future__ import annotations

import logging
from typing import Iterable

from errors import InvalidTransitionError
from photo import Photo, ProcessingStatus
from processing import PhotoProcessingService

from .queue import Job, JobQueue

logger = logging.getLogger(__name__)


def submit_photos(
    service: PhotoProcessingService,
    queue: JobQueue,
    storage_refs: Iterable[str],
    race_id: str | None = None,
    uploader_id: str | None = None,
) -> list[tuple[Photo, Job]]:
    """Register each photo as pending and enqueue one job per photo."""
    photos = [
        service.register_photo(ref, race_id=race_id, uploader_id=uploader_id)
        for ref in storage_refs
    ]
    if not photos:
        return []
    jobs = queue.add_jobs([(photo.id, photo.storage_ref) for photo in photos])
    return list(zip(photos, jobs))


def submit_photo(
    service: PhotoProcessingService,
    queue: JobQueue,
    storage_ref: str,
    race_id: str | None = None,
    uploader_id: str | None = None,
) -> tuple[Photo, Job]:
    return submit_photos(service, queue, [storage_ref], race_id, uploader_id)[0]


def enqueue_existing(service: PhotoProcessingService, queue: JobQueue, photo_id: str) -> Job:
    """Enqueue a job for an already registered photo.

    Pending and processing photos are queued normally; a completed photo is
    queued to rebuild its detections. Failed photos, cancelled ones included,
    stay final.

    Raises:
        PhotoNotFoundError: If the photo does not exist.
        InvalidTransitionError: If the photo has failed.
    """
    photo = service.get_photo(photo_id)
    if photo.processing_status == ProcessingStatus.FAILED:
        raise InvalidTransitionError(photo_id, photo.processing_status.value, "processing")
    logger.info("Queueing photo %s (%s)", photo_id, photo.processing_status.value)
    return queue.add_job(photo.id, photo.storage_ref)
