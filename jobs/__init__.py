"""Durable photo processing queue and its worker."""

from .queue import JOB_STATES, Job, JobQueue, backoff_delay
from .submit import enqueue_existing, submit_photo, submit_photos
from .worker import PhotoWorker

__all__ = [
    "Job",
    "JobQueue",
    "JOB_STATES",
    "backoff_delay",
    "PhotoWorker",
    "submit_photo",
    "submit_photos",
    "enqueue_existing",
]
