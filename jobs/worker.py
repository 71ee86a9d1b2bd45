"""
Concurrency-bounded worker executing queued photo processing jobs.

The worker claims due jobs from the JobQueue and runs each on a thread pool
of fixed size. Job outcomes map onto the queue as follows:

- success                  -> job completed
- CancellationError        -> job cancelled (not a failure)
- InvalidTransitionError,
  PhotoNotFoundError       -> job failed at once, a retry cannot help
- any other exception      -> attempt failed, retried with backoff until
                              attempts run out

A queue error while claiming (e.g. a locked database) is logged and retried
after the poll interval; it never stops the worker.

Pipeline resources (detector client, OCR engine) are owned by the caller and
shared by every job; the worker never creates or closes them.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from config import WORKER_CONCURRENCY, WORKER_POLL_INTERVAL_SECONDS
from detection import Detection
from errors import CancellationError, InvalidTransitionError, PhotoNotFoundError
from processing import PhotoProcessingService, error_message

from .queue import Job, JobQueue

logger = logging.getLogger(__name__)


class PhotoWorker:
    """Runs processing jobs with at most `concurrency` photos in flight.

    Args:
        queue: Queue to claim jobs from.
        service: Service that processes a photo.
        concurrency: Maximum simultaneous jobs.
        poll_interval: Seconds to sleep when no job is due.
    """

    def __init__(
        self,
        queue: JobQueue,
        service: PhotoProcessingService,
        concurrency: int = WORKER_CONCURRENCY,
        poll_interval: float = WORKER_POLL_INTERVAL_SECONDS,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.queue = queue
        self.service = service
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self._slots = threading.BoundedSemaphore(concurrency)
        self._stop = threading.Event()
        self._executor: ThreadPoolExecutor | None = None
        self._futures: set[Future] = set()
        self._futures_lock = threading.Lock()

    def process_job(self, job: Job) -> list[Detection]:
        """Process the job's photo. Errors propagate to handle_job()."""
        logger.info(
            "Processing photo %s (job %d, attempt %d/%d)",
            job.photo_id, job.id, job.attempts_made + 1, job.max_attempts,
        )
        return self.service.process_photo(job.photo_id, retry=job.is_retry)

    def handle_job(self, job: Job) -> str:
        """Run one job and record its outcome in the queue.

        Returns:
            The job's state afterwards.
        """
        try:
            detections = self.process_job(job)
        except CancellationError as e:
            logger.info("Job %d cancelled: %s", job.id, e)
            self.queue.cancel(job.id, error_message(e))
            return "cancelled"
        except (InvalidTransitionError, PhotoNotFoundError) as e:
            logger.error("Job %d cannot run: %s", job.id, e)
            return self.queue.fail(job.id, error_message(e), retryable=False).state
        except Exception as e:
            logger.exception("Job %d failed", job.id)
            return self.queue.fail(job.id, error_message(e)).state

        self.queue.complete(job.id)
        logger.info("Job %d completed: %d detection(s)", job.id, len(detections))
        return "completed"

    def drain(self) -> int:
        """Run every due job in the calling thread until none is left.

        Returns:
            Number of jobs handled.
        """
        handled = 0
        while not self._stop.is_set():
            job = self.queue.claim_next()
            if job is None:
                break
            self.handle_job(job)
            handled += 1
        return handled

    def _run_in_slot(self, job: Job) -> None:
        try:
            self.handle_job(job)
        except Exception:
            # The job stays active until recover_stale() on the next start
            logger.exception("Recording the outcome of job %d failed", job.id)
        finally:
            self._slots.release()

    def _forget(self, future: Future) -> None:
        with self._futures_lock:
            self._futures.discard(future)

    def dispatch(self) -> int:
        """Claim due jobs into free slots and submit them to the pool.

        Returns:
            Number of jobs submitted.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.concurrency,
                thread_name_prefix="photo-worker",
            )

        submitted = 0
        while not self._stop.is_set() and self._slots.acquire(blocking=False):
            try:
                job = self.queue.claim_next()
            except sqlite3.Error:
                self._slots.release()
                logger.exception("Claiming the next job failed, retrying after the poll interval")
                break
            if job is None:
                self._slots.release()
                break
            future = self._executor.submit(self._run_in_slot, job)
            with self._futures_lock:
                self._futures.add(future)
            future.add_done_callback(self._forget)
            submitted += 1
        return submitted

    def run(self) -> None:
        """Process jobs until stop() is called."""
        recovered = self.queue.recover_stale()
        logger.info(
            "Worker started (concurrency=%d, recovered=%d)", self.concurrency, recovered,
        )
        try:
            while not self._stop.is_set():
                if self.dispatch() == 0:
                    self._stop.wait(self.poll_interval)
        finally:
            self.shutdown()

    def stop(self) -> None:
        """Ask run() to return after in-flight jobs finish."""
        self._stop.set()

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        logger.info("Worker stopped")

    @property
    def in_flight(self) -> int:
        with self._futures_lock:
            return len(self._futures)
