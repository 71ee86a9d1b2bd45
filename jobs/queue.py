"""
Durable photo processing queue backed by the sqlite database.

Each uploaded photo gets exactly one job. Jobs move through:

    waiting -> active -> completed
                      -> waiting (retry after backoff) -> ...
                      -> failed (attempts exhausted)
                      -> cancelled (photo cancelled by its owner)

Backoff is exponential: the n-th failed attempt delays the next one by
backoff_seconds * 2 ** (n - 1).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import db
from config import JOB_BACKOFF_SECONDS, JOB_KEEP_COMPLETED, JOB_KEEP_FAILED, JOB_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

JOB_STATES = ("waiting", "active", "completed", "failed", "cancelled")


@dataclass
class Job:
    """A queued request to process one photo."""

    id: int
    photo_id: str
    photo_source: str
    state: str
    attempts_made: int
    max_attempts: int
    backoff_seconds: float
    run_after: float
    last_error: str | None = None
    created_at: float | None = None
    updated_at: float | None = None

    @property
    def is_retry(self) -> bool:
        """True when an earlier attempt of this job already ran."""
        return self.attempts_made > 0

    @property
    def attempts_left(self) -> int:
        return max(0, self.max_attempts - self.attempts_made)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "photo_id": self.photo_id,
            "photo_source": self.photo_source,
            "state": self.state,
            "attempts_made": self.attempts_made,
            "max_attempts": self.max_attempts,
            "run_after": self.run_after,
            "last_error": self.last_error,
        }

    @classmethod
    def from_row(cls, row) -> Job:
        return cls(
            id=row["id"],
            photo_id=row["photo_id"],
            photo_source=row["photo_source"],
            state=row["state"],
            attempts_made=row["attempts_made"],
            max_attempts=row["max_attempts"],
            backoff_seconds=row["backoff_seconds"],
            run_after=row["run_after"],
            last_error=row["last_error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def backoff_delay(attempts_made: int, backoff_seconds: float = JOB_BACKOFF_SECONDS) -> float:
    """Delay before the next attempt after attempts_made failed attempts."""
    return backoff_seconds * (2 ** max(0, attempts_made - 1))


class JobQueue:
    """Processing queue stored in the processing_jobs table.

    Every method opens its own short-lived connection, so one queue object can
    be shared by the worker threads.

    Args:
        db_path: Database path (defaults to config.DB_PATH).
        max_attempts: Attempts per job before it is failed.
        backoff_seconds: Base delay of the exponential backoff.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        max_attempts: int = JOB_MAX_ATTEMPTS,
        backoff_seconds: float = JOB_BACKOFF_SECONDS,
        keep_completed: int = JOB_KEEP_COMPLETED,
        keep_failed: int = JOB_KEEP_FAILED,
    ):
        self.db_path = db_path
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed

    def add_job(self, photo_id: str, photo_source: str, now: float | None = None) -> Job:
        """Enqueue one job for a photo."""
        return self.add_jobs([(photo_id, photo_source)], now=now)[0]

    def add_jobs(
        self,
        photos: Iterable[tuple[str, str]],
        now: float | None = None,
    ) -> list[Job]:
        """Enqueue one independent job per (photo_id, photo_source) pair."""
        now = time.time() if now is None else now
        job_ids = []
        with db.connection(self.db_path) as conn:
            with conn:
                for photo_id, photo_source in photos:
                    cursor = conn.execute(
                        """
                        INSERT INTO processing_jobs
                            (photo_id, photo_source, state, attempts_made, max_attempts,
                             backoff_seconds, run_after, created_at, updated_at)
                        VALUES (?, ?, 'waiting', 0, ?, ?, ?, ?, ?)
                        """,
                        (photo_id, photo_source, self.max_attempts,
                         self.backoff_seconds, now, now, now),
                    )
                    job_ids.append(cursor.lastrowid)
        logger.info("Enqueued %d processing job(s)", len(job_ids))
        return [self.get_job(job_id) for job_id in job_ids]

    def get_job(self, job_id: int) -> Job | None:
        with db.connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM processing_jobs WHERE id = ?", (job_id,)).fetchone()
        return Job.from_row(row) if row else None

    def jobs_for_photo(self, photo_id: str) -> list[Job]:
        with db.connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM processing_jobs WHERE photo_id = ? ORDER BY id",
                (photo_id,),
            ).fetchall()
        return [Job.from_row(row) for row in rows]

    def claim_next(self, now: float | None = None) -> Job | None:
        """Atomically move the oldest due waiting job to active and return it."""
        now = time.time() if now is None else now
        with db.connection(self.db_path) as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                """
                SELECT id FROM processing_jobs
                WHERE state = 'waiting' AND run_after <= ?
                ORDER BY run_after, id
                LIMIT 1
                """,
                (now,),
            ).fetchone()
            if row is None:
                conn.rollback()
                return None
            conn.execute(
                "UPDATE processing_jobs SET state = 'active', updated_at = ? WHERE id = ?",
                (now, row["id"]),
            )
            conn.commit()
        return self.get_job(row["id"])

    def _finish(self, job_id: int, state: str, error: str | None, now: float | None) -> None:
        now = time.time() if now is None else now
        with db.connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET state = ?, attempts_made = attempts_made + 1, last_error = ?, updated_at = ?
                WHERE id = ?
                """,
                (state, error, now, job_id),
            )
            conn.commit()
        self.prune()

    def complete(self, job_id: int, now: float | None = None) -> None:
        self._finish(job_id, "completed", None, now)

    def cancel(self, job_id: int, reason: str, now: float | None = None) -> None:
        """Close a job whose photo was cancelled. Not counted as a failure."""
        self._finish(job_id, "cancelled", reason, now)

    def fail(
        self,
        job_id: int,
        error: str,
        now: float | None = None,
        retryable: bool = True,
    ) -> Job:
        """Record a failed attempt; schedule a retry or fail the job for good.

        Errors that a retry cannot fix (retryable=False) fail the job at once.

        Returns:
            The updated job (state "waiting" when a retry is scheduled).
        """
        now = time.time() if now is None else now
        job = self.get_job(job_id)
        if job is None:
            raise LookupError(f"Job {job_id} not found")

        attempts_made = job.attempts_made + 1
        if retryable and attempts_made < job.max_attempts:
            delay = backoff_delay(attempts_made, job.backoff_seconds)
            state, run_after = "waiting", now + delay
            logger.warning(
                "Job %d (photo %s) attempt %d/%d failed, retrying in %.1fs: %s",
                job_id, job.photo_id, attempts_made, job.max_attempts, delay, error,
            )
        else:
            state, run_after = "failed", job.run_after
            logger.error(
                "Job %d (photo %s) failed after %d attempts: %s",
                job_id, job.photo_id, attempts_made, error,
            )

        with db.connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET state = ?, attempts_made = ?, run_after = ?, last_error = ?, updated_at = ?
                WHERE id = ?
                """,
                (state, attempts_made, run_after, error, now, job_id),
            )
            conn.commit()
        if state == "failed":
            self.prune()
        return self.get_job(job_id)

    def recover_stale(self, now: float | None = None) -> int:
        """Return jobs left active by a crashed worker to the waiting state."""
        now = time.time() if now is None else now
        with db.connection(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE processing_jobs SET state = 'waiting', run_after = ?, updated_at = ? "
                "WHERE state = 'active'",
                (now, now),
            )
            conn.commit()
        if cursor.rowcount:
            logger.warning("Recovered %d job(s) left active by a previous worker", cursor.rowcount)
        return cursor.rowcount

    def prune(self) -> None:
        """Keep only the most recent finished jobs per state."""
        limits = {
            "completed": self.keep_completed,
            "cancelled": self.keep_completed,
            "failed": self.keep_failed,
        }
        with db.connection(self.db_path) as conn:
            for state, keep in limits.items():
                conn.execute(
                    """
                    DELETE FROM processing_jobs
                    WHERE state = ? AND id NOT IN (
                        SELECT id FROM processing_jobs WHERE state = ?
                        ORDER BY updated_at DESC, id DESC LIMIT ?
                    )
                    """,
                    (state, state, keep),
                )
            conn.commit()

    def get_stats(self, now: float | None = None) -> dict[str, int]:
        """Job counts per state plus delayed (waiting with a future run time)."""
        now = time.time() if now is None else now
        stats = {state: 0 for state in JOB_STATES}
        with db.connection(self.db_path) as conn:
            for row in conn.execute(
                "SELECT state, COUNT(*) AS n FROM processing_jobs GROUP BY state"
            ).fetchall():
                stats[row["state"]] = row["n"]
            delayed = conn.execute(
                "SELECT COUNT(*) FROM processing_jobs WHERE state = 'waiting' AND run_after > ?",
                (now,),
            ).fetchone()[0]
        stats["delayed"] = delayed
        stats["waiting"] -= delayed
        return stats
