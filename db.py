"""Database helper module for photos and bib detections.

Every operation takes a connection as its first argument and commits its own
writes. Callers open a short-lived connection per operation (see
`connection()`), so status reads never wait on detection work running in
another thread. The database runs in WAL mode for the same reason.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

import config
from detection.types import Detection
from photo import ProcessingStatus, new_photo_id, utc_now

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def get_db_path() -> Path:
    return Path(config.DB_PATH)


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """Get a database connection, creating the database if needed."""
    path = Path(db_path) if db_path is not None else get_db_path()
    db_exists = path.exists()
    conn = sqlite3.connect(path, timeout=config.DB_BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")

    if not db_exists:
        conn.execute("PRAGMA journal_mode = WAL")
        init_database(conn)
    else:
        ensure_tables(conn)

    return conn


@contextmanager
def connection(db_path: Path | str | None = None) -> Iterator[sqlite3.Connection]:
    """Open a connection for one unit of work and always close it."""
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


def init_database(conn: sqlite3.Connection) -> None:
    """Initialize the database with the schema."""
    with open(SCHEMA_PATH) as f:
        conn.executescript(f.read())
    conn.commit()


def ensure_tables(conn: sqlite3.Connection) -> None:
    """Create any table missing from an existing database."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'processing_jobs'"
    )
    if cursor.fetchone() is None:
        init_database(conn)


# =============================================================================
# PHOTOS
# =============================================================================


def insert_photo(
    conn: sqlite3.Connection,
    storage_ref: str,
    race_id: str | None = None,
    uploader_id: str | None = None,
    photo_id: str | None = None,
) -> str:
    """Register a photo in the pending state and return its id."""
    photo_id = photo_id or new_photo_id()
    conn.execute(
        """
        INSERT INTO photos (id, storage_ref, processing_status, is_processed,
                            race_id, uploader_id, created_at)
        VALUES (?, ?, 'pending', 0, ?, ?, ?)
        """,
        (photo_id, storage_ref, race_id, uploader_id, utc_now()),
    )
    conn.commit()
    return photo_id


def get_photo(conn: sqlite3.Connection, photo_id: str) -> dict | None:
    cursor = conn.execute("SELECT * FROM photos WHERE id = ?", (photo_id,))
    row = cursor.fetchone()
    return dict(row) if row else None


def list_photos(
    conn: sqlite3.Connection,
    status: str | None = None,
    limit: int | None = None,
) -> list[dict]:
    """List photos, newest first, optionally filtered by status."""
    query = "SELECT * FROM photos"
    params: list = []
    if status:
        query += " WHERE processing_status = ?"
        params.append(status)
    query += " ORDER BY created_at DESC, rowid DESC"
    if limit:
        query += " LIMIT ?"
        params.append(limit)
    return [dict(row) for row in conn.execute(query, params).fetchall()]


def update_processing_status(
    conn: sqlite3.Connection,
    photo_id: str,
    status: ProcessingStatus,
    error: str | None = None,
    from_statuses: Sequence[ProcessingStatus] | None = None,
    exclude_error: str | None = None,
) -> bool:
    """Move a photo to a new processing status.

    The update is conditional: it only applies when the current status is one
    of from_statuses (any status if None) and, when exclude_error is given, the
    current error differs from it. Checking and writing in one statement keeps
    concurrent writers (worker vs. cancellation) from overwriting each other.

    Field rules:
    - processing: clears the error
    - completed: sets is_processed and processed_at, clears the error
    - failed: stores the error, is_processed stays false

    Returns:
        True if the photo was updated.
    """
    status = ProcessingStatus(status)
    if status == ProcessingStatus.COMPLETED:
        assignments = "processing_status = ?, is_processed = 1, processed_at = ?, processing_error = NULL"
        params: list = [status.value, utc_now()]
    elif status == ProcessingStatus.FAILED:
        assignments = "processing_status = ?, is_processed = 0, processing_error = ?"
        params = [status.value, error]
    else:
        assignments = "processing_status = ?, is_processed = 0, processing_error = NULL"
        params = [status.value]

    query = f"UPDATE photos SET {assignments} WHERE id = ?"
    params.append(photo_id)
    if from_statuses is not None:
        placeholders = ", ".join("?" for _ in from_statuses)
        query += f" AND processing_status IN ({placeholders})"
        params.extend(ProcessingStatus(s).value for s in from_statuses)
    if exclude_error is not None:
        query += " AND (processing_error IS NULL OR processing_error != ?)"
        params.append(exclude_error)

    cursor = conn.execute(query, params)
    conn.commit()
    return cursor.rowcount > 0


def get_status_counts(conn: sqlite3.Connection) -> dict[str, int]:
    counts = {status.value: 0 for status in ProcessingStatus}
    cursor = conn.execute(
        "SELECT processing_status, COUNT(*) AS n FROM photos GROUP BY processing_status"
    )
    for row in cursor.fetchall():
        counts[row["processing_status"]] = row["n"]
    return counts


# =============================================================================
# DETECTIONS
# =============================================================================


def replace_bib_detections(
    conn: sqlite3.Connection,
    photo_id: str,
    detections: list[Detection],
) -> int:
    """Replace all detections of a photo in a single transaction.

    A retried job therefore never duplicates rows written by an earlier
    attempt.

    Returns:
        Number of detections written.
    """
    created_at = utc_now()
    with conn:
        conn.execute("DELETE FROM bib_detections WHERE photo_id = ?", (photo_id,))
        conn.executemany(
            """
            INSERT INTO bib_detections
                (photo_id, bib_number, confidence, detector_confidence, ocr_confidence,
                 method, bbox_json, raw_metadata_json, ocr_metadata_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    photo_id,
                    det.bib_number,
                    det.confidence,
                    det.detector_confidence,
                    det.ocr_confidence,
                    det.method.value,
                    json.dumps(det.bbox.to_dict()),
                    json.dumps(det.raw_metadata),
                    json.dumps(det.ocr_metadata) if det.ocr_metadata is not None else None,
                    created_at,
                )
                for det in detections
            ],
        )
    return len(detections)


def _detection_from_row(row: sqlite3.Row) -> Detection:
    return Detection.from_dict({
        "id": row["id"],
        "photo_id": row["photo_id"],
        "bib_number": row["bib_number"],
        "confidence": row["confidence"],
        "detector_confidence": row["detector_confidence"],
        "ocr_confidence": row["ocr_confidence"],
        "method": row["method"],
        "bbox": json.loads(row["bbox_json"]),
        "raw_metadata": json.loads(row["raw_metadata_json"]) if row["raw_metadata_json"] else {},
        "ocr_metadata": json.loads(row["ocr_metadata_json"]) if row["ocr_metadata_json"] else None,
    })


def get_bib_detections(conn: sqlite3.Connection, photo_id: str) -> list[Detection]:
    """Get all detections for a photo, highest confidence first."""
    cursor = conn.execute(
        "SELECT * FROM bib_detections WHERE photo_id = ? ORDER BY confidence DESC, id",
        (photo_id,),
    )
    return [_detection_from_row(row) for row in cursor.fetchall()]


def get_photos_by_bib(
    conn: sqlite3.Connection,
    bib_number: str,
    race_id: str | None = None,
) -> list[dict]:
    """Get processed photos containing a bib number, newest first.

    Each row is a photo dict with the matching detection's confidence and
    method added.
    """
    query = """
        SELECT p.*, d.confidence AS detection_confidence, d.method AS detection_method
        FROM photos p
        JOIN bib_detections d ON d.photo_id = p.id
        WHERE d.bib_number = ? AND p.is_processed = 1
    """
    params: list = [bib_number]
    if race_id:
        query += " AND p.race_id = ?"
        params.append(race_id)
    query += " ORDER BY p.created_at DESC, p.rowid DESC"
    return [dict(row) for row in conn.execute(query, params).fetchall()]


def count_detections(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM bib_detections").fetchone()[0]
