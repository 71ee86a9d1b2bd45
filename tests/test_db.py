"""Tests for photo and detection persistence."""

import sqlite3

import pytest

import db
from detection import BoundingBox, Detection, DetectionMethod
from photo import CANCELLED_MESSAGE, ProcessingStatus


@pytest.fixture
def conn(tmp_path):
    with db.connection(tmp_path / "bibflow.db") as conn:
        yield conn


def _detection(bib: str, confidence: float = 0.8, **kwargs) -> Detection:
    defaults = dict(
        bib_number=bib,
        confidence=confidence,
        detector_confidence=confidence,
        ocr_confidence=None,
        method=DetectionMethod.DETECTOR_ONLY,
        bbox=BoundingBox(10, 20, 30, 40),
    )
    defaults.update(kwargs)
    return Detection(**defaults)


def _complete(conn, photo_id):
    assert db.update_processing_status(conn, photo_id, ProcessingStatus.PROCESSING)
    assert db.update_processing_status(conn, photo_id, ProcessingStatus.COMPLETED)


class TestConnection:
    def test_new_database_uses_wal(self, conn):
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    def test_foreign_keys_enabled(self, conn):
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_default_path_from_config(self, tmp_path, monkeypatch):
        monkeypatch.setattr("config.DB_PATH", tmp_path / "default.db")
        with db.connection() as conn:
            db.insert_photo(conn, "a.jpg")
        assert (tmp_path / "default.db").exists()

    def test_missing_tables_created_on_existing_database(self, tmp_path):
        path = tmp_path / "old.db"
        sqlite3.connect(path).close()
        with db.connection(path) as conn:
            tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"photos", "bib_detections", "processing_jobs"} <= tables


class TestPhotos:
    def test_insert_registers_pending_photo(self, conn):
        photo_id = db.insert_photo(conn, "s3://bucket/a.jpg", race_id="r1", uploader_id="u1")
        row = db.get_photo(conn, photo_id)
        assert row["storage_ref"] == "s3://bucket/a.jpg"
        assert row["processing_status"] == "pending"
        assert row["is_processed"] == 0
        assert row["processed_at"] is None
        assert row["race_id"] == "r1"

    def test_get_unknown_photo(self, conn):
        assert db.get_photo(conn, "nope") is None

    def test_list_photos_by_status(self, conn):
        a = db.insert_photo(conn, "a.jpg")
        db.insert_photo(conn, "b.jpg")
        _complete(conn, a)
        assert [p["id"] for p in db.list_photos(conn, status="completed")] == [a]
        assert len(db.list_photos(conn)) == 2
        assert len(db.list_photos(conn, limit=1)) == 1

    def test_status_counts(self, conn):
        a = db.insert_photo(conn, "a.jpg")
        db.insert_photo(conn, "b.jpg")
        _complete(conn, a)
        assert db.get_status_counts(conn) == {
            "pending": 1, "processing": 0, "completed": 1, "failed": 0,
        }


class TestUpdateProcessingStatus:
    def test_completed_sets_processed_fields(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        _complete(conn, photo_id)
        row = db.get_photo(conn, photo_id)
        assert row["is_processed"] == 1
        assert row["processed_at"] is not None
        assert row["processing_error"] is None

    def test_failed_stores_error(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        db.update_processing_status(conn, photo_id, ProcessingStatus.FAILED, error="boom")
        row = db.get_photo(conn, photo_id)
        assert row["processing_status"] == "failed"
        assert row["processing_error"] == "boom"
        assert row["is_processed"] == 0

    def test_processing_clears_error(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        db.update_processing_status(conn, photo_id, ProcessingStatus.FAILED, error="boom")
        db.update_processing_status(conn, photo_id, ProcessingStatus.PROCESSING)
        assert db.get_photo(conn, photo_id)["processing_error"] is None

    def test_from_statuses_guard(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        updated = db.update_processing_status(
            conn, photo_id, ProcessingStatus.COMPLETED,
            from_statuses=(ProcessingStatus.PROCESSING,),
        )
        assert not updated
        assert db.get_photo(conn, photo_id)["processing_status"] == "pending"

    def test_exclude_error_guard(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        db.update_processing_status(conn, photo_id, ProcessingStatus.FAILED, error=CANCELLED_MESSAGE)
        updated = db.update_processing_status(
            conn, photo_id, ProcessingStatus.PROCESSING,
            from_statuses=(ProcessingStatus.FAILED,),
            exclude_error=CANCELLED_MESSAGE,
        )
        assert not updated

    def test_unknown_photo_not_updated(self, conn):
        assert not db.update_processing_status(conn, "nope", ProcessingStatus.PROCESSING)

    def test_processed_flag_constraint(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("UPDATE photos SET is_processed = 1 WHERE id = ?", (photo_id,))


class TestDetections:
    def test_round_trip(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        det = _detection(
            "128", 0.645, detector_confidence=0.4, ocr_confidence=0.75,
            method=DetectionMethod.OCR_CORRECTED,
            raw_metadata={"label": "120"},
            ocr_metadata={"raw_text": "128", "alternatives": [], "engine": "easyocr"},
        )
        db.replace_bib_detections(conn, photo_id, [det])

        [stored] = db.get_bib_detections(conn, photo_id)
        assert stored.id is not None
        assert stored.photo_id == photo_id
        assert stored.bib_number == "128"
        assert stored.method == DetectionMethod.OCR_CORRECTED
        assert stored.bbox == BoundingBox(10, 20, 30, 40)
        assert stored.raw_metadata == {"label": "120"}
        assert stored.ocr_metadata["engine"] == "easyocr"

    def test_replace_never_duplicates(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        db.replace_bib_detections(conn, photo_id, [_detection("1"), _detection("2")])
        db.replace_bib_detections(conn, photo_id, [_detection("1"), _detection("2")])
        assert db.count_detections(conn) == 2

    def test_replace_with_nothing_clears(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        db.replace_bib_detections(conn, photo_id, [_detection("1")])
        db.replace_bib_detections(conn, photo_id, [])
        assert db.get_bib_detections(conn, photo_id) == []

    def test_duplicate_bib_rejected_atomically(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        db.replace_bib_detections(conn, photo_id, [_detection("9")])
        with pytest.raises(sqlite3.IntegrityError):
            db.replace_bib_detections(conn, photo_id, [_detection("1"), _detection("1")])
        assert [d.bib_number for d in db.get_bib_detections(conn, photo_id)] == ["9"]

    def test_sorted_by_confidence(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        db.replace_bib_detections(conn, photo_id, [_detection("1", 0.4), _detection("2", 0.9)])
        assert [d.bib_number for d in db.get_bib_detections(conn, photo_id)] == ["2", "1"]

    def test_deleting_photo_cascades(self, conn):
        photo_id = db.insert_photo(conn, "a.jpg")
        db.replace_bib_detections(conn, photo_id, [_detection("1")])
        conn.execute("DELETE FROM photos WHERE id = ?", (photo_id,))
        conn.commit()
        assert db.count_detections(conn) == 0


class TestPhotosByBib:
    def test_only_processed_photos_newest_first(self, conn):
        older = db.insert_photo(conn, "old.jpg", race_id="r1")
        newer = db.insert_photo(conn, "new.jpg", race_id="r1")
        pending = db.insert_photo(conn, "pending.jpg", race_id="r1")
        for photo_id in (older, newer, pending):
            db.replace_bib_detections(conn, photo_id, [_detection("42", 0.7)])
        _complete(conn, older)
        _complete(conn, newer)

        matches = db.get_photos_by_bib(conn, "42")
        assert [m["id"] for m in matches] == [newer, older]
        assert matches[0]["detection_confidence"] == pytest.approx(0.7)
        assert matches[0]["detection_method"] == "detector_only"

    def test_race_filter(self, conn):
        a = db.insert_photo(conn, "a.jpg", race_id="r1")
        b = db.insert_photo(conn, "b.jpg", race_id="r2")
        for photo_id in (a, b):
            db.replace_bib_detections(conn, photo_id, [_detection("7")])
            _complete(conn, photo_id)
        assert [m["id"] for m in db.get_photos_by_bib(conn, "7", race_id="r2")] == [b]

    def test_unknown_bib(self, conn):
        assert db.get_photos_by_bib(conn, "9999") == []
