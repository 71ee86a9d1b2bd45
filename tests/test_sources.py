"""Tests for local scanning and photo fetching by storage reference."""

import pytest
import requests

from errors import ServiceError
from sources import download_image, fetch_image, scan_local_images


class TestScanLocalImages:
    def test_directory_returns_sorted_images(self, tmp_path):
        for name in ("b.jpg", "a.PNG", "notes.txt", "c.webp"):
            (tmp_path / name).write_bytes(b"x")
        (tmp_path / "sub.jpg").mkdir()

        assert [p.name for p in scan_local_images(str(tmp_path))] == ["a.PNG", "b.jpg", "c.webp"]

    def test_single_image(self, tmp_path):
        image = tmp_path / "a.jpeg"
        image.write_bytes(b"x")
        assert scan_local_images(str(image)) == [image.resolve()]

    def test_unsupported_file(self, tmp_path):
        text = tmp_path / "a.txt"
        text.write_text("x")
        with pytest.raises(ValueError, match="not a supported image"):
            scan_local_images(str(text))

    def test_missing_path(self, tmp_path):
        with pytest.raises(ValueError, match="not a valid file or directory"):
            scan_local_images(str(tmp_path / "missing"))


class FakeResponse:
    def __init__(self, content=b"", status_code=200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class TestFetchImage:
    def test_local_path(self, tmp_path):
        image = tmp_path / "a.jpg"
        image.write_bytes(b"local-bytes")
        assert fetch_image(str(image)) == b"local-bytes"

    def test_file_url(self, tmp_path):
        image = tmp_path / "with space.jpg"
        image.write_bytes(b"file-bytes")
        assert fetch_image(image.as_uri()) == b"file-bytes"

    def test_missing_local_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            fetch_image(str(tmp_path / "missing.jpg"))

    def test_http_url_downloads(self, monkeypatch):
        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse(b"remote-bytes")

        monkeypatch.setattr("sources.remote.requests.get", fake_get)
        assert fetch_image("https://cdn.example.com/a.jpg") == b"remote-bytes"
        assert calls[0][0] == "https://cdn.example.com/a.jpg"

    def test_http_error_is_service_error(self, monkeypatch):
        monkeypatch.setattr(
            "sources.remote.requests.get", lambda url, timeout: FakeResponse(status_code=404),
        )
        with pytest.raises(ServiceError, match="Failed to download"):
            download_image("https://cdn.example.com/missing.jpg")

    def test_connection_error_is_service_error(self, monkeypatch):
        def refuse(url, timeout):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr("sources.remote.requests.get", refuse)
        with pytest.raises(ServiceError):
            download_image("https://cdn.example.com/a.jpg")
