"""
Photo fetching by storage reference.

A storage reference is either an http(s) URL served by the object store or
CDN, a file:// URL, or a plain local path.
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from config import DOWNLOAD_TIMEOUT_SECONDS
from errors import ServiceError

from .local import read_local_image

logger = logging.getLogger(__name__)


def download_image(url: str, timeout: float = DOWNLOAD_TIMEOUT_SECONDS) -> bytes:
    """Download an image and return its bytes.

    Raises:
        ServiceError: If the store is unreachable or answers with an error.
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ServiceError(f"Failed to download {url}: {e}") from e
    return response.content


def fetch_image(storage_ref: str) -> bytes:
    """Fetch photo bytes by storage reference.

    Raises:
        ServiceError: If a remote download fails.
        FileNotFoundError: If a local file is missing.
    """
    parsed = urlparse(storage_ref)
    if parsed.scheme in ("http", "https"):
        logger.debug("Downloading %s", storage_ref)
        return download_image(storage_ref)
    if parsed.scheme == "file":
        return read_local_image(Path(unquote(parsed.path)))
    return read_local_image(storage_ref)
