"""
Image source adapters.

This module provides access to photo bytes:
- Remote object store / CDN URLs (via requests)
- Local directories and files

fetch_image() resolves a photo's storage reference to its bytes.
"""

from .local import read_local_image, scan_local_images
from .remote import download_image, fetch_image

__all__ = [
    "scan_local_images",
    "read_local_image",
    "download_image",
    "fetch_image",
]
