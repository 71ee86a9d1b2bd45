"""
HTTP API for the photo processing pipeline.

Provides a FastAPI app for registering photos, following their processing
status, cancelling them and searching photos by bib number.
"""

from .app import create_app, main, serve

__all__ = ["create_app", "main", "serve"]
