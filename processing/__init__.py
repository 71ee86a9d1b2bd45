"""Photo processing helpers (reusable by the worker, API and CLI)."""

from .resources import PipelineResources, build_resources
from .service import DEFAULT_PROCESSING_OPTIONS, PhotoProcessingService, error_message

__all__ = [
    "PipelineResources",
    "build_resources",
    "PhotoProcessingService",
    "DEFAULT_PROCESSING_OPTIONS",
    "error_message",
]
