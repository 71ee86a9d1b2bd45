"""Warnings helpers to keep worker output clean."""

from __future__ import annotations

import warnings


def suppress_ocr_runtime_warnings() -> None:
    """Suppress noisy warnings emitted while the local OCR engine loads.

    EasyOCR runs on torch; on CPU-only hosts torch warns about pinned memory
    and EasyOCR warns that no GPU is available on every reader construction.
    """
    warnings.filterwarnings(
        "ignore",
        message=r".*pin_memory.*",
        category=UserWarning,
        module=r"torch\.utils\.data\.dataloader",
    )
    warnings.filterwarnings(
        "ignore",
        message=r".*(CUDA not available|Using CPU).*",
    )
