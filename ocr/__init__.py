"""
OCR subsystem for reading bib numbers from cropped regions.

Key components:
- types: OCRResult and raw EngineReading values
- text: Digit cleaning, per-engine bib extraction, alternative generation
- engines: Local EasyOCR engine (shared, lazily loaded) and the optional
  Google Cloud Vision engine
- recognizer: BibRecognizer, the multi-variant recognition strategy
"""

from .engines import EasyOCREngine, GoogleVisionEngine, OCREngine, create_cloud_engine
from .recognizer import DEFAULT_VARIANTS, BibRecognizer, RecognitionVariant
from .text import clean_text, extract_cloud_bib, extract_local_bib, generate_alternatives
from .types import EngineReading, OCRResult

__all__ = [
    "OCRResult",
    "EngineReading",
    "clean_text",
    "extract_local_bib",
    "extract_cloud_bib",
    "generate_alternatives",
    "OCREngine",
    "EasyOCREngine",
    "GoogleVisionEngine",
    "create_cloud_engine",
    "BibRecognizer",
    "RecognitionVariant",
    "DEFAULT_VARIANTS",
]
