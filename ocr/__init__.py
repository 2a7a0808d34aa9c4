"""
ocr — OCR engines and post-processing of recognised lines.

Modules
-------
adapter      OCREngine capability with Tesseract and PaddleOCR engines.
postprocess  clean_text / refine_text normalisation and boilerplate phrases.
handles      Handle -> comment-text grouping and common-user selection.
"""

from .adapter import OCREngine, OCRError, OCRTimeoutError, build_engine
from .handles import extract_user_texts, normalize_handle, pick_user
from .postprocess import clean_text, refine_text

__all__ = [
    "OCREngine",
    "OCRError",
    "OCRTimeoutError",
    "build_engine",
    "extract_user_texts",
    "pick_user",
    "normalize_handle",
    "clean_text",
    "refine_text",
]
