"""
ocr.adapter — OCR engine capability and concrete engines.

Every engine implements :meth:`OCREngine.recognize_lines`, which takes a
uint8 image array (grayscale or binarized) and returns the recognised
text lines in reading order, stripped and without blanks.  Two modes are
required by the analysers:

* text mode for comment/reply panels;
* digit mode (``digits_only=True``) for the like-count crop.

Engines
-------
TesseractEngine  ``pytesseract`` wrapper; enforces a per-call timeout and
                 a ``0-9`` whitelist in digit mode.
PaddleEngine     PaddleOCR wrapper, lazily initialised as a module-level
                 singleton shared by all threads; inference calls are
                 serialised.  Digit mode filters recognised text to digits.

Failures surface as :class:`OCRError`; an exceeded time budget as
:class:`OCRTimeoutError`.
"""

from __future__ import annotations

import logging
import re
import threading
from abc import ABC, abstractmethod
from typing import Any, List

import numpy as np
import pytesseract

try:
    from paddleocr import PaddleOCR  # type: ignore
except Exception:
    PaddleOCR = None

logger = logging.getLogger(__name__)

# Module-level singleton for the PaddleOCR engine.
_PADDLE_INSTANCE = None
_PADDLE_INIT_LOCK = threading.Lock()
# The predictor is not thread-safe; inference calls go through one at a time.
_PADDLE_CALL_LOCK = threading.Lock()

# Cap on lines returned per image.
_MAX_LINES = 300

_NON_DIGIT_RE = re.compile(r"\D+")


class OCRError(RuntimeError):
    """The OCR engine failed to produce text for an image."""


class OCRTimeoutError(OCRError):
    """The OCR engine exceeded its per-call time budget."""


def split_lines(text: str, max_lines: int = _MAX_LINES) -> List[str]:
    """Split engine output into stripped, non-empty lines."""
    lines = [ln.strip() for ln in text.splitlines()]
    return [ln for ln in lines if ln][:max_lines]


class OCREngine(ABC):
    """Capability: image -> ordered text lines."""

    name = "base"

    @abstractmethod
    def recognize_lines(self, image: np.ndarray, digits_only: bool = False) -> List[str]:
        ...


class TesseractEngine(OCREngine):
    name = "tesseract"

    TEXT_CONFIG = "--oem 3 --psm 6"
    DIGIT_CONFIG = "--oem 3 --psm 7 -c tessedit_char_whitelist=0123456789"

    def __init__(self, lang: str = "eng", timeout: float = 6.0):
        self.lang = lang
        self.timeout = timeout

    def recognize_lines(self, image: np.ndarray, digits_only: bool = False) -> List[str]:
        config = self.DIGIT_CONFIG if digits_only else self.TEXT_CONFIG
        try:
            text = pytesseract.image_to_string(
                image, lang=self.lang, config=config, timeout=self.timeout,
            )
        except pytesseract.TesseractNotFoundError as exc:
            raise OCRError(f"tesseract binary not available: {exc}") from exc
        except RuntimeError as exc:
            # pytesseract signals an expired timeout with a bare RuntimeError
            if "timeout" in str(exc).lower():
                raise OCRTimeoutError(f"tesseract exceeded {self.timeout}s") from exc
            raise OCRError(f"tesseract failed: {exc}") from exc
        return split_lines(text)


def _get_paddle() -> Any:
    """Lazily initialise and return the PaddleOCR singleton."""
    global _PADDLE_INSTANCE
    if PaddleOCR is None:
        raise OCRError("paddleocr is not installed")
    with _PADDLE_INIT_LOCK:
        if _PADDLE_INSTANCE is None:
            _PADDLE_INSTANCE = PaddleOCR(use_angle_cls=True, lang="en")
    return _PADDLE_INSTANCE


class PaddleEngine(OCREngine):
    name = "paddle"

    def recognize_lines(self, image: np.ndarray, digits_only: bool = False) -> List[str]:
        ocr = _get_paddle()
        if image.ndim == 2:
            image = np.repeat(image[..., None], 3, axis=2)
        try:
            with _PADDLE_CALL_LOCK:
                res = ocr.ocr(image, cls=True)
        except Exception as exc:
            raise OCRError(f"paddleocr failed: {exc}") from exc

        # PaddleOCR output format: list of pages, each page is a list of
        # [box_coords, (text, confidence)] pairs.
        lines: List[str] = []
        for page in res or []:
            for _box, (text, _conf) in page or []:
                text = str(text).strip()
                if digits_only:
                    text = _NON_DIGIT_RE.sub("", text)
                if text:
                    lines.append(text)
        return lines[:_MAX_LINES]


def build_engine(name: str, timeout: float = 6.0, lang: str = "eng") -> OCREngine:
    """Instantiate an engine by config name (``"tesseract"`` or ``"paddle"``)."""
    if name == "tesseract":
        return TesseractEngine(lang=lang, timeout=timeout)
    if name == "paddle":
        return PaddleEngine()
    raise ValueError(f"Unknown OCR engine {name!r}")
