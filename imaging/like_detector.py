"""
Like-button state detection on the ``like`` screenshot.

The icon zone is cropped and the share of pixels darker than
``dark_threshold`` decides the outcome:

* ratio >= ``filled_min``  -> liked (filled icon)
* ratio <= ``outline_max`` -> not liked (outline icon)
* otherwise the like-count zone right of the icon is read with a
  digit-only OCR call; any digit counts as a like.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional

import numpy as np

from imaging.regions import Region, crop_region
from imaging.utils import to_gray_u8

logger = logging.getLogger(__name__)

_DIGIT_RE = re.compile(r"\d")


class IconState(str, enum.Enum):
    FILLED = "filled"
    OUTLINE = "outline"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class LikeDetection:
    liked: bool
    dark_ratio: float
    state: IconState
    count_text: Optional[str] = None   # only set when the OCR fallback ran


def dark_ratio(gray: np.ndarray, dark_threshold: int) -> float:
    """Fraction of pixels strictly darker than *dark_threshold*."""
    if gray.size == 0:
        return 0.0
    return float(np.count_nonzero(gray < dark_threshold)) / float(gray.size)


def classify_ratio(ratio: float, filled_min: float, outline_max: float) -> IconState:
    if ratio >= filled_min:
        return IconState.FILLED
    if ratio <= outline_max:
        return IconState.OUTLINE
    return IconState.AMBIGUOUS


class LikeDetector:
    """
    Decide whether the post in a screenshot was liked.

    Usage
    -----
        detector = LikeDetector(ocr=TesseractEngine())
        detection = detector.detect(rgb)
        detection.liked
    """

    def __init__(
        self,
        ocr,
        icon_region: Region = Region(0.05, 0.47, 0.12, 0.55),
        count_offset: tuple = (0.02, 0.15),
        dark_threshold: int = 80,
        filled_min: float = 0.035,
        outline_max: float = 0.020,
    ):
        self.ocr = ocr
        self.icon_region = icon_region
        self.count_region = icon_region.shifted_right(*count_offset)
        self.dark_threshold = dark_threshold
        self.filled_min = filled_min
        self.outline_max = outline_max

    def detect(self, image: np.ndarray) -> LikeDetection:
        gray = to_gray_u8(image)
        ratio = dark_ratio(crop_region(gray, self.icon_region), self.dark_threshold)
        state = classify_ratio(ratio, self.filled_min, self.outline_max)
        logger.debug("like icon dark_ratio=%.4f state=%s", ratio, state.value)

        if state is IconState.FILLED:
            return LikeDetection(liked=True, dark_ratio=ratio, state=state)
        if state is IconState.OUTLINE:
            return LikeDetection(liked=False, dark_ratio=ratio, state=state)

        count_crop = crop_region(gray, self.count_region)
        text = " ".join(self.ocr.recognize_lines(count_crop, digits_only=True))
        liked = bool(_DIGIT_RE.search(text))
        logger.debug("like count fallback read %r -> liked=%s", text, liked)
        return LikeDetection(liked=liked, dark_ratio=ratio, state=state, count_text=text)
