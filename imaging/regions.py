"""Relative-coordinate regions and crops."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class Region:
    """A rectangle expressed as fractions of the image size, all in [0, 1]."""
    x1: float
    y1: float
    x2: float
    y2: float

    def __post_init__(self):
        for name in ("x1", "y1", "x2", "y2"):
            v = getattr(self, name)
            if not 0.0 <= v <= 1.0:
                raise ValueError(f"Region.{name}={v} is outside [0, 1]")
        if self.x2 < self.x1 or self.y2 < self.y1:
            raise ValueError(f"Region {self} has negative extent")

    def to_box(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """
        Absolute half-open box ``(left, top, right, bottom)``.

        Edges are ``floor(size * fraction)``.  The box is kept inside the
        image and at least one pixel wide and tall.
        """
        left = min(math.floor(width * self.x1), max(width - 1, 0))
        top = min(math.floor(height * self.y1), max(height - 1, 0))
        right = min(max(math.floor(width * self.x2), left + 1), width)
        bottom = min(max(math.floor(height * self.y2), top + 1), height)
        return left, top, right, bottom

    def shifted_right(self, start: float, end: float) -> "Region":
        """Region spanning ``[x2 + start, x2 + end]`` horizontally, same rows."""
        return Region(
            x1=min(self.x2 + start, 1.0),
            y1=self.y1,
            x2=min(self.x2 + end, 1.0),
            y2=self.y2,
        )


def crop_region(image: np.ndarray, region: Region) -> np.ndarray:
    h, w = image.shape[:2]
    left, top, right, bottom = region.to_box(w, h)
    return image[top:bottom, left:right]
