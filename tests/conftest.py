"""Shared fakes and synthetic images for the verifier tests."""

from __future__ import annotations

import io
import threading
import time
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest
from PIL import Image

from imaging.hashing import PerceptualHasher, sha256_hex
from ocr.adapter import OCREngine

# Panel sizes double as keys for FakeOCR: each role gets a distinct shape.
PANEL_SHAPES = {
    "comment1": (60, 90),
    "comment2": (62, 90),
    "reply1": (64, 90),
    "reply2": (66, 90),
}

VERIFIED_PANELS = {
    PANEL_SHAPES["comment1"]: ["@alice", "great post here", "Reply"],
    PANEL_SHAPES["comment2"]: ["@alice", "love this video", "@bob", "cool"],
    PANEL_SHAPES["reply1"]: ["@alice", "thanks buddy"],
    PANEL_SHAPES["reply2"]: ["@alice", "welcome back", "Add a reply..."],
}


class FakeOCR(OCREngine):
    """OCR stand-in that answers by image shape."""

    name = "fake"

    def __init__(
        self,
        panels: Optional[Dict[Tuple[int, int], List[str]]] = None,
        count_text: Sequence[str] = (),
        delay: float = 0.0,
        fail_shape: Optional[Tuple[int, int]] = None,
        exc: Optional[Exception] = None,
    ):
        self.panels = panels or {}
        self.count_text = list(count_text)
        self.delay = delay
        self.fail_shape = fail_shape
        self.exc = exc
        self.calls: List[Tuple[Tuple[int, ...], bool]] = []
        self._lock = threading.Lock()

    def recognize_lines(self, image, digits_only=False):
        with self._lock:
            self.calls.append((image.shape, digits_only))
        if self.delay:
            time.sleep(self.delay)
        if self.fail_shape is not None and tuple(image.shape[:2]) == self.fail_shape:
            raise self.exc
        if digits_only:
            return list(self.count_text)
        return list(self.panels.get(tuple(image.shape[:2]), []))


class DictHasher(PerceptualHasher):
    """Returns preset hashes for known payloads, SHA-256 otherwise."""

    def __init__(self, preset: Optional[Dict[bytes, str]] = None):
        self.preset = preset or {}

    def hash(self, data):
        return self.preset.get(data, sha256_hex(data))


def png_bytes(arr: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(arr.astype(np.uint8)).save(buf, format="PNG")
    return buf.getvalue()


def like_image(filled: bool = True, size: int = 200, background: int = 255) -> np.ndarray:
    img = np.full((size, size, 3), background, dtype=np.uint8)
    if filled:
        img[int(size * 0.47):int(size * 0.55), int(size * 0.05):int(size * 0.12)] = 0
    return img


def bundle_uploads(liked: bool = True, background: int = 255) -> Dict[str, bytes]:
    uploads = {"like": png_bytes(like_image(filled=liked, background=background))}
    for role, shape in PANEL_SHAPES.items():
        uploads[role] = png_bytes(np.full(shape + (3,), background, dtype=np.uint8))
    return uploads


def flip_low_bits(hex_hash: str, n: int) -> str:
    value = int(hex_hash, 16) ^ ((1 << n) - 1)
    return format(value, "x").rjust(len(hex_hash), "0")


@pytest.fixture
def fake_ocr():
    return FakeOCR(panels=VERIFIED_PANELS)
