"""
Image fingerprints: perceptual hash, content digest and hex Hamming distance.

The perceptual hash is delegated to ``imagehash.phash`` (DCT hash, 16x16
bits by default, rendered as 64 hex digits).  Only the comparison lives
here: :func:`hex_hamming` sums a per-nibble popcount table over the XOR of
both strings.
"""

from __future__ import annotations

import hashlib
import io
from abc import ABC, abstractmethod

import imagehash
from PIL import Image

# popcount of every 4-bit value
NIBBLE_POPCOUNT = (0, 1, 1, 2, 1, 2, 2, 3, 1, 2, 2, 3, 2, 3, 3, 4)


def hex_hamming(a: str, b: str) -> int:
    """
    Number of differing bits between two hex strings.

    The shorter string is left-padded with ``0`` so both have the same
    number of digits.  Raises ``ValueError`` on non-hex characters.
    """
    width = max(len(a), len(b))
    a = a.rjust(width, "0")
    b = b.rjust(width, "0")
    return sum(NIBBLE_POPCOUNT[int(x, 16) ^ int(y, 16)] for x, y in zip(a, b))


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class PerceptualHasher(ABC):
    """Capability: image bytes -> fixed-length hex fingerprint."""

    @abstractmethod
    def hash(self, data: bytes) -> str:
        ...


class PHasher(PerceptualHasher):
    """DCT perceptual hash via ``imagehash``."""

    def __init__(self, hash_size: int = 16):
        self.hash_size = hash_size

    def hash(self, data: bytes) -> str:
        with Image.open(io.BytesIO(data)) as img:
            return str(imagehash.phash(img.convert("RGB"), hash_size=self.hash_size))
