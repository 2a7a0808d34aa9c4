"""
imaging — pixel-level primitives for engagement screenshot verification.

Modules
-------
utils           Byte decoding, grayscale, downscaling and PNG export.
binarize        Sauvola adaptive thresholding over summed-area tables.
regions         Fraction-based rectangles and crops.
like_detector   Like-icon darkness test with digit-OCR fallback.
hashing         pHash capability, SHA-256 digest, hex Hamming distance.
"""

from .binarize import sauvola_binarize
from .hashing import PHasher, PerceptualHasher, hex_hamming, sha256_hex
from .like_detector import LikeDetection, LikeDetector
from .regions import Region, crop_region

__all__ = [
    "sauvola_binarize",
    "PHasher",
    "PerceptualHasher",
    "hex_hamming",
    "sha256_hex",
    "LikeDetection",
    "LikeDetector",
    "Region",
    "crop_region",
]
