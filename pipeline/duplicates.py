"""
Near-duplicate detection against a user's accepted bundles.

A new bundle is a duplicate when any of its perceptual hashes lies within
``threshold`` bits (inclusive) of any hash the same user already had
accepted.  The scan is a plain many-to-many comparison, O(len(prior) x 5)
per submission.  That is fine for per-user histories in the hundreds; past
a few thousand stored hashes per user an index such as a BK-tree keyed on
Hamming distance should replace :func:`find_near_duplicate`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional

from imaging.hashing import hex_hamming

DEFAULT_HAMMING_THRESHOLD = 6


@dataclass(frozen=True)
class DuplicateMatch:
    new_hash: str
    prior_hash: str
    distance: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def find_near_duplicate(
    new_hashes: Iterable[str],
    prior_hashes: Iterable[str],
    threshold: int = DEFAULT_HAMMING_THRESHOLD,
) -> Optional[DuplicateMatch]:
    """Return the first (new, prior) pair within *threshold* bits, or ``None``."""
    prior = list(prior_hashes)
    if not prior:
        return None
    for h in new_hashes:
        for old in prior:
            d = hex_hamming(h, old)
            if d <= threshold:
                return DuplicateMatch(new_hash=h, prior_hash=old, distance=d)
    return None


def is_duplicate(
    new_hashes: Iterable[str],
    prior_hashes: Iterable[str],
    threshold: int = DEFAULT_HAMMING_THRESHOLD,
) -> bool:
    return find_near_duplicate(new_hashes, prior_hashes, threshold) is not None
