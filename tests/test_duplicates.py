"""Tests for near-duplicate detection."""

from imaging.hashing import hex_hamming
from pipeline.duplicates import find_near_duplicate, is_duplicate

from conftest import flip_low_bits

PRIOR = [
    "f0e1d2c3b4a5968778695a4b3c2d1e0f" * 2,
    "0123456789abcdef0123456789abcdef" * 2,
    "ffffffffffffffff0000000000000000" * 2,
    "aaaaaaaaaaaaaaaa5555555555555555" * 2,
    "1111222233334444555566667777888f" * 2,
]


def test_hashes_within_three_bits_are_duplicates():
    new = [flip_low_bits(h, 3) for h in PRIOR]
    assert all(h not in PRIOR for h in new)
    match = find_near_duplicate(new, PRIOR, threshold=6)
    assert match is not None
    assert match.distance == 3
    assert hex_hamming(match.new_hash, match.prior_hash) == 3


def test_distance_four_is_duplicate_and_eight_is_not():
    base = PRIOR[0]
    assert is_duplicate([flip_low_bits(base, 4)], [base], threshold=6)
    assert not is_duplicate([flip_low_bits(base, 8)], [base], threshold=6)


def test_threshold_is_inclusive():
    base = PRIOR[1]
    assert is_duplicate([flip_low_bits(base, 6)], [base], threshold=6)
    assert not is_duplicate([flip_low_bits(base, 7)], [base], threshold=6)


def test_any_single_match_is_enough():
    unrelated = ["0" * 64] * 4
    new = unrelated + [flip_low_bits(PRIOR[3], 2)]
    match = find_near_duplicate(new, PRIOR, threshold=6)
    assert match.prior_hash == PRIOR[3]


def test_empty_history_is_never_duplicate():
    assert find_near_duplicate(PRIOR, [], threshold=6) is None
    assert find_near_duplicate(PRIOR, set(), threshold=6) is None
