"""End-to-end tests for BundleVerifier with fake OCR and hash engines."""

import struct
import threading
import zlib
from dataclasses import replace

import pytest

from ocr.adapter import OCRError, OCRTimeoutError
from pipeline.bundle import Bundle, ImageRole
from pipeline.config import RuntimeConfig, VerifierConfig
from pipeline.errors import BundleValidationError, RecognitionError
from pipeline.history import InMemoryHistoryStore
from pipeline.verifier import BundleVerifier, SubmissionStatus

from conftest import (
    PANEL_SHAPES,
    VERIFIED_PANELS,
    DictHasher,
    FakeOCR,
    bundle_uploads,
    flip_low_bits,
)


def _png_chunk(kind: bytes, payload: bytes) -> bytes:
    body = kind + payload
    return struct.pack(">I", len(payload)) + body + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)


def _png_header_only(width: int, height: int) -> bytes:
    """A tiny PNG whose header claims *width* x *height* pixels."""
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", ihdr)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00"))
        + _png_chunk(b"IEND", b"")
    )


def _verifier(ocr, hasher=None, history=None, config=None):
    return BundleVerifier(
        ocr=ocr,
        hasher=hasher or DictHasher(),
        history=history or InMemoryHistoryStore(),
        config=config or VerifierConfig(),
    )


# ── Structural validation ───────────────────────────────────────────────────

def test_missing_role_is_rejected():
    uploads = bundle_uploads()
    del uploads["reply2"]
    with pytest.raises(BundleValidationError) as exc:
        Bundle.from_uploads(uploads)
    assert exc.value.role == "reply2"
    assert exc.value.retryable is False


def test_extra_role_is_rejected():
    uploads = bundle_uploads()
    uploads["reply3"] = uploads["reply2"]
    with pytest.raises(BundleValidationError):
        Bundle.from_uploads(uploads)


def test_garbage_bytes_are_rejected():
    uploads = bundle_uploads()
    uploads["comment1"] = b"definitely not an image"
    with pytest.raises(BundleValidationError) as exc:
        Bundle.from_uploads(uploads)
    assert exc.value.role == "comment1"


def test_oversize_image_is_rejected():
    with pytest.raises(BundleValidationError):
        Bundle.from_uploads(bundle_uploads(), max_image_bytes=10)


def test_decompression_bomb_header_is_a_validation_error():
    uploads = bundle_uploads()
    uploads["comment1"] = _png_header_only(16000, 12000)
    assert len(uploads["comment1"]) < 200
    with pytest.raises(BundleValidationError) as exc:
        Bundle.from_uploads(uploads)
    assert exc.value.role == "comment1"


def test_pixel_cap_is_checked_before_decoding():
    uploads = bundle_uploads()
    uploads["reply1"] = _png_header_only(9000, 9000)
    with pytest.raises(BundleValidationError) as exc:
        Bundle.from_uploads(uploads, max_image_pixels=40_000_000)
    assert exc.value.role == "reply1"
    # the largest upload is the 200x200 like screenshot
    Bundle.from_uploads(bundle_uploads(), max_image_pixels=200 * 200)
    with pytest.raises(BundleValidationError):
        Bundle.from_uploads(bundle_uploads(), max_image_pixels=1000)


def test_bundle_keeps_role_order_and_mime():
    bundle = Bundle.from_uploads(dict(reversed(list(bundle_uploads().items()))))
    assert list(bundle.images) == list(ImageRole)
    assert set(bundle.mime_types.values()) == {"image/png"}


# ── Analysis ────────────────────────────────────────────────────────────────

def test_analyze_verified_bundle(fake_ocr):
    result = _verifier(fake_ocr).analyze(Bundle.from_uploads(bundle_uploads()))
    assert result.liked is True
    assert result.user_handle == "@alice"
    assert result.comment_texts == ("great post here", "love this video")
    assert result.reply_texts == ("thanks buddy", "welcome back")
    assert result.verified is True
    # four text-mode calls, no like-count fallback for a filled icon
    assert sorted(shape[:2] for shape, digits in fake_ocr.calls if not digits) == sorted(PANEL_SHAPES.values())
    assert not any(digits for _, digits in fake_ocr.calls)


def test_process_reports_file_records(fake_ocr):
    uploads = bundle_uploads()
    report = _verifier(fake_ocr).process(Bundle.from_uploads(uploads))
    assert [f.role for f in report.files] == list(ImageRole)
    assert report.files[0].byte_size == len(uploads["like"])
    assert all(len(f.content_hash) == 64 for f in report.files)
    assert all(f.mime_type == "image/png" for f in report.files)


def test_comment_lines_follow_role_order():
    panels = dict(VERIFIED_PANELS)
    # comment2 continues the thread started in comment1
    panels[PANEL_SHAPES["comment1"]] = ["@alice", "great post here"]
    panels[PANEL_SHAPES["comment2"]] = ["love this video"]
    result = _verifier(FakeOCR(panels=panels)).analyze(Bundle.from_uploads(bundle_uploads()))
    assert result.comment_texts == ("great post here love this video",)


# ── Submission outcomes ─────────────────────────────────────────────────────

def test_verified_bundle_is_accepted_and_stored(fake_ocr):
    history = InMemoryHistoryStore()
    outcome = _verifier(fake_ocr, history=history).submit(
        Bundle.from_uploads(bundle_uploads()), user_id="u1", link_id="l1",
    )
    assert outcome.status is SubmissionStatus.ACCEPTED
    assert outcome.record is not None
    assert len(history.prior_hashes("u1")) == 5
    payload = outcome.to_dict()
    assert payload["verified"] is True
    assert payload["record"]["bundle_signature"] == outcome.record.bundle_signature


def test_unliked_bundle_is_not_verified_and_not_stored(fake_ocr):
    history = InMemoryHistoryStore()
    outcome = _verifier(fake_ocr, history=history).submit(
        Bundle.from_uploads(bundle_uploads(liked=False)), user_id="u1", link_id="l1",
    )
    assert outcome.status is SubmissionStatus.NOT_VERIFIED
    assert outcome.to_dict()["failed_signals"] == ["not_liked"]
    assert history.prior_hashes("u1") == set()


def test_resubmission_is_duplicate(fake_ocr):
    verifier = _verifier(fake_ocr)
    first = verifier.submit(Bundle.from_uploads(bundle_uploads()), "u1", "l1")
    second = verifier.submit(Bundle.from_uploads(bundle_uploads()), "u1", "l2")
    assert first.status is SubmissionStatus.ACCEPTED
    assert second.status is SubmissionStatus.DUPLICATE
    assert second.duplicate.distance == 0


def test_same_bundle_from_another_user_is_accepted(fake_ocr):
    verifier = _verifier(fake_ocr)
    assert verifier.submit(Bundle.from_uploads(bundle_uploads()), "u1", "l1").accepted
    assert verifier.submit(Bundle.from_uploads(bundle_uploads()), "u2", "l1").accepted


def test_near_duplicate_without_identical_hashes(fake_ocr):
    original = bundle_uploads(background=255)
    lookalike = bundle_uploads(background=250)
    base = DictHasher()
    preset = {lookalike[role]: flip_low_bits(base.hash(original[role]), 3) for role in original}
    verifier = _verifier(fake_ocr, hasher=DictHasher(preset))

    assert verifier.submit(Bundle.from_uploads(original), "u1", "l1").accepted
    outcome = verifier.submit(Bundle.from_uploads(lookalike), "u1", "l1")
    assert outcome.status is SubmissionStatus.DUPLICATE
    assert outcome.duplicate.distance == 3


def test_hashes_far_apart_are_distinct(fake_ocr):
    original = bundle_uploads(background=255)
    other = bundle_uploads(background=250)
    base = DictHasher()
    preset = {other[role]: flip_low_bits(base.hash(original[role]), 8) for role in original}
    verifier = _verifier(fake_ocr, hasher=DictHasher(preset))

    assert verifier.submit(Bundle.from_uploads(original), "u1", "l1").accepted
    assert verifier.submit(Bundle.from_uploads(other), "u1", "l1").accepted


def test_concurrent_submissions_from_one_user_accept_only_one():
    ocr = FakeOCR(panels=VERIFIED_PANELS, delay=0.05)
    verifier = _verifier(ocr)
    outcomes = []
    lock = threading.Lock()

    def submit():
        out = verifier.submit(Bundle.from_uploads(bundle_uploads()), "u1", "l1")
        with lock:
            outcomes.append(out.status)

    threads = [threading.Thread(target=submit) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(s.value for s in outcomes) == ["accepted", "duplicate", "duplicate"]


# ── Failure handling ────────────────────────────────────────────────────────

def test_ocr_timeout_fails_the_whole_bundle():
    ocr = FakeOCR(
        panels=VERIFIED_PANELS,
        fail_shape=PANEL_SHAPES["reply1"],
        exc=OCRTimeoutError("too slow"),
    )
    history = InMemoryHistoryStore()
    with pytest.raises(RecognitionError) as exc:
        _verifier(ocr, history=history).submit(Bundle.from_uploads(bundle_uploads()), "u1", "l1")
    assert exc.value.role == "reply1"
    assert exc.value.retryable is True
    assert history.prior_hashes("u1") == set()


def test_ocr_engine_error_is_recognition_error():
    ocr = FakeOCR(panels=VERIFIED_PANELS, fail_shape=PANEL_SHAPES["comment2"], exc=OCRError("boom"))
    with pytest.raises(RecognitionError) as exc:
        _verifier(ocr).analyze(Bundle.from_uploads(bundle_uploads()))
    assert exc.value.role == "comment2"


def test_bundle_budget_is_enforced():
    config = replace(VerifierConfig(), runtime=replace(RuntimeConfig(), ocr_timeout=0.1, bundle_timeout=0.2))
    ocr = FakeOCR(panels=VERIFIED_PANELS, delay=1.0)
    with pytest.raises(RecognitionError):
        _verifier(ocr, config=config).analyze(Bundle.from_uploads(bundle_uploads()))


class _SnapshotMissStore(InMemoryHistoryStore):
    """Reports an empty history but still enforces signature uniqueness on insert."""

    def prior_hashes(self, user_id):
        return set()


def test_signature_conflict_reports_a_zero_distance_match(fake_ocr):
    verifier = _verifier(fake_ocr, history=_SnapshotMissStore())
    first = verifier.submit(Bundle.from_uploads(bundle_uploads()), "u1", "l1")
    assert first.accepted

    outcome = verifier.submit(Bundle.from_uploads(bundle_uploads()), "u1", "l1")
    assert outcome.status is SubmissionStatus.DUPLICATE
    assert outcome.duplicate is not None
    assert outcome.duplicate.distance == 0
    assert outcome.duplicate.new_hash in first.record.phashes
    assert outcome.to_dict()["duplicate"]["distance"] == 0
