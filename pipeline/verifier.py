"""
BundleVerifier — runs the five screenshots of a bundle through the
analysers and turns the result into a submission outcome.

Flow
----
  1. fan-out         one task per role on a thread pool: pHash + SHA-256,
                     then like detection (``like``) or downscale, Sauvola
                     binarization and OCR (comment/reply roles)
  2. join            any failed or timed-out role fails the bundle
                     (RecognitionError); no partial verification
  3. grouping        comment1+comment2 and reply1+reply2 lines become
                     handle -> text maps
  4. decision        pipeline.analysis.decide
  5. dedupe+store    under the user's lock: near-duplicate check against
                     the user's accepted hashes, then insert if verified

Usage
-----
    verifier = BundleVerifier(ocr=TesseractEngine(), history=JsonHistoryStore("history.json"))
    bundle = Bundle.from_uploads({"like": b"...", "comment1": b"...", ...})
    outcome = verifier.submit(bundle, user_id="u1", link_id="l1")
"""

from __future__ import annotations

import enum
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from imaging.binarize import sauvola_binarize
from imaging.hashing import PerceptualHasher, PHasher, sha256_hex
from imaging.like_detector import LikeDetection, LikeDetector
from imaging.utils import decode_image_rgb, downscale, to_gray_u8
from ocr.adapter import OCREngine, OCRError, OCRTimeoutError
from ocr.handles import UserTexts, extract_user_texts

from .analysis import AnalysisResult, decide
from .bundle import COMMENT_ROLES, REPLY_ROLES, ROLE_ORDER, Bundle, FileRecord, ImageRole
from .config import VerifierConfig
from .duplicates import DuplicateMatch, find_near_duplicate
from .errors import DuplicateBundleError, RecognitionError
from .history import HistoryStore, InMemoryHistoryStore, SubmissionRecord

logger = logging.getLogger(__name__)


class SubmissionStatus(str, enum.Enum):
    ACCEPTED = "accepted"
    NOT_VERIFIED = "not_verified"
    DUPLICATE = "duplicate"


@dataclass
class RoleOutput:
    record: FileRecord
    like: Optional[LikeDetection] = None
    lines: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class BundleReport:
    """Everything computed for a bundle before history is consulted."""
    files: Tuple[FileRecord, ...]
    like: LikeDetection
    comment_map: UserTexts
    reply_map: UserTexts
    analysis: AnalysisResult
    elapsed_ms: int = 0

    @property
    def phashes(self) -> List[str]:
        return [f.perceptual_hash for f in self.files]


@dataclass(frozen=True)
class SubmissionOutcome:
    status: SubmissionStatus
    message: str
    analysis: AnalysisResult
    record: Optional[SubmissionRecord] = None
    duplicate: Optional[DuplicateMatch] = None

    @property
    def accepted(self) -> bool:
        return self.status is SubmissionStatus.ACCEPTED

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": self.status.value, "message": self.message}
        out.update(self.analysis.to_dict())
        out["failed_signals"] = self.analysis.failed_signals()
        out["duplicate"] = self.duplicate.to_dict() if self.duplicate else None
        out["record"] = self.record.to_dict() if self.record else None
        return out


class BundleVerifier:
    """Orchestrates per-image analysis, the verification decision and duplicate control."""

    MSG_ACCEPTED = "Screenshot bundle verified"
    MSG_NOT_VERIFIED = "Verification failed. Try to upload some other screenshot"
    MSG_DUPLICATE = "Upload other screenshots: a duplicate or near-duplicate was detected for this user"

    def __init__(
        self,
        ocr: OCREngine,
        hasher: Optional[PerceptualHasher] = None,
        history: Optional[HistoryStore] = None,
        config: Optional[VerifierConfig] = None,
    ):
        self.config = config or VerifierConfig()
        self.ocr = ocr
        self.hasher = hasher or PHasher(hash_size=self.config.duplicates.phash_size)
        self.history = history if history is not None else InMemoryHistoryStore()

        like_cfg = self.config.like
        self.like_detector = LikeDetector(
            ocr=ocr,
            icon_region=like_cfg.icon_region,
            count_offset=like_cfg.count_offset,
            dark_threshold=like_cfg.dark_threshold,
            filled_min=like_cfg.filled_min,
            outline_max=like_cfg.outline_max,
        )

    # ── Public interface ─────────────────────────────────────────────────────

    def analyze(self, bundle: Bundle) -> AnalysisResult:
        """Verification decision only; history is neither read nor written."""
        return self.process(bundle).analysis

    def process(self, bundle: Bundle) -> BundleReport:
        t0 = time.perf_counter()
        outputs = self._fan_out(bundle)

        comment_lines = [ln for r in COMMENT_ROLES for ln in outputs[r].lines]
        reply_lines = [ln for r in REPLY_ROLES for ln in outputs[r].lines]
        comment_map = extract_user_texts(comment_lines)
        reply_map = extract_user_texts(reply_lines)

        like = outputs[ImageRole.LIKE].like
        text_cfg = self.config.text
        analysis = decide(
            like.liked,
            comment_map,
            reply_map,
            min_comments=text_cfg.min_comments,
            min_replies=text_cfg.min_replies,
            dedupe=text_cfg.dedupe_texts,
        )
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "bundle analysed in %d ms: liked=%s user=%s comments=%d replies=%d verified=%s",
            elapsed_ms, analysis.liked, analysis.user_handle,
            len(analysis.comment_texts), len(analysis.reply_texts), analysis.verified,
        )
        return BundleReport(
            files=tuple(outputs[r].record for r in ROLE_ORDER),
            like=like,
            comment_map=comment_map,
            reply_map=reply_map,
            analysis=analysis,
            elapsed_ms=elapsed_ms,
        )

    def submit(self, bundle: Bundle, user_id: str, link_id: str) -> SubmissionOutcome:
        """
        Analyse *bundle* and record it for *user_id* if it is verified and new.

        Raises
        ------
        RecognitionError
            If any role could not be processed; the caller may retry.
        """
        report = self.process(bundle)
        analysis = report.analysis

        with self.history.user_lock(user_id):
            match = find_near_duplicate(
                report.phashes,
                self.history.prior_hashes(user_id),
                threshold=self.config.duplicates.hamming_threshold,
            )
            if match is not None:
                logger.warning(
                    "duplicate bundle for user %s: %s ~ %s (distance %d)",
                    user_id, match.new_hash, match.prior_hash, match.distance,
                )
                return SubmissionOutcome(
                    SubmissionStatus.DUPLICATE, self.MSG_DUPLICATE, analysis, duplicate=match,
                )

            if not analysis.verified:
                return SubmissionOutcome(SubmissionStatus.NOT_VERIFIED, self.MSG_NOT_VERIFIED, analysis)

            record = SubmissionRecord(user_id=user_id, link_id=link_id, files=report.files, analysis=analysis)
            try:
                self.history.insert(record)
            except DuplicateBundleError:
                logger.warning("bundle signature already stored for user %s", user_id)
                # same signature means the same hashes, so any one of them matches at distance 0
                first = min(report.phashes)
                match = DuplicateMatch(new_hash=first, prior_hash=first, distance=0)
                return SubmissionOutcome(
                    SubmissionStatus.DUPLICATE, self.MSG_DUPLICATE, analysis, duplicate=match,
                )

        logger.info("accepted submission %s for user %s", record.submission_id, user_id)
        return SubmissionOutcome(SubmissionStatus.ACCEPTED, self.MSG_ACCEPTED, analysis, record=record)

    # ── Per-role work ────────────────────────────────────────────────────────

    def read_panel(self, rgb: np.ndarray) -> List[str]:
        """Downscale, binarize and OCR one comment/reply screenshot."""
        rt = self.config.runtime
        bz = self.config.binarize
        gray = to_gray_u8(downscale(rgb, rt.max_side))
        bw = sauvola_binarize(gray, window_size=bz.window_size, k=bz.k, r=bz.r)
        return self.ocr.recognize_lines(bw)

    def _process_role(self, role: ImageRole, data: bytes, mime_type: str) -> RoleOutput:
        t0 = time.perf_counter()
        try:
            rgb = decode_image_rgb(data)
        except ValueError as exc:
            raise RecognitionError(f"Could not decode {role.value!r}: {exc}", role=role.value) from exc

        record = FileRecord(
            role=role,
            perceptual_hash=self.hasher.hash(data),
            content_hash=sha256_hex(data),
            byte_size=len(data),
            mime_type=mime_type,
        )
        if role is ImageRole.LIKE:
            out = RoleOutput(record=record, like=self.like_detector.detect(rgb))
        else:
            out = RoleOutput(record=record, lines=self.read_panel(rgb))
        logger.debug(
            "role %s done in %.0f ms (%d OCR lines)",
            role.value, (time.perf_counter() - t0) * 1000, len(out.lines),
        )
        return out

    def _fan_out(self, bundle: Bundle) -> Dict[ImageRole, RoleOutput]:
        rt = self.config.runtime
        deadline = time.monotonic() + rt.bundle_timeout
        executor = ThreadPoolExecutor(max_workers=rt.workers, thread_name_prefix="bundle-role")
        try:
            futures = {
                role: executor.submit(self._process_role, role, bundle[role], bundle.mime_types[role])
                for role in ROLE_ORDER
            }
            outputs: Dict[ImageRole, RoleOutput] = {}
            for role, fut in futures.items():
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    outputs[role] = fut.result(timeout=remaining)
                except FutureTimeout:
                    logger.warning("role %s exceeded the %.1fs bundle budget", role.value, rt.bundle_timeout)
                    raise RecognitionError(
                        f"Processing {role.value!r} exceeded {rt.bundle_timeout}s", role=role.value,
                    ) from None
                except OCRTimeoutError as exc:
                    logger.warning("OCR timeout on role %s: %s", role.value, exc)
                    raise RecognitionError(f"OCR timed out on {role.value!r}", role=role.value) from exc
                except OCRError as exc:
                    raise RecognitionError(f"OCR failed on {role.value!r}: {exc}", role=role.value) from exc
            return outputs
        finally:
            executor.shutdown(wait=False, cancel_futures=True)


def uploads_to_bundle(uploads: Mapping[Any, bytes], config: Optional[VerifierConfig] = None) -> Bundle:
    """Structural validation with the configured size limits."""
    config = config or VerifierConfig()
    rt = config.runtime
    return Bundle.from_uploads(
        uploads, max_image_bytes=rt.max_image_bytes, max_image_pixels=rt.max_image_pixels,
    )
