"""
Error taxonomy for bundle verification.

Only exceptions live here.  A bundle that fails the like/comment/reply
thresholds or repeats an earlier submission is a normal outcome
(:class:`pipeline.verifier.SubmissionOutcome`), not an error.
"""

from __future__ import annotations

from typing import Optional


class VerificationError(Exception):
    """Base class for failures that prevent a verification decision."""

    retryable = False

    def __init__(self, message: str, role: Optional[str] = None):
        super().__init__(message)
        self.role = role

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "role": self.role,
            "retryable": self.retryable,
        }


class BundleValidationError(VerificationError):
    """Structural problem with the upload: wrong roles, empty/oversize or undecodable bytes."""


class RecognitionError(VerificationError):
    """Processing of one role failed (OCR timeout, engine or decode error); resubmit."""

    retryable = True


class DuplicateBundleError(VerificationError):
    """The history store already holds this bundle signature for the user."""
