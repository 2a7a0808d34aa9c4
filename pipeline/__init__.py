from .analysis import AnalysisResult, decide
from .bundle import Bundle, FileRecord, ImageRole, bundle_signature
from .config import VerifierConfig, load_config
from .duplicates import DuplicateMatch, find_near_duplicate, is_duplicate
from .errors import BundleValidationError, DuplicateBundleError, RecognitionError, VerificationError
from .history import HistoryStore, InMemoryHistoryStore, JsonHistoryStore, SubmissionRecord
from .verifier import BundleVerifier, SubmissionOutcome, SubmissionStatus

__all__ = [
    "AnalysisResult", "decide",
    "Bundle", "FileRecord", "ImageRole", "bundle_signature",
    "VerifierConfig", "load_config",
    "DuplicateMatch", "find_near_duplicate", "is_duplicate",
    "BundleValidationError", "DuplicateBundleError", "RecognitionError", "VerificationError",
    "HistoryStore", "InMemoryHistoryStore", "JsonHistoryStore", "SubmissionRecord",
    "BundleVerifier", "SubmissionOutcome", "SubmissionStatus",
]
