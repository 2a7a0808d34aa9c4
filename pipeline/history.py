"""
History stores: accepted submissions per user.

The verifier reads ``prior_hashes(user_id)``, decides, then ``insert``s.
To keep two concurrent submissions from the same user from both passing
the duplicate check against the same snapshot, the whole
read-decide-write sequence runs inside ``user_lock(user_id)``.  As a second
line, ``insert`` enforces uniqueness of (user_id, bundle_signature) and
raises :class:`DuplicateBundleError` on conflict.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import uuid
import weakref
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Set, Tuple, Union

from .analysis import AnalysisResult
from .bundle import FileRecord, bundle_signature
from .errors import DuplicateBundleError

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class SubmissionRecord:
    """Persisted form of an accepted bundle."""

    user_id: str
    link_id: str
    files: Tuple[FileRecord, ...]
    analysis: AnalysisResult
    submission_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=_utc_now)

    @property
    def phashes(self) -> List[str]:
        return [f.perceptual_hash for f in self.files]

    @property
    def bundle_signature(self) -> str:
        return bundle_signature(self.phashes)

    @property
    def verified(self) -> bool:
        return self.analysis.verified

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "user_id": self.user_id,
            "link_id": self.link_id,
            "verified": self.verified,
            "analysis": self.analysis.to_dict(),
            "phashes": self.phashes,
            "bundle_signature": self.bundle_signature,
            "files": [f.to_dict() for f in self.files],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SubmissionRecord":
        return cls(
            user_id=data["user_id"],
            link_id=data["link_id"],
            files=tuple(FileRecord.from_dict(f) for f in data["files"]),
            analysis=AnalysisResult.from_dict(data.get("analysis") or {}),
            submission_id=data["submission_id"],
            created_at=data["created_at"],
        )


class HistoryStore(ABC):
    """Per-user submission history with a per-user critical section."""

    def __init__(self):
        # Entries vanish once no thread holds or waits on the lock, so the map
        # only holds users with a submission in flight.
        self._locks: weakref.WeakValueDictionary[str, Any] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(user_id, threading.Lock())
        with lock:
            yield

    @abstractmethod
    def prior_hashes(self, user_id: str) -> Set[str]:
        """All perceptual hashes from the user's accepted bundles."""

    @abstractmethod
    def insert(self, record: SubmissionRecord) -> None:
        """Persist *record*; raise DuplicateBundleError on a repeated signature."""

    @abstractmethod
    def records(self, user_id: str) -> List[SubmissionRecord]:
        ...


class InMemoryHistoryStore(HistoryStore):

    def __init__(self):
        super().__init__()
        self._records: Dict[str, List[SubmissionRecord]] = {}
        self._signatures: Set[Tuple[str, str]] = set()
        self._data_lock = threading.Lock()

    def prior_hashes(self, user_id: str) -> Set[str]:
        with self._data_lock:
            return {h for r in self._records.get(user_id, []) for h in r.phashes}

    def insert(self, record: SubmissionRecord) -> None:
        key = (record.user_id, record.bundle_signature)
        with self._data_lock:
            if key in self._signatures:
                raise DuplicateBundleError(
                    f"Bundle already stored for user {record.user_id!r}",
                )
            self._signatures.add(key)
            self._records.setdefault(record.user_id, []).append(record)

    def records(self, user_id: str) -> List[SubmissionRecord]:
        with self._data_lock:
            return list(self._records.get(user_id, []))

    def _discard(self, record: SubmissionRecord) -> None:
        """Undo an :meth:`insert` of *record*."""
        with self._data_lock:
            self._signatures.discard((record.user_id, record.bundle_signature))
            recs = self._records.get(record.user_id, [])
            if record in recs:
                recs.remove(record)
            if not recs:
                self._records.pop(record.user_id, None)


class JsonHistoryStore(InMemoryHistoryStore):
    """
    In-memory store mirrored to a single JSON file.

    The file is loaded once on construction and rewritten (write to a temp
    file, then ``os.replace``) after every successful insert.  Inserts from
    all users share one write lock, so the file always reflects the newest
    snapshot; if writing fails the record is removed from memory again and
    the error propagates.  Meant for the CLI and single-process deployments.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._write_lock = threading.Lock()
        if self.path.exists():
            with open(self.path, encoding="utf-8") as f:
                payload = json.load(f)
            for item in payload.get("submissions", []):
                InMemoryHistoryStore.insert(self, SubmissionRecord.from_dict(item))
            logger.debug("loaded %d submissions from %s", len(payload.get("submissions", [])), self.path)

    def insert(self, record: SubmissionRecord) -> None:
        with self._write_lock:
            super().insert(record)
            try:
                self._flush()
            except BaseException:
                self._discard(record)
                logger.error("could not write %s; submission %s rolled back", self.path, record.submission_id)
                raise

    def _flush(self) -> None:
        with self._data_lock:
            submissions = [r.to_dict() for recs in self._records.values() for r in recs]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"submissions": submissions}, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
