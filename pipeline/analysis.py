"""
Verification decision for one bundle.

:func:`decide` turns the three upstream signals (like state, comment map,
reply map) into an :class:`AnalysisResult`.  It has no side effects and
``AnalysisResult.verified`` is always derived, never passed in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ocr.handles import normalize_handle, pick_user
from ocr.postprocess import refine_text

NOT_LIKED = "not_liked"
NO_COMMON_HANDLE = "no_common_handle"
INSUFFICIENT_COMMENTS = "insufficient_comments"
INSUFFICIENT_REPLIES = "insufficient_replies"


@dataclass(frozen=True)
class AnalysisResult:
    liked: bool
    user_handle: Optional[str]
    comment_texts: Tuple[str, ...] = ()
    reply_texts: Tuple[str, ...] = ()
    min_comments: int = field(default=2, repr=False)
    min_replies: int = field(default=2, repr=False)
    verified: bool = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "comment_texts", tuple(self.comment_texts))
        object.__setattr__(self, "reply_texts", tuple(self.reply_texts))
        object.__setattr__(self, "verified", bool(
            self.liked
            and len(self.comment_texts) >= self.min_comments
            and len(self.reply_texts) >= self.min_replies
        ))

    def failed_signals(self) -> List[str]:
        """Diagnostic names of the signals that failed, in evaluation order."""
        failed = []
        if not self.liked:
            failed.append(NOT_LIKED)
        if self.user_handle is None:
            failed.append(NO_COMMON_HANDLE)
        if len(self.comment_texts) < self.min_comments:
            failed.append(INSUFFICIENT_COMMENTS)
        if len(self.reply_texts) < self.min_replies:
            failed.append(INSUFFICIENT_REPLIES)
        return failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "liked": self.liked,
            "user_id": self.user_handle,
            "comment": list(self.comment_texts),
            "replies": list(self.reply_texts),
            "verified": self.verified,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalysisResult":
        return cls(
            liked=bool(data.get("liked")),
            user_handle=data.get("user_id"),
            comment_texts=tuple(data.get("comment") or ()),
            reply_texts=tuple(data.get("replies") or ()),
        )


def refine_all(fragments: Sequence[str], dedupe: bool = False) -> List[str]:
    """Refine raw fragments, dropping the ones that refine to nothing."""
    out: List[str] = []
    for fragment in fragments:
        text = refine_text(fragment)
        if not text or (dedupe and text in out):
            continue
        out.append(text)
    return out


def decide(
    liked: bool,
    comment_map: Mapping[str, Sequence[str]],
    reply_map: Mapping[str, Sequence[str]],
    min_comments: int = 2,
    min_replies: int = 2,
    dedupe: bool = False,
) -> AnalysisResult:
    handle = pick_user(comment_map, reply_map)
    if handle is None:
        comments: List[str] = []
        replies: List[str] = []
    else:
        comments = refine_all(comment_map[handle], dedupe=dedupe)
        replies = refine_all(reply_map[handle], dedupe=dedupe)

    return AnalysisResult(
        liked=liked,
        user_handle=normalize_handle(handle),
        comment_texts=tuple(comments),
        reply_texts=tuple(replies),
        min_comments=min_comments,
        min_replies=min_replies,
    )
