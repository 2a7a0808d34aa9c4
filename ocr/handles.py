"""
Group OCR lines from comment/reply screenshots by author handle.

A comment thread reads, top to bottom, as a handle line followed by the
lines its author wrote, then the next handle or a UI control ("Reply",
"Add a comment...").  :func:`extract_user_texts` walks the lines with a
two-state scanner:

SEARCHING   look for a handle on the current line; a bare ``@`` line
            takes the first token of the next non-blank line.
COLLECTING  buffer lines until another handle, a bare ``@`` or a line
            starting with a boilerplate phrase; the buffer is then joined,
            cleaned and attached to the handle.

Handles keep their ``@`` prefix; a handle may collect several fragments.
"""

from __future__ import annotations

import enum
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .postprocess import clean_text, clean_token, starts_with_stop_phrase

HANDLE_RE = re.compile(r"@([A-Za-z0-9_\-.]{2,})")

UserTexts = Dict[str, List[str]]


class ScanState(enum.Enum):
    SEARCHING = "searching"
    COLLECTING = "collecting"


def is_bare_at(line: str) -> bool:
    return line.strip() == "@"


def has_inline_handle(line: str) -> bool:
    return HANDLE_RE.search(line) is not None


def ends_block(line: str) -> bool:
    """True if *line* closes the text block of the current handle."""
    return has_inline_handle(line) or is_bare_at(line) or starts_with_stop_phrase(line)


def match_handle(lines: Sequence[str], idx: int) -> Tuple[Optional[str], int]:
    """
    Look for a handle starting at ``lines[idx]``.

    Returns ``(handle, last_idx)`` where *last_idx* is the index of the last
    line consumed by the handle (``idx`` itself unless a bare ``@`` pulled
    in a later line).  ``handle`` is ``None`` when the line holds none.
    """
    line = lines[idx]
    m = HANDLE_RE.search(line)
    if m:
        name = clean_token(m.group(1))
        return (f"@{name}", idx) if name else (None, idx)

    if is_bare_at(line):
        j = idx + 1
        while j < len(lines) and not lines[j].strip():
            j += 1
        if j < len(lines):
            name = clean_token(lines[j].split()[0])
            if name:
                return f"@{name}", j
    return None, idx


def extract_user_texts(lines: Sequence[str]) -> UserTexts:
    """Map each handle (in first-seen order) to its cleaned text fragments."""
    by_user: UserTexts = {}
    state = ScanState.SEARCHING
    handle: Optional[str] = None
    buf: List[str] = []

    def flush() -> None:
        cleaned = clean_text(" ".join(buf).strip())
        if cleaned:
            by_user.setdefault(handle, []).append(cleaned)

    i, n = 0, len(lines)
    while i < n:
        if state is ScanState.SEARCHING:
            found, last = match_handle(lines, i)
            if found is not None:
                handle, buf = found, []
                state = ScanState.COLLECTING
                i = last + 1
            else:
                i += 1
        else:
            if ends_block(lines[i]):
                flush()
                state = ScanState.SEARCHING
                continue    # the closing line is re-examined as a candidate handle
            buf.append(lines[i])
            i += 1

    if state is ScanState.COLLECTING:
        flush()
    return by_user


def normalize_handle(handle: Optional[str]) -> Optional[str]:
    """Reported form of a handle: ``@``-prefixed, lower-case."""
    if not handle:
        return None
    handle = handle.strip()
    if not handle.startswith("@"):
        handle = "@" + handle
    return handle.lower()


def pick_user(comments: Mapping[str, List[str]], replies: Mapping[str, List[str]]) -> Optional[str]:
    """First handle, in comment scan order, that also appears in *replies*."""
    for handle in comments:
        if handle in replies:
            return handle
    return None
