# ocr.postprocess
"""
Normalisation of OCR text taken from comment/reply screenshots.

Two passes, both idempotent:

clean_text   drop isolated numbers and single letters (timestamps, like
             counts, stray glyphs read as ``l``/``I``) and squeeze spaces.
refine_text  trim edge punctuation, cut at the first UI boilerplate phrase
             ("reply", "add a comment", "share", ...), drop remaining
             punctuation except apostrophes and pop short trailing tokens.

Notes:
- This module does NOT run an OCR engine; it consumes lines produced by
  :mod:`ocr.adapter`.
"""

from __future__ import annotations

import re
from typing import Tuple

# Lower-case UI strings that mark the end of user-written content.
STOP_PHRASES: Tuple[str, ...] = (
    "adda reply", "add a reply", "add reply", "add a comment", "adda comment",
    "add comment", "add a reply…", "replies", "reply", "share", "download", "remix",
)

# Glyphs OCR tends to emit around handles and bullets.
UNICODE_JUNK = "•·●○▶►«»▪–—|>_"
TOKEN_STRIP = UNICODE_JUNK + " \t\n.:,;()[]{}"

_ISOLATED_NUM_RE = re.compile(r"\b\d+\b")
_SINGLE_LETTER_RE = re.compile(r"\b[A-Za-z]\b")
_SPACES_RE = re.compile(r"\s+")
_EDGE_PUNCT_RE = re.compile(r"^[^\w']+|[^\w']+$")
_PUNCT_RE = re.compile(r"[^\w'\s]")

MIN_TAIL_TOKEN_LEN = 3


def clean_token(tok: str) -> str:
    return tok.strip(TOKEN_STRIP)


def clean_text(text: str) -> str:
    text = _ISOLATED_NUM_RE.sub("", text)
    text = _SINGLE_LETTER_RE.sub("", text)
    return _SPACES_RE.sub(" ", text).strip()


def stop_phrase_cut(text: str) -> int:
    """Index of the earliest boilerplate phrase in *text*, or ``len(text)``."""
    lower = text.lower()
    if len(lower) != len(text):
        # some code points change length when lower-cased; fall back to per-char mapping
        lower = "".join(ch.lower()[0] for ch in text)
    cut = len(text)
    for phrase in STOP_PHRASES:
        idx = lower.find(phrase)
        if 0 <= idx < cut:
            cut = idx
    return cut


def starts_with_stop_phrase(line: str) -> bool:
    low = line.lower()
    return any(low.startswith(p) for p in STOP_PHRASES)


def _refine_once(text: str) -> str:
    text = _EDGE_PUNCT_RE.sub("", text)
    text = text[:stop_phrase_cut(text)]
    text = _PUNCT_RE.sub("", text)
    toks = text.split()
    while toks and len(toks[-1]) < MIN_TAIL_TOKEN_LEN:
        toks.pop()
    return " ".join(toks)


def refine_text(text: str) -> str:
    # Removing punctuation or squeezing spaces can expose a phrase that was
    # split before ("sha-re", "add  a comment"), so repeat until stable.
    # Each pass only deletes characters, hence this terminates.
    out = _refine_once(text)
    while True:
        again = _refine_once(out)
        if again == out:
            return out
        out = again
