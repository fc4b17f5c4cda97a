"""Fuzzy listing-title matching against noisy dashboard text.

Dashboard titles are often truncated or decorated with platform UI text, so a
match is bidirectional containment of the normalized forms rather than
equality.
"""
from __future__ import annotations
import re
from typing import Iterable

# Longest first so "turn on notifications" goes before "notifications"
NOISE_PHRASES = (
    "turn on notifications",
    "notifications",
    "notification",
    "unread",
    "marketplace",
)

MIN_TITLE_LENGTH = 3

_PUNCT_RE = re.compile(r"[^\w\s]|_")
_WS_RE    = re.compile(r"\s+")
_NOISE_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(p) for p in NOISE_PHRASES) + r")\b"
)


def normalize(text) -> str:
    t = _PUNCT_RE.sub("", str(text or "").lower())
    t = _WS_RE.sub(" ", t).strip()
    # Removing one phrase can join the words of another
    while True:
        stripped = _WS_RE.sub(" ", _NOISE_RE.sub(" ", t)).strip()
        if stripped == t:
            return t
        t = stripped


def matches(candidate, needle) -> bool:
    c = normalize(candidate)
    n = normalize(needle)
    if not c or not n:
        return False
    return n in c or c in n


def pick_title(texts: Iterable[str]) -> str:
    """Longest non-trivial text. Short strings are usually UI labels."""
    best = ""
    for raw in texts:
        t = (raw or "").strip()
        if len(t) >= MIN_TITLE_LENGTH and len(t) > len(best):
            best = t
    return best
