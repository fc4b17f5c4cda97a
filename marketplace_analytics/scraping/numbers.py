# -*- coding: utf-8 -*-
"""
Count parsing for scraped metrics.

Grammar:
  count    := number suffix?
  number   := d{1,3}(,ddd)+(.d+)? | d+(.d+)?
  suffix   := K | M            (x1,000 / x1,000,000, case-insensitive)

Labeled patterns ("197 clicks on listing", "1.2K views", "3 saves") are
preferred. When a dashboard row has no labels, ``pick_views_by_position``
falls back to the second-rightmost plain number, skipping currency amounts and
anything next to a month name. That fallback is approximate and layout
dependent.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from marketplace_analytics.schemas import MetricCounts

_NUMBER = r"\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?"
_SUFFIX = r"[KkMm](?![A-Za-z])"

_COUNT_RE = re.compile(rf"(?P<num>{_NUMBER})\s?(?P<suffix>{_SUFFIX})?")

_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}

CURRENCY_SYMBOLS = "$€£₹"

_MONTH_RE = re.compile(
    r"\b(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b",
    re.IGNORECASE,
)

_TOKEN_RE = re.compile(
    rf"(?P<currency>[{re.escape(CURRENCY_SYMBOLS)}])?\s?(?<![\d.,])(?P<count>(?:{_NUMBER})(?:\s?{_SUFFIX})?)(?![\d\w])"
)


def _labeled(label: str) -> re.Pattern:
    return re.compile(
        rf"(?P<count>(?:{_NUMBER})(?:\s?{_SUFFIX})?)\+?\s+{label}",
        re.IGNORECASE,
    )


LABELED_PATTERNS = {
    "clicks":    _labeled(r"clicks?\s+on\s+listing"),
    "views":     _labeled(r"views?\b"),
    "favorites": _labeled(r"(?:saves?|favou?rites?)\b"),
    "shares":    _labeled(r"shares?\b"),
}


def parse_count(text: Optional[str]) -> int:
    """'1.2K' -> 1200, '3M' -> 3000000, '1,234' -> 1234, garbage -> 0."""
    if not text:
        return 0
    m = _COUNT_RE.search(str(text))
    if not m:
        return 0
    try:
        value = Decimal(m.group("num").replace(",", ""))
    except InvalidOperation:
        return 0
    suffix = m.group("suffix")
    if suffix:
        value *= _MULTIPLIERS[suffix.lower()]
    return max(int(value), 0)


def extract_labeled_metrics(text: Optional[str]) -> MetricCounts:
    """Apply the labeled patterns to free text. Clicks take the largest match."""
    text = text or ""
    counts = {}
    for metric, pattern in LABELED_PATTERNS.items():
        if metric == "clicks":
            counts[metric] = max(
                (parse_count(m.group("count")) for m in pattern.finditer(text)),
                default=0,
            )
        else:
            m = pattern.search(text)
            counts[metric] = parse_count(m.group("count")) if m else 0
    return MetricCounts(**counts)


# ── Positional fallback ──────────────────────────────────────────────────────


@dataclass
class NumericToken:
    value:    int
    raw:      str
    segment:  int          # index of the text segment, left -> right


def is_date_adjacent(segment: str) -> bool:
    return bool(_MONTH_RE.search(segment or ""))


def numeric_tokens(segments: Iterable[str]) -> List[NumericToken]:
    """Plain numbers in reading order, without currency amounts, date-adjacent
    segments or zeros."""
    tokens: List[NumericToken] = []
    for idx, segment in enumerate(segments):
        if not segment or is_date_adjacent(segment):
            continue
        for m in _TOKEN_RE.finditer(segment):
            if m.group("currency"):
                continue
            value = parse_count(m.group("count"))
            if value:
                tokens.append(NumericToken(value=value, raw=m.group(0).strip(), segment=idx))
    return tokens


def pick_views_by_position(tokens: List[NumericToken]) -> int:
    """Second-rightmost token; the rightmost is usually the message count."""
    if len(tokens) >= 2:
        return tokens[-2].value
    if tokens:
        return tokens[0].value
    return 0
