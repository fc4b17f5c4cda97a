# -*- coding: utf-8 -*-
"""
DOM heuristics over HTML snapshots.

Everything here is a pure function of the page HTML (parsed with
BeautifulSoup + lxml), so each heuristic can be exercised against canned
fixtures without a live browser.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from marketplace_analytics.schemas import MetricCounts
from marketplace_analytics.scraping import numbers
from marketplace_analytics.scraping.title_matcher import matches, normalize, pick_title

MAX_ANCESTOR_DEPTH = 6

_CARD_ROLES = {"article", "listitem"}

# (selector, take every match?) in the order candidates are collected
_CARD_TITLE_SELECTORS: Sequence[Tuple[str, bool]] = (
    ("a[role='link']", False),
    ("span", False),
    ("h2, h3", False),
    ("strong, b", True),
)

_ROW_TITLE_SELECTORS: Sequence[str] = (
    "a[title]",
    "a[href*='/v-']",
    "h2, h3",
    "[data-qa*='title' i]",
    "a",
)

_ROW_CONTAINERS = "[data-qa*='my' i], [data-qa*='ads' i], tr, li, article, div"

_METRIC_LABEL_RE = re.compile(r"clicks?\s+on\s+listing|views?\b|saves?\b|favou?rites?\b", re.I)
_VIEWS_HEADER_RE = re.compile(r"\bviews?\b", re.I)


@dataclass
class ItemMatch:
    title:    str
    metrics:  MetricCounts
    item_url: Optional[str] = None


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def text_of(node: Tag) -> str:
    return node.get_text(" ", strip=True)


def _ancestors(node: Tag, depth: int = MAX_ANCESTOR_DEPTH) -> List[Tag]:
    out = []
    el = node.parent
    while el is not None and isinstance(el, Tag) and el.name not in ("body", "html", "[document]"):
        out.append(el)
        if len(out) >= depth:
            break
        el = el.parent
    return out


def _count(node: Tag, selector: str) -> int:
    return len(node.select(selector))


# ═══════════════════════════════════════════════════════════════════════════════
# CARD GROUPING (list / dashboard views)
# ═══════════════════════════════════════════════════════════════════════════════


def _card_for_anchor(anchor: Tag, item_selector: str) -> Optional[Tag]:
    ancestors = _ancestors(anchor)
    for el in ancestors:
        if (el.get("role") or "") in _CARD_ROLES:
            return el
    # Widest ancestor that still holds a single item link
    card = None
    for el in ancestors:
        if _count(el, item_selector) == 1:
            card = el
        else:
            break
    return card


def _card_for_button(button: Tag, button_re: re.Pattern) -> Optional[Tag]:
    # A card carries each action at most once; a repeated label means we
    # climbed into the list that holds several cards.
    card = None
    for el in _ancestors(button):
        if (el.get("role") or "") == "article":
            return el
        labels = [
            text_of(b).lower() for b in el.find_all(["button", "div", "span", "a"])
            if (b.name == "button" or b.get("role") == "button") and button_re.search(text_of(b))
        ]
        if len(labels) != len(set(labels)):
            break
        card = el
    return card


def group_cards(
    soup: BeautifulSoup,
    item_selector: Optional[str],
    action_pattern: Optional[str] = None,
) -> List[Tag]:
    """Cards in document order, grouped upward from item anchors or, failing
    that, from seller action buttons."""
    cards: List[Tag] = []
    seen = set()

    def _add(card: Optional[Tag]):
        if card is not None and id(card) not in seen:
            seen.add(id(card))
            cards.append(card)

    if item_selector:
        for anchor in soup.select(item_selector):
            _add(_card_for_anchor(anchor, item_selector))

    if not cards and action_pattern:
        button_re = re.compile(action_pattern, re.I)
        for button in soup.find_all(["button", "div", "span", "a"]):
            if button.name != "button" and button.get("role") != "button":
                continue
            if button_re.search(text_of(button)):
                _add(_card_for_button(button, button_re))
    return cards


def card_title(card: Tag) -> str:
    texts: List[str] = []
    for selector, take_all in _CARD_TITLE_SELECTORS:
        if take_all:
            texts.extend(text_of(el) for el in card.select(selector))
        else:
            el = card.select_one(selector)
            if el is not None:
                texts.append(text_of(el))
    return pick_title(texts)


def _smallest_block_with(soup: BeautifulSoup, needle: str) -> Optional[Tag]:
    n = normalize(needle)
    best: Optional[Tag] = None
    best_len = 0
    for block in soup.find_all(["div", "article", "li"]):
        txt = text_of(block)
        if not _METRIC_LABEL_RE.search(txt) or n not in normalize(txt):
            continue
        if best is None or len(txt) < best_len:
            best, best_len = block, len(txt)
    return best


def find_dashboard_card(
    html: str,
    needle: str,
    item_selector: Optional[str],
    action_pattern: Optional[str] = None,
    base_url: str = "",
) -> Optional[ItemMatch]:
    """Locate the card whose title matches ``needle`` and parse its metrics."""
    if not normalize(needle):
        return None
    soup = parse_html(html)

    matched: Optional[Tag] = None
    matched_title = ""
    for card in group_cards(soup, item_selector, action_pattern):
        title = card_title(card)
        if title and matches(title, needle):
            matched, matched_title = card, title
            break

    if matched is None:
        matched = _smallest_block_with(soup, needle)
        if matched is None:
            return None
        matched_title = text_of(matched)[:120]

    item_url = None
    if item_selector:
        anchor = matched.select_one(item_selector)
        if anchor is not None and anchor.get("href"):
            item_url = urljoin(base_url, anchor["href"])

    return ItemMatch(
        title=matched_title,
        metrics=numbers.extract_labeled_metrics(text_of(matched)),
        item_url=item_url,
    )


def find_item_link(
    html: str, needle: str, item_selector: str, base_url: str = "",
) -> Optional[str]:
    """Href of the first item anchor whose surrounding block mentions ``needle``."""
    n = normalize(needle)
    if not n:
        return None
    soup = parse_html(html)
    for anchor in soup.select(item_selector):
        href = anchor.get("href")
        if not href:
            continue
        for el in [anchor] + _ancestors(anchor):
            if n in normalize(text_of(el)):
                return urljoin(base_url, href)
    return None


# ═══════════════════════════════════════════════════════════════════════════════
# ROW LOOKUP (tabular / paginated dashboards)
# ═══════════════════════════════════════════════════════════════════════════════


def row_title(row: Tag) -> str:
    texts = []
    for selector in _ROW_TITLE_SELECTORS:
        el = row.select_one(selector)
        if el is not None:
            texts.append(text_of(el))
    return pick_title(texts)


def column_value(row: Tag, header_re: re.Pattern = _VIEWS_HEADER_RE) -> int:
    """Value of the cell under a matching ``<thead>`` header, or 0."""
    if row.name != "tr":
        return 0
    table = row.find_parent("table")
    if table is None:
        return 0
    headers = [text_of(th) for th in table.select("thead th")]
    for idx, header in enumerate(headers):
        if header_re.search(header):
            cells = row.find_all("td", recursive=False)
            if idx < len(cells):
                return numbers.parse_count(text_of(cells[idx]))
            return 0
    return 0


def text_segments(row: Tag, skip: str = "") -> List[str]:
    """Visible text fragments of ``row`` in document order, minus the title."""
    skip_norm = normalize(skip)
    out = []
    for s in row.find_all(string=True):
        if s.parent is not None and s.parent.name in ("script", "style"):
            continue
        t = str(s).strip()
        if not t:
            continue
        if skip_norm and normalize(t) == skip_norm:
            continue
        out.append(t)
    return out


def find_dashboard_row(
    html: str, needle: str, keywords_pattern: Optional[str] = None,
) -> Optional[ItemMatch]:
    """Smallest container whose title matches ``needle`` and which looks like a
    seller row (edit/delete/promote controls or a views label)."""
    if not normalize(needle):
        return None
    soup = parse_html(html)
    keywords_re = re.compile(keywords_pattern, re.I) if keywords_pattern else None

    best: Optional[Tag] = None
    best_title = ""
    best_len = 0
    for node in soup.select(_ROW_CONTAINERS):
        title = row_title(node)
        if not title or not matches(title, needle):
            continue
        txt = text_of(node)
        if keywords_re is not None and not keywords_re.search(txt):
            continue
        if best is None or len(txt) < best_len:
            best, best_title, best_len = node, title, len(txt)

    if best is None:
        return None

    row = best if best.name == "tr" else (best.find_parent("tr") or best)
    views = column_value(row)
    labeled = numbers.extract_labeled_metrics(text_of(row))
    if not views:
        views = labeled.views
    if not views:
        tokens = numbers.numeric_tokens(text_segments(row, skip=best_title))
        views = numbers.pick_views_by_position(tokens)

    return ItemMatch(
        title=best_title,
        metrics=MetricCounts(views=views, favorites=labeled.favorites),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# DETAIL PAGES
# ═══════════════════════════════════════════════════════════════════════════════


def selector_metrics(html: str, selectors: Dict[str, List[str]]) -> Dict[str, int]:
    """First selector per metric whose element text parses to a number."""
    soup = parse_html(html)
    out: Dict[str, int] = {}
    for metric, candidates in selectors.items():
        for selector in candidates:
            try:
                el = soup.select_one(selector)
            except Exception:
                continue
            if el is None:
                continue
            value = numbers.parse_count(text_of(el))
            if value:
                out[metric] = value
                break
    return out


def extract_detail_metrics(
    html: str, body_text: str, selectors: Optional[Dict[str, List[str]]] = None,
) -> MetricCounts:
    """Selector hits win; the labeled text patterns fill whatever is left."""
    labeled = numbers.extract_labeled_metrics(body_text)
    merged  = labeled.model_dump()
    if selectors:
        merged.update(selector_metrics(html, selectors))
    return MetricCounts(**merged)
