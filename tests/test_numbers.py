# -*- coding: utf-8 -*-
from __future__ import annotations

from marketplace_analytics.scraping.numbers import (
    extract_labeled_metrics, is_date_adjacent, numeric_tokens,
    parse_count, pick_views_by_position,
)


class TestParseCount:
    """Count grammar: separators and K/M suffixes."""

    def test_plain_and_separated(self):
        assert parse_count("87") == 87
        assert parse_count("1,234") == 1234
        assert parse_count("12,345,678") == 12345678

    def test_suffixes(self):
        assert parse_count("1.2K") == 1200
        assert parse_count("3M") == 3000000
        assert parse_count("2.5k") == 2500
        assert parse_count("1.5 K") == 1500

    def test_suffix_needs_word_end(self):
        # "12 messages": the m belongs to a word, not a multiplier
        assert parse_count("12 messages") == 12

    def test_garbage_is_zero(self):
        assert parse_count("") == 0
        assert parse_count(None) == 0
        assert parse_count("no numbers") == 0


class TestLabeledMetrics:

    def test_dashboard_card_text(self):
        m = extract_labeled_metrics("Oak table $450 197 clicks on listing 12 saves 3 shares")
        assert (m.clicks, m.favorites, m.shares, m.views) == (197, 12, 3, 0)

    def test_clicks_take_maximum(self):
        m = extract_labeled_metrics("5 clicks on listing ... 1.2K+ clicks on listing")
        assert m.clicks == 1200

    def test_views_and_favourites_spelling(self):
        m = extract_labeled_metrics("1,204 views and 4 favourites")
        assert m.views == 1204
        assert m.favorites == 4

    def test_price_is_not_a_metric(self):
        m = extract_labeled_metrics("$450 Listed in Toronto")
        assert not m.has_signal


class TestPositionalHeuristic:
    """Approximate by nature; these pin the documented rules only."""

    def test_month_adjacency_uses_word_boundaries(self):
        assert is_date_adjacent("Posted Mar 3")
        assert is_date_adjacent("Listed on 12 September")
        assert not is_date_adjacent("Marketplace")
        assert not is_date_adjacent("Mayonnaise")

    def test_tokens_skip_currency_dates_and_zero(self):
        tokens = numeric_tokens(["$600", "Posted Mar 3", "142", "0", "5"])
        assert [t.value for t in tokens] == [142, 5]
        assert [t.segment for t in tokens] == [2, 4]

    def test_units_are_not_tokens(self):
        assert numeric_tokens(["Storage 12GB"]) == []

    def test_second_rightmost_wins(self):
        tokens = numeric_tokens(["142", "5"])
        assert pick_views_by_position(tokens) == 142

    def test_single_token_and_empty(self):
        assert pick_views_by_position(numeric_tokens(["77"])) == 77
        assert pick_views_by_position([]) == 0
