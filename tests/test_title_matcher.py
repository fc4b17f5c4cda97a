# -*- coding: utf-8 -*-
from __future__ import annotations

import pytest

from marketplace_analytics.scraping.title_matcher import matches, normalize, pick_title


class TestNormalize:

    def test_lowercase_punctuation_whitespace(self):
        assert normalize("  Vintage  Oak-Table!! ") == "vintage oaktable"

    def test_noise_phrases_removed(self):
        assert normalize("Road Bike · Marketplace") == "road bike"
        assert normalize("Turn on notifications Road Bike") == "road bike"
        assert normalize("Unread: Road Bike") == "road bike"

    def test_noise_inside_words_is_kept(self):
        assert normalize("Marketplaces guide") == "marketplaces guide"

    @pytest.mark.parametrize("text", [
        "Turn on notifications Road Bike",
        "notifications marketplace notification",
        "Sofa, Leather (Brown) – Unread",
        "",
    ])
    def test_idempotent(self, text):
        once = normalize(text)
        assert normalize(once) == once

    def test_none_is_empty(self):
        assert normalize(None) == ""


class TestMatches:

    def test_bidirectional_containment(self):
        assert matches("Vintage Oak Dining Table", "oak dining")
        assert matches("Oak Dining", "Vintage Oak Dining Table - great condition")

    def test_empty_never_matches(self):
        assert not matches("", "anything")
        assert not matches("Notifications", "Road Bike")

    def test_unrelated(self):
        assert not matches("Blue Mountain Bike", "Leather Sofa")


class TestPickTitle:

    def test_longest_non_trivial(self):
        assert pick_title(["Ad", "Road Bike", " Road Bike Trek 2021 "]) == "Road Bike Trek 2021"

    def test_short_labels_ignored(self):
        assert pick_title(["$5", "ok", ""]) == ""
