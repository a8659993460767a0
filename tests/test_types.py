"""Tests for record types and their helpers."""

import pytest

from pagekeep.types import SavedItem, Summary, clamp_rating, normalize_tags, parse_tag_list

from tests.conftest import make_item


class TestSavedItemDict:

    def test_round_trip(self):
        item = make_item(
            "https://a.example/", "A", saved_at=1_700_000_000_000,
            tldr="short", key_points="- k", tags=["css", "grid"], note="n", rating=3.5, id=9,
        )
        item.enhanced_at = 1_700_000_000_500
        assert SavedItem.from_dict(item.to_dict()) == item

    def test_camel_case_keys(self):
        item = SavedItem.from_dict({
            "url": "https://b/",
            "savedAt": 42,
            "summary": {"tldr": "t", "keyPoints": "kp"},
            "enhancedAt": 7,
        })
        assert item.saved_at == 42
        assert item.summary == Summary(tldr="t", key_points="kp")
        assert item.enhanced_at == 7

    def test_missing_keys_take_defaults(self):
        item = SavedItem.from_dict({"url": "https://c/"})
        assert item.id is None
        assert item.title == ""
        assert item.tags == []
        assert item.rating == 0.0
        assert item.enhanced_at == 0


@pytest.mark.parametrize("value,expected", [
    (None, 0.0), (2.24, 2.0), (2.25, 2.5), (9, 5.0), (-0.1, 0.0),
])
def test_clamp_rating(value, expected):
    assert clamp_rating(value) == expected


def test_tag_helpers():
    assert normalize_tags([" CSS ", "", "Grid"]) == ["css", "grid"]
    assert parse_tag_list("Python, web,,  ") == ["Python", "web"]
