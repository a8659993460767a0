"""Tests for deterministic result ordering."""

import pytest

from pagekeep.ordering import normalize_order, order_items

from tests.conftest import make_item


def _ids(items):
    return [i.id for i in items]


class TestNormalizeOrder:

    @pytest.mark.parametrize("order", ["date_desc", "date_asc", "rating_desc", "rating_asc"])
    def test_known(self, order):
        assert normalize_order(order) == order

    @pytest.mark.parametrize("order", [None, "", "newest", "DATE_DESC"])
    def test_unknown_defaults_to_date_desc(self, order):
        assert normalize_order(order) == "date_desc"


class TestDateOrder:

    def test_date_desc(self):
        items = [make_item(saved_at=t, id=t) for t in (1, 3, 2)]
        assert _ids(order_items(items, "date_desc")) == [3, 2, 1]

    def test_date_asc(self):
        items = [make_item(saved_at=t, id=t) for t in (1, 3, 2)]
        assert _ids(order_items(items, "date_asc")) == [1, 2, 3]

    def test_ties_keep_input_order(self):
        items = [make_item(saved_at=5, id=i) for i in (7, 3, 9)]
        assert _ids(order_items(items, "date_desc")) == [7, 3, 9]
        assert _ids(order_items(items, "date_asc")) == [7, 3, 9]

    def test_unknown_order_sorts_newest_first(self):
        items = [make_item(saved_at=t, id=t) for t in (1, 3, 2)]
        assert _ids(order_items(items, "sideways")) == [3, 2, 1]
        assert _ids(order_items(items, None)) == [3, 2, 1]


class TestRatingOrder:

    def test_rating_desc_keeps_equal_ratings_in_input_order(self):
        items = [
            make_item(rating=3.0, saved_at=10, id=1),
            make_item(rating=3.0, saved_at=10, id=2),
            make_item(rating=5.0, saved_at=10, id=3),
        ]
        assert _ids(order_items(items, "rating_desc")) == [3, 1, 2]

    def test_rating_asc(self):
        items = [
            make_item(rating=4.5, id=1),
            make_item(rating=0.5, id=2),
            make_item(rating=2.0, id=3),
        ]
        assert _ids(order_items(items, "rating_asc")) == [2, 3, 1]

    def test_equal_ratings_newest_first(self):
        items = [
            make_item(rating=2.0, saved_at=1, id=1),
            make_item(rating=2.0, saved_at=3, id=2),
            make_item(rating=2.0, saved_at=2, id=3),
        ]
        assert _ids(order_items(items, "rating_desc")) == [2, 3, 1]
        assert _ids(order_items(items, "rating_asc")) == [2, 3, 1]

    def test_tolerance_counts_as_tie(self):
        items = [
            make_item(rating=3.0, saved_at=1, id=1),
            make_item(rating=3.0 + 1e-9, saved_at=2, id=2),
        ]
        assert _ids(order_items(items, "rating_desc")) == [2, 1]

    def test_missing_rating_treated_as_zero(self):
        unrated = make_item(saved_at=1, id=1)
        unrated.rating = None
        items = [unrated, make_item(rating=0.5, saved_at=2, id=2)]
        assert _ids(order_items(items, "rating_desc")) == [2, 1]

    def test_does_not_mutate_input(self):
        items = [make_item(saved_at=t, id=t) for t in (1, 2)]
        order_items(items, "date_desc")
        assert _ids(items) == [1, 2]
