"""Tests for $orderby translation."""

from __future__ import annotations

import pytest

from queryspine.core.errors import InvalidRequestError
from queryspine.core.ordering import translate_order_by


class TestTranslateOrderBy:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("name", "name"),
            ("name desc", "name DESC"),
            ("name ASC, id desc", "name ASC, id DESC"),
            ("Category/Name", "Category.Name"),
            ("c.created_at desc", "c.created_at DESC"),
            ("  price  ,  id  ", "price, id"),
        ],
    )
    def test_valid(self, text, expected):
        assert translate_order_by(text) == expected

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            "name; DROP TABLE items",
            "name sideways",
            "name desc extra",
            "a,,b",
            "1name",
            "name--",
            "(select 1)",
        ],
    )
    def test_invalid(self, text):
        with pytest.raises(InvalidRequestError):
            translate_order_by(text)

    @pytest.mark.parametrize("text", ["drop", "Delete desc", "orders/Union", "t.exec"])
    def test_keyword_columns_rejected(self, text):
        with pytest.raises(InvalidRequestError, match="reserved statement keyword"):
            translate_order_by(text)
