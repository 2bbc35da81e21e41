# tests/utils/test_parsing.py
from datetime import datetime, timezone

import pytest

from src.utils.parsing import normalize_timestamp_ms, pick_number, pick_text


class TestPickNumber:
    def test_first_finite_value_wins(self):
        assert pick_number(None, "abc", float("nan"), "12.5", 3) == 12.5

    def test_booleans_are_not_numbers(self):
        assert pick_number(True, 7) == 7

    def test_nothing_usable(self):
        assert pick_number(None, "", float("inf")) is None


class TestPickText:
    def test_first_non_empty_string(self):
        assert pick_text(None, "   ", " Feinberg ") == "Feinberg"

    def test_numbers_become_text(self):
        assert pick_text(None, 42) == "42"


class TestNormalizeTimestamp:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (1_700_000_000, 1_700_000_000_000),
            (1_700_000_000_000, 1_700_000_000_000),
            ("1700000000", 1_700_000_000_000),
            ("2023-11-14T22:13:20Z", 1_700_000_000_000),
            (datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc), 1_700_000_000_000),
        ],
    )
    def test_supported_formats(self, value, expected):
        assert normalize_timestamp_ms(value) == expected

    @pytest.mark.parametrize("value", [None, 0, -5, "yesterday", ""])
    def test_unusable_values(self, value):
        assert normalize_timestamp_ms(value) is None
