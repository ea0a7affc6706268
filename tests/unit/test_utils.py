"""Tests for the utils module."""

import logging
from decimal import Decimal

import pytest

from arbitrage_detector.exceptions import InvalidInput
from arbitrage_detector.utils import (
    format_duration,
    safe_json_load,
    set_nested_value,
    to_decimal,
)


def test_format_duration():
    """Test duration formatting."""
    assert format_duration(30.5) == "30.50s"
    assert format_duration(90) == "1.5m"
    assert format_duration(3600) == "1.0h"
    assert format_duration(7200) == "2.0h"


def test_safe_json_load():
    assert safe_json_load('{"key": "value"}') == {"key": "value"}
    assert safe_json_load(b"[1, 2]") == [1, 2]


def test_safe_json_load_invalid(caplog):
    with caplog.at_level(logging.WARNING, logger="arbitrage_detector.utils"):
        assert safe_json_load("invalid json") is None
        assert safe_json_load(None) is None
    assert "Failed to parse JSON" in caplog.text


class TestToDecimal:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (1, Decimal("1")),
            ("2.50", Decimal("2.50")),
            (0.1, Decimal("0.1")),
            (Decimal("3"), Decimal("3")),
        ],
    )
    def test_valid(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize("value", ["abc", None, True, "NaN", float("inf"), "Infinity"])
    def test_invalid(self, value):
        with pytest.raises(InvalidInput) as exc_info:
            to_decimal(value, "trade_size")
        assert exc_info.value.field == "trade_size"


def test_set_nested_value():
    """Test setting nested dictionary values."""
    data = {"thresholds": {"max_book_age": 5}}

    set_nested_value(data, "thresholds.min_pnl", "10")
    assert data == {"thresholds": {"max_book_age": 5, "min_pnl": "10"}}

    set_nested_value(data, "pool.rpc_url", "http://node")
    assert data["pool"] == {"rpc_url": "http://node"}

    # Non-dict intermediates are replaced by sections
    data["pair"] = "ETHUSDC"
    set_nested_value(data, "pair.symbol", "ETHUSDT")
    assert data["pair"] == {"symbol": "ETHUSDT"}
