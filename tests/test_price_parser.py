"""
Price parser tests
"""
import pytest

from app.layers.price_parser import detect_currency, normalize_number, parse_price


class TestParsePrice:
    """Amount and currency from scraped text"""

    @pytest.mark.parametrize("text, amount, currency", [
        ("₹2,149.00", 2149.0, "INR"),
        ("$39.99", 39.99, "USD"),
        ("Rs. 349", 349.0, "INR"),
        ("€1.234,56", 1234.56, "EUR"),
        ("12,50 €", 12.5, "EUR"),
        ("£1,299", 1299.0, "GBP"),
        ("1.234.567", 1234567.0, None),
    ])
    def test_examples(self, text, amount, currency):
        result = parse_price(text)
        assert result.amount == pytest.approx(amount)
        assert result.currency == currency

    def test_empty(self):
        result = parse_price("")
        assert result.amount is None
        assert result.currency is None
        assert parse_price(None).raw is None

    def test_no_digits_keeps_raw(self):
        result = parse_price("Currently unavailable")
        assert result.amount is None
        assert result.raw == "Currently unavailable"

    def test_range_uses_first_number(self):
        assert parse_price("$10.00 - $20.00").amount == pytest.approx(10.0)

    def test_single_dot_is_decimal(self):
        assert parse_price("1.234").amount == pytest.approx(1.234)

    def test_raw_whitespace_collapsed(self):
        assert parse_price("  ₹\n 499 ").raw == "₹ 499"


class TestSeparators:
    """Decimal vs. thousands separators"""

    def test_last_separator_is_decimal(self):
        assert normalize_number("1,234.56") == "1234.56"
        assert normalize_number("1.234,56") == "1234.56"

    def test_comma_thousands(self):
        assert normalize_number("1,234") == "1234"
        assert normalize_number("12,34") == "12.34"

    def test_currency_order(self):
        assert detect_currency("INR 500") == "INR"
        assert detect_currency("US$ 5") == "USD"
        assert detect_currency("500") is None
