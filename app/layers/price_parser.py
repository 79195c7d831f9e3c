"""
Price Parser for the Affiliate Link Pipeline.
Turns locale-ambiguous scraped price text into (amount, currency).

Separator handling is a heuristic and lossy for some locales:
"1.234" is read as 1.234, never 1234.
"""
import math
import re
from typing import Optional, Tuple

from app.models.metadata import ParsedPrice


# Checked in order; "$" last so symbol-prefixed dollars of other
# currencies we do not model still read as USD.
CURRENCY_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"₹|\bRs\.?|\bINR\b", re.I), "INR"),
    (re.compile(r"€|\bEUR\b", re.I), "EUR"),
    (re.compile(r"£|\bGBP\b", re.I), "GBP"),
    (re.compile(r"¥|\bJPY\b", re.I), "JPY"),
    (re.compile(r"\$|\bUSD\b", re.I), "USD"),
)

NUMBER_RUN = re.compile(r"\d[\d.,]*")
TWO_DIGIT_DECIMAL = re.compile(r"^\d+,\d{2}$")


def detect_currency(text: str) -> Optional[str]:
    for pattern, code in CURRENCY_PATTERNS:
        if pattern.search(text):
            return code
    return None


def normalize_number(number: str) -> str:
    """
    Resolve decimal vs. thousands separators.

    - both "." and ",": the one appearing last is the decimal point
    - only ",": decimal when exactly one comma is followed by exactly
      two digits, otherwise thousands separators
    - only ".": several dots are thousands separators, one dot is decimal
    """
    has_dot = "." in number
    has_comma = "," in number

    if has_dot and has_comma:
        if number.rfind(",") > number.rfind("."):
            return number.replace(".", "").replace(",", ".")
        return number.replace(",", "")

    if has_comma:
        if TWO_DIGIT_DECIMAL.match(number):
            return number.replace(",", ".")
        return number.replace(",", "")

    if number.count(".") > 1:
        return number.replace(".", "")

    return number


def parse_price(text: Optional[str]) -> ParsedPrice:
    """
    Parse raw price text.

    Examples:
        "₹2,149.00" -> 2149.0 INR
        "$39.99"    -> 39.99 USD
        "Rs. 349"   -> 349.0 INR
        ""          -> None, None
    """
    if text is None:
        return ParsedPrice()

    raw = re.sub(r"\s+", " ", text).strip()
    if not raw:
        return ParsedPrice()

    currency = detect_currency(raw)

    # First numeric run only: keeps "Rs." and ranges like "$10 - $20" out
    match = NUMBER_RUN.search(raw)
    if not match:
        return ParsedPrice(amount=None, currency=currency, raw=raw)

    number = normalize_number(match.group().strip(".,"))
    try:
        amount = float(number)
    except ValueError:
        return ParsedPrice(amount=None, currency=currency, raw=raw)

    if not math.isfinite(amount):
        amount = None

    return ParsedPrice(amount=amount, currency=currency, raw=raw)
