"""
Numeric coercion and money formatting.

Agreement values and catalog fields arrive as loosely typed data: plain
numbers, localized strings such as "1.234,56" or "$ 1,234.56", empty strings
or nothing at all. Everything here is total: bad input becomes 0, never an
exception.
"""

import math
import re
import unicodedata
from typing import Any

_NON_NUMERIC = re.compile(r"[^\d.,-]")
_LEADING_FLOAT = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")
# One dot followed by at most two digits is a decimal point, anything else groups thousands
_DOT_DECIMAL = re.compile(r"-?\d*\.\d{1,2}$")

MISSING_MONEY = "—"


def _leading_float(text: str) -> float:
    """Parse the longest numeric prefix of text, like a lenient float()."""
    match = _LEADING_FLOAT.match(text)
    if not match:
        return 0.0
    value = float(match.group(0))
    return value if math.isfinite(value) else 0.0


def parse_number(value: Any) -> float:
    """
    Convert any loosely typed value to a finite float.

    Separator handling uses the last-separator heuristic: when both "," and
    "." are present, whichever appears last is the decimal separator and the
    other one is dropped as a thousands separator. A lone "," is treated as
    the decimal separator. Dots alone are thousands separators ("2.838" is
    2838) unless there is exactly one, followed by one or two digits
    ("1224.11").

    Args:
        value: Number, string, or None

    Returns:
        Parsed finite float, 0.0 when the value cannot be interpreted
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0

    text = _NON_NUMERIC.sub("", str(value).strip())
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".", 1)
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".", 1)
    elif "." in text and not _DOT_DECIMAL.match(text):
        text = text.replace(".", "")

    return _leading_float(text)


def format_money(value: Any) -> str:
    """
    Format an amount in es-AR style with two decimals.

    Example:
        >>> format_money(1234.5)
        '1.234,50'
    """
    if value is None or value == "" or value == "-":
        return MISSING_MONEY
    number = value if isinstance(value, (int, float)) and not isinstance(value, bool) else parse_number(value)
    if not math.isfinite(number):
        return MISSING_MONEY
    formatted = f"{number:,.2f}"
    return formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def normalize_text(value: Any) -> str:
    """Lower-case text with accents removed, for tolerant substring matching."""
    if value is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.lower()
