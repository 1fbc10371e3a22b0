"""Small parsing helpers shared by the context engine and extractors."""

import re
from datetime import date, datetime

DATE_FORMATS: list[str] = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d/%m/%Y",
    "%m-%d-%Y",
    "%m-%d-%y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
]

_AMOUNT_RE = re.compile(r"\d[\d,]*(?:\.\d+)?|\.\d+")


def parse_date(value: str) -> date | None:
    """Parse a date string using the supported formats.

    Args:
        value: Raw date text as found in the document.

    Returns:
        Parsed date, or ``None`` when no format matches.
    """
    cleaned = " ".join(value.strip().split())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


def parse_amount(value: str) -> float | None:
    """Extract the first numeric amount from text, ignoring separators."""
    match = _AMOUNT_RE.search(value)
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", ""))
    except ValueError:
        return None


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a score into ``[low, high]``."""
    return max(low, min(high, value))
