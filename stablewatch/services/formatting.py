"""Display formatting helpers for numbers and URL slugs."""

from __future__ import annotations

import math
import re
from typing import Any

NO_DATA = "No data"


def is_valid_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def format_number(value: Any, dollar: bool = True) -> str:
    """Format large numbers with B/M/K suffixes, e.g. 83_000_000_000 -> "$83.0B"."""
    if not is_valid_number(value):
        return NO_DATA
    prefix = "$" if dollar else ""
    if value >= 1e9:
        return f"{prefix}{value / 1e9:.1f}B"
    if value >= 1e6:
        return f"{prefix}{value / 1e6:.1f}M"
    if value >= 1e3:
        return f"{prefix}{value / 1e3:.1f}K"
    return f"{prefix}{value:.2f}" if dollar else f"{value:.0f}"


def format_price(value: Any) -> str:
    if not is_valid_number(value):
        return NO_DATA
    return f"${value:.4f}" if abs(value) < 10 else f"${value:,.2f}"


def format_percentage(value: Any, decimals: int = 2) -> str:
    if not is_valid_number(value):
        return NO_DATA
    return f"{value:.{decimals}f}%"


def slugify(text: Any) -> str:
    if not text:
        return ""
    return re.sub(r"[^a-z0-9]+", "-", str(text).lower()).strip("-")
