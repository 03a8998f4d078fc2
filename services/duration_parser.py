"""
services/duration_parser.py – Convert HowLongToBeat duration text to hours.

The reference source renders durations as e.g. "7½ Hours", "12 Hours",
"45 Mins" or "--" when nobody has submitted a time.  parse() turns those into
a float number of hours, or None ("unknown").  It never raises.
"""

import re
from typing import Optional

from models.stat_bundle import HourValue

# ── Configuration ────────────────────────────────────────────────────────────

PLACEHOLDER: str = "--"
HALF_GLYPH: str = "½"

_HOUR_UNIT: re.Pattern = re.compile(r"\s*hours?\s*$", re.IGNORECASE)
_MINUTE_UNIT: re.Pattern = re.compile(r"\s*(?:mins?|minutes?)\s*$", re.IGNORECASE)
_NUMBER: re.Pattern = re.compile(r"^(\d+(?:\.\d*)?|\.\d+)?\s*(½)?$")

# ── Public API ───────────────────────────────────────────────────────────────


def is_placeholder(raw: Optional[str]) -> bool:
    """True when *raw* carries no published value."""
    return not isinstance(raw, str) or raw.strip() in ("", PLACEHOLDER)


def parse(raw: Optional[str]) -> HourValue:
    """
    Parse a duration string into hours.

    Parameters
    ----------
    raw : Text such as "7½ Hours", "½", "12", "45 Mins" or "--".

    Returns
    -------
    float hours (>= 0), or None when the text is a placeholder or malformed.
    """
    if is_placeholder(raw):
        return None

    text = raw.strip()
    scale = 1.0
    if _MINUTE_UNIT.search(text):
        text = _MINUTE_UNIT.sub("", text)
        scale = 1.0 / 60.0
    else:
        text = _HOUR_UNIT.sub("", text)

    match = _NUMBER.match(text.strip())
    if match is None:
        return None
    number, half = match.groups()
    if number is None and half is None:
        return None

    value = float(number) if number else 0.0
    if half:
        value += 0.5
    return value * scale


def format_hours(value: HourValue) -> str:
    """Render *value* the way the reference source does ("7½ Hours")."""
    if value is None:
        return PLACEHOLDER
    if value < 1:
        minutes = int(round(value * 60))
        return f"{minutes} Min" if minutes == 1 else f"{minutes} Mins"

    whole = int(value)
    rest = value - whole
    if abs(rest - 0.5) < 1e-9:
        text = f"{whole}{HALF_GLYPH}" if whole else HALF_GLYPH
    elif rest < 1e-9:
        text = str(whole)
    else:
        text = f"{value:.1f}"
    return f"{text} Hour" if value == 1 else f"{text} Hours"
