"""
Duration Parser
Converts mod_expires style "access plus N unit [N unit ...]" strings into
a number of seconds.
"""

import re
from typing import Optional, Union

from core.models import ParseError


UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "month": 2592000,      # 30 days
    "year": 31536000,      # 365 days
}

_KEYWORD_RE = {
    kw: re.compile(rf'{kw}(?=\s|$)', re.IGNORECASE) for kw in ("access", "plus")
}
_PAIR_RE = re.compile(r'([0-9]+)\s+([A-Za-z]+)')


def _unit_multiplier(unit: str) -> Optional[int]:
    unit = unit.lower()
    if unit in UNIT_SECONDS:
        return UNIT_SECONDS[unit]
    if unit.endswith('s') and unit[:-1] in UNIT_SECONDS:
        return UNIT_SECONDS[unit[:-1]]
    return None


def parse_duration(text: Optional[str]) -> Union[int, ParseError]:
    """
    Parse an expires duration, e.g. "access plus 1 month 2 days".

    Returns the total number of seconds or a ParseError.
    """
    if text is None or not text.strip():
        return ParseError("empty", "empty duration")

    rest = text.strip()
    for kw, pattern in _KEYWORD_RE.items():
        m = pattern.match(rest)
        if not m:
            return ParseError("keyword", f"expected '{kw}' in duration: {text!r}")
        rest = rest[m.end():].lstrip()

    total = 0
    pairs = 0
    while rest:
        if not rest[0].isdigit():
            return ParseError("quantity", f"expected a number at {rest!r}")
        m = _PAIR_RE.match(rest)
        if not m:
            return ParseError("unit", f"expected a unit after number at {rest!r}")
        multiplier = _unit_multiplier(m.group(2))
        if multiplier is None:
            return ParseError("unit", f"unknown duration unit: {m.group(2)}")
        total += int(m.group(1)) * multiplier
        pairs += 1
        rest = rest[m.end():].lstrip()

    if pairs == 0:
        return ParseError("no_pairs", f"duration has no quantity/unit pairs: {text!r}")
    return total
