"""Typed duty-rate parsing for tariff schedule rows.

Schedule rows carry free-form rate text.  This module converts that text
into a :class:`ParsedDutyRate` exactly once, at ingestion, so the rest of
the engine never re-parses strings.  Common formats:

  - "Free"
  - "16.5%"
  - "3.4¢/kg"
  - "6.5% + 2.1¢/kg"
  - "$1.25/doz"

Anything that cannot be read is carried as an explicit *unknown* rate.
Unknown is never the same thing as Free.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------
_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
# "$1.25/doz" or "3.4¢/kg"; a bare "n/unit" is ignored.
_SPECIFIC_RE = re.compile(r"(\$)?\s*(\d+(?:\.\d+)?)\s*(¢)?\s*/\s*([A-Za-z]+)")
_BARE_NUMBER_RE = re.compile(r"^\d+(?:\.\d+)?$")
_FREE_TOKENS = frozenset({"free", "0", "0%", "0.0%"})


@dataclass(frozen=True)
class ParsedDutyRate:
    """Structured representation of a duty rate string."""

    raw: str
    ad_valorem_pct: float | None = None
    specific_amount: float | None = None  # dollars per unit
    specific_unit: str | None = None
    is_free: bool = False
    is_compound: bool = False
    is_unknown: bool = False

    @property
    def percent(self) -> float | None:
        """Ad valorem percentage, 0.0 for Free, ``None`` when not expressible."""
        if self.is_unknown:
            return None
        if self.is_free:
            return 0.0
        return self.ad_valorem_pct

    @property
    def is_known(self) -> bool:
        return not self.is_unknown

    def display(self) -> str:
        if self.is_unknown:
            return "Unknown"
        if self.is_free:
            return "Free"
        parts: list[str] = []
        if self.ad_valorem_pct is not None:
            parts.append(f"{self.ad_valorem_pct:g}%")
        if self.specific_amount is not None:
            parts.append(f"${self.specific_amount:g}/{self.specific_unit}")
        return " + ".join(parts)


#: Explicit "no rate could be determined" value.
UNKNOWN_RATE = ParsedDutyRate(raw="", is_unknown=True)

RateInput = Union[ParsedDutyRate, float, int, str, None]


def _specific_component(text: str) -> tuple[float | None, str | None]:
    """Dollars per unit from a ``¢/unit`` or ``$/unit`` component."""
    for match in _SPECIFIC_RE.finditer(text):
        dollars, amount, cents, unit = match.groups()
        if not dollars and not cents:
            continue
        value = float(amount) / 100.0 if cents else float(amount)
        return value, unit.lower()
    return None, None


def parse_duty_rate(raw: str | None) -> ParsedDutyRate:
    """Parse a schedule rate string into structured form."""
    if raw is None or not str(raw).strip():
        return UNKNOWN_RATE

    text = str(raw).strip()
    if text.lower() in _FREE_TOKENS:
        return ParsedDutyRate(raw=text, ad_valorem_pct=0.0, is_free=True)

    if _BARE_NUMBER_RE.match(text):
        value = float(text)
        return ParsedDutyRate(raw=text, ad_valorem_pct=value, is_free=value == 0.0)

    percent = _PERCENT_RE.search(text)
    pct = float(percent.group(1)) if percent else None
    amount, unit = _specific_component(text)
    if pct is None and amount is None:
        return ParsedDutyRate(raw=text, is_unknown=True)

    return ParsedDutyRate(
        raw=text,
        ad_valorem_pct=pct,
        specific_amount=amount,
        specific_unit=unit,
        is_compound=pct is not None and amount is not None,
    )


def coerce_rate(value: RateInput) -> ParsedDutyRate:
    """Accept a parsed rate, a numeric percentage, or rate text."""
    if isinstance(value, ParsedDutyRate):
        return value
    if value is None:
        return UNKNOWN_RATE
    if isinstance(value, bool):
        raise TypeError("boolean is not a duty rate")
    if isinstance(value, (int, float)):
        pct = float(value)
        if pct < 0:
            raise ValueError(f"duty rate cannot be negative: {pct}")
        return ParsedDutyRate(raw=f"{pct:g}%", ad_valorem_pct=pct, is_free=pct == 0.0)
    return parse_duty_rate(value)
