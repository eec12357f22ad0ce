"""HTS code normalization and display helpers."""

from __future__ import annotations

import re
from typing import Iterable, Mapping

_NON_DIGIT_RE = re.compile(r"\D")
_SEPARATOR_RE = re.compile(r"[\s.]")

#: Chapter titles used for display when a schedule snapshot omits them.
CHAPTER_DESCRIPTIONS: Mapping[str, str] = {
    "39": "Plastics and articles thereof",
    "42": "Articles of leather; handbags and similar containers",
    "52": "Cotton",
    "61": "Articles of apparel and clothing accessories, knitted or crocheted",
    "62": "Articles of apparel and clothing accessories, not knitted or crocheted",
    "63": "Other made up textile articles; worn clothing",
    "64": "Footwear, gaiters and the like",
    "72": "Iron and steel",
    "73": "Articles of iron or steel",
    "76": "Aluminum and articles thereof",
    "84": "Nuclear reactors, boilers, machinery and mechanical appliances",
    "85": "Electrical machinery and equipment and parts thereof",
    "87": "Vehicles other than railway or tramway rolling stock",
    "94": "Furniture; bedding, mattresses; lamps and lighting fittings",
    "95": "Toys, games and sports requisites",
}


def normalize_code(code: str | None) -> str:
    """Return the digits of an HTS code, dropping any separators."""
    if code is None:
        return ""
    return _NON_DIGIT_RE.sub("", str(code))


def clean_code(code: str | None) -> str | None:
    """Strip dots and whitespace; return ``None`` for a blank code.

    Unlike :func:`normalize_code`, other characters are kept so callers can
    detect malformed codes.
    """
    if code is None:
        return None
    stripped = _SEPARATOR_RE.sub("", str(code))
    return stripped or None


def normalize_country(code: str) -> str:
    return code.strip().upper()


def matches_prefix(hts_digits: str, prefix: str) -> bool:
    prefix_digits = normalize_code(prefix)
    if not prefix_digits or not hts_digits:
        return False
    return hts_digits.startswith(prefix_digits)


def longest_prefix(hts_digits: str, prefixes: Iterable[str]) -> str | None:
    """Return the longest prefix in ``prefixes`` that ``hts_digits`` starts with."""
    best: str | None = None
    for prefix in prefixes:
        if matches_prefix(hts_digits, prefix):
            digits = normalize_code(prefix)
            if best is None or len(digits) > len(best):
                best = digits
    return best


def chapter_of(code: str) -> str:
    digits = normalize_code(code)
    return digits[:2] if len(digits) >= 2 else ""


def format_hts_code(code: str) -> str:
    """Render digits in dotted HTS form: ``6109``, ``6109.10``, ``6109.10.00.04``."""
    digits = normalize_code(code)
    if len(digits) <= 4:
        return digits
    parts = [digits[:4]]
    rest = digits[4:]
    while rest:
        parts.append(rest[:2])
        rest = rest[2:]
    return ".".join(parts)


def chapter_description(code: str) -> str | None:
    return CHAPTER_DESCRIPTIONS.get(chapter_of(code))
