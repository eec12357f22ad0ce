from __future__ import annotations

import pytest

from tariffstack.tariff.codes import (
    chapter_description,
    chapter_of,
    clean_code,
    format_hts_code,
    longest_prefix,
    matches_prefix,
    normalize_code,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("61", "61"),
        ("6109", "6109"),
        ("610910", "6109.10"),
        ("61091000", "6109.10.00"),
        ("6109.10.00.04", "6109.10.00.04"),
    ],
)
def test_format_hts_code(raw, expected):
    assert format_hts_code(raw) == expected


def test_clean_code_keeps_bad_characters_for_validation():
    assert clean_code("6109.10 00") == "61091000"
    assert clean_code("61A9") == "61A9"
    assert clean_code("  ") is None
    assert clean_code(None) is None


def test_normalize_code_strips_everything_but_digits():
    assert normalize_code("6109.10.00.04") == "6109100004"
    assert normalize_code(None) == ""


def test_prefix_helpers():
    assert matches_prefix("6109100004", "6109.10")
    assert not matches_prefix("6110200010", "6109")
    assert not matches_prefix("", "61")
    assert longest_prefix("8541400000", ["8541", "8541.40", "85"]) == "854140"
    assert longest_prefix("8471300000", ["8541"]) is None


def test_chapter_helpers():
    assert chapter_of("6109.10.00.04") == "61"
    assert chapter_description("6109") == "Articles of apparel and clothing accessories, knitted or crocheted"
    assert chapter_description("0101") is None
