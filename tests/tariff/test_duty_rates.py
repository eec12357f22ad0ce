"""Tests for typed duty-rate parsing."""

from __future__ import annotations

import pytest

from tariffstack.tariff.rates import UNKNOWN_RATE, ParsedDutyRate, coerce_rate, parse_duty_rate


class TestParseDutyRate:
    def test_free(self):
        parsed = parse_duty_rate("Free")
        assert parsed.is_free
        assert parsed.percent == 0.0
        assert parsed.display() == "Free"

    def test_ad_valorem(self):
        parsed = parse_duty_rate("16.5%")
        assert parsed.ad_valorem_pct == 16.5
        assert parsed.percent == 16.5
        assert not parsed.is_compound
        assert parsed.display() == "16.5%"

    def test_specific_rate_is_known_but_not_a_percentage(self):
        parsed = parse_duty_rate("3.4¢/kg")
        assert parsed.is_known
        assert parsed.specific_amount == pytest.approx(0.034)
        assert parsed.specific_unit == "kg"
        assert parsed.percent is None

    def test_compound_rate(self):
        parsed = parse_duty_rate("6.5% + 2.1¢/kg")
        assert parsed.is_compound
        assert parsed.percent == 6.5
        assert parsed.specific_amount == pytest.approx(0.021)

    def test_dollar_specific_rate(self):
        parsed = parse_duty_rate("$1.25/doz")
        assert parsed.specific_amount == 1.25
        assert parsed.specific_unit == "doz"

    @pytest.mark.parametrize("raw", ["", "   ", None, "See note 3"])
    def test_unreadable_rates_are_unknown(self, raw):
        parsed = parse_duty_rate(raw)
        assert parsed.is_unknown
        assert parsed.percent is None

    def test_unknown_is_never_free(self):
        assert UNKNOWN_RATE != parse_duty_rate("Free")
        assert not UNKNOWN_RATE.is_free
        assert UNKNOWN_RATE.display() == "Unknown"

    def test_bare_number_reads_as_percentage(self):
        assert parse_duty_rate("32").percent == 32.0


class TestCoerceRate:
    def test_numeric(self):
        assert coerce_rate(16.5).percent == 16.5
        assert coerce_rate(0).is_free

    def test_passes_parsed_rate_through(self):
        parsed = ParsedDutyRate(raw="5%", ad_valorem_pct=5.0)
        assert coerce_rate(parsed) is parsed

    def test_text(self):
        assert coerce_rate("Free").is_free

    def test_none_is_unknown(self):
        assert coerce_rate(None) is UNKNOWN_RATE

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            coerce_rate(-1.0)
