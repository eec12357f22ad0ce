"""Fold applicable duty programs into a single effective rate.

``effective = max(0, base - waivers + additive)``

The breakdown lists the baseline first, then trade-agreement waivers, then
additive programs by configured precedence.  A waiver is capped at the
baseline still left to waive, so it can never offset an additive program.
Additive programs an agreement explicitly waives for the origin stay in the
breakdown at 0% with ``waived_by`` set.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from tariffstack.tariff.codes import format_hts_code, normalize_code, normalize_country
from tariffstack.tariff.models import EffectiveTariffResult, ProgramContributionModel
from tariffstack.tariff.programs import (
    DutyProgram,
    DutyProgramRegistry,
    ProgramKind,
    get_duty_program_registry,
)
from tariffstack.tariff.rates import ParsedDutyRate, RateInput, coerce_rate

logger = logging.getLogger(__name__)

BASE_RATE_PROGRAM_ID = "base_rate"
_PRECISION = 6


def _round(value: float) -> float:
    return round(value, _PRECISION)


def _program_order(program: DutyProgram) -> tuple[int, str]:
    return (program.precedence, program.program_id)


def _baseline_from_registry(
    programs: Sequence[DutyProgram], country: str, hts_digits: str
) -> tuple[float | None, DutyProgram | None]:
    for program in sorted(programs, key=_program_order):
        rate = program.rate_for(country, hts_digits)
        if rate is not None:
            return rate, program
    return None, None


def _describe_base(parsed: ParsedDutyRate) -> str:
    if parsed.is_unknown:
        return "unknown"
    return parsed.display()


def resolve(
    base_rate: RateInput,
    country: str,
    code: str,
    *,
    registry: DutyProgramRegistry | None = None,
    customs_value: float | None = None,
) -> EffectiveTariffResult:
    """Return the effective duty for ``code`` imported from ``country``.

    ``base_rate`` may be a percentage, a parsed rate, or rate text.  When
    it is ``None`` the registry's baseline programs supply it.  A base rate
    that cannot be expressed as a percentage is reported in ``warnings``,
    flagged with ``base_rate_known=False`` and folded in as zero.
    """
    if customs_value is not None and customs_value < 0:
        raise ValueError(f"customs_value cannot be negative: {customs_value}")

    registry = registry or get_duty_program_registry()
    country_norm = normalize_country(country)
    hts_digits = normalize_code(code)
    lookup = registry.lookup(country_norm, hts_digits)

    warnings: list[str] = []
    if lookup.is_fallback:
        warnings.append(
            f"No duty program data for {country_norm}; conservative fallback programs applied"
        )

    baselines = [p for p in lookup.programs if p.kind is ProgramKind.BASELINE]
    agreements = sorted(
        (p for p in lookup.programs if p.kind is ProgramKind.TRADE_AGREEMENT), key=_program_order
    )
    additive = sorted((p for p in lookup.programs if p.is_additive), key=_program_order)

    # -- baseline -------------------------------------------------------------
    base_program: DutyProgram | None = None
    base_review = False
    if base_rate is None:
        base_pct, base_program = _baseline_from_registry(baselines, country_norm, hts_digits)
        if base_pct is None:
            warnings.append(f"No base rate supplied or configured for {format_hts_code(hts_digits)}")
    else:
        parsed = coerce_rate(base_rate)
        base_pct = parsed.percent
        if base_pct is None:
            warnings.append(
                f"Base rate {_describe_base(parsed)!r} is not an ad valorem percentage; treated as 0"
            )
        elif parsed.specific_amount is not None:
            base_review = True
            warnings.append(
                f"Base rate {_describe_base(parsed)!r} has a specific component that is not "
                f"included; only {base_pct:g}% is applied"
            )
    base_known = base_pct is not None
    base_value = float(base_pct) if base_pct is not None else 0.0

    if base_program is not None:
        base_contribution = ProgramContributionModel(
            program_id=base_program.program_id,
            program_name=base_program.name,
            kind=ProgramKind.BASELINE.value,
            rate=base_value,
            nominal_rate=base_value,
            precedence=base_program.precedence,
            legal_reference=base_program.authority or None,
        )
    else:
        base_contribution = ProgramContributionModel(
            program_id=BASE_RATE_PROGRAM_ID,
            program_name="Base rate (MFN)",
            kind=ProgramKind.BASELINE.value,
            rate=base_value,
            nominal_rate=base_value if base_known else None,
            requires_review=base_review,
        )
    contributions: list[ProgramContributionModel] = [base_contribution]

    # -- waivers --------------------------------------------------------------
    remaining = base_value
    total_waiver = 0.0
    waived_by: dict[str, str] = {}
    for agreement in agreements:
        nominal = base_value * agreement.preference_pct / 100.0
        amount = min(nominal, remaining)
        remaining -= amount
        total_waiver += amount
        contributions.append(
            ProgramContributionModel(
                program_id=agreement.program_id,
                program_name=agreement.name,
                kind=agreement.kind.value,
                rate=_round(amount),
                nominal_rate=_round(nominal),
                is_waiver=True,
                precedence=agreement.precedence,
                legal_reference=agreement.legal_reference or None,
            )
        )
        for program_id in agreement.waived_program_ids(country_norm):
            waived_by.setdefault(program_id, agreement.program_id)

    # -- additive programs ----------------------------------------------------
    total_additional = 0.0
    requires_review = base_review
    for program in additive:
        nominal = program.rate_for(country_norm, hts_digits)
        review = program.requires_review
        rate = nominal if nominal is not None else 0.0
        waiver_id = waived_by.get(program.program_id)
        if waiver_id is not None:
            rate = 0.0
        elif nominal is None:
            review = True
            warnings.append(
                f"{program.name} may apply to {format_hts_code(hts_digits)} from {country_norm}; "
                "verify the applicable rate"
            )
        elif review:
            warnings.append(f"{program.name} rate for {country_norm} requires review")
        requires_review = requires_review or (review and waiver_id is None)
        total_additional += rate
        contributions.append(
            ProgramContributionModel(
                program_id=program.program_id,
                program_name=program.name,
                kind=program.kind.value,
                rate=_round(rate),
                nominal_rate=nominal,
                waived_by=waiver_id,
                precedence=program.precedence,
                requires_review=review and waiver_id is None,
                chapter99_code=program.chapter99_for(hts_digits),
                legal_reference=program.legal_reference or None,
            )
        )

    effective = max(0.0, base_value - total_waiver + total_additional)
    effective = _round(effective)
    estimated_duty = None
    if customs_value is not None:
        estimated_duty = round(customs_value * effective / 100.0, 2)

    logger.debug(
        "Resolved %s from %s: base=%s waiver=%s additional=%s effective=%s source=%s",
        hts_digits,
        country_norm,
        base_value,
        total_waiver,
        total_additional,
        effective,
        lookup.data_source,
    )
    return EffectiveTariffResult(
        hts_code=hts_digits,
        country_code=country_norm,
        base_rate=base_value,
        base_rate_known=base_known,
        contributions=contributions,
        total_waiver=_round(total_waiver),
        total_additional=_round(total_additional),
        effective_rate=effective,
        data_source=lookup.data_source,
        requires_review=requires_review,
        warnings=warnings,
        customs_value=customs_value,
        estimated_duty=estimated_duty,
    )


def compare_origins(
    base_rate: RateInput,
    code: str,
    countries: Iterable[str],
    *,
    registry: DutyProgramRegistry | None = None,
    customs_value: float | None = None,
) -> list[EffectiveTariffResult]:
    """Resolve one code for several origins, cheapest first."""
    registry = registry or get_duty_program_registry()
    unique: list[str] = []
    for country in countries:
        norm = normalize_country(country)
        if norm and norm not in unique:
            unique.append(norm)
    results = [
        resolve(base_rate, country, code, registry=registry, customs_value=customs_value)
        for country in unique
    ]
    results.sort(key=lambda r: (r.effective_rate, r.country_code))
    return results
