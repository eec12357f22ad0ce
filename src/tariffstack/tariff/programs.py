"""Duty program registry.

A :class:`DutyProgram` describes one independently-sourced layer of the
duty stack: the MFN baseline, a code-tiered chapter surcharge, a country
emergency surcharge, a trade-agreement waiver or an antidumping order.
Programs are read once from JSON configuration into an immutable
:class:`DutyProgramRegistry`; lookups are pure and in-memory.

Trade agreements zero the baseline only.  An agreement that also zeroes an
emergency program for a partner must say so explicitly through
``waives_programs``; this is never inferred from the agreement type.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from tariffstack.tariff.codes import longest_prefix, matches_prefix, normalize_code, normalize_country

logger = logging.getLogger(__name__)

ALL_COUNTRIES = "*"
DATA_SOURCE_REGISTRY = "registry"
DATA_SOURCE_FALLBACK = "fallback"


class RegistryConfigError(ValueError):
    """Raised when duty program configuration is empty or inconsistent."""


class ProgramKind(str, Enum):
    BASELINE = "baseline"
    CHAPTER_SURCHARGE = "chapter_surcharge"
    COUNTRY_EMERGENCY = "country_emergency"
    TRADE_AGREEMENT = "trade_agreement"
    ANTIDUMPING = "antidumping"


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RateTier:
    """Code-dependent rate: the longest matching prefix wins."""

    prefix: str
    rate: float
    label: str = ""
    chapter99_code: str | None = None


@dataclass(frozen=True)
class CountryProfile:
    country_code: str
    name: str
    trade_status: str = "normal"
    known: bool = True


@dataclass(frozen=True)
class DutyProgram:
    """One configured layer of the duty stack."""

    program_id: str
    name: str
    kind: ProgramKind
    precedence: int = 100
    countries: tuple[str, ...] = (ALL_COUNTRIES,)
    excluded_countries: tuple[str, ...] = ()
    hts_prefixes: tuple[str, ...] = ()  # empty = all codes
    excluded_hts_prefixes: tuple[str, ...] = ()
    rate: float | None = None
    country_rates: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    tiers: tuple[RateTier, ...] = ()
    preference_pct: float = 100.0
    waives_programs: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    requires_review: bool = False
    authority: str = ""
    legal_reference: str = ""
    chapter99_code: str | None = None
    description: str = ""

    def __hash__(self) -> int:
        # Mapping fields are not hashable; equal programs share these.
        return hash((self.program_id, self.kind, self.precedence))

    @property
    def waives_baseline(self) -> bool:
        return self.kind is ProgramKind.TRADE_AGREEMENT

    @property
    def is_additive(self) -> bool:
        return self.kind in (
            ProgramKind.CHAPTER_SURCHARGE,
            ProgramKind.COUNTRY_EMERGENCY,
            ProgramKind.ANTIDUMPING,
        )

    def covers_country(self, country: str) -> bool:
        country = normalize_country(country)
        if country in self.excluded_countries:
            return False
        return ALL_COUNTRIES in self.countries or country in self.countries

    def matching_tier(self, hts_digits: str) -> RateTier | None:
        best: RateTier | None = None
        for tier in self.tiers:
            if matches_prefix(hts_digits, tier.prefix):
                if best is None or len(normalize_code(tier.prefix)) > len(normalize_code(best.prefix)):
                    best = tier
        return best

    def covers_code(self, code: str) -> bool:
        hts_digits = normalize_code(code)
        if any(matches_prefix(hts_digits, pfx) for pfx in self.excluded_hts_prefixes):
            return False
        if self.hts_prefixes:
            return longest_prefix(hts_digits, self.hts_prefixes) is not None
        if self.tiers:
            return self.matching_tier(hts_digits) is not None
        return True

    def applies_to(self, country: str, code: str) -> bool:
        return self.covers_country(country) and self.covers_code(code)

    def rate_for(self, country: str, code: str) -> float | None:
        """Nominal percentage for this country and code, ``None`` if unrated."""
        tier = self.matching_tier(normalize_code(code))
        if tier is not None:
            return tier.rate
        country = normalize_country(country)
        if country in self.country_rates:
            return self.country_rates[country]
        return self.rate

    def chapter99_for(self, code: str) -> str | None:
        tier = self.matching_tier(normalize_code(code))
        if tier is not None and tier.chapter99_code:
            return tier.chapter99_code
        return self.chapter99_code

    def waived_program_ids(self, country: str) -> tuple[str, ...]:
        return self.waives_programs.get(normalize_country(country), ())


@dataclass(frozen=True)
class ProgramLookup:
    country_code: str
    hts_code: str
    programs: tuple[DutyProgram, ...]
    data_source: str

    @property
    def is_fallback(self) -> bool:
        return self.data_source == DATA_SOURCE_FALLBACK


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
def _program_sort_key(program: DutyProgram) -> tuple[int, str]:
    return (program.precedence, program.program_id)


def _validate(programs: Sequence[DutyProgram], label: str) -> None:
    if not programs:
        raise RegistryConfigError(f"{label} program set is empty")
    seen: set[str] = set()
    for program in programs:
        if not program.program_id:
            raise RegistryConfigError(f"{label} program without an id")
        if program.program_id in seen:
            raise RegistryConfigError(f"Duplicate program id {program.program_id!r}")
        seen.add(program.program_id)
        rates = [program.rate, *program.country_rates.values(), *(t.rate for t in program.tiers)]
        if any(r is not None and r < 0 for r in rates):
            raise RegistryConfigError(f"Program {program.program_id!r} has a negative rate")
        if not 0.0 <= program.preference_pct <= 100.0:
            raise RegistryConfigError(
                f"Program {program.program_id!r} preference_pct must be within 0-100"
            )


class DutyProgramRegistry:
    """Immutable table of duty programs keyed by country and code."""

    def __init__(
        self,
        programs: Iterable[DutyProgram],
        *,
        fallback_programs: Iterable[DutyProgram],
        countries: Mapping[str, CountryProfile] | None = None,
        source: str = "inline",
    ) -> None:
        ordered = tuple(sorted(programs, key=_program_sort_key))
        fallback = tuple(sorted(fallback_programs, key=_program_sort_key))
        _validate(ordered, "Registry")
        _validate(fallback, "Fallback")

        known_ids = {p.program_id for p in ordered}
        for program in ordered:
            for country, waived in program.waives_programs.items():
                unknown = [pid for pid in waived if pid not in known_ids]
                if unknown:
                    raise RegistryConfigError(
                        f"Program {program.program_id!r} waives unknown program(s) {unknown} for {country}"
                    )

        if countries is None:
            derived: dict[str, CountryProfile] = {}
            for program in ordered:
                for code in (*program.countries, *program.country_rates):
                    if code != ALL_COUNTRIES:
                        derived.setdefault(code, CountryProfile(country_code=code, name=code))
            countries = derived

        self._programs = ordered
        self._fallback = fallback
        self._countries = MappingProxyType(dict(countries))
        self._by_id = MappingProxyType({p.program_id: p for p in (*ordered, *fallback)})
        self.source = source

    @property
    def programs(self) -> tuple[DutyProgram, ...]:
        return self._programs

    @property
    def fallback_programs(self) -> tuple[DutyProgram, ...]:
        return self._fallback

    @property
    def countries(self) -> Mapping[str, CountryProfile]:
        return self._countries

    def get(self, program_id: str) -> DutyProgram | None:
        return self._by_id.get(program_id)

    def is_known_country(self, country: str) -> bool:
        return normalize_country(country) in self._countries

    def country_profile(self, country: str) -> CountryProfile:
        norm = normalize_country(country)
        profile = self._countries.get(norm)
        if profile is None:
            return CountryProfile(country_code=norm, name=norm, trade_status="unknown", known=False)
        return profile

    def lookup(self, country: str, code: str) -> ProgramLookup:
        """Return every program that applies to ``country`` and ``code``.

        Unknown countries get the conservative fallback set, tagged with
        ``data_source="fallback"`` so callers can flag reduced confidence.
        """
        country_norm = normalize_country(country)
        hts_digits = normalize_code(code)
        if country_norm in self._countries:
            candidates, data_source = self._programs, DATA_SOURCE_REGISTRY
        else:
            logger.info("No duty program data for %s; using fallback program set", country_norm)
            candidates, data_source = self._fallback, DATA_SOURCE_FALLBACK
        matched = tuple(p for p in candidates if p.applies_to(country_norm, hts_digits))
        return ProgramLookup(
            country_code=country_norm,
            hts_code=hts_digits,
            programs=matched,
            data_source=data_source,
        )

    def programs_for(self, country: str, code: str) -> tuple[DutyProgram, ...]:
        return self.lookup(country, code).programs


# ---------------------------------------------------------------------------
# JSON loading
# ---------------------------------------------------------------------------
def _float_or_none(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def _parse_program(entry: Mapping[str, Any]) -> DutyProgram:
    try:
        kind = ProgramKind(str(entry.get("kind", "")))
    except ValueError as exc:
        raise RegistryConfigError(
            f"Program {entry.get('program_id')!r} has unknown kind {entry.get('kind')!r}"
        ) from exc

    countries = entry.get("countries", [ALL_COUNTRIES])
    if isinstance(countries, str):
        countries = [countries]

    tiers = tuple(
        RateTier(
            prefix=normalize_code(str(tier.get("prefix", ""))),
            rate=float(tier.get("rate", 0.0)),
            label=str(tier.get("label", "")),
            chapter99_code=tier.get("chapter99_code"),
        )
        for tier in entry.get("tiers", [])
        if isinstance(tier, dict)
    )
    waives = {
        normalize_country(country): tuple(str(pid) for pid in ids)
        for country, ids in (entry.get("waives_programs") or {}).items()
    }
    country_rates = {
        normalize_country(country): float(rate)
        for country, rate in (entry.get("country_rates") or {}).items()
    }

    return DutyProgram(
        program_id=str(entry.get("program_id", "")),
        name=str(entry.get("name", "")),
        kind=kind,
        precedence=int(entry.get("precedence", 100)),
        countries=tuple(c if c == ALL_COUNTRIES else normalize_country(c) for c in countries),
        excluded_countries=tuple(normalize_country(c) for c in entry.get("excluded_countries", [])),
        hts_prefixes=tuple(normalize_code(str(p)) for p in entry.get("hts_prefixes", [])),
        excluded_hts_prefixes=tuple(
            normalize_code(str(p)) for p in entry.get("excluded_hts_prefixes", [])
        ),
        rate=_float_or_none(entry.get("rate")),
        country_rates=MappingProxyType(country_rates),
        tiers=tiers,
        preference_pct=float(entry.get("preference_pct", 100.0)),
        waives_programs=MappingProxyType(waives),
        requires_review=bool(entry.get("requires_review", False)),
        authority=str(entry.get("authority", "")),
        legal_reference=str(entry.get("legal_reference", "")),
        chapter99_code=entry.get("chapter99_code"),
        description=str(entry.get("description", "")),
    )


def _parse_countries(raw: Any) -> dict[str, CountryProfile]:
    profiles: dict[str, CountryProfile] = {}
    if isinstance(raw, dict):
        for code, info in raw.items():
            info = info if isinstance(info, dict) else {"name": str(info)}
            norm = normalize_country(code)
            profiles[norm] = CountryProfile(
                country_code=norm,
                name=str(info.get("name", norm)),
                trade_status=str(info.get("trade_status", "normal")),
            )
    elif isinstance(raw, list):
        for code in raw:
            norm = normalize_country(str(code))
            profiles[norm] = CountryProfile(country_code=norm, name=norm)
    return profiles


def registry_from_payload(payload: Mapping[str, Any], source: str = "inline") -> DutyProgramRegistry:
    programs = [_parse_program(e) for e in payload.get("programs", []) if isinstance(e, dict)]
    fallback = [
        _parse_program(e) for e in payload.get("fallback_programs", []) if isinstance(e, dict)
    ]
    countries = _parse_countries(payload.get("countries")) if "countries" in payload else None
    return DutyProgramRegistry(programs, fallback_programs=fallback, countries=countries, source=source)


def load_registry(path: str | Path) -> DutyProgramRegistry:
    """Build a registry from a JSON file; raises :class:`RegistryConfigError`."""
    path = Path(path)
    if not path.exists():
        raise RegistryConfigError(f"Duty program configuration not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise RegistryConfigError(f"Unable to read duty program configuration {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise RegistryConfigError(f"Duty program configuration {path} must be a JSON object")
    registry = registry_from_payload(payload, source=str(path))
    logger.info(
        "Loaded %d duty programs (%d fallback) for %d countries from %s",
        len(registry.programs),
        len(registry.fallback_programs),
        len(registry.countries),
        path,
    )
    return registry


# ---------------------------------------------------------------------------
# Inline fallback configuration
# ---------------------------------------------------------------------------
#: Flat surcharge assumed for any origin without configured data.
FALLBACK_SURCHARGE_PCT = 10.0

#: Universal emergency baseline applied to every configured origin.
UNIVERSAL_BASELINE_PCT = 10.0

#: Country emergency surcharges above the universal baseline.
RECIPROCAL_SURCHARGES: Mapping[str, float] = MappingProxyType({
    "CN": 115.0,
    "HK": 115.0,
    "VN": 36.0,
    "KH": 39.0,
    "BD": 27.0,
    "TH": 26.0,
    "ID": 22.0,
    "TW": 22.0,
    "IN": 16.0,
    "KR": 15.0,
    "MY": 14.0,
    "JP": 14.0,
    "PH": 7.0,
    "DE": 10.0,
    "FR": 10.0,
    "IT": 10.0,
    "ES": 10.0,
    "NL": 10.0,
    "BE": 10.0,
    "PL": 10.0,
})

#: Fentanyl emergency surcharges.
FENTANYL_SURCHARGES: Mapping[str, float] = MappingProxyType({
    "CN": 20.0,
    "HK": 20.0,
    "MX": 25.0,
    "CA": 25.0,
})

#: Origins exempt from the universal baseline.
UNIVERSAL_BASELINE_EXEMPT: tuple[str, ...] = ("CA", "MX")

#: Trade agreements: program id -> (name, partners, emergency programs waived per partner).
TRADE_AGREEMENTS: Mapping[str, tuple[str, tuple[str, ...], Mapping[str, tuple[str, ...]]]] = MappingProxyType({
    "usmca": (
        "USMCA",
        ("CA", "MX"),
        {"CA": ("ieepa_fentanyl",), "MX": ("ieepa_fentanyl",)},
    ),
    "korus": ("KORUS FTA", ("KR",), {}),
    "ausfta": ("Australia FTA", ("AU",), {}),
    "ussfta": ("Singapore FTA", ("SG",), {}),
    "clfta": ("Chile FTA", ("CL",), {}),
    "cotpa": ("Colombia TPA", ("CO",), {}),
})

#: Section 301 chapter estimates for CN/HK when no list data is loaded.
SECTION_301_COUNTRIES: tuple[str, ...] = ("CN", "HK")
SECTION_301_CHAPTER_RATES: Mapping[str, tuple[float, str]] = MappingProxyType({
    **{chapter: (25.0, "List 3") for chapter in ("84", "85", "90", "94", "95")},
    **{chapter: (7.5, "List 4A") for chapter in ("39", "42", "61", "62", "63", "64")},
})


def _fallback_surcharge() -> DutyProgram:
    return DutyProgram(
        program_id="fallback_baseline_surcharge",
        name="Assumed baseline surcharge (no country data)",
        kind=ProgramKind.COUNTRY_EMERGENCY,
        precedence=200,
        rate=FALLBACK_SURCHARGE_PCT,
        description="Conservative flat surcharge used when an origin has no configured programs",
    )


def _inline_agreements() -> list[DutyProgram]:
    return [
        DutyProgram(
            program_id=program_id,
            name=name,
            kind=ProgramKind.TRADE_AGREEMENT,
            precedence=10,
            countries=partners,
            waives_programs=MappingProxyType(dict(waived)),
        )
        for program_id, (name, partners, waived) in TRADE_AGREEMENTS.items()
    ]


def _inline_section_301() -> DutyProgram:
    return DutyProgram(
        program_id="section_301",
        name="Section 301 (chapter estimate)",
        kind=ProgramKind.CHAPTER_SURCHARGE,
        precedence=40,
        countries=SECTION_301_COUNTRIES,
        tiers=tuple(
            RateTier(prefix=chapter, rate=rate, label=label)
            for chapter, (rate, label) in sorted(SECTION_301_CHAPTER_RATES.items())
        ),
        legal_reference="19 U.S.C. 2411",
    )


def fallback_registry() -> DutyProgramRegistry:
    """Registry built from inline constants only.

    Covers the universal baseline, country reciprocal and fentanyl
    surcharges, the baseline-waiving trade agreements (USMCA also waives
    the fentanyl surcharge for its partners) and a chapter-level Section
    301 estimate.  Used when no JSON configuration is available.
    """
    partners = {country for _, countries, _ in TRADE_AGREEMENTS.values() for country in countries}
    countries = sorted({*RECIPROCAL_SURCHARGES, *FENTANYL_SURCHARGES, *partners, "GB"})
    programs = [
        DutyProgram(
            program_id="ieepa_universal_baseline",
            name="IEEPA Universal Baseline",
            kind=ProgramKind.COUNTRY_EMERGENCY,
            precedence=20,
            countries=tuple(countries),
            excluded_countries=UNIVERSAL_BASELINE_EXEMPT,
            rate=UNIVERSAL_BASELINE_PCT,
            legal_reference="Executive Order 14257",
        ),
        DutyProgram(
            program_id="ieepa_reciprocal",
            name="IEEPA Country Reciprocal",
            kind=ProgramKind.COUNTRY_EMERGENCY,
            precedence=30,
            countries=tuple(sorted(RECIPROCAL_SURCHARGES)),
            country_rates=RECIPROCAL_SURCHARGES,
            legal_reference="Executive Order 14257",
        ),
        DutyProgram(
            program_id="ieepa_fentanyl",
            name="IEEPA Fentanyl Emergency",
            kind=ProgramKind.COUNTRY_EMERGENCY,
            precedence=25,
            countries=tuple(sorted(FENTANYL_SURCHARGES)),
            country_rates=FENTANYL_SURCHARGES,
            legal_reference="Executive Order 14195",
        ),
        *_inline_agreements(),
        _inline_section_301(),
    ]
    profiles = {code: CountryProfile(country_code=code, name=code) for code in countries}
    return DutyProgramRegistry(
        programs,
        fallback_programs=[_fallback_surcharge()],
        countries=profiles,
        source="inline",
    )


# ---------------------------------------------------------------------------
# Process-wide registry
# ---------------------------------------------------------------------------
def _default_data_path() -> Path:
    return Path(__file__).resolve().parent / "data" / "duty_programs.json"


@lru_cache(maxsize=1)
def _configured_registry() -> DutyProgramRegistry:
    override = os.getenv("TARIFFSTACK_DUTY_PROGRAMS")
    path = Path(override) if override else _default_data_path()
    return load_registry(path)


_installed: DutyProgramRegistry | None = None
_install_lock = threading.Lock()


def get_duty_program_registry() -> DutyProgramRegistry:
    """Return the process-wide registry, loading configuration on first use."""
    installed = _installed
    if installed is not None:
        return installed
    return _configured_registry()


def install_registry(registry: DutyProgramRegistry | None) -> DutyProgramRegistry | None:
    """Swap in a whole new registry; ``None`` reverts to configuration.

    Returns the previously installed registry so callers can restore it.
    """
    global _installed
    with _install_lock:
        previous = _installed
        _installed = registry
    if registry is not None:
        logger.info("Installed duty program registry from %s", registry.source)
    return previous


def reset_registry_cache() -> None:
    install_registry(None)
    _configured_registry.cache_clear()
