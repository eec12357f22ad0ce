"""Tariff schedule hierarchy and duty stack resolution.

Schedule rows become a scored tree (:mod:`.hierarchy`, :mod:`.relevance`);
a chosen code and origin fold through the duty program registry
(:mod:`.programs`) into an effective rate (:mod:`.resolver`).
"""
from .hierarchy import HierarchyBuildResult, HierarchyNode, ScheduleRow, build_hierarchy
from .keywords import ProductKeywords
from .models import EffectiveTariffResult, ProgramContributionModel
from .programs import (
    DutyProgram,
    DutyProgramRegistry,
    ProgramKind,
    RegistryConfigError,
    fallback_registry,
    get_duty_program_registry,
    install_registry,
    load_registry,
)
from .rates import UNKNOWN_RATE, ParsedDutyRate, parse_duty_rate
from .relevance import best_match, score_hierarchy, top_matches
from .resolver import compare_origins, resolve

__all__ = [
    "ScheduleRow",
    "HierarchyNode",
    "HierarchyBuildResult",
    "build_hierarchy",
    "ProductKeywords",
    "score_hierarchy",
    "top_matches",
    "best_match",
    "ParsedDutyRate",
    "UNKNOWN_RATE",
    "parse_duty_rate",
    "DutyProgram",
    "DutyProgramRegistry",
    "ProgramKind",
    "RegistryConfigError",
    "load_registry",
    "fallback_registry",
    "get_duty_program_registry",
    "install_registry",
    "EffectiveTariffResult",
    "ProgramContributionModel",
    "resolve",
    "compare_origins",
]
