from __future__ import annotations

from fastapi import APIRouter, Query

from tariffstack.settings import ScheduleSettings
from tariffstack.tariff.hierarchy import HierarchyNode, ScheduleRow, build_hierarchy
from tariffstack.tariff.keywords import ProductKeywords
from tariffstack.tariff.models import (
    BuildWarningModel,
    CompareRequestModel,
    CompareResponseModel,
    EffectiveTariffResult,
    HierarchyNodeModel,
    HierarchyRequestModel,
    HierarchyResponseModel,
    ProgramListResponseModel,
    ProgramSummaryModel,
    ResolveRequestModel,
)
from tariffstack.tariff.programs import get_duty_program_registry
from tariffstack.tariff.relevance import score_hierarchy, top_matches
from tariffstack.tariff.resolver import compare_origins, resolve

router = APIRouter(
    prefix="/v1/tariff",
    tags=["tariff"],
)


def _node_model(node: HierarchyNode) -> HierarchyNodeModel:
    return HierarchyNodeModel(
        id=node.id,
        code=node.code,
        display_code=node.display_code,
        label=node.label,
        context_label=node.context_label,
        depth=node.depth,
        effective_rate=node.effective_rate.display(),
        effective_rate_pct=node.effective_rate.percent,
        rate_inherited=node.rate_inherited,
        is_terminal=node.is_terminal,
        is_catch_all=node.is_catch_all,
        is_grouping=node.is_grouping,
        relevance_score=node.relevance_score,
        is_top_match=node.is_top_match,
        selectable_count=node.selectable_count,
        children=[_node_model(child) for child in node.children],
    )


@router.post("/hierarchy", response_model=HierarchyResponseModel)
def build_schedule_hierarchy(request: HierarchyRequestModel) -> HierarchyResponseModel:
    """Rebuild the schedule tree from flat rows and rank it against keywords."""

    rows = [
        ScheduleRow(code=row.code, description=row.description, indent=row.indent, rate_text=row.rate_text)
        for row in request.rows
    ]
    result = build_hierarchy(rows, ScheduleSettings.from_env())
    keywords = ProductKeywords()
    if request.keywords is not None:
        keywords = ProductKeywords.from_mapping(request.keywords.model_dump())
    score_hierarchy(result.roots, keywords)
    matches = top_matches(result.roots, limit=request.top_matches)

    return HierarchyResponseModel(
        roots=[_node_model(root) for root in result.roots],
        node_count=result.node_count,
        dropped_rows=result.dropped_rows,
        dropped_codes=list(result.dropped_codes),
        warnings=[
            BuildWarningModel(kind=w.kind, row_id=w.row_id, message=w.message) for w in result.warnings
        ],
        top_matches=[node.code for node in matches if node.code],
    )


@router.post("/resolve", response_model=EffectiveTariffResult)
def resolve_tariff_stack(request: ResolveRequestModel) -> EffectiveTariffResult:
    """Return the effective duty rate and its program breakdown."""

    return resolve(
        request.base_rate,
        request.country_code,
        request.hts_code,
        customs_value=request.customs_value,
    )


@router.post("/compare", response_model=CompareResponseModel)
def compare_tariff_origins(request: CompareRequestModel) -> CompareResponseModel:
    results = compare_origins(
        request.base_rate,
        request.hts_code,
        request.countries,
        customs_value=request.customs_value,
    )
    return CompareResponseModel(hts_code=request.hts_code, results=results)


@router.get("/programs/{country_code}", response_model=ProgramListResponseModel)
def list_country_programs(
    country_code: str,
    hts_code: str = Query(..., min_length=2),
) -> ProgramListResponseModel:
    registry = get_duty_program_registry()
    lookup = registry.lookup(country_code, hts_code)
    profile = registry.country_profile(country_code)
    return ProgramListResponseModel(
        country_code=profile.country_code,
        country_name=profile.name,
        trade_status=profile.trade_status,
        hts_code=lookup.hts_code,
        data_source=lookup.data_source,
        programs=[
            ProgramSummaryModel(
                program_id=program.program_id,
                name=program.name,
                kind=program.kind.value,
                precedence=program.precedence,
                rate=program.rate_for(lookup.country_code, lookup.hts_code),
                requires_review=program.requires_review,
                legal_reference=program.legal_reference or None,
            )
            for program in lookup.programs
        ],
    )
