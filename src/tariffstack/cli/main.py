"""Command-line interface for tariffstack."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Sequence

import click

from ..settings import ScheduleSettings
from ..tariff.hierarchy import ScheduleRow, build_hierarchy
from ..tariff.keywords import ProductKeywords
from ..tariff.programs import (
    DutyProgramRegistry,
    RegistryConfigError,
    get_duty_program_registry,
    load_registry,
)
from ..tariff.relevance import score_hierarchy, top_matches
from ..tariff.resolver import compare_origins, resolve


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2))


def _registry(programs_path: Optional[str]) -> DutyProgramRegistry:
    try:
        if programs_path:
            return load_registry(programs_path)
        return get_duty_program_registry()
    except RegistryConfigError as exc:
        raise click.ClickException(str(exc)) from exc


programs_option = click.option(
    "--programs",
    "programs_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Duty program JSON to use instead of the configured registry.",
)
base_rate_option = click.option(
    "--base-rate",
    default=None,
    help="Base (MFN) rate as a percentage or rate text. Defaults to the configured baseline.",
)
value_option = click.option(
    "--value",
    "customs_value",
    type=click.FloatRange(min=0),
    default=None,
    help="Customs value used to estimate the duty owed.",
)


@click.group()
def cli() -> None:
    """tariffstack command suite."""


@cli.command("resolve")
@click.argument("hts_code")
@click.argument("country")
@base_rate_option
@value_option
@programs_option
def resolve_command(
    hts_code: str,
    country: str,
    base_rate: Optional[str],
    customs_value: Optional[float],
    programs_path: Optional[str],
) -> None:
    """Resolve the effective duty for HTS_CODE imported from COUNTRY."""

    result = resolve(
        base_rate,
        country,
        hts_code,
        registry=_registry(programs_path),
        customs_value=customs_value,
    )
    _emit(result.model_dump())


@cli.command("compare")
@click.argument("hts_code")
@click.argument("countries", nargs=-1, required=True)
@base_rate_option
@value_option
@programs_option
def compare_command(
    hts_code: str,
    countries: Sequence[str],
    base_rate: Optional[str],
    customs_value: Optional[float],
    programs_path: Optional[str],
) -> None:
    """Compare the effective duty for HTS_CODE across COUNTRIES, cheapest first."""

    results = compare_origins(
        base_rate,
        hts_code,
        countries,
        registry=_registry(programs_path),
        customs_value=customs_value,
    )
    _emit(
        [
            {
                "country_code": r.country_code,
                "effective_rate": r.effective_rate,
                "estimated_duty": r.estimated_duty,
                "data_source": r.data_source,
                "requires_review": r.requires_review,
            }
            for r in results
        ]
    )


@cli.command("programs")
@click.argument("country")
@click.option("--hts-code", required=True, help="HTS code the programs must cover.")
@programs_option
def programs_command(country: str, hts_code: str, programs_path: Optional[str]) -> None:
    """List the duty programs that apply to COUNTRY for an HTS code."""

    registry = _registry(programs_path)
    lookup = registry.lookup(country, hts_code)
    profile = registry.country_profile(country)
    _emit(
        {
            "country_code": profile.country_code,
            "country_name": profile.name,
            "data_source": lookup.data_source,
            "programs": [
                {
                    "program_id": p.program_id,
                    "kind": p.kind.value,
                    "rate": p.rate_for(lookup.country_code, lookup.hts_code),
                }
                for p in lookup.programs
            ],
        }
    )


@cli.command("hierarchy")
@click.argument("rows_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--product-type", "product_types", multiple=True, help="Product type keyword.")
@click.option("--material", "materials", multiple=True, help="Material keyword.")
@click.option("--demographic", "demographics", multiple=True, help="Demographic keyword.")
@click.option("--top", "top", default=3, show_default=True, type=click.IntRange(min=0))
def hierarchy_command(
    rows_file: str,
    product_types: Sequence[str],
    materials: Sequence[str],
    demographics: Sequence[str],
    top: int,
) -> None:
    """Rebuild the schedule tree in ROWS_FILE and print the best matching codes.

    ROWS_FILE is a JSON list of rows with ``code``, ``description``,
    ``indent`` and an optional ``rate_text``.
    """

    try:
        raw_rows = json.loads(Path(rows_file).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{rows_file} is not valid JSON: {exc}") from exc
    if not isinstance(raw_rows, list):
        raise click.ClickException(f"{rows_file} must contain a JSON list of rows")

    rows = []
    for index, raw in enumerate(raw_rows):
        if not isinstance(raw, dict):
            raise click.ClickException(f"Row {index} in {rows_file} must be a JSON object")
        try:
            rows.append(ScheduleRow.from_mapping(raw))
        except (TypeError, ValueError) as exc:
            raise click.ClickException(f"Row {index} in {rows_file} is not valid: {exc}") from exc

    result = build_hierarchy(rows, ScheduleSettings.from_env())
    keywords = ProductKeywords.from_mapping(
        {"product_types": product_types, "materials": materials, "demographics": demographics}
    )
    score_hierarchy(result.roots, keywords)
    _emit(
        {
            "node_count": result.node_count,
            "dropped_rows": result.dropped_rows,
            "warnings": [w.message for w in result.warnings],
            "top_matches": [
                {
                    "code": node.display_code,
                    "label": node.display_label,
                    "score": node.relevance_score,
                    "rate": node.effective_rate.display(),
                    "path": result.breadcrumb(node.id),
                }
                for node in top_matches(result.roots, limit=top)
            ],
        }
    )


if __name__ == "__main__":
    cli()
