from __future__ import annotations

from typing import Any, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tariffstack.tariff.codes import normalize_country


class ProgramContributionModel(BaseModel):
    """One line of the duty stack breakdown."""

    program_id: str
    program_name: str
    kind: str
    rate: float
    nominal_rate: Optional[float] = None
    is_waiver: bool = False
    waived_by: Optional[str] = None
    precedence: int = 0
    requires_review: bool = False
    chapter99_code: Optional[str] = None
    legal_reference: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class EffectiveTariffResult(BaseModel):
    """Effective duty for one code and origin, with its ordered breakdown."""

    hts_code: str
    country_code: str
    base_rate: float
    base_rate_known: bool = True
    contributions: Tuple[ProgramContributionModel, ...] = ()
    total_waiver: float = 0.0
    total_additional: float = 0.0
    effective_rate: float
    data_source: str = "registry"
    requires_review: bool = False
    warnings: Tuple[str, ...] = ()
    customs_value: Optional[float] = None
    estimated_duty: Optional[float] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def is_fallback(self) -> bool:
        return self.data_source == "fallback"


# ---------------------------------------------------------------------------
# Service request / response models
# ---------------------------------------------------------------------------
class ScheduleRowModel(BaseModel):
    code: Optional[str] = None
    description: str = ""
    indent: int = Field(default=0, ge=0)
    rate_text: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class KeywordsModel(BaseModel):
    materials: List[str] = Field(default_factory=list)
    demographics: List[str] = Field(default_factory=list)
    product_types: List[str] = Field(default_factory=list, alias="productTypes")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class HierarchyRequestModel(BaseModel):
    rows: List[ScheduleRowModel]
    keywords: Optional[KeywordsModel] = None
    top_matches: int = Field(default=3, ge=0, le=50)

    model_config = ConfigDict(extra="forbid")


class HierarchyNodeModel(BaseModel):
    id: str
    code: Optional[str] = None
    display_code: Optional[str] = None
    label: str
    context_label: Optional[str] = None
    depth: int
    effective_rate: str
    effective_rate_pct: Optional[float] = None
    rate_inherited: bool = False
    is_terminal: bool
    is_catch_all: bool
    is_grouping: bool
    relevance_score: float
    is_top_match: bool = False
    selectable_count: int = 0
    children: List["HierarchyNodeModel"] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class BuildWarningModel(BaseModel):
    kind: str
    row_id: str
    message: str

    model_config = ConfigDict(extra="forbid")


class HierarchyResponseModel(BaseModel):
    roots: List[HierarchyNodeModel]
    node_count: int
    dropped_rows: int
    dropped_codes: List[str] = Field(default_factory=list)
    warnings: List[BuildWarningModel] = Field(default_factory=list)
    top_matches: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class ResolveRequestModel(BaseModel):
    hts_code: str = Field(min_length=2)
    country_code: str = Field(min_length=2, max_length=2)
    base_rate: Optional[Union[float, str]] = None
    customs_value: Optional[float] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("country_code")
    @classmethod
    def _upper_country(cls, value: str) -> str:
        return normalize_country(value)

    @field_validator("base_rate")
    @classmethod
    def _non_negative_rate(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and value < 0:
            raise ValueError("base_rate cannot be negative")
        return value


class CompareRequestModel(BaseModel):
    hts_code: str = Field(min_length=2)
    countries: List[str] = Field(min_length=1)
    base_rate: Optional[Union[float, str]] = None
    customs_value: Optional[float] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")


class CompareResponseModel(BaseModel):
    hts_code: str
    results: List[EffectiveTariffResult]

    model_config = ConfigDict(extra="forbid")


class ProgramSummaryModel(BaseModel):
    program_id: str
    name: str
    kind: str
    precedence: int
    rate: Optional[float] = None
    requires_review: bool = False
    legal_reference: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ProgramListResponseModel(BaseModel):
    country_code: str
    country_name: str
    trade_status: str
    hts_code: str
    data_source: str
    programs: List[ProgramSummaryModel]

    model_config = ConfigDict(extra="forbid")


HierarchyNodeModel.model_rebuild()

__all__ = [
    "ProgramContributionModel",
    "EffectiveTariffResult",
    "ScheduleRowModel",
    "KeywordsModel",
    "HierarchyRequestModel",
    "HierarchyNodeModel",
    "BuildWarningModel",
    "HierarchyResponseModel",
    "ResolveRequestModel",
    "CompareRequestModel",
    "CompareResponseModel",
    "ProgramSummaryModel",
    "ProgramListResponseModel",
]
