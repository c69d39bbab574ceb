from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from podflow.core.config import settings

EntityType = Literal["advertiser", "agency", "seller"]
GroupBy = Literal["month", "quarter", "year"]
PacingStatus = Literal["no_budget", "ahead", "on_pace", "behind"]


def _check_year(year: int) -> int:
    if not settings.MIN_BUDGET_YEAR <= year <= settings.MAX_BUDGET_YEAR:
        raise ValueError(
            f"year must be between {settings.MIN_BUDGET_YEAR} and {settings.MAX_BUDGET_YEAR}"
        )
    return year


class BudgetCreate(BaseModel):
    entity_type: EntityType
    entity_id: str = Field(..., min_length=1)
    year: int
    month: int = Field(..., ge=1, le=12)
    budget_amount: float = Field(..., ge=0)
    actual_amount: float = Field(0, ge=0)
    notes: Optional[str] = None

    @field_validator("year")
    @classmethod
    def validate_year(cls, year: int) -> int:
        return _check_year(year)


class BudgetUpdate(BaseModel):
    budget_amount: Optional[float] = Field(None, ge=0)
    actual_amount: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class BatchBudgetUpdate(BudgetUpdate):
    id: str = Field(..., min_length=1)


class BatchUpdatePayload(BaseModel):
    updates: List[BatchBudgetUpdate]


class BatchError(BaseModel):
    id: str
    error: str


class BatchUpdateResponse(BaseModel):
    success: List[str]
    errors: List[BatchError]


class BudgetResponse(BaseModel):
    id: str
    entity_type: EntityType
    entity_id: str
    year: int
    month: int
    budget_amount: float
    actual_amount: float
    notes: Optional[str] = None
    created_by: str
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BudgetRow(BaseModel):
    """A budget line as shown in the hierarchical grid, enriched with hierarchy names."""
    id: str
    entity_type: EntityType
    entity_id: str
    entity_name: Optional[str] = None
    seller_id: Optional[str] = None
    seller_name: Optional[str] = None
    agency_id: Optional[str] = None
    agency_name: Optional[str] = None
    year: int
    month: int
    budget_amount: float = 0
    actual_amount: float = 0
    variance: float = 0
    variance_percent: Optional[float] = None
    notes: Optional[str] = None
    is_placeholder: bool = False


class PeriodTotals(BaseModel):
    year: int
    month: int
    total_budget: float = 0
    total_actual: float = 0
    previous_year_actual: float = 0
    advertiser_budget: float = 0
    agency_budget: float = 0
    developmental_budget: float = 0


class AgencyTotals(BaseModel):
    agency_id: str
    agency_name: Optional[str] = None
    seller_id: Optional[str] = None
    total_budget: float = 0
    total_actual: float = 0
    variance: float = 0
    variance_percent: Optional[float] = None
    previous_year_actual: float = 0
    year_over_year_growth: Optional[float] = None
    is_on_target: bool = True
    advertiser_count: int = 0


class SellerTotals(BaseModel):
    seller_id: str
    seller_name: Optional[str] = None
    seller_email: Optional[str] = None
    total_budget: float = 0
    total_actual: float = 0
    advertiser_budget: float = 0
    agency_budget: float = 0
    developmental_budget: float = 0
    variance: float = 0
    variance_percent: Optional[float] = None
    previous_year_actual: float = 0
    year_over_year_growth: Optional[float] = None
    is_on_target: bool = True
    pacing_status: PacingStatus = "no_budget"
    periods: List[PeriodTotals] = []


class GrandTotals(BaseModel):
    total_budget: float = 0
    total_actual: float = 0
    variance: float = 0
    variance_percent: Optional[float] = None
    previous_year_actual: float = 0
    year_over_year_growth: Optional[float] = None


class IntegrityIssue(BaseModel):
    kind: str
    entity_type: str
    entity_id: str
    missing_reference: Optional[str] = None
    budget_id: Optional[str] = None


class Rollups(BaseModel):
    seller_totals: Dict[str, SellerTotals]
    agency_totals: Dict[str, AgencyTotals]
    grand_totals: GrandTotals


class HierarchicalMetadata(BaseModel):
    year: int
    month: Optional[int] = None
    months: List[int]
    total_sellers: int = 0
    total_entities: int = 0
    last_update: Optional[datetime] = None


class HierarchicalResponse(BaseModel):
    budgets: List[BudgetRow]
    rollups: Rollups
    integrity_issues: List[IntegrityIssue] = []
    metadata: HierarchicalMetadata


class ComparisonRow(BaseModel):
    period: str
    current_budget: float = 0
    current_actual: float = 0
    previous_actual: float = 0
    budget_variance: float = 0
    budget_variance_percent: Optional[float] = None
    year_over_year_growth: Optional[float] = None
    is_on_target: bool = True
    sellers_on_target: int = 0
    sellers_off_target: int = 0


class ComparisonSummary(BaseModel):
    total_current_budget: float = 0
    total_current_actual: float = 0
    total_previous_actual: float = 0
    overall_variance: float = 0
    overall_yoy_growth: Optional[float] = None
    sellers_on_target: int = 0
    sellers_off_target: int = 0
    periods_analyzed: int = 0
    best_period: Optional[ComparisonRow] = None
    worst_period: Optional[ComparisonRow] = None


class ComparisonMetadata(BaseModel):
    year: int
    compare_year: int
    group_by: GroupBy
    seller_id: Optional[str] = None


class ComparisonResponse(BaseModel):
    comparison: List[ComparisonRow]
    summary: ComparisonSummary
    metadata: ComparisonMetadata
