from datetime import date
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import AfterValidator

from podflow.api.dependencies import get_budget_service, require_budget_access, require_budget_manager
from podflow.core.config import settings
from podflow.models.user import User
from podflow.schemas.budget import (
    BatchUpdatePayload,
    BatchUpdateResponse,
    BudgetCreate,
    BudgetResponse,
    BudgetUpdate,
    ComparisonResponse,
    EntityType,
    GroupBy,
    HierarchicalResponse,
)
from podflow.schemas.entity import EntitiesResponse
from podflow.services.budget_service import HierarchicalBudgetService
from podflow.services.rollup import resolve_months

router = APIRouter(tags=["budget"])


def _year_query(description: str):
    return Query(None, ge=settings.MIN_BUDGET_YEAR, le=settings.MAX_BUDGET_YEAR, description=description)


def _check_month(month: Optional[int]) -> Optional[int]:
    if month is not None:
        resolve_months(month)
    return month


MonthFilter = Annotated[Optional[int], AfterValidator(_check_month)]


@router.get("/hierarchical", response_model=HierarchicalResponse)
def get_hierarchical_budgets(
    year: Optional[int] = _year_query("Budget year (defaults to the current year)"),
    month: MonthFilter = Query(None, description="Month 1-12, or -1..-4 for Q1..Q4"),
    seller_id: Optional[str] = Query(None, alias="sellerId"),
    entity_type: Optional[EntityType] = Query(None, alias="entityType"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    current_user: User = Depends(require_budget_access),
    service: HierarchicalBudgetService = Depends(get_budget_service),
):
    return service.get_hierarchical(
        current_user,
        year=year or date.today().year,
        month=month,
        seller_id=seller_id,
        entity_type=entity_type,
        include_inactive=include_inactive,
    )


@router.post("/hierarchical", response_model=BudgetResponse, status_code=status.HTTP_201_CREATED)
def create_hierarchical_budget(
    payload: BudgetCreate,
    current_user: User = Depends(require_budget_access),
    service: HierarchicalBudgetService = Depends(get_budget_service),
):
    return service.create(current_user, payload)


# Declared before /{budget_id} so "batch" is not taken as an id
@router.put("/hierarchical/batch", response_model=BatchUpdateResponse)
def batch_update_hierarchical_budgets(
    payload: BatchUpdatePayload,
    current_user: User = Depends(require_budget_access),
    service: HierarchicalBudgetService = Depends(get_budget_service),
):
    return service.batch_update(current_user, payload.updates)


@router.put("/hierarchical/{budget_id}", response_model=BudgetResponse)
def update_hierarchical_budget(
    budget_id: str,
    payload: BudgetUpdate,
    current_user: User = Depends(require_budget_access),
    service: HierarchicalBudgetService = Depends(get_budget_service),
):
    return service.update(current_user, budget_id, payload)


@router.delete("/hierarchical/{budget_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_hierarchical_budget(
    budget_id: str,
    current_user: User = Depends(require_budget_manager),
    service: HierarchicalBudgetService = Depends(get_budget_service),
):
    service.delete(current_user, budget_id)
    return None


@router.get("/comparison", response_model=ComparisonResponse)
def get_budget_comparison(
    year: Optional[int] = _year_query("Year under review (defaults to the current year)"),
    compare_year: Optional[int] = Query(
        None, alias="compareYear", ge=settings.MIN_BUDGET_YEAR, le=settings.MAX_BUDGET_YEAR,
        description="Baseline year (defaults to year - 1)",
    ),
    seller_id: Optional[str] = Query(None, alias="sellerId"),
    group_by: GroupBy = Query("month", alias="groupBy"),
    current_user: User = Depends(require_budget_access),
    service: HierarchicalBudgetService = Depends(get_budget_service),
):
    return service.get_comparison(
        current_user,
        year=year or date.today().year,
        compare_year=compare_year,
        seller_id=seller_id,
        group_by=group_by,
    )


@router.get("/entities", response_model=EntitiesResponse)
def list_budget_entities(
    entity_type: Optional[Literal["seller", "agency", "advertiser"]] = Query(None, alias="type"),
    current_user: User = Depends(require_budget_access),
    service: HierarchicalBudgetService = Depends(get_budget_service),
):
    return service.list_entities(current_user, entity_type)
