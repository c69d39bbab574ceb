import logging
from datetime import date
from typing import List, Optional, Tuple

from podflow.schemas.budget import (
    ComparisonMetadata,
    ComparisonResponse,
    ComparisonRow,
    ComparisonSummary,
)
from podflow.services.rollup import (
    ALL_MONTHS,
    QUARTER_MONTHS,
    Hierarchy,
    RollupAggregator,
    RollupResult,
    year_over_year_growth,
)

logger = logging.getLogger(__name__)


def comparison_periods(year: int, group_by: str) -> List[Tuple[str, List[int]]]:
    """Label and months of each comparison bucket."""
    if group_by == "month":
        return [(f"{year}-{m:02d}", [m]) for m in ALL_MONTHS]
    if group_by == "quarter":
        return [(f"Q{-q} {year}", months) for q, months in sorted(QUARTER_MONTHS.items(), reverse=True)]
    if group_by == "year":
        return [(str(year), list(ALL_MONTHS))]
    raise ValueError(f"Unsupported group_by: {group_by}")


def _sellers_on_off(result: RollupResult) -> Tuple[int, int]:
    # Sellers without a budget for the period are neither on nor off target
    budgeted = [s for s in result.seller_totals.values() if s.total_budget > 0]
    on_target = sum(1 for s in budgeted if s.is_on_target)
    return on_target, len(budgeted) - on_target


def build_comparison(
    hierarchy: Hierarchy,
    current_rows,
    previous_rows,
    year: int,
    compare_year: int,
    group_by: str = "month",
    seller_filter: Optional[str] = None,
    today: Optional[date] = None,
) -> ComparisonResponse:
    rows: List[ComparisonRow] = []
    for label, months in comparison_periods(year, group_by):
        result = RollupAggregator(hierarchy, year, months, today).aggregate(
            current_rows, previous_rows, seller_filter
        )
        totals = result.grand_totals
        on_target, off_target = _sellers_on_off(result)
        rows.append(ComparisonRow(
            period=label,
            current_budget=totals.total_budget,
            current_actual=totals.total_actual,
            previous_actual=totals.previous_year_actual,
            budget_variance=totals.variance,
            budget_variance_percent=totals.variance_percent,
            year_over_year_growth=totals.year_over_year_growth,
            is_on_target=totals.variance >= 0,
            sellers_on_target=on_target,
            sellers_off_target=off_target,
        ))

    whole_year = RollupAggregator(hierarchy, year, list(ALL_MONTHS), today).aggregate(
        current_rows, previous_rows, seller_filter
    )
    summary = summarize(rows)
    summary.sellers_on_target, summary.sellers_off_target = _sellers_on_off(whole_year)

    logger.info(f"Built {group_by} comparison {year} vs {compare_year} ({len(rows)} periods, seller={seller_filter})")
    return ComparisonResponse(
        comparison=rows,
        summary=summary,
        metadata=ComparisonMetadata(
            year=year,
            compare_year=compare_year,
            group_by=group_by,
            seller_id=seller_filter,
        ),
    )


def summarize(rows: List[ComparisonRow]) -> ComparisonSummary:
    summary = ComparisonSummary(periods_analyzed=len(rows))
    for row in rows:
        summary.total_current_budget += row.current_budget
        summary.total_current_actual += row.current_actual
        summary.total_previous_actual += row.previous_actual
    summary.overall_variance = summary.total_current_actual - summary.total_current_budget
    summary.overall_yoy_growth = year_over_year_growth(summary.total_current_actual, summary.total_previous_actual)

    # periods with no budget have no meaningful variance percent
    ranked = [r for r in rows if r.budget_variance_percent is not None]
    if ranked:
        summary.best_period = max(ranked, key=lambda r: r.budget_variance_percent)
        summary.worst_period = min(ranked, key=lambda r: r.budget_variance_percent)
    return summary
