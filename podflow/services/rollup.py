"""
Bottom-up budget rollups: Advertiser -> Agency -> Seller.

Only advertiser-level rows carry money into the hierarchy. An advertiser that
belongs to an agency rolls up to the agency's seller; a direct advertiser rolls up
to its own seller. Each advertiser therefore lands in exactly one seller total.
Rollups are computed on every read and never stored.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from podflow.schemas.budget import (
    AgencyTotals,
    GrandTotals,
    IntegrityIssue,
    PeriodTotals,
    SellerTotals,
)

logger = logging.getLogger(__name__)

ALL_MONTHS = list(range(1, 13))

# Negative month values select quarters
QUARTER_MONTHS = {
    -1: [1, 2, 3],
    -2: [4, 5, 6],
    -3: [7, 8, 9],
    -4: [10, 11, 12],
}

PACING_AHEAD = 1.05
PACING_ON_PACE = 0.95


def resolve_months(month: Optional[int]) -> List[int]:
    """Translate the ``month`` filter into concrete months (None = whole year, -1..-4 = quarters)."""
    if month is None:
        return list(ALL_MONTHS)
    if 1 <= month <= 12:
        return [month]
    if month in QUARTER_MONTHS:
        return list(QUARTER_MONTHS[month])
    raise ValueError(f"month must be 1-12 or -1..-4 for quarters, got {month}")


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    if not denominator:
        return None
    return numerator / denominator


def year_over_year_growth(actual: float, previous_actual: float) -> Optional[float]:
    """(actual - previous) / previous; None when there is no previous-year base."""
    return safe_ratio(actual - previous_actual, previous_actual)


def expected_progress(year: int, months: Iterable[int], today: Optional[date] = None) -> float:
    """Share of the period that has elapsed: past months count fully, the current one by days."""
    today = today or date.today()
    months = list(months)
    if not months:
        return 0.0
    elapsed = 0.0
    for month in months:
        if (year, month) < (today.year, today.month):
            elapsed += 1.0
        elif (year, month) == (today.year, today.month):
            days_in_month = calendar.monthrange(year, month)[1]
            elapsed += min(today.day / days_in_month, 1.0)
    return elapsed / len(months)


def pacing_status(
    budget: float,
    actual: float,
    year: int,
    months: Iterable[int],
    today: Optional[date] = None,
) -> str:
    if not budget:
        return "no_budget"
    expected = expected_progress(year, months, today)
    ratio = (actual / budget) / expected if expected > 0 else 0.0
    if ratio >= PACING_AHEAD:
        return "ahead"
    if ratio >= PACING_ON_PACE:
        return "on_pace"
    return "behind"


@dataclass
class Attribution:
    advertiser_id: str
    seller_id: str
    agency_id: Optional[str] = None


@dataclass
class RollupResult:
    seller_totals: Dict[str, SellerTotals]
    agency_totals: Dict[str, AgencyTotals]
    grand_totals: GrandTotals
    issues: List[IntegrityIssue] = field(default_factory=list)


class Hierarchy:
    """Resolves which seller (and agency) each advertiser rolls up to."""

    def __init__(self, advertisers, agencies, sellers, schema: str = ""):
        self.advertisers = {a.id: a for a in advertisers}
        self.agencies = {a.id: a for a in agencies}
        self.sellers = {s.id: s for s in sellers}
        self.schema = schema
        self._issues: Dict[Tuple[str, str, str], IntegrityIssue] = {}

    @property
    def issues(self) -> List[IntegrityIssue]:
        return list(self._issues.values())

    def report(self, kind: str, entity_type: str, entity_id: str,
               missing_reference: Optional[str] = None, budget_id: Optional[str] = None) -> None:
        key = (kind, entity_type, entity_id)
        if key in self._issues:
            return
        self._issues[key] = IntegrityIssue(
            kind=kind,
            entity_type=entity_type,
            entity_id=entity_id,
            missing_reference=missing_reference,
            budget_id=budget_id,
        )
        logger.error(
            f"Data integrity: {kind} for {entity_type} {entity_id} "
            f"(reference={missing_reference}, budget={budget_id}, schema={self.schema})"
        )

    def seller_of_agency(self, agency_id: str) -> Optional[str]:
        agency = self.agencies.get(agency_id)
        if agency is None:
            return None
        if not agency.seller_id:
            self.report("unassigned_seller", "agency", agency_id)
            return None
        if agency.seller_id not in self.sellers:
            self.report("missing_seller", "agency", agency_id, missing_reference=agency.seller_id)
            return None
        return agency.seller_id

    def attribute(
        self, advertiser_id: str, budget_id: Optional[str] = None, include_inactive: bool = False
    ) -> Optional[Attribution]:
        """Return the attribution of an active advertiser, or None if it must contribute zero.

        ``include_inactive`` resolves inactive advertisers too, for listing only.
        """
        advertiser = self.advertisers.get(advertiser_id)
        if advertiser is None:
            self.report("missing_advertiser", "advertiser", advertiser_id,
                        missing_reference=advertiser_id, budget_id=budget_id)
            return None
        if not advertiser.is_active and not include_inactive:
            return None

        if advertiser.agency_id:
            if advertiser.agency_id not in self.agencies:
                self.report("missing_agency", "advertiser", advertiser_id,
                            missing_reference=advertiser.agency_id, budget_id=budget_id)
                return None
            seller_id = self.seller_of_agency(advertiser.agency_id)
            if seller_id is None:
                return None
            return Attribution(advertiser_id, seller_id, advertiser.agency_id)

        if not advertiser.seller_id:
            self.report("unassigned_seller", "advertiser", advertiser_id, budget_id=budget_id)
            return None
        if advertiser.seller_id not in self.sellers:
            self.report("missing_seller", "advertiser", advertiser_id,
                        missing_reference=advertiser.seller_id, budget_id=budget_id)
            return None
        return Attribution(advertiser_id, advertiser.seller_id)


class RollupAggregator:
    def __init__(self, hierarchy: Hierarchy, year: int, months: List[int], today: Optional[date] = None):
        self.hierarchy = hierarchy
        self.year = year
        self.months = months
        self.today = today

    def _in_scope(self, seller_id: Optional[str], seller_filter: Optional[str]) -> bool:
        return seller_filter is None or seller_id == seller_filter

    def _init_sellers(self, seller_filter: Optional[str]) -> Dict[str, SellerTotals]:
        totals = {}
        for seller in self.hierarchy.sellers.values():
            if not seller.is_active or not self._in_scope(seller.id, seller_filter):
                continue
            totals[seller.id] = self._new_seller(seller.id)
        return totals

    def _new_seller(self, seller_id: str) -> SellerTotals:
        seller = self.hierarchy.sellers.get(seller_id)
        return SellerTotals(
            seller_id=seller_id,
            seller_name=getattr(seller, "name", None),
            seller_email=getattr(seller, "email", None),
            periods=[PeriodTotals(year=self.year, month=m) for m in self.months],
        )

    def _init_agencies(self, seller_filter: Optional[str]) -> Dict[str, AgencyTotals]:
        totals = {}
        for agency in self.hierarchy.agencies.values():
            if not agency.is_active:
                continue
            seller_id = self.hierarchy.seller_of_agency(agency.id)
            if not self._in_scope(seller_id, seller_filter):
                continue
            totals[agency.id] = AgencyTotals(agency_id=agency.id, agency_name=agency.name, seller_id=seller_id)
        for advertiser in self.hierarchy.advertisers.values():
            if advertiser.is_active and advertiser.agency_id in totals:
                totals[advertiser.agency_id].advertiser_count += 1
        return totals

    def _seller(self, totals: Dict[str, SellerTotals], seller_id: str) -> SellerTotals:
        # Inactive sellers still collect what their active accounts booked
        if seller_id not in totals:
            totals[seller_id] = self._new_seller(seller_id)
        return totals[seller_id]

    def _period(self, seller: SellerTotals, month: int) -> Optional[PeriodTotals]:
        for period in seller.periods:
            if period.month == month:
                return period
        return None

    def aggregate(self, rows, previous_rows=(), seller_filter: Optional[str] = None) -> RollupResult:
        seller_totals = self._init_sellers(seller_filter)
        agency_totals = self._init_agencies(seller_filter)

        for row in rows:
            if row.year != self.year or row.month not in self.months:
                continue
            if row.entity_type == "seller":
                self._add_seller_goal(seller_totals, row, seller_filter)
                continue
            if row.entity_type != "advertiser":
                logger.warning(
                    f"Skipping {row.entity_type} budget {row.id}: agency figures derive from advertisers"
                )
                continue

            attribution = self.hierarchy.attribute(row.entity_id, budget_id=row.id)
            if attribution is None or not self._in_scope(attribution.seller_id, seller_filter):
                continue

            budget = row.budget_amount or 0
            actual = row.actual_amount or 0
            seller = self._seller(seller_totals, attribution.seller_id)
            seller.total_budget += budget
            seller.total_actual += actual
            if attribution.agency_id:
                seller.agency_budget += budget
                agency = agency_totals.get(attribution.agency_id)
                if agency is not None:
                    agency.total_budget += budget
                    agency.total_actual += actual
            else:
                seller.advertiser_budget += budget

            period = self._period(seller, row.month)
            if period is not None:
                period.total_budget += budget
                period.total_actual += actual
                if attribution.agency_id:
                    period.agency_budget += budget
                else:
                    period.advertiser_budget += budget

        for row in previous_rows:
            if row.entity_type != "advertiser" or row.month not in self.months:
                continue
            attribution = self.hierarchy.attribute(row.entity_id, budget_id=row.id)
            if attribution is None or not self._in_scope(attribution.seller_id, seller_filter):
                continue
            actual = row.actual_amount or 0
            seller = self._seller(seller_totals, attribution.seller_id)
            seller.previous_year_actual += actual
            if attribution.agency_id in agency_totals:
                agency_totals[attribution.agency_id].previous_year_actual += actual
            period = self._period(seller, row.month)
            if period is not None:
                period.previous_year_actual += actual

        for seller in seller_totals.values():
            self._finalize_seller(seller)
        for agency in agency_totals.values():
            self._finalize_agency(agency)

        return RollupResult(
            seller_totals=seller_totals,
            agency_totals=agency_totals,
            grand_totals=grand_totals(seller_totals.values()),
            issues=self.hierarchy.issues,
        )

    def _add_seller_goal(self, totals: Dict[str, SellerTotals], row, seller_filter: Optional[str]) -> None:
        if not row.is_developmental:
            logger.warning(f"Skipping seller budget {row.id}: only developmental goals are tracked at seller level")
            return
        if row.entity_id not in self.hierarchy.sellers:
            self.hierarchy.report("missing_seller", "seller", row.entity_id,
                                  missing_reference=row.entity_id, budget_id=row.id)
            return
        if not self._in_scope(row.entity_id, seller_filter):
            return
        seller = self._seller(totals, row.entity_id)
        seller.developmental_budget += row.budget_amount or 0
        period = self._period(seller, row.month)
        if period is not None:
            period.developmental_budget += row.budget_amount or 0

    @staticmethod
    def _finalize_agency(agency: AgencyTotals) -> None:
        agency.variance = agency.total_actual - agency.total_budget
        agency.variance_percent = safe_ratio(agency.variance, agency.total_budget)
        agency.year_over_year_growth = year_over_year_growth(agency.total_actual, agency.previous_year_actual)
        agency.is_on_target = agency.variance >= 0

    def _finalize_seller(self, seller: SellerTotals) -> None:
        seller.variance = seller.total_actual - seller.total_budget
        seller.variance_percent = safe_ratio(seller.variance, seller.total_budget)
        seller.year_over_year_growth = year_over_year_growth(seller.total_actual, seller.previous_year_actual)
        seller.is_on_target = seller.variance >= 0
        seller.pacing_status = pacing_status(
            seller.total_budget, seller.total_actual, self.year, self.months, self.today
        )


def grand_totals(sellers: Iterable[SellerTotals]) -> GrandTotals:
    totals = GrandTotals()
    for seller in sellers:
        totals.total_budget += seller.total_budget
        totals.total_actual += seller.total_actual
        totals.previous_year_actual += seller.previous_year_actual
    totals.variance = totals.total_actual - totals.total_budget
    totals.variance_percent = safe_ratio(totals.variance, totals.total_budget)
    totals.year_over_year_growth = year_over_year_growth(totals.total_actual, totals.previous_year_actual)
    return totals
