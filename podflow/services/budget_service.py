import logging
from datetime import date
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError

from podflow.core.cache import cache_get, cache_set
from podflow.core.config import settings
from podflow.models.hierarchical_budget import HierarchicalBudget
from podflow.models.user import User
from podflow.repositories.budget_repository import BudgetRepository
from podflow.repositories.entity_repository import EntityRepository
from podflow.repositories.user_repository import UserRepository
from podflow.schemas.budget import (
    BatchError,
    BatchUpdateResponse,
    BudgetCreate,
    BudgetRow,
    BudgetUpdate,
    ComparisonResponse,
    HierarchicalMetadata,
    HierarchicalResponse,
    Rollups,
)
from podflow.schemas.entity import AdvertiserOption, AgencyOption, EntitiesResponse, SellerOption
from podflow.services.comparison import build_comparison
from podflow.services.rollup import Hierarchy, RollupAggregator, resolve_months, safe_ratio

logger = logging.getLogger(__name__)

ENTITY_ORDER = {"seller": 1, "agency": 2, "advertiser": 3}


class HierarchicalBudgetService:
    """Budget reads, rollups and edits for one organization schema."""

    def __init__(
        self,
        budget_repo: BudgetRepository,
        entity_repo: EntityRepository,
        user_repo: UserRepository,
        schema: str,
        organization_id: str,
    ):
        self.budget_repo = budget_repo
        self.entity_repo = entity_repo
        self.user_repo = user_repo
        self.schema = schema
        self.organization_id = organization_id

    # -- helpers -----------------------------------------------------------

    def _hierarchy(self) -> Hierarchy:
        return Hierarchy(
            advertisers=self.entity_repo.list_advertisers(),
            agencies=self.entity_repo.list_agencies(),
            sellers=self.user_repo.list_sellers(self.organization_id, include_inactive=True),
            schema=self.schema,
        )

    @staticmethod
    def _seller_scope(user: User, seller_id: Optional[str]) -> Optional[str]:
        # Sales users only ever see their own book
        if user.role == "sales":
            return user.id
        return seller_id

    def _owner_of(self, entity_type: str, entity_id: str) -> Optional[str]:
        if entity_type == "seller":
            return entity_id
        if entity_type == "agency":
            agency = self.entity_repo.get_agency(entity_id)
            return agency.seller_id if agency else None
        advertiser = self.entity_repo.get_advertiser(entity_id)
        if advertiser is None:
            return None
        if advertiser.agency_id:
            agency = self.entity_repo.get_agency(advertiser.agency_id)
            return agency.seller_id if agency else None
        return advertiser.seller_id

    def _can_edit(self, user: User, budget: HierarchicalBudget) -> bool:
        if user.is_budget_manager:
            return True
        return self._owner_of(budget.entity_type, budget.entity_id) == user.id

    @staticmethod
    def _apply(budget: HierarchicalBudget, payload: BudgetUpdate, user: User) -> None:
        if payload.budget_amount is not None:
            budget.budget_amount = payload.budget_amount
        if payload.actual_amount is not None:
            budget.actual_amount = payload.actual_amount
        if payload.notes is not None:
            budget.notes = payload.notes
        budget.updated_by = user.id

    # -- reads -------------------------------------------------------------

    def get_hierarchical(
        self,
        user: User,
        year: int,
        month: Optional[int] = None,
        seller_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        include_inactive: bool = False,
        today: Optional[date] = None,
    ) -> HierarchicalResponse:
        try:
            months = resolve_months(month)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        seller_filter = self._seller_scope(user, seller_id)
        rows = self.budget_repo.list_for_period([year, year - 1], months)
        current = [r for r in rows if r.year == year]
        previous = [r for r in rows if r.year == year - 1]
        logger.info(
            f"Hierarchical budgets {self.schema} year={year} months={months} seller={seller_filter}: "
            f"{len(current)} rows ({len(previous)} prior-year)"
        )

        hierarchy = self._hierarchy()
        result = RollupAggregator(hierarchy, year, months, today).aggregate(current, previous, seller_filter)
        budgets = self._budget_rows(hierarchy, current, year, month, seller_filter, entity_type, include_inactive)

        return HierarchicalResponse(
            budgets=budgets,
            rollups=Rollups(
                seller_totals=result.seller_totals,
                agency_totals=result.agency_totals,
                grand_totals=result.grand_totals,
            ),
            integrity_issues=hierarchy.issues,
            metadata=HierarchicalMetadata(
                year=year,
                month=month,
                months=months,
                total_sellers=len(result.seller_totals),
                total_entities=len(budgets),
                last_update=self.budget_repo.last_update(year),
            ),
        )

    def _budget_rows(
        self,
        hierarchy: Hierarchy,
        rows: List[HierarchicalBudget],
        year: int,
        month: Optional[int],
        seller_filter: Optional[str],
        entity_type: Optional[str],
        include_inactive: bool = False,
    ) -> List[BudgetRow]:
        budgets: List[BudgetRow] = []
        budgeted = set()

        for row in rows:
            budgeted.add((row.entity_type, row.entity_id))
            if entity_type and row.entity_type != entity_type:
                continue
            enriched = self._enrich(hierarchy, row, include_inactive)
            if enriched is None:
                continue
            if seller_filter is not None and enriched.seller_id != seller_filter:
                continue
            budgets.append(enriched)

        # Accounts without a budget line still show up, at zero
        if entity_type in (None, "advertiser"):
            placeholder_month = month if month and month > 0 else 0
            for advertiser in hierarchy.advertisers.values():
                if ("advertiser", advertiser.id) in budgeted:
                    continue
                if not advertiser.is_active and not include_inactive:
                    continue
                attribution = hierarchy.attribute(advertiser.id, include_inactive=include_inactive)
                if attribution is None:
                    continue
                if seller_filter is not None and attribution.seller_id != seller_filter:
                    continue
                budgets.append(self._row_for_advertiser(
                    hierarchy, advertiser, attribution.seller_id, attribution.agency_id,
                    id=f"missing_{advertiser.id}_{year}_{placeholder_month}",
                    year=year,
                    month=placeholder_month,
                    is_placeholder=True,
                ))

        budgets.sort(key=lambda b: (
            b.seller_name or "",
            ENTITY_ORDER.get(b.entity_type, 9),
            b.entity_name or "",
            b.month,
        ))
        return budgets

    def _enrich(
        self, hierarchy: Hierarchy, row: HierarchicalBudget, include_inactive: bool = False
    ) -> Optional[BudgetRow]:
        fields = dict(
            id=row.id,
            year=row.year,
            month=row.month,
            budget_amount=row.budget_amount or 0,
            actual_amount=row.actual_amount or 0,
            notes=row.notes,
        )
        if row.entity_type == "advertiser":
            attribution = hierarchy.attribute(row.entity_id, budget_id=row.id, include_inactive=include_inactive)
            if attribution is None:
                return None
            advertiser = hierarchy.advertisers[row.entity_id]
            return self._row_for_advertiser(
                hierarchy, advertiser, attribution.seller_id, attribution.agency_id, **fields
            )
        if row.entity_type == "agency":
            agency = hierarchy.agencies.get(row.entity_id)
            if agency is None or (not agency.is_active and not include_inactive):
                return None
            seller_id = hierarchy.seller_of_agency(agency.id)
            return self._make_row(hierarchy, "agency", agency.id, agency.name, seller_id,
                                  agency.id, agency.name, **fields)
        seller = hierarchy.sellers.get(row.entity_id)
        if seller is None:
            return None
        return self._make_row(hierarchy, "seller", seller.id, seller.name, seller.id, None, None, **fields)

    def _row_for_advertiser(self, hierarchy, advertiser, seller_id, agency_id, **fields) -> BudgetRow:
        agency = hierarchy.agencies.get(agency_id) if agency_id else None
        return self._make_row(
            hierarchy, "advertiser", advertiser.id, advertiser.name, seller_id,
            agency_id, agency.name if agency else None, **fields
        )

    @staticmethod
    def _make_row(hierarchy, entity_type, entity_id, entity_name, seller_id,
                  agency_id, agency_name, **fields) -> BudgetRow:
        seller = hierarchy.sellers.get(seller_id) if seller_id else None
        budget = fields.get("budget_amount", 0)
        actual = fields.get("actual_amount", 0)
        return BudgetRow(
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            seller_id=seller_id,
            seller_name=seller.name if seller else None,
            agency_id=agency_id,
            agency_name=agency_name,
            variance=actual - budget,
            variance_percent=safe_ratio(actual - budget, budget),
            **fields,
        )

    def get_comparison(
        self,
        user: User,
        year: int,
        compare_year: Optional[int] = None,
        seller_id: Optional[str] = None,
        group_by: str = "month",
        today: Optional[date] = None,
    ) -> ComparisonResponse:
        compare_year = compare_year or year - 1
        seller_filter = self._seller_scope(user, seller_id)
        rows = self.budget_repo.list_for_period([year, compare_year])
        current = [r for r in rows if r.year == year]
        previous = [r for r in rows if r.year == compare_year]
        return build_comparison(
            self._hierarchy(), current, previous, year, compare_year, group_by, seller_filter, today
        )

    def list_entities(self, user: User, entity_type: Optional[str] = None) -> EntitiesResponse:
        scope = user.id if user.role == "sales" else "all"
        cache_key = f"budget_entities:{self.schema}:{scope}:{entity_type or 'all'}"
        cached = cache_get(cache_key)
        if cached is not None:
            return EntitiesResponse(**cached)

        response = EntitiesResponse()
        own_only = user.role == "sales"

        if entity_type in (None, "seller"):
            sellers = self.user_repo.list_sellers(self.organization_id)
            response.sellers = [
                SellerOption(id=s.id, name=s.name, email=s.email, role=s.role)
                for s in sellers
                if not own_only or s.id == user.id
            ]

        if entity_type in (None, "agency", "advertiser"):
            agencies = self.entity_repo.list_agencies(include_inactive=False)
            agency_sellers = {a.id: a.seller_id for a in agencies}
            if entity_type in (None, "agency"):
                response.agencies = [
                    AgencyOption.model_validate(a)
                    for a in agencies
                    if not own_only or a.seller_id == user.id
                ]
            if entity_type in (None, "advertiser"):
                counts = self.entity_repo.campaign_counts_by_advertiser()
                for advertiser in self.entity_repo.list_advertisers(include_inactive=False):
                    owner = agency_sellers.get(advertiser.agency_id) if advertiser.agency_id else advertiser.seller_id
                    if own_only and owner != user.id:
                        continue
                    response.advertisers.append(AdvertiserOption(
                        id=advertiser.id,
                        name=advertiser.name,
                        agency_id=advertiser.agency_id,
                        seller_id=owner,
                        campaign_count=counts.get(advertiser.id, 0),
                    ))

        cache_set(cache_key, response.model_dump())
        return response

    # -- writes ------------------------------------------------------------

    def create(self, user: User, payload: BudgetCreate) -> HierarchicalBudget:
        if payload.entity_type == "agency":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Agency budgets are calculated from their advertisers. Set budgets at the advertiser level.",
            )
        developmental = "developmental" in (payload.notes or "").lower()
        if payload.entity_type == "seller" and not developmental:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Seller budgets are calculated from their accounts. Only developmental goals can be set at the seller level.",
            )

        if payload.entity_type == "advertiser":
            advertiser = self.entity_repo.get_advertiser(payload.entity_id)
            if advertiser is None or not advertiser.is_active:
                logger.warning(f"Budget create rejected: advertiser {payload.entity_id} not found in {self.schema}")
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Advertiser not found or inactive")
            if not advertiser.name or not advertiser.name.strip():
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Advertiser has invalid name")
        else:
            seller = self.user_repo.get_by_id(payload.entity_id)
            if (
                seller is None
                or seller.role != "sales"
                or not seller.is_active
                or seller.organization_id != self.organization_id
            ):
                logger.warning(f"Budget create rejected: seller {payload.entity_id} not found")
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Seller not found")

        if not user.is_budget_manager and self._owner_of(payload.entity_type, payload.entity_id) != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only set budgets for your own accounts",
            )

        existing = self.budget_repo.get_by_key(payload.entity_type, payload.entity_id, payload.year, payload.month)
        if existing is not None:
            if developmental:
                return existing
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Budget entry already exists for this entity and period",
            )

        budget = HierarchicalBudget(
            entity_type=payload.entity_type,
            entity_id=payload.entity_id,
            year=payload.year,
            month=payload.month,
            budget_amount=payload.budget_amount,
            actual_amount=payload.actual_amount,
            notes=payload.notes,
            created_by=user.id,
        )
        try:
            created = self.budget_repo.create(budget)
        except IntegrityError:
            # concurrent insert of the same key
            self.budget_repo.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Budget entry already exists for this entity and period",
            )
        logger.info(
            f"Budget {created.id} created in {self.schema} for {payload.entity_type} {payload.entity_id} "
            f"{payload.year}-{payload.month:02d} by {user.id}"
        )
        return created

    def update(self, user: User, budget_id: str, payload: BudgetUpdate) -> HierarchicalBudget:
        budget = self.budget_repo.get_by_id(budget_id)
        if budget is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
        if not self._can_edit(user, budget):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only edit budgets for your own accounts")
        self._apply(budget, payload, user)
        saved = self.budget_repo.save(budget)
        logger.info(f"Budget {budget_id} updated in {self.schema} by {user.id}")
        return saved

    def batch_update(self, user: User, updates) -> BatchUpdateResponse:
        limit = settings.BATCH_UPDATE_LIMIT
        if len(updates) > limit:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Maximum {limit} updates per batch",
            )

        found = {b.id: b for b in self.budget_repo.get_by_ids([u.id for u in updates])}
        success: List[str] = []
        errors: List[BatchError] = []
        changed: List[HierarchicalBudget] = []
        for item in updates:
            budget = found.get(item.id)
            if budget is None:
                errors.append(BatchError(id=item.id, error="Budget not found"))
                continue
            if not self._can_edit(user, budget):
                errors.append(BatchError(id=item.id, error="Not allowed to edit this budget"))
                continue
            self._apply(budget, item, user)
            changed.append(budget)
            success.append(item.id)

        if changed:
            self.budget_repo.save_all(changed)
        if errors:
            logger.warning(f"Batch update in {self.schema}: {len(errors)} of {len(updates)} items rejected")
        logger.info(f"Batch update in {self.schema} by {user.id}: {len(success)} saved")
        return BatchUpdateResponse(success=success, errors=errors)

    def delete(self, user: User, budget_id: str) -> None:
        if not user.is_budget_manager:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        budget = self.budget_repo.get_by_id(budget_id)
        if budget is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Budget not found")
        self.budget_repo.delete(budget)
        logger.info(f"Budget {budget_id} deleted from {self.schema} by {user.id}")
