from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from podflow.models.hierarchical_budget import HierarchicalBudget


class BudgetRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_for_period(
        self,
        years: Iterable[int],
        months: Optional[Iterable[int]] = None,
    ) -> List[HierarchicalBudget]:
        query = self.db.query(HierarchicalBudget).filter(HierarchicalBudget.year.in_(list(years)))
        if months is not None:
            query = query.filter(HierarchicalBudget.month.in_(list(months)))
        return query.order_by(
            HierarchicalBudget.year,
            HierarchicalBudget.month,
            HierarchicalBudget.entity_type,
        ).all()

    def last_update(self, year: int) -> Optional[datetime]:
        return (
            self.db.query(func.max(HierarchicalBudget.updated_at))
            .filter(HierarchicalBudget.year == year)
            .scalar()
        )

    def get_by_id(self, budget_id: str) -> Optional[HierarchicalBudget]:
        return self.db.query(HierarchicalBudget).filter(HierarchicalBudget.id == budget_id).first()

    def get_by_ids(self, budget_ids: List[str]) -> List[HierarchicalBudget]:
        if not budget_ids:
            return []
        return self.db.query(HierarchicalBudget).filter(HierarchicalBudget.id.in_(budget_ids)).all()

    def get_by_key(self, entity_type: str, entity_id: str, year: int, month: int) -> Optional[HierarchicalBudget]:
        return (
            self.db.query(HierarchicalBudget)
            .filter(
                HierarchicalBudget.entity_type == entity_type,
                HierarchicalBudget.entity_id == entity_id,
                HierarchicalBudget.year == year,
                HierarchicalBudget.month == month,
            )
            .first()
        )

    def create(self, budget: HierarchicalBudget) -> HierarchicalBudget:
        self.db.add(budget)
        self.db.commit()
        self.db.refresh(budget)
        return budget

    def save(self, budget: HierarchicalBudget) -> HierarchicalBudget:
        self.db.commit()
        self.db.refresh(budget)
        return budget

    def save_all(self, budgets: List[HierarchicalBudget]) -> None:
        self.db.commit()
        for budget in budgets:
            self.db.refresh(budget)

    def delete(self, budget: HierarchicalBudget) -> None:
        self.db.delete(budget)
        self.db.commit()
