from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from podflow.db.base import TENANT_SCHEMA, Base

ENTITY_TYPES = ("advertiser", "agency", "seller")


class HierarchicalBudget(Base):
    __tablename__ = "hierarchical_budgets"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    entity_type = Column(String, nullable=False)
    # advertiser/agency id in this schema, or public.users.id for sellers
    entity_id = Column(String, nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    budget_amount = Column(Float, nullable=False, default=0)
    actual_amount = Column(Float, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_by = Column(String, nullable=False)
    updated_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "year", "month", name="uq_budget_entity_period"),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_budget_month"),
        CheckConstraint("entity_type IN ('advertiser', 'agency', 'seller')", name="ck_budget_entity_type"),
        CheckConstraint("budget_amount >= 0", name="ck_budget_amount_positive"),
        CheckConstraint("actual_amount >= 0", name="ck_actual_amount_positive"),
        Index("idx_budget_year_month", "year", "month"),
        Index("idx_budget_entity", "entity_type", "entity_id"),
        {"schema": TENANT_SCHEMA},
    )

    @property
    def is_developmental(self) -> bool:
        return self.entity_type == "seller" and "developmental" in (self.notes or "").lower()
