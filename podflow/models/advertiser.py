from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from podflow.db.base import TENANT_SCHEMA, Base


class Advertiser(Base):
    __tablename__ = "advertisers"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False)
    agency_id = Column(
        String,
        ForeignKey(f"{TENANT_SCHEMA}.agencies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # public.users.id; no FK across schemas
    seller_id = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    agency = relationship("Agency", back_populates="advertisers")
    campaigns = relationship("Campaign", back_populates="advertiser")

    __table_args__ = (
        Index("idx_advertiser_seller_active", "seller_id", "is_active"),
        {"schema": TENANT_SCHEMA},
    )
