from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from podflow.db.base import TENANT_SCHEMA, Base


class Agency(Base):
    __tablename__ = "agencies"
    __table_args__ = {"schema": TENANT_SCHEMA}

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False)
    # public.users.id; no FK across schemas
    seller_id = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    advertisers = relationship("Advertiser", back_populates="agency")
