from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from podflow.db.base import TENANT_SCHEMA, Base


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = {"schema": TENANT_SCHEMA}

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False)
    advertiser_id = Column(
        String,
        ForeignKey(f"{TENANT_SCHEMA}.advertisers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    budget = Column(Float, nullable=True, default=0)
    probability = Column(Integer, nullable=False, default=10)  # 0, 10, 35, 65, 90, 100
    status = Column(String, nullable=False, default="draft")
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    advertiser = relationship("Advertiser", back_populates="campaigns")
