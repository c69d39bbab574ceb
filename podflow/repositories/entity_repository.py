from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from podflow.models.advertiser import Advertiser
from podflow.models.agency import Agency
from podflow.models.campaign import Campaign


class EntityRepository:
    """Reads advertisers, agencies and campaigns from the tenant schema."""

    def __init__(self, db: Session):
        self.db = db

    def list_advertisers(self, include_inactive: bool = True) -> List[Advertiser]:
        query = self.db.query(Advertiser)
        if not include_inactive:
            query = query.filter(Advertiser.is_active.is_(True))
        return query.order_by(Advertiser.name).all()

    def list_agencies(self, include_inactive: bool = True) -> List[Agency]:
        query = self.db.query(Agency)
        if not include_inactive:
            query = query.filter(Agency.is_active.is_(True))
        return query.order_by(Agency.name).all()

    def get_advertiser(self, advertiser_id: str) -> Optional[Advertiser]:
        return self.db.query(Advertiser).filter(Advertiser.id == advertiser_id).first()

    def get_agency(self, agency_id: str) -> Optional[Agency]:
        return self.db.query(Agency).filter(Agency.id == agency_id).first()

    def campaign_counts_by_advertiser(self) -> Dict[str, int]:
        rows = (
            self.db.query(Campaign.advertiser_id, func.count(Campaign.id))
            .group_by(Campaign.advertiser_id)
            .all()
        )
        return {advertiser_id: int(count) for advertiser_id, count in rows}
