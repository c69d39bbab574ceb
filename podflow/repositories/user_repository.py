from typing import List, Optional

from sqlalchemy.orm import Session

from podflow.models.organization import Organization
from podflow.models.user import SELLER_ROLES, User


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def list_sellers(self, organization_id: str, include_inactive: bool = False) -> List[User]:
        query = self.db.query(User).filter(
            User.organization_id == organization_id,
            User.role.in_(SELLER_ROLES),
        )
        if not include_inactive:
            query = query.filter(User.is_active.is_(True))
        return query.order_by(User.name, User.email).all()


class OrganizationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, organization_id: str) -> Optional[Organization]:
        return self.db.query(Organization).filter(Organization.id == organization_id).first()
