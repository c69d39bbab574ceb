import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from podflow.core.security import decode_access_token
from podflow.db.session import get_db
from podflow.db.tenant import schema_name_for, tenant_session
from podflow.models.user import BUDGET_MANAGER_ROLES, SELLER_ROLES, User
from podflow.repositories.budget_repository import BudgetRepository
from podflow.repositories.entity_repository import EntityRepository
from podflow.repositories.user_repository import OrganizationRepository, UserRepository
from podflow.services.budget_service import HierarchicalBudgetService

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub") if payload else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = UserRepository(db).get_by_id(str(user_id))
    if user is None:
        logger.warning(f"Token subject {user_id} has no matching user")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user


def require_roles(*roles: str):
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.warning(f"User {current_user.id} with role {current_user.role} denied (needs {roles})")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Unauthorized - insufficient permissions",
            )
        return current_user

    return dependency


require_budget_access = require_roles(*SELLER_ROLES)
require_budget_manager = require_roles(*BUDGET_MANAGER_ROLES)


def get_tenant_schema(
    current_user: User = Depends(require_budget_access),
    db: Session = Depends(get_db),
) -> str:
    organization = None
    if current_user.organization_id:
        organization = OrganizationRepository(db).get_by_id(current_user.organization_id)
    if organization is None or not organization.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    try:
        return schema_name_for(organization.slug)
    except ValueError as e:
        logger.error(f"Organization {organization.id} has an unusable slug: {e}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")


def get_tenant_db(schema: str = Depends(get_tenant_schema)):
    """Dependency for a session scoped to the caller's organization schema."""
    db = tenant_session(schema)
    try:
        yield db
    finally:
        db.close()


def get_budget_service(
    current_user: User = Depends(require_budget_access),
    schema: str = Depends(get_tenant_schema),
    db: Session = Depends(get_tenant_db),
) -> HierarchicalBudgetService:
    return HierarchicalBudgetService(
        BudgetRepository(db),
        EntityRepository(db),
        UserRepository(db),
        schema=schema,
        organization_id=current_user.organization_id,
    )
