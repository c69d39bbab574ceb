# Import all models so metadata sees both the public and tenant tables
from podflow.models.organization import Organization
from podflow.models.user import User
from podflow.models.agency import Agency
from podflow.models.advertiser import Advertiser
from podflow.models.campaign import Campaign
from podflow.models.hierarchical_budget import HierarchicalBudget

__all__ = ["Organization", "User", "Agency", "Advertiser", "Campaign", "HierarchicalBudget"]
