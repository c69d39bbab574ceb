from typing import List, Optional

from pydantic import BaseModel


class SellerOption(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    role: str


class AgencyOption(BaseModel):
    id: str
    name: str
    seller_id: Optional[str] = None

    class Config:
        from_attributes = True


class AdvertiserOption(BaseModel):
    id: str
    name: str
    agency_id: Optional[str] = None
    seller_id: Optional[str] = None
    campaign_count: int = 0


class EntitiesResponse(BaseModel):
    """Entities a user may attach budgets to, grouped by level."""
    sellers: List[SellerOption] = []
    agencies: List[AgencyOption] = []
    advertisers: List[AdvertiserOption] = []
