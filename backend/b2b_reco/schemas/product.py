from pydantic import BaseModel
from typing import Optional


class DistributorSummary(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True


class ProductSummary(BaseModel):
    """Authoritative catalog fields joined onto recommendations."""
    name: str
    description: Optional[str] = None
    category: str
    price: float
    stock: int
    image: Optional[str] = None
    distributor: Optional[DistributorSummary] = None

    class Config:
        from_attributes = True
