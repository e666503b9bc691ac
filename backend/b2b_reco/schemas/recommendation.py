from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from b2b_reco.schemas.product import ProductSummary


class StoredRecommendation(BaseModel):
    id: str
    product_id: str
    score: float  # normalized into [0, 1]
    reason: str
    rank: int
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    product: Optional[ProductSummary] = None

    @classmethod
    def from_record(cls, record) -> "StoredRecommendation":
        return cls(
            id=record.id,
            product_id=record.product_id,
            score=record.score,
            reason=record.reason,
            rank=record.rank,
            metadata=record.meta,
            created_at=record.created_at,
            product=ProductSummary.model_validate(record.product) if record.product else None,
        )


class StoredRecommendationsResponse(BaseModel):
    message: str
    count: int
    recommendations: List[StoredRecommendation]


class RefreshResponse(BaseModel):
    message: str
    count: int


class EnrichedRecommendation(BaseModel):
    """
    One entry from the external scoring service, merged with catalog fields.

    Ids the catalog does not know keep only the service fields.
    """
    product_id: str
    score: Optional[float] = None
    title: Optional[str] = None
    reason: Optional[str] = None

    class Config:
        extra = "allow"


class OnDemandRecommendationsResponse(BaseModel):
    message: str
    recommendations: List[EnrichedRecommendation]
    explanation: Dict[str, Any] = {}
