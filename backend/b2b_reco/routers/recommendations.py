from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging

from b2b_reco.database import get_db
from b2b_reco.core.auth import get_current_user_id
from b2b_reco.core.config import settings
from b2b_reco.services import recommendation_engine, scoring_client
from b2b_reco.services.recommendation_store import RecommendationPersistenceError
from b2b_reco.services.scoring_client import ScoringServiceError
from b2b_reco.schemas.recommendation import (
    StoredRecommendation,
    StoredRecommendationsResponse,
    RefreshResponse,
    OnDemandRecommendationsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.get("", response_model=StoredRecommendationsResponse)
def get_user_recommendations(
    limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Pre-computed recommendations from the last batch or refresh run."""
    records = recommendation_engine.get_stored_recommendations(db, user_id, limit=limit)
    return StoredRecommendationsResponse(
        message="Recommendations retrieved successfully",
        count=len(records),
        recommendations=[StoredRecommendation.from_record(r) for r in records],
    )


@router.post("/generate", response_model=OnDemandRecommendationsResponse)
def generate_recommendations(
    top_k: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    On-demand recommendations from the external scoring service, enriched
    with catalog data. Stored recommendations are left untouched.
    """
    desired = min(top_k or settings.RECO_DEFAULT_TOP_K, settings.RECO_MAX_TOP_K)
    try:
        result = scoring_client.generate_on_demand(db, user_id, desired)
    except ScoringServiceError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"message": "Failed to generate recommendations.", "detail": e.detail},
        )

    return OnDemandRecommendationsResponse(
        message="Recommendations generated successfully",
        recommendations=result.recommendations,
        explanation=result.explanation,
    )


@router.post("/refresh", response_model=RefreshResponse)
def refresh_recommendations(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Run the internal strategies for the caller now instead of waiting for the batch job."""
    try:
        ranked = recommendation_engine.generate_for_user(db, user_id)
    except RecommendationPersistenceError as e:
        logger.exception("Failed to store recommendations for user %s", user_id)
        raise HTTPException(status_code=500, detail=f"Failed to store recommendations: {e}")

    return RefreshResponse(message="Recommendations refreshed successfully", count=len(ranked))
