"""
Persistence for ranked recommendation lists.

A user's list is replaced wholesale: delete and insert run in one
transaction and are committed together. Two regenerations for the same user
that overlap are not serialized; whichever commits last wins.
"""
import logging
from typing import List

from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError

from b2b_reco.models import Product, Recommendation
from b2b_reco.services.ranking import RankedRecommendation

logger = logging.getLogger(__name__)


class RecommendationPersistenceError(Exception):
    """Raised when a user's recommendation list could not be replaced."""
    pass


def replace_for_user(db: Session, user_id: str, ranked: List[RankedRecommendation]) -> int:
    """
    Replace every stored recommendation for user_id with `ranked`.

    Rank order is stored explicitly so reads never need to re-sort.
    Returns the number of records written.
    """
    try:
        deleted = (
            db.query(Recommendation)
            .filter(Recommendation.user_id == user_id)
            .delete(synchronize_session=False)
        )
        db.add_all(
            [
                Recommendation(
                    user_id=user_id,
                    product_id=item.product_id,
                    score=item.score,
                    reason=item.reason,
                    rank=position,
                    meta=item.metadata,
                )
                for position, item in enumerate(ranked)
            ]
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise RecommendationPersistenceError(
            f"Failed to replace recommendations for user {user_id}: {e}"
        ) from e

    logger.debug("Replaced recommendations for user %s: deleted=%d inserted=%d", user_id, deleted, len(ranked))
    return len(ranked)


def get_for_user(db: Session, user_id: str, limit: int = 10) -> List[Recommendation]:
    """Stored records for the user, most relevant first, with product details loaded."""
    return (
        db.query(Recommendation)
        .options(joinedload(Recommendation.product).joinedload(Product.distributor))
        .filter(Recommendation.user_id == user_id)
        .order_by(Recommendation.score.desc(), Recommendation.rank.asc())
        .limit(limit)
        .all()
    )
