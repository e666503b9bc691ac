from typing import List
import logging

from sqlalchemy.orm import Session

from b2b_reco.core.config import settings
from b2b_reco.models import Recommendation
from b2b_reco.services import recommendation_store
from b2b_reco.services.ranking import CandidatePool, RankedRecommendation, build_ranked_list
from b2b_reco.services.signals import UserSignals, load_user_signals
from b2b_reco.services.strategies import PRIMARY_STRATEGIES, TRENDING_FLOOR, score_trending
from b2b_reco.utils.timing import StepTimer

logger = logging.getLogger(__name__)


def collect_candidates(db: Session, signals: UserSignals) -> CandidatePool:
    """
    Run the strategies in order and merge their contributions.

    The trending fallback only runs when the primary strategies found fewer
    than TRENDING_FLOOR distinct products.
    """
    pool = CandidatePool()
    for strategy in PRIMARY_STRATEGIES:
        contributions = strategy(db, signals)
        logger.debug("user=%s %s proposed %d", signals.user_id, strategy.__name__, len(contributions))
        pool.add_all(contributions)

    if len(pool) < TRENDING_FLOOR:
        contributions = score_trending(db, signals)
        logger.debug(
            "user=%s only %d candidates, trending fallback proposed %d",
            signals.user_id,
            len(pool),
            len(contributions),
        )
        pool.add_all(contributions)

    return pool


def generate_for_user(db: Session, user_id: str) -> List[RankedRecommendation]:
    """
    Score, rank and store a fresh recommendation list for one user.

    Raises RecommendationPersistenceError if the store replace fails; signal
    read failures only shrink the candidate set.
    """
    logger.info("Starting recommendation generation for user: %s", user_id)
    timer = StepTimer(f"user={user_id}")

    signals = load_user_signals(db, user_id)
    timer.lap("load_signals")

    pool = collect_candidates(db, signals)
    timer.lap("strategies")

    ranked = build_ranked_list(
        pool,
        limit=settings.RECOMMENDATION_MAX_RESULTS,
        ceiling=settings.RECOMMENDATION_SCORE_CEILING,
    )
    recommendation_store.replace_for_user(db, user_id, ranked)
    timer.lap("rank_and_store")

    logger.info(
        "Generated %d recommendations for user %s (%d candidates, %.0fms)",
        len(ranked),
        user_id,
        len(pool),
        timer.total_ms,
    )
    return ranked


def get_stored_recommendations(db: Session, user_id: str, limit: int = 10) -> List[Recommendation]:
    return recommendation_store.get_for_user(db, user_id, limit=limit)
