"""
Merge strategy contributions into one ranked, normalized list.

Scores from different strategies are summed per product. The reason tag is
last-writer-wins: whichever strategy touched the product most recently
(in strategy execution order) is the one shown to the user.
"""
from typing import Dict, Iterable, List, Optional, Any
from dataclasses import dataclass, field

from b2b_reco.core.config import settings
from b2b_reco.models import Product, RecommendationReason
from b2b_reco.services.strategies import Contribution


@dataclass
class Candidate:
    product: Product
    score: float = 0.0
    reason: Optional[RecommendationReason] = None
    strategies: List[str] = field(default_factory=list)

    @property
    def product_id(self) -> str:
        return self.product.id


class CandidatePool:
    """Per-run accumulator keyed by product id. Never shared between runs."""

    def __init__(self) -> None:
        self._candidates: Dict[str, Candidate] = {}

    def __len__(self) -> int:
        return len(self._candidates)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._candidates

    def get(self, product_id: str) -> Optional[Candidate]:
        return self._candidates.get(product_id)

    def add(self, contribution: Contribution) -> Candidate:
        product = contribution.product
        candidate = self._candidates.get(product.id)
        if candidate is None:
            candidate = Candidate(product=product)
            self._candidates[product.id] = candidate
        candidate.score += contribution.score
        candidate.reason = contribution.reason
        candidate.strategies.append(contribution.reason.value)
        return candidate

    def add_all(self, contributions: Iterable[Contribution]) -> None:
        for contribution in contributions:
            self.add(contribution)

    def candidates(self) -> List[Candidate]:
        """Candidates in first-seen order."""
        return list(self._candidates.values())


@dataclass
class RankedRecommendation:
    product_id: str
    raw_score: float
    score: float
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def normalize_score(raw_score: float, ceiling: Optional[float] = None) -> float:
    """raw / ceiling, clamped into [0, 1]."""
    if ceiling is None:
        ceiling = settings.RECOMMENDATION_SCORE_CEILING
    if ceiling <= 0:
        raise ValueError(f"score ceiling must be positive, got {ceiling}")
    return min(max(raw_score / ceiling, 0.0), 1.0)


def rank_candidates(pool: CandidatePool, limit: Optional[int] = None) -> List[Candidate]:
    """
    Sort by raw score descending and keep the top `limit`.

    sorted() is stable, so equal scores keep first-seen order.
    """
    if limit is None:
        limit = settings.RECOMMENDATION_MAX_RESULTS
    return sorted(pool.candidates(), key=lambda c: -c.score)[:limit]


def build_ranked_list(
    pool: CandidatePool,
    limit: Optional[int] = None,
    ceiling: Optional[float] = None,
) -> List[RankedRecommendation]:
    ranked = []
    for candidate in rank_candidates(pool, limit):
        ranked.append(
            RankedRecommendation(
                product_id=candidate.product_id,
                raw_score=candidate.score,
                score=normalize_score(candidate.score, ceiling),
                reason=candidate.reason.value,
                metadata={
                    "raw_score": round(candidate.score, 4),
                    "strategies": list(candidate.strategies),
                    "category": candidate.product.category,
                },
            )
        )
    return ranked
