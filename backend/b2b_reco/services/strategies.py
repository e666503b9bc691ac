"""
Candidate strategies for the internal recommendation engine.

Each strategy reads the user's signals plus the catalog and proposes
products with a fixed partial score. Strategies never look at each other's
output; merging happens in the ranking module.
"""
from typing import List, Dict
from dataclasses import dataclass
import logging

from sqlalchemy.orm import Session

from b2b_reco.models import Product, RecommendationReason
from b2b_reco.services.signals import UserSignals, query_products

logger = logging.getLogger(__name__)

# Partial score each strategy adds to every product it proposes
WEIGHTS = {
    RecommendationReason.SIMILAR_CATEGORY: 1.2,
    RecommendationReason.RECENTLY_VIEWED: 0.9,
    RecommendationReason.CROSS_SELL: 1.3,
    RecommendationReason.TRENDING: 0.8,
}

PREFERRED_CATEGORY_COUNT = 3
CONTENT_AFFINITY_LIMIT = 10
CROSS_SELL_LIMIT = 5
TRENDING_LIMIT = 10
# "Trending" is approximated by high stock until a popularity signal exists
TRENDING_MIN_STOCK = 50
# Trending only runs when fewer candidates than this were found
TRENDING_FLOOR = 5


@dataclass(frozen=True)
class Contribution:
    product: Product
    score: float
    reason: RecommendationReason


def _contributions(products: List[Product], reason: RecommendationReason) -> List[Contribution]:
    weight = WEIGHTS[reason]
    return [Contribution(product=p, score=weight, reason=reason) for p in products]


def preferred_categories(
    category_frequency: Dict[str, int],
    top_n: int = PREFERRED_CATEGORY_COUNT,
) -> List[str]:
    """Top categories by purchased quantity; ties go to the lower category id."""
    ranked = sorted(category_frequency.items(), key=lambda kv: (-kv[1], kv[0]))
    return [category for category, _ in ranked[:top_n]]


def score_content_affinity(db: Session, signals: UserSignals) -> List[Contribution]:
    """Unpurchased in-stock products from the user's top categories."""
    categories = preferred_categories(signals.category_frequency)
    if not categories:
        return []
    products = query_products(
        db,
        categories=categories,
        exclude_ids=signals.purchased_product_ids,
        limit=CONTENT_AFFINITY_LIMIT,
    )
    return _contributions(products, RecommendationReason.SIMILAR_CATEGORY)


def score_recently_viewed(db: Session, signals: UserSignals) -> List[Contribution]:
    """Products the user viewed recently and has not bought, if still in stock."""
    if not signals.viewed_product_ids:
        return []
    products = query_products(
        db,
        product_ids=signals.viewed_product_ids,
        exclude_ids=signals.purchased_product_ids,
    )
    return _contributions(products, RecommendationReason.RECENTLY_VIEWED)


def score_cross_sell(db: Session, signals: UserSignals) -> List[Contribution]:
    """
    Diversification: unpurchased in-stock products outside the user's top
    categories. Users with no purchase history get nothing here, since there
    is nothing to diversify away from.
    """
    categories = preferred_categories(signals.category_frequency)
    if not categories:
        return []
    products = query_products(
        db,
        exclude_categories=categories,
        exclude_ids=signals.purchased_product_ids,
        limit=CROSS_SELL_LIMIT,
    )
    return _contributions(products, RecommendationReason.CROSS_SELL)


def score_trending(db: Session, signals: UserSignals) -> List[Contribution]:
    """Global fallback: best-stocked products, minus what the user already bought."""
    products = query_products(
        db,
        min_stock=TRENDING_MIN_STOCK,
        exclude_ids=signals.purchased_product_ids,
        order_by_stock=True,
        limit=TRENDING_LIMIT,
    )
    return _contributions(products, RecommendationReason.TRENDING)


# Order matters: the last strategy to touch a product owns its reason tag
PRIMARY_STRATEGIES = (
    score_content_affinity,
    score_recently_viewed,
    score_cross_sell,
)
