"""
Read-only access to the signals recommendations are computed from.

Orders, behavioral events and the catalog are shared with the rest of the
marketplace. Nothing here writes, and a failed or empty read degrades to an
empty result instead of failing the generation run.
"""
from typing import List, Set, Dict, Optional, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging

from sqlalchemy.orm import Session, selectinload, joinedload
from sqlalchemy.exc import SQLAlchemyError

from b2b_reco.core.config import settings
from b2b_reco.models import Order, OrderItem, Product, User, UserEvent, UserEventType

logger = logging.getLogger(__name__)

ORDER_HISTORY_LIMIT = 50
EVENT_HISTORY_LIMIT = 100


@dataclass
class UserSignals:
    """Everything the internal strategies know about one user."""
    user_id: str
    purchased_product_ids: Set[str] = field(default_factory=set)
    # category -> total quantity purchased
    category_frequency: Dict[str, int] = field(default_factory=dict)
    # most recent first, no duplicates
    viewed_product_ids: List[str] = field(default_factory=list)


def _event_cutoff() -> datetime:
    return datetime.utcnow() - timedelta(days=settings.EVENT_RETENTION_DAYS)


def get_recent_orders(db: Session, user_id: str, limit: int = ORDER_HISTORY_LIMIT) -> List[Order]:
    """Most recent orders placed by the user, with line items and products loaded."""
    try:
        return (
            db.query(Order)
            .options(selectinload(Order.items).joinedload(OrderItem.product))
            .filter(Order.retailer_id == user_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        logger.warning("Order history unavailable for user %s: %s", user_id, e)
        db.rollback()
        return []


def get_recent_events(
    db: Session,
    user_id: str,
    limit: int = EVENT_HISTORY_LIMIT,
    event_type: Optional[UserEventType] = None,
) -> List[UserEvent]:
    """Most recent behavioral events inside the retention window."""
    try:
        query = db.query(UserEvent).filter(
            UserEvent.user_id == user_id,
            UserEvent.created_at >= _event_cutoff(),
        )
        if event_type is not None:
            query = query.filter(UserEvent.event_type == event_type)
        return query.order_by(UserEvent.created_at.desc()).limit(limit).all()
    except SQLAlchemyError as e:
        logger.warning("Event history unavailable for user %s: %s", user_id, e)
        db.rollback()
        return []


def summarize_orders(orders: Iterable[Order]) -> tuple[Set[str], Dict[str, int]]:
    """
    Derive the purchased-product exclusion set and the quantity-weighted
    category frequency from order history.

    Line items whose product has been removed from the catalog are skipped.
    """
    purchased: Set[str] = set()
    frequency: Dict[str, int] = {}
    for order in orders:
        for item in order.items:
            if item.product is None:
                continue
            purchased.add(item.product.id)
            category = item.product.category
            frequency[category] = frequency.get(category, 0) + (item.quantity or 0)
    return purchased, frequency


def viewed_product_ids(events: Iterable[UserEvent], limit: Optional[int] = None) -> List[str]:
    """Product ids from product_view events, deduplicated, first occurrence kept."""
    seen: List[str] = []
    for event in events:
        if event.event_type != UserEventType.PRODUCT_VIEW:
            continue
        product_id = (event.details or {}).get("productId")
        if not product_id:
            continue
        product_id = str(product_id)
        if product_id in seen:
            continue
        seen.append(product_id)
        if limit is not None and len(seen) >= limit:
            break
    return seen


def load_user_signals(db: Session, user_id: str) -> UserSignals:
    orders = get_recent_orders(db, user_id)
    events = get_recent_events(db, user_id)
    purchased, frequency = summarize_orders(orders)
    signals = UserSignals(
        user_id=user_id,
        purchased_product_ids=purchased,
        category_frequency=frequency,
        viewed_product_ids=viewed_product_ids(events),
    )
    logger.debug(
        "Signals for user %s: orders=%d events=%d purchased=%d categories=%d viewed=%d",
        user_id,
        len(orders),
        len(events),
        len(purchased),
        len(frequency),
        len(signals.viewed_product_ids),
    )
    return signals


def get_recent_viewed_product_ids(
    db: Session,
    user_id: str,
    limit: Optional[int] = None,
) -> List[str]:
    """Distinct recently viewed product ids, used as the on-demand behavior signal."""
    limit = limit or settings.RECO_RECENT_VIEWS_LIMIT
    events = get_recent_events(db, user_id, event_type=UserEventType.PRODUCT_VIEW)
    return viewed_product_ids(events, limit=limit)


def query_products(
    db: Session,
    *,
    categories: Optional[Iterable[str]] = None,
    exclude_categories: Optional[Iterable[str]] = None,
    product_ids: Optional[Iterable[str]] = None,
    exclude_ids: Optional[Iterable[str]] = None,
    min_stock: int = 0,
    order_by_stock: bool = False,
    limit: Optional[int] = None,
) -> List[Product]:
    """
    Catalog query used by the strategies.

    Only products with stock strictly greater than min_stock are returned.
    Results are ordered by id (or by stock descending, then id) so that capped
    queries are deterministic.
    """
    query = db.query(Product).filter(Product.stock > min_stock)

    if categories is not None:
        query = query.filter(Product.category.in_(list(categories)))
    exclude_categories = list(exclude_categories or [])
    if exclude_categories:
        query = query.filter(Product.category.notin_(exclude_categories))
    if product_ids is not None:
        query = query.filter(Product.id.in_(list(product_ids)))
    exclude_ids = list(exclude_ids or [])
    if exclude_ids:
        query = query.filter(Product.id.notin_(exclude_ids))

    if order_by_stock:
        query = query.order_by(Product.stock.desc(), Product.id.asc())
    else:
        query = query.order_by(Product.id.asc())
    if limit is not None:
        query = query.limit(limit)

    try:
        return query.all()
    except SQLAlchemyError as e:
        logger.warning("Catalog query failed: %s", e)
        db.rollback()
        return []


def get_products_by_ids(db: Session, product_ids: Iterable[str]) -> Dict[str, Product]:
    """Catalog rows for the given ids (any stock level), keyed by id."""
    product_ids = list(product_ids)
    if not product_ids:
        return {}
    try:
        products = (
            db.query(Product)
            .options(joinedload(Product.distributor))
            .filter(Product.id.in_(product_ids))
            .all()
        )
    except SQLAlchemyError as e:
        logger.warning("Catalog lookup failed for %d ids: %s", len(product_ids), e)
        db.rollback()
        return {}
    return {p.id: p for p in products}


def list_user_ids(db: Session) -> List[str]:
    """Every known user id, in a stable order."""
    return [row[0] for row in db.query(User.id).order_by(User.created_at.asc(), User.id.asc()).all()]
