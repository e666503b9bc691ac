from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Enum as SQLEnum, JSON, Float, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
import enum
import sqlalchemy as sa
from b2b_reco.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    RETAILER = "retailer"
    DISTRIBUTOR = "distributor"


class UserEventType(str, enum.Enum):
    SEARCH = "search"
    PRODUCT_VIEW = "product_view"
    ADD_TO_CART = "add_to_cart"
    REMOVE_FROM_CART = "remove_from_cart"
    CATEGORY_VIEW = "category_view"


class RecommendationReason(str, enum.Enum):
    SIMILAR_CATEGORY = "similar_category"
    RECENTLY_VIEWED = "recently_viewed"
    CROSS_SELL = "cross_sell"
    TRENDING = "trending"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=True)
    role = Column(
        SQLEnum(
            UserRole,
            name="userrole",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=UserRole.RETAILER,
    )
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    orders = relationship("Order", back_populates="retailer")
    products = relationship("Product", back_populates="distributor")


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False, index=True)
    price = Column(Float, nullable=False, default=0.0)
    stock = Column(Integer, nullable=False, default=0)
    image = Column(String, nullable=True)
    distributor_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    distributor = relationship("User", back_populates="products")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    retailer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    retailer = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_new_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class UserEvent(Base):
    """
    Behavioral event written by the event-logging endpoint.

    `details` holds the event-specific payload: productId, categoryId and/or
    searchQuery. Rows older than EVENT_RETENTION_DAYS are purged by the
    scheduler and ignored by readers before that.
    """
    __tablename__ = "user_events"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    event_type = Column(
        SQLEnum(
            UserEventType,
            name="usereventtype",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
    )
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class Recommendation(Base):
    """
    One ranked recommendation for a user.

    The full set for a user is replaced on every regeneration, so at most one
    row exists per (user_id, product_id).
    """
    __tablename__ = "recommendations"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    score = Column(Float, nullable=False)
    reason = Column(String, nullable=False)
    rank = Column(Integer, nullable=False, default=0)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=sa.func.now(), nullable=False)

    # Relationships
    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_recommendations_user_product"),
        sa.Index("idx_recommendations_user_score", "user_id", "score"),
    )
