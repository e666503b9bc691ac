"""Pytest configuration for backend tests."""
import sys
from datetime import datetime
from pathlib import Path
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from b2b_reco.database import Base

# Import the entire models module to ensure all models are registered with Base.metadata
# This must happen before create_all() so that all table definitions are available
import b2b_reco.models  # noqa: F401
from b2b_reco.models import (
    User,
    UserRole,
    Product,
    Order,
    OrderItem,
    UserEvent,
    UserEventType,
)


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps a single connection so the TestClient thread and the
    test body see the same database.
    """
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    if not Base.metadata.tables:
        raise RuntimeError(
            "No tables registered in Base.metadata. "
            "Did you import b2b_reco.models? All model classes must be imported before create_all()."
        )
    Base.metadata.create_all(bind=test_engine)

    yield test_engine

    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db: Session):
    """Create and commit a user."""
    def _make(name: str = "Retailer", role: UserRole = UserRole.RETAILER, **kwargs) -> User:
        user = User(name=name, role=role, **kwargs)
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def distributor(make_user) -> User:
    return make_user(name="Fresh Farms Distribution", role=UserRole.DISTRIBUTOR)


@pytest.fixture
def make_product(db: Session, distributor: User):
    """Create and commit a catalog product."""
    counter = {"n": 0}

    def _make(category: str = "A", stock: int = 10, price: float = 100.0, **kwargs) -> Product:
        counter["n"] += 1
        kwargs.setdefault("name", f"Product {counter['n']}")
        kwargs.setdefault("distributor_id", distributor.id)
        product = Product(category=category, stock=stock, price=price, **kwargs)
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def make_order(db: Session):
    """Create an order for a user from (product, quantity) pairs."""
    def _make(user: User, lines, created_at: datetime = None) -> Order:
        order = Order(retailer_id=user.id, created_at=created_at or datetime.utcnow())
        for product, quantity in lines:
            order.items.append(OrderItem(product_id=product.id, quantity=quantity))
        db.add(order)
        db.commit()
        return order
    return _make


@pytest.fixture
def make_event(db: Session):
    """Create a behavioral event; product views take a product."""
    def _make(
        user: User,
        event_type: UserEventType = UserEventType.PRODUCT_VIEW,
        product: Product = None,
        created_at: datetime = None,
        **details,
    ) -> UserEvent:
        if product is not None:
            details["productId"] = product.id
        event = UserEvent(
            user_id=user.id,
            event_type=event_type,
            details=details,
            created_at=created_at or datetime.utcnow(),
        )
        db.add(event)
        db.commit()
        return event
    return _make
