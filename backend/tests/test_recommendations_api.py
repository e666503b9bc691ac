"""HTTP tests for the recommendation and event endpoints."""
import pytest
import requests
from fastapi.testclient import TestClient
from jose import jwt

from b2b_reco.core.auth import get_current_user_id
from b2b_reco.core.config import settings
from b2b_reco.database import get_db
from b2b_reco.main import app
from b2b_reco.models import UserEvent, UserEventType
from b2b_reco.services import scoring_client


@pytest.fixture
def retailer(make_user):
    return make_user(name="Corner Store")


@pytest.fixture
def client(session_factory, retailer):
    """TestClient bound to the test database, authenticated as `retailer`."""
    retailer_id = retailer.id

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user_id] = lambda: retailer_id
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_refresh_then_read_stored_recommendations(client, make_product):
    products = [make_product(category=f"c{i}", stock=60, price=10.0 + i) for i in range(6)]

    response = client.post("/api/recommendations/refresh")
    assert response.status_code == 200, response.text
    assert response.json() == {"message": "Recommendations refreshed successfully", "count": 6}

    response = client.get("/api/recommendations?limit=4")
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 4
    assert len(body["recommendations"]) == 4
    for item in body["recommendations"]:
        assert item["reason"] == "trending"
        assert item["score"] == pytest.approx(0.16)
        assert 0.0 <= item["score"] <= 1.0
        assert item["product"]["stock"] == 60
        assert item["product"]["distributor"]["name"] == "Fresh Farms Distribution"
        assert item["metadata"]["strategies"] == ["trending"]
    assert {item["product_id"] for item in body["recommendations"]} <= {p.id for p in products}


def test_stored_recommendations_empty_before_first_run(client):
    response = client.get("/api/recommendations")
    assert response.status_code == 200
    assert response.json() == {
        "message": "Recommendations retrieved successfully",
        "count": 0,
        "recommendations": [],
    }


def test_generate_returns_enriched_list(client, make_product, monkeypatch):
    product = make_product(category="grains", price=42.5, name="Basmati Rice 5kg")

    class OkResponse:
        status_code = 200

        def raise_for_status(self):
            return None

        def json(self):
            return {
                "recommendations": [
                    {"product_id": product.id, "score": 0.9, "title": "Rice"},
                    {"product_id": "not-in-catalog", "score": 0.4},
                ],
                "explanation": {"summary": "popular with similar stores"},
            }

    monkeypatch.setattr(scoring_client.requests, "post", lambda url, **kwargs: OkResponse())

    response = client.post("/api/recommendations/generate?top_k=5")
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["message"] == "Recommendations generated successfully"
    assert body["explanation"] == {"summary": "popular with similar stores"}
    first, second = body["recommendations"]
    assert first["product_id"] == product.id
    assert first["price"] == 42.5
    assert first["name"] == "Basmati Rice 5kg"
    assert second == {"product_id": "not-in-catalog", "score": 0.4, "title": None, "reason": None}


def test_generate_timeout_is_a_failure_not_an_empty_success(client, monkeypatch):
    def timing_out(url, **kwargs):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(scoring_client.requests, "post", timing_out)

    response = client.post("/api/recommendations/generate")
    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["message"] == "Failed to generate recommendations."
    assert "timed out" in detail["detail"]


def test_generate_leaves_stored_recommendations_untouched(client, make_product, monkeypatch):
    for i in range(6):
        make_product(category=f"c{i}", stock=60)
    client.post("/api/recommendations/refresh")

    class EmptyResponse:
        status_code = 200

        def raise_for_status(self):
            return None

        def json(self):
            return {"recommendations": []}

    monkeypatch.setattr(scoring_client.requests, "post", lambda url, **kwargs: EmptyResponse())
    assert client.post("/api/recommendations/generate").status_code == 200
    assert client.get("/api/recommendations").json()["count"] == 6


def test_log_event_stores_product_view(client, db, retailer, make_product):
    product = make_product()
    response = client.post(
        "/api/events/log",
        json={"eventType": "product_view", "details": {"productId": product.id}},
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Event logged successfully"}

    [event] = db.query(UserEvent).all()
    assert event.user_id == retailer.id
    assert event.event_type == UserEventType.PRODUCT_VIEW
    assert event.details == {"productId": product.id}


def test_log_event_requires_type_and_details(client):
    assert client.post("/api/events/log", json={"details": {"searchQuery": "rice"}}).status_code == 400
    assert client.post("/api/events/log", json={"eventType": "search"}).status_code == 400


def test_log_event_rejects_unknown_type(client):
    response = client.post("/api/events/log", json={"eventType": "wishlist_add", "details": {}})
    assert response.status_code == 400


def test_log_event_storage_failure_is_acknowledged(client, monkeypatch):
    from b2b_reco.routers import events

    monkeypatch.setattr(events, "log_user_event", lambda *args, **kwargs: False)
    response = client.post("/api/events/log", json={"eventType": "search", "details": {"searchQuery": "dal"}})
    assert response.status_code == 200
    assert response.json() == {"message": "Event logging acknowledged"}


def test_endpoints_require_bearer_token():
    client = TestClient(app)
    assert client.get("/api/recommendations").status_code == 401
    response = client.get("/api/recommendations", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_valid_token_resolves_user_id():
    token = jwt.encode({"userId": "user-123"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    class FakeRequest:
        headers = {"Authorization": f"Bearer {token}"}

    assert get_current_user_id(FakeRequest()) == "user-123"


def test_sub_claim_is_accepted_as_fallback():
    token = jwt.encode({"sub": "user-456"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    class FakeRequest:
        headers = {"Authorization": f"Bearer {token}"}

    assert get_current_user_id(FakeRequest()) == "user-456"
