"""Tests for the on-demand flow through the external scoring service."""
from datetime import datetime, timedelta

import pytest
import requests

from b2b_reco.core.config import settings
from b2b_reco.services import scoring_client
from b2b_reco.services.scoring_client import ScoringServiceError, generate_on_demand


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text_body=False):
        self.status_code = status_code
        self._payload = payload
        self._text_body = text_body

    def json(self):
        if self._text_body:
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


@pytest.fixture
def captured_calls(monkeypatch):
    """Replace requests.post; tests set `captured_calls.response` or `.error`."""
    class Recorder:
        response = FakeResponse(payload={"recommendations": [], "explanation": {}})
        error = None
        calls = []

    recorder = Recorder()
    recorder.calls = []

    def fake_post(url, **kwargs):
        recorder.calls.append({"url": url, **kwargs})
        if recorder.error is not None:
            raise recorder.error
        return recorder.response

    monkeypatch.setattr(scoring_client.requests, "post", fake_post)
    return recorder


def test_behavior_signal_and_top_k_are_sent(db, make_user, make_product, make_event, captured_calls):
    user = make_user()
    now = datetime.utcnow()
    older = make_product()
    newer = make_product()
    make_event(user, product=older, created_at=now - timedelta(minutes=10))
    make_event(user, product=newer, created_at=now - timedelta(minutes=5))
    make_event(user, product=older, created_at=now - timedelta(minutes=1))

    generate_on_demand(db, user.id, 7)

    [call] = captured_calls.calls
    assert call["url"] == f"{settings.RECO_API_BASE}/recommendations/{user.id}"
    assert call["params"] == {"top_k": 7}
    assert call["json"] == {"recent_behavior_ids": [older.id, newer.id]}
    assert call["timeout"] == settings.RECO_API_TIMEOUT_SECONDS


def test_recent_views_are_bounded(db, make_user, make_product, make_event, captured_calls):
    user = make_user()
    now = datetime.utcnow()
    for i in range(settings.RECO_RECENT_VIEWS_LIMIT + 5):
        make_event(user, product=make_product(), created_at=now - timedelta(seconds=i))

    generate_on_demand(db, user.id, 5)
    sent = captured_calls.calls[0]["json"]["recent_behavior_ids"]
    assert len(sent) == settings.RECO_RECENT_VIEWS_LIMIT


def test_empty_history_still_calls_service(db, make_user, captured_calls):
    user = make_user()
    result = generate_on_demand(db, user.id, 5)
    assert captured_calls.calls[0]["json"] == {"recent_behavior_ids": []}
    assert result.recommendations == []
    assert result.explanation == {}


def test_results_are_enriched_in_service_order(db, make_user, make_product, captured_calls):
    user = make_user()
    first = make_product(category="grains", price=42.5, stock=12, name="Basmati Rice 5kg")
    second = make_product(category="oils", price=180.0, stock=0, name="Sunflower Oil 1L")
    captured_calls.response = FakeResponse(payload={
        "recommendations": [
            {"product_id": second.id, "score": 0.91, "title": "Oil", "reason": "bought together"},
            {"product_id": "unknown-sku", "score": 0.55, "title": "Mystery"},
            {"product_id": first.id, "score": 0.42},
        ],
        "explanation": {"summary": "Based on your recent views"},
    })

    result = generate_on_demand(db, user.id, 10)

    assert [r["product_id"] for r in result.recommendations] == [second.id, "unknown-sku", first.id]
    oil, mystery, rice = result.recommendations
    assert oil["score"] == 0.91
    assert oil["reason"] == "bought together"
    assert oil["name"] == "Sunflower Oil 1L"
    assert oil["price"] == 180.0
    # the service is trusted; stock is reported, not filtered
    assert oil["stock"] == 0
    assert oil["distributor"]["name"] == "Fresh Farms Distribution"
    assert rice["category"] == "grains"
    assert mystery == {"product_id": "unknown-sku", "score": 0.55, "title": "Mystery"}
    assert result.explanation == {"summary": "Based on your recent views"}


def test_results_are_clamped_to_desired_count(db, make_user, captured_calls):
    user = make_user()
    captured_calls.response = FakeResponse(payload={
        "recommendations": [{"product_id": f"sku-{i}", "score": 1 - i / 10} for i in range(8)],
    })

    result = generate_on_demand(db, user.id, 3)
    assert [r["product_id"] for r in result.recommendations] == ["sku-0", "sku-1", "sku-2"]


def test_timeout_surfaces_service_unavailable(db, make_user, captured_calls):
    user = make_user()
    captured_calls.error = requests.Timeout("read timed out")

    with pytest.raises(ScoringServiceError) as exc_info:
        generate_on_demand(db, user.id, 5)
    assert exc_info.value.status_code == 503
    assert "timed out" in exc_info.value.detail


def test_connection_error_surfaces_service_unavailable(db, make_user, captured_calls):
    user = make_user()
    captured_calls.error = requests.ConnectionError("connection refused")

    with pytest.raises(ScoringServiceError) as exc_info:
        generate_on_demand(db, user.id, 5)
    assert exc_info.value.status_code == 503
    assert exc_info.value.detail == "Failed to connect to recommendation service."


def test_upstream_error_keeps_status_and_detail(db, make_user, captured_calls):
    user = make_user()
    captured_calls.response = FakeResponse(status_code=422, payload={"detail": "user has no embedding"})

    with pytest.raises(ScoringServiceError) as exc_info:
        generate_on_demand(db, user.id, 5)
    assert exc_info.value.status_code == 422
    assert exc_info.value.detail == "user has no embedding"


def test_upstream_error_without_json_body(db, make_user, captured_calls):
    user = make_user()
    captured_calls.response = FakeResponse(status_code=500, text_body=True)

    with pytest.raises(ScoringServiceError) as exc_info:
        generate_on_demand(db, user.id, 5)
    assert exc_info.value.status_code == 500
    assert exc_info.value.detail == "Failed to connect to recommendation service."


def test_malformed_success_body_is_an_error(db, make_user, captured_calls):
    user = make_user()
    captured_calls.response = FakeResponse(status_code=200, text_body=True)

    with pytest.raises(ScoringServiceError) as exc_info:
        generate_on_demand(db, user.id, 5)
    assert exc_info.value.status_code == 502


def test_upstream_validation_errors_are_readable(db, make_user, captured_calls):
    user = make_user()
    captured_calls.response = FakeResponse(
        status_code=422,
        payload={"detail": [
            {"loc": ["query", "top_k"], "msg": "Input should be a valid integer", "type": "int_parsing"},
            {"loc": ["body"], "msg": "Field required", "type": "missing"},
        ]},
    )

    with pytest.raises(ScoringServiceError) as exc_info:
        generate_on_demand(db, user.id, 5)
    assert exc_info.value.status_code == 422
    assert exc_info.value.detail == "Input should be a valid integer; Field required"


def test_structured_upstream_detail_is_serialized_as_json(db, make_user, captured_calls):
    user = make_user()
    captured_calls.response = FakeResponse(status_code=409, payload={"detail": {"code": "model_loading"}})

    with pytest.raises(ScoringServiceError) as exc_info:
        generate_on_demand(db, user.id, 5)
    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == '{"code": "model_loading"}'
