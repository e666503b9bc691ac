"""
On-demand recommendations from the external scoring service.

The service ranks products from a short list of recently viewed ids. We
never re-rank its output: each entry is joined with authoritative catalog
data (price, stock, category, distributor) and returned in the order
received. Nothing here touches the stored recommendation lists.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple

import requests
from sqlalchemy.orm import Session

from b2b_reco.core.config import settings
from b2b_reco.schemas.product import ProductSummary
from b2b_reco.services.signals import get_recent_viewed_product_ids, get_products_by_ids
from b2b_reco.utils.timing import timed_call

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE = 503
BAD_GATEWAY = 502
DEFAULT_FAILURE_DETAIL = "Failed to connect to recommendation service."


class ScoringServiceError(Exception):
    """The external scoring service failed, timed out, or answered with an error."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


@dataclass
class OnDemandResult:
    recommendations: List[Dict[str, Any]] = field(default_factory=list)
    explanation: Dict[str, Any] = field(default_factory=dict)


def _upstream_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return DEFAULT_FAILURE_DETAIL
    detail = body.get("detail") if isinstance(body, dict) else None
    if not detail:
        return DEFAULT_FAILURE_DETAIL
    if isinstance(detail, str):
        return detail
    # FastAPI validation errors arrive as a list of {"loc", "msg", "type"}
    if isinstance(detail, list):
        messages = [item["msg"] for item in detail if isinstance(item, dict) and item.get("msg")]
        if messages:
            return "; ".join(messages)
    return json.dumps(detail, default=str)


def fetch_scored_products(
    user_id: str,
    recent_behavior_ids: List[str],
    top_k: int,
    timeout: Optional[float] = None,
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    POST the behavior signal to the scoring service.

    Returns (recommendations, explanation). Every failure mode raises
    ScoringServiceError; an error is never turned into an empty result.
    """
    url = f"{settings.RECO_API_BASE}/recommendations/{user_id}"
    timeout = timeout or settings.RECO_API_TIMEOUT_SECONDS
    try:
        response = requests.post(
            url,
            params={"top_k": top_k},
            json={"recent_behavior_ids": recent_behavior_ids},
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        response.raise_for_status()
    except requests.Timeout:
        logger.error("Scoring service timed out after %.1fs for user %s", timeout, user_id)
        raise ScoringServiceError(SERVICE_UNAVAILABLE, "Recommendation service timed out.")
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else SERVICE_UNAVAILABLE
        detail = _upstream_detail(e.response) if e.response is not None else DEFAULT_FAILURE_DETAIL
        logger.error("Scoring service returned %s for user %s: %s", status, user_id, detail)
        raise ScoringServiceError(status, detail)
    except requests.RequestException as e:
        logger.error("Error fetching recommendations from scoring service: %s", e)
        raise ScoringServiceError(SERVICE_UNAVAILABLE, DEFAULT_FAILURE_DETAIL)

    try:
        data = response.json()
    except ValueError:
        logger.error("Scoring service sent a non-JSON body for user %s", user_id)
        raise ScoringServiceError(BAD_GATEWAY, "Recommendation service returned an invalid response.")
    if not isinstance(data, dict):
        raise ScoringServiceError(BAD_GATEWAY, "Recommendation service returned an invalid response.")

    recommendations = [
        r for r in (data.get("recommendations") or [])
        if isinstance(r, dict) and r.get("product_id") is not None
    ]
    explanation = data.get("explanation") or {}
    if not isinstance(explanation, dict):
        explanation = {"summary": explanation}
    return recommendations, explanation


def enrich_with_catalog(db: Session, scored: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Merge catalog details onto each scored entry, keeping the service order.

    Catalog fields win over service fields with the same name. Ids missing
    from the catalog pass through with the service fields only.
    """
    product_ids = [str(r["product_id"]) for r in scored]
    catalog = get_products_by_ids(db, product_ids)

    enriched = []
    missing = 0
    for entry, product_id in zip(scored, product_ids):
        merged = {**entry, "product_id": product_id}
        product = catalog.get(product_id)
        if product is None:
            missing += 1
        else:
            merged.update(ProductSummary.model_validate(product).model_dump())
        enriched.append(merged)

    if missing:
        logger.info("%d of %d scored products not found in catalog", missing, len(scored))
    return enriched


def generate_on_demand(db: Session, user_id: str, desired_count: Optional[int] = None) -> OnDemandResult:
    """
    Synchronous recommendation flow for one request.

    Raises ScoringServiceError when the scoring service cannot be used.
    """
    desired_count = desired_count or settings.RECO_DEFAULT_TOP_K
    desired_count = max(1, min(desired_count, settings.RECO_MAX_TOP_K))

    recent_ids = get_recent_viewed_product_ids(db, user_id)
    logger.info(
        "On-demand recommendations for user %s: %d recent views, top_k=%d",
        user_id,
        len(recent_ids),
        desired_count,
    )

    # Warn when a call uses more than half of its timeout budget
    slow_ms = settings.RECO_API_TIMEOUT_SECONDS * 500
    with timed_call(f"user={user_id} scoring_service", logger.info, slow_ms=slow_ms):
        scored, explanation = fetch_scored_products(user_id, recent_ids, desired_count)
    enriched = enrich_with_catalog(db, scored[:desired_count])
    return OnDemandResult(recommendations=enriched, explanation=explanation)
