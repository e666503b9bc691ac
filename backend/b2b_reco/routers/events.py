"""
Behavioral event logging endpoint.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

from b2b_reco.database import get_db
from b2b_reco.core.auth import get_current_user_id
from b2b_reco.models import UserEventType
from b2b_reco.schemas.event import EventLogRequest, EventLogResponse
from b2b_reco.utils.instrumentation import log_user_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/events", tags=["events"])


@router.post("/log", response_model=EventLogResponse)
def log_event(
    payload: EventLogRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Single endpoint for all user behavior tracking.

    A storage failure is only logged on the server; the client still gets a
    200 so tracking never blocks the user.
    """
    if not payload.eventType or payload.details is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="eventType and details are required",
        )

    try:
        event_type = UserEventType(payload.eventType)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown eventType: {payload.eventType}",
        )

    if log_user_event(db, user_id, event_type, payload.details.model_dump()):
        return EventLogResponse(message="Event logged successfully")
    return EventLogResponse(message="Event logging acknowledged")
