"""
Behavioral event logging helpers.

Events are stored for the recommendation strategies and echoed to the
structured logs. Logging an event must never break the request that
triggered it.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from b2b_reco.core.config import settings
from b2b_reco.models import UserEvent, UserEventType

logger = logging.getLogger(__name__)


def log_user_event(
    db: Session,
    user_id: str,
    event_type: UserEventType,
    details: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Store one behavioral event and commit it.

    Returns True when the event was persisted. Failures are rolled back,
    logged as warnings and reported as False, never raised.
    """
    clean_details = {k: v for k, v in (details or {}).items() if v is not None}
    try:
        event = UserEvent(
            user_id=user_id,
            event_type=event_type,
            details=clean_details,
        )
        db.add(event)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            "Failed to log event: event_type=%s, user_id=%s, error=%s",
            event_type,
            user_id,
            str(e),
            exc_info=True,
        )
        return False

    logger.info(
        "event_logged",
        extra={
            "event_type": event_type.value,
            "user_id": user_id,
            "details": clean_details,
        },
    )
    return True


def purge_expired_events(db: Session, retention_days: Optional[int] = None) -> int:
    """Delete events older than the retention window. Returns the number removed."""
    retention_days = retention_days or settings.EVENT_RETENTION_DAYS
    cutoff = datetime.utcnow() - timedelta(days=retention_days)
    deleted = (
        db.query(UserEvent)
        .filter(UserEvent.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Purged %d events older than %d days", deleted, retention_days)
    return deleted
