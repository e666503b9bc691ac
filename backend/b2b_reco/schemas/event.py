from pydantic import BaseModel
from typing import Optional


class EventDetails(BaseModel):
    productId: Optional[str] = None
    categoryId: Optional[str] = None
    searchQuery: Optional[str] = None


class EventLogRequest(BaseModel):
    """Body of POST /events/log. Both fields are checked by the router so a missing one is a 400."""
    eventType: Optional[str] = None
    details: Optional[EventDetails] = None


class EventLogResponse(BaseModel):
    message: str
