from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ScanStatus(str, Enum):
    UNUSED = "unused"
    SCANNED = "scanned"
    EXPIRED = "expired"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TicketType(BaseModel):
    model_config = {"extra": "forbid"}

    id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(..., ge=Decimal("0"), le=Decimal("100000000"))


class Event(BaseModel):
    model_config = {"extra": "forbid"}

    id: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=200)
    organizer_id: str = Field(..., min_length=1, max_length=50)
    start_date: datetime
    status: EventStatus = EventStatus.PUBLISHED


class Ticket(BaseModel):
    model_config = {"extra": "forbid"}

    id: str = Field(..., min_length=1, max_length=50)
    ticket_number: str = Field(..., min_length=1, max_length=50)
    event_id: str
    user_id: str
    user_name: str
    user_email: Optional[str] = None
    user_phone: Optional[str] = None
    ticket_type: TicketType
    purchase_date: datetime
    scan_status: ScanStatus = ScanStatus.UNUSED
