# support_console/schemas.py
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from typing import Optional, List, Literal

HUMAN = "human"
AUTOMATED = "ai"

QuoteStatus = Literal["pending", "accepted", "rejected"]
SlotStatus = Literal["available", "booked"]
AppointmentStatus = Literal["confirmed", "cancelled"]


def to_naive_utc(value: datetime) -> datetime:
    """Stored datetimes are naive UTC"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Discussion schemas
class MessageRow(BaseModel):
    id: int
    session_id: str
    type: str  # human, ai
    message: str
    created_at: datetime
    client_name: str = ""
    client_phone: Optional[str] = None
    read: bool = False
    assigned_to_agent: bool = False

    class Config:
        from_attributes = True

class DiscussionSummary(BaseModel):
    session_id: str
    messages: List[MessageRow] = Field(default_factory=list)
    last_message: Optional[MessageRow] = None
    client_name: str = ""
    client_phone: Optional[str] = None
    unread_count: int = 0
    assigned_to_agent: bool = False

class ReplyCreate(BaseModel):
    message: str

class HandoffUpdate(BaseModel):
    assigned: bool

class UnreadResponse(BaseModel):
    unread: int

# Quote schemas
class QuoteCreate(BaseModel):
    customer_name: str = Field(min_length=1)
    phone_number: str = Field(min_length=1)
    email: str = ""
    amount: float = Field(default=0.0, ge=0)
    details: str = ""

class QuoteUpdate(BaseModel):
    customer_name: Optional[str] = Field(default=None, min_length=1)
    phone_number: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0)
    details: Optional[str] = None

class QuoteStatusUpdate(BaseModel):
    status: QuoteStatus

class QuoteResponse(BaseModel):
    id: str
    customer_name: str
    phone_number: str
    email: Optional[str] = None
    amount: float
    details: Optional[str] = None
    status: QuoteStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

# Slot schemas
class SlotWrite(BaseModel):
    datetime: datetime

    @field_validator("datetime")
    @classmethod
    def normalize(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

class SlotResponse(BaseModel):
    id: str
    datetime: datetime
    status: SlotStatus
    client_name: Optional[str] = None
    client_phone: Optional[str] = None

    class Config:
        from_attributes = True

class SlotBoard(BaseModel):
    upcoming: List[SlotResponse]
    past: List[SlotResponse]

# Appointment schemas
class AppointmentCreate(BaseModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    email: str = ""
    brand: str = ""
    model: str = ""
    year: Optional[int] = None
    service: str = ""
    fuel: str = "essence"
    date_id: str = Field(min_length=1)

class AppointmentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    service: Optional[str] = None
    fuel: Optional[str] = None

class AppointmentResponse(BaseModel):
    id: str
    name: str
    phone: str
    email: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    service: Optional[str] = None
    fuel: Optional[str] = None
    date_id: Optional[str] = None
    status: AppointmentStatus
    created_at: datetime
    slot_datetime: Optional[datetime] = None

    class Config:
        from_attributes = True

# Auth / profile schemas
class SignInRequest(BaseModel):
    email: str
    password: str

class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True

class SessionResponse(BaseModel):
    token: str
    user: UserResponse

class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    avatar_url: Optional[str] = None

class AgentCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    phone: Optional[str] = None

# Dashboard schemas
class DashboardStats(BaseModel):
    active_discussions: int
    appointments_today: int
    pending_quotes: int
    new_clients: int
    response_rate: float

class ActivityItem(BaseModel):
    id: str
    type: Literal["message", "appointment", "quote"]
    user: str
    time: datetime
    content: str

class DashboardResponse(BaseModel):
    stats: DashboardStats
    recent_activity: List[ActivityItem]
