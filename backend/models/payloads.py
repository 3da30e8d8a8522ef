"""
SalesOps - Payloads des routes /api (corps JSON entrants)
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class FbclidStore(BaseModel):
    fbclid: str
    calendly_event_uri: str

    @field_validator('fbclid', 'calendly_event_uri')
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class CancelCalendly(BaseModel):
    """event_uri (https://api.calendly.com/scheduled_events/<uuid>) ou event_uuid"""
    event_uri: Optional[str] = None
    event_uuid: Optional[str] = None
    reason: Optional[str] = "Cancelled from dashboard"


class MetaConversion(BaseModel):
    """Evènement Conversions API (Schedule, Purchase, ...)"""
    event_name: str = "Schedule"
    email: Optional[str] = None
    phone: Optional[str] = None
    fbclid: Optional[str] = None
    calendly_event_uri: Optional[str] = None
    event_time: Optional[int] = None
    value: Optional[float] = None
    currency: str = "EUR"
    event_source_url: Optional[str] = None
    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None


class ShiftToggle(BaseModel):
    action: str = "toggle"

    @field_validator('action')
    @classmethod
    def validate_action(cls, v):
        if v not in ("start", "end", "toggle"):
            raise ValueError("action must be start, end or toggle")
        return v


class AISetterMessage(BaseModel):
    message: str
    state: Dict[str, Any] = Field(default_factory=dict)
    history: List[Dict[str, str]] = Field(default_factory=list)


class BookingPayload(BaseModel):
    """Booking envoyé par n8n (formulaire Calendly enrichi)"""
    name: Optional[str] = ""
    email: str
    phone: Optional[str] = None
    book_date: Optional[str] = None
    call_date: str
    setter_id: Optional[int] = None
    closer_id: Optional[int] = None
    source_type: Optional[str] = "organic"
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    calendly_event_uri: Optional[str] = None
    manychat_id: Optional[str] = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        v = (v or "").strip().lower()
        if not v:
            raise ValueError("email is required")
        return v
