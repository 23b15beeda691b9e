"""Domain models for agents, listings, clients and showings."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Literal, Optional

PropertyStatus = Literal["available", "under_contract", "sold"]
AppointmentStatus = Literal["scheduled", "completed", "cancelled"]
BookingStatus = Literal["pending", "confirmed", "rejected"]
TimeOfDay = Literal["morning", "afternoon", "evening"]

APPOINTMENT_STATUSES: tuple[str, ...] = ("scheduled", "completed", "cancelled")
ACTIVE_BOOKING_STATUSES: tuple[str, ...] = ("pending", "confirmed")


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class Agent:
    id: str
    name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Property:
    """A listing that can be shown. ``location`` is None until geocoded."""

    id: str
    address: str
    city: str
    state: str
    zip_code: str
    property_type: str = "house"
    location: Optional[Coordinate] = None
    status: PropertyStatus = "available"
    price: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    square_feet: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Client:
    id: str
    agent_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    preferred_days: frozenset[str] = frozenset()
    preferred_time_slots: frozenset[str] = frozenset()
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PropertyPreference:
    id: str
    client_id: str
    property_id: str
    priority: Optional[int] = 1


@dataclass(slots=True)
class ShowingSlot:
    """A bookable window at one property on one calendar day."""

    id: str
    property_id: str
    date: date
    start_time: time
    end_time: time
    is_booked: bool = False
    booked_by: Optional[str] = None
    max_capacity: int = 10

    @property
    def duration_minutes(self) -> int:
        return (self.end_time.hour * 60 + self.end_time.minute) - (self.start_time.hour * 60 + self.start_time.minute)

    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)


@dataclass(slots=True)
class Appointment:
    id: str
    agent_id: str
    property_id: str
    client_name: str
    scheduled_date: datetime
    client_id: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    duration: int = 60
    status: AppointmentStatus = "scheduled"
    notes: Optional[str] = None
    post_visit_notes: Optional[str] = None
    booking_request_id: Optional[str] = None


@dataclass(slots=True)
class BookingRequest:
    """A proposed multi-client visit to one slot, awaiting confirmation."""

    id: str
    agent_id: str
    property_id: str
    slot_id: str
    client_ids: list[str]
    status: BookingStatus = "pending"
    travel_time_from_previous: Optional[int] = None
    distance_from_previous: Optional[float] = None
    requested_at: datetime = field(default_factory=utc_now)
    responded_at: Optional[datetime] = None
    notes: Optional[str] = None
