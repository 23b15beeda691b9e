"""Scheduling request/response schemas."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..config import settings
from ..models.domain import Coordinate


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.lat, longitude=self.lng)

    @classmethod
    def default(cls) -> "Location":
        return cls(lat=settings.default_start_latitude, lng=settings.default_start_longitude)


class SmartScheduleRequest(BaseModel):
    agent_id: str
    date: dt.date
    start_location: Optional[Location] = Field(
        default=None,
        description="Where the agent starts the day. Defaults to the configured office location.",
    )
    start_time: Optional[dt.time] = Field(default=None, description="Agent's first free minute, e.g. 08:00.")
    selected_property_ids: Optional[List[str]] = Field(
        default=None,
        description="Restrict candidates to these properties.",
    )


class BookingRunRequest(BaseModel):
    agent_id: str
    date: dt.date
    client_ids: List[str] = Field(..., min_length=1)
    start_location: Optional[Location] = None
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None


class CoordinateModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    latitude: float
    longitude: float


class AgentModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    phone: Optional[str] = None


class PropertyModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    address: str
    city: str
    state: str
    zip_code: str
    property_type: str
    location: Optional[CoordinateModel] = None
    status: str


class AppointmentModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    agent_id: str
    property_id: str
    client_id: Optional[str] = None
    client_name: str
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    scheduled_date: dt.datetime
    duration: int
    status: str
    notes: Optional[str] = None
    post_visit_notes: Optional[str] = None
    booking_request_id: Optional[str] = None


class BookingRequestModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    agent_id: str
    property_id: str
    slot_id: str
    client_ids: List[str]
    status: str
    travel_time_from_previous: Optional[int] = None
    distance_from_previous: Optional[float] = None
    requested_at: Optional[dt.datetime] = None
    responded_at: Optional[dt.datetime] = None
    notes: Optional[str] = None


class RouteStopModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    appointment: AppointmentModel
    property: PropertyModel
    distance_from_previous: Optional[float] = None
    estimated_travel_time: Optional[int] = None


class DailyScheduleModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    agent: AgentModel
    stops: List[RouteStopModel]
    total_distance: float
    total_travel_time: int
    optimized: bool


class SmartScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    appointments: List[AppointmentModel]
    total_distance: float
    total_travel_time: int
    clients_scheduled: int
    properties_visited: int
