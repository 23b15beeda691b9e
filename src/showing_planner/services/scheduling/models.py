"""Scheduling domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from ...config import DistanceUnit
from ...models.domain import Appointment, Client, Coordinate, Property, PropertyPreference, ShowingSlot
from ..geospatial import distance, travel_time_minutes


@dataclass(slots=True)
class ScheduleCandidate:
    client: Client
    property: Property
    slot: ShowingSlot
    preference: PropertyPreference


@dataclass(slots=True)
class RouteCursor:
    """Where the agent is and when they are free during one planning run."""

    location: Coordinate
    minutes: int
    unit: DistanceUnit
    average_speed: float
    total_distance: float = 0.0
    total_travel_time: int = 0
    stops: int = 0

    def leg_to(self, target: Coordinate) -> tuple[float, int]:
        leg = distance(self.location, target, self.unit)
        return leg, travel_time_minutes(leg, self.average_speed)

    def can_reach(self, travel_minutes: int, start_minutes: int) -> bool:
        return self.minutes + travel_minutes <= start_minutes

    def advance(self, target: Coordinate, end_minutes: int, leg: float, travel_minutes: int) -> None:
        self.location = target
        self.minutes = end_minutes
        self.total_distance += leg
        self.total_travel_time += travel_minutes
        self.stops += 1


@dataclass(slots=True)
class SmartScheduleResult:
    appointments: List[Appointment] = field(default_factory=list)
    total_distance: float = 0.0
    total_travel_time: int = 0
    clients_scheduled: int = 0
    properties_visited: int = 0


@dataclass(slots=True)
class SlotCandidate:
    slot: ShowingSlot
    property: Property
    start_minutes: int
    end_minutes: int
    client_ids: List[str]


@dataclass(slots=True)
class AcceptedBooking:
    candidate: SlotCandidate
    travel_time_from_previous: Optional[int] = None
    distance_from_previous: Optional[float] = None
