"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from ...models.domain import Agent, Appointment, Property


@dataclass(slots=True)
class RouteStop:
    appointment: Appointment
    property: Property
    distance_from_previous: Optional[float] = None
    estimated_travel_time: Optional[int] = None


@dataclass(slots=True)
class DailySchedule:
    date: date
    agent: Agent
    stops: List[RouteStop] = field(default_factory=list)
    total_distance: float = 0.0
    total_travel_time: int = 0
    optimized: bool = True
