"""Nearest-neighbour ordering of a day's showings.

The optimizer never touches the store: it takes appointments that are already
booked, pairs them with their properties and re-orders the geocoded ones by
repeatedly visiting the closest unvisited property. It is a greedy heuristic,
O(n^2) in the number of stops, which is fine for a single agent's day.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Mapping, Optional, Sequence

from ...config import DistanceUnit, settings
from ...models.domain import Agent, Appointment, Property
from ..geospatial import distance, distance_matrix, path_distance, travel_time_minutes
from .models import DailySchedule, RouteStop

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RouteParameters:
    average_speed: float = settings.route_average_speed
    unit: DistanceUnit = settings.route_distance_unit
    stop_buffer_minutes: int = settings.route_stop_buffer_minutes
    min_travel_minutes: int = settings.route_min_travel_minutes


def _pair_with_properties(
    appointments: Sequence[Appointment],
    properties: Mapping[str, Property],
) -> list[tuple[Appointment, Property]]:
    pairs: list[tuple[Appointment, Property]] = []
    for appointment in appointments:
        prop = properties.get(appointment.property_id)
        if prop is None:
            logger.warning(
                f"Appointment {appointment.id} references unknown property {appointment.property_id}; skipping"
            )
            continue
        pairs.append((appointment, prop))
    return pairs


def nearest_neighbor_order(
    pairs: Sequence[tuple[Appointment, Property]],
    unit: DistanceUnit = "km",
) -> list[tuple[Appointment, Property]]:
    """Greedy tour starting at the first pair; every property must be geocoded.

    Ties keep the earliest candidate in scan order.
    """

    if len(pairs) <= 1:
        return list(pairs)

    matrix = distance_matrix([prop.location for _, prop in pairs], unit)
    current = 0
    order = [current]
    unvisited = list(range(1, len(pairs)))
    while unvisited:
        nearest = unvisited[0]
        for index in unvisited[1:]:
            if matrix[current][index] < matrix[current][nearest]:
                nearest = index
        unvisited.remove(nearest)
        order.append(nearest)
        current = nearest
    return [pairs[index] for index in order]


def optimize_route(
    appointments: Sequence[Appointment],
    properties: Mapping[str, Property],
    agent: Agent,
    day: date,
    parameters: Optional[RouteParameters] = None,
) -> DailySchedule:
    """Order one day's appointments and compute per-leg distance and travel time."""

    parameters = parameters or RouteParameters()
    pairs = _pair_with_properties(appointments, properties)

    if not pairs:
        return DailySchedule(date=day, agent=agent, stops=[], optimized=True)

    if len(pairs) == 1:
        appointment, prop = pairs[0]
        return DailySchedule(
            date=day,
            agent=agent,
            stops=[RouteStop(appointment=appointment, property=prop)],
            optimized=True,
        )

    geocoded = [pair for pair in pairs if pair[1].location is not None]
    ungeocoded = [pair for pair in pairs if pair[1].location is None]

    if not geocoded:
        logger.info(f"No geocoded properties for agent {agent.id} on {day.isoformat()}; keeping input order")
        return DailySchedule(
            date=day,
            agent=agent,
            stops=[RouteStop(appointment=appointment, property=prop) for appointment, prop in pairs],
            total_distance=0.0,
            total_travel_time=0,
            optimized=False,
        )

    ordered = nearest_neighbor_order(geocoded, parameters.unit)

    stops: list[RouteStop] = []
    total_travel_time = 0
    previous: Optional[Property] = None
    for appointment, prop in ordered:
        stop = RouteStop(appointment=appointment, property=prop)
        if previous is not None:
            leg = distance(previous.location, prop.location, parameters.unit)
            minutes = travel_time_minutes(
                leg,
                parameters.average_speed,
                stop_buffer=parameters.stop_buffer_minutes,
                minimum=parameters.min_travel_minutes,
            )
            stop.distance_from_previous = leg
            stop.estimated_travel_time = minutes
            total_travel_time += minutes
        stops.append(stop)
        previous = prop

    total_distance = path_distance([prop.location for _, prop in ordered], parameters.unit)

    if ungeocoded:
        logger.warning(
            f"{len(ungeocoded)} appointment(s) on {day.isoformat()} have no coordinates; appended after the route"
        )
        stops.extend(RouteStop(appointment=appointment, property=prop) for appointment, prop in ungeocoded)

    return DailySchedule(
        date=day,
        agent=agent,
        stops=stops,
        total_distance=total_distance,
        total_travel_time=total_travel_time,
        optimized=True,
    )
