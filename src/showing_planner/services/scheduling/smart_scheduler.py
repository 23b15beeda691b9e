"""Availability-aware greedy scheduling of one agent's day.

Clients who are free on the requested weekday contribute candidates: one per
(client, preferred property, unbooked slot in a preferred part of the day).
Candidates are ranked by preference priority, reduced to one per
(client, property) pair, and then placed one at a time. Each step picks the
nearest property whose slot the agent can still reach from the current
position, so the day is built chronologically under a moving clock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Optional

from ...config import DistanceUnit, settings
from ...errors import NotFoundError
from ...models.domain import Appointment, Client, Coordinate, new_id
from ...persistence.base import SchedulingStore, WriteBatch, reserved_slot_ids
from ..clock import time_of_day, to_minutes, weekday_name
from .models import RouteCursor, ScheduleCandidate, SmartScheduleResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SchedulerParameters:
    average_speed: float = settings.scheduler_average_speed
    unit: DistanceUnit = settings.scheduler_distance_unit
    start_time: time = settings.scheduler_start_time
    default_priority: int = settings.default_priority


def _available_clients(clients: Iterable[Client], day: date) -> list[Client]:
    weekday = weekday_name(day)
    return [client for client in clients if weekday in client.preferred_days]


def collect_candidates(
    store: SchedulingStore,
    clients: Iterable[Client],
    day: date,
    selected_property_ids: Optional[set[str]] = None,
) -> list[ScheduleCandidate]:
    reserved = reserved_slot_ids(store)
    candidates: list[ScheduleCandidate] = []
    for client in clients:
        for preference in store.list_preferences_by_client(client.id):
            if selected_property_ids is not None and preference.property_id not in selected_property_ids:
                continue
            prop = store.get_property(preference.property_id)
            if prop is None:
                logger.warning(f"Preference {preference.id} references unknown property {preference.property_id}")
                continue
            if prop.location is None:
                logger.debug(f"Property {prop.id} has no coordinates; skipping for client {client.id}")
                continue
            for slot in store.list_slots_for_property(prop.id, day):
                if slot.is_booked or slot.id in reserved:
                    continue
                if time_of_day(slot.start_time) not in client.preferred_time_slots:
                    continue
                candidates.append(ScheduleCandidate(client=client, property=prop, slot=slot, preference=preference))
    return candidates


def rank_candidates(candidates: list[ScheduleCandidate], default_priority: int) -> list[ScheduleCandidate]:
    """Sort by priority then slot start and keep the first per (client, property)."""

    def _key(candidate: ScheduleCandidate) -> tuple[int, time]:
        priority = candidate.preference.priority
        return (priority if priority else default_priority, candidate.slot.start_time)

    pool: list[ScheduleCandidate] = []
    seen: set[tuple[str, str]] = set()
    for candidate in sorted(candidates, key=_key):
        pair = (candidate.client.id, candidate.property.id)
        if pair in seen:
            continue
        seen.add(pair)
        pool.append(candidate)
    return pool


def _pick_next(cursor: RouteCursor, pool: list[ScheduleCandidate], taken_slots: set[str]) -> Optional[tuple[int, float, int]]:
    """Index, distance and travel time of the nearest reachable candidate."""

    best: Optional[tuple[int, float, int]] = None
    for index, candidate in enumerate(pool):
        if candidate.slot.id in taken_slots:
            continue
        leg, minutes = cursor.leg_to(candidate.property.location)
        if not cursor.can_reach(minutes, to_minutes(candidate.slot.start_time)):
            continue
        if best is None or leg < best[1]:
            best = (index, leg, minutes)
    return best


def _appointment_for(agent_id: str, candidate: ScheduleCandidate) -> Appointment:
    client = candidate.client
    slot = candidate.slot
    return Appointment(
        id=new_id(),
        agent_id=agent_id,
        property_id=candidate.property.id,
        client_id=client.id,
        client_name=client.name,
        client_email=client.email,
        client_phone=client.phone,
        scheduled_date=slot.starts_at(),
        duration=slot.duration_minutes,
        status="scheduled",
        notes=f"Smart scheduled - {client.notes or 'No notes'}",
    )


def generate_smart_schedule(
    store: SchedulingStore,
    agent_id: str,
    day: date,
    start_location: Coordinate,
    start_time: Optional[time] = None,
    *,
    selected_property_ids: Optional[Iterable[str]] = None,
    parameters: Optional[SchedulerParameters] = None,
) -> SmartScheduleResult:
    """Plan and book the agent's showings for ``day``.

    Appointments and slot bookings are collected first and written with a
    single ``store.commit``; an empty plan writes nothing.
    """

    parameters = parameters or SchedulerParameters()
    if store.get_agent(agent_id) is None:
        raise NotFoundError("Agent", agent_id)

    clients = _available_clients(store.list_clients_by_agent(agent_id), day)
    if not clients:
        logger.info(f"No clients available for agent {agent_id} on {weekday_name(day)} {day.isoformat()}")
        return SmartScheduleResult()

    selected = set(selected_property_ids) if selected_property_ids is not None else None
    pool = rank_candidates(collect_candidates(store, clients, day, selected), parameters.default_priority)
    if not pool:
        logger.info(f"No matching showing slots for agent {agent_id} on {day.isoformat()}")
        return SmartScheduleResult()

    cursor = RouteCursor(
        location=start_location,
        minutes=to_minutes(start_time or parameters.start_time),
        unit=parameters.unit,
        average_speed=parameters.average_speed,
    )
    batch = WriteBatch()
    taken_slots: set[str] = set()

    while pool:
        choice = _pick_next(cursor, pool, taken_slots)
        if choice is None:
            break
        index, leg, minutes = choice
        candidate = pool.pop(index)
        batch.add_appointment(_appointment_for(agent_id, candidate))
        batch.book_slot(candidate.slot.id, candidate.client.id)
        taken_slots.add(candidate.slot.id)
        cursor.advance(candidate.property.location, to_minutes(candidate.slot.end_time), leg, minutes)

    if pool:
        logger.debug(f"{len(pool)} candidate(s) unreachable for agent {agent_id} on {day.isoformat()}")

    if not batch.is_empty():
        store.commit(batch)

    result = SmartScheduleResult(
        appointments=list(batch.appointments),
        total_distance=cursor.total_distance,
        total_travel_time=cursor.total_travel_time,
        clients_scheduled=len({appointment.client_id for appointment in batch.appointments}),
        properties_visited=len({appointment.property_id for appointment in batch.appointments}),
    )
    logger.info(
        f"Smart schedule for agent {agent_id} on {day.isoformat()}: {len(result.appointments)} appointment(s), "
        f"{result.total_distance:.2f} {parameters.unit}, {result.total_travel_time} min travel"
    )
    return result
